from datetime import datetime, timedelta, timezone

from headshots import config
from headshots.errors import DocumentExists
from headshots.models import GenerationRecord, Identity
from headshots.sync import AccountSync, GallerySync, ProfileSync, build_gallery_view

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_gallery_view_dedupes_and_puts_newest_first():
    older = GenerationRecord(user_id="u", images=["a", "b"], created_at=T0)
    newer = GenerationRecord(user_id="u", images=["b", "c", "d"], created_at=T0 + timedelta(hours=1))
    # query order from the store is arbitrary
    assert build_gallery_view([newer, older]) == ["d", "c", "b", "a"]


def test_gallery_view_empty():
    assert build_gallery_view([]) == []


def test_first_subscription_creates_zero_balance_profile(store, alice):
    seen = []
    sub = ProfileSync(store).subscribe(alice, seen.append)

    assert len(seen) == 1
    assert seen[0].credits == 0
    assert seen[0].email == "alice@example.com"
    assert store.get(config.PROFILES, alice.uid).to_dict() == {
        "user_id": "alice", "email": "alice@example.com", "credits": 0,
    }
    sub.unsubscribe()


def test_existing_profile_is_not_recreated(store, alice):
    store.create(config.PROFILES, alice.uid, {"user_id": "alice", "email": "alice@example.com", "credits": 70})
    seen = []
    ProfileSync(store).subscribe(alice, seen.append)
    assert [p.credits for p in seen] == [70]


def test_profile_create_race_is_not_fatal(store, alice, caplog):
    class RacingStore(type(store)):
        def create(self, collection, key, data):
            raise DocumentExists(collection, key)

    racing = RacingStore()
    seen = []
    with caplog.at_level("INFO", logger="headshot_studio.sync"):
        ProfileSync(racing).subscribe(alice, seen.append)
    assert seen == []
    assert "created concurrently" in caplog.text


def test_profile_updates_stream_until_unsubscribed(store, alice):
    seen = []
    sub = ProfileSync(store).subscribe(alice, seen.append)
    store.increment(config.PROFILES, alice.uid, "credits", 50)
    sub.unsubscribe()
    store.increment(config.PROFILES, alice.uid, "credits", 50)
    assert [p.credits for p in seen] == [0, 50]


def test_gallery_subscription_filters_by_owner(store):
    views = []
    GallerySync(store).subscribe("alice", views.append)
    store.add(config.GENERATIONS, {"user_id": "bob", "images": ["x"], "created_at": T0})
    store.add(config.GENERATIONS, {"user_id": "alice", "images": ["a1", "a2"], "created_at": T0})
    store.add(config.GENERATIONS, {"user_id": "alice", "images": ["a2", "a3"], "created_at": T0 + timedelta(minutes=5)})
    assert views == [[], ["a2", "a1"], ["a3", "a2", "a1"]]


def test_account_sync_follows_identity(store, alice):
    bob = Identity(uid="bob", email="bob@example.com")
    store.add(config.GENERATIONS, {"user_id": "alice", "images": ["a"], "created_at": T0})
    sync = AccountSync(store)

    sync.on_identity(alice)
    assert sync.profile.user_id == "alice"
    assert sync.gallery == ["a"]
    assert store.watcher_count() == 2

    sync.on_identity(bob)
    assert sync.profile.user_id == "bob"
    assert sync.gallery == []
    assert store.watcher_count() == 2

    # alice's records no longer reach the cache
    store.add(config.GENERATIONS, {"user_id": "alice", "images": ["late"], "created_at": T0})
    assert sync.gallery == []

    sync.on_identity(None)
    assert sync.profile is None
    assert store.watcher_count() == 0


def test_same_identity_keeps_subscriptions(store, alice):
    sync = AccountSync(store)
    sync.on_identity(alice)
    sync.on_identity(Identity(uid="alice", email="alice@example.com"))
    assert store.watcher_count() == 2
