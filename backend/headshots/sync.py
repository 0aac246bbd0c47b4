import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from . import config
from .errors import DocumentExists, StoreError
from .models import GenerationRecord, Identity, Profile
from .store import DocumentSnapshot, DocumentStore, Subscription

logger = logging.getLogger("headshot_studio.sync")


def build_gallery_view(records: List[GenerationRecord]) -> List[str]:
    """Flatten, de-duplicate and put the newest record's images first."""
    ordered = sorted(records, key=lambda r: _as_utc(r.created_at))
    seen = set()
    images = []
    for record in ordered:
        for img in record.images:
            if img not in seen:
                seen.add(img)
                images.append(img)
    images.reverse()
    return images


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class ProfileSync:
    def __init__(self, store: DocumentStore, collection: str = config.PROFILES):
        self.store = store
        self.collection = collection

    def subscribe(self, identity: Identity, callback: Callable[[Profile], None]) -> Subscription:
        def on_snapshot(snap: DocumentSnapshot):
            if snap.exists:
                callback(Profile(**snap.to_dict()))
                return
            try:
                self.store.create(self.collection, identity.uid, {
                    "user_id": identity.uid,
                    "email": identity.email,
                    "credits": 0,
                })
                logger.info("created profile for user=%s", identity.uid)
            except DocumentExists:
                logger.info("profile for user=%s created concurrently", identity.uid)
            except StoreError as e:
                logger.error("Error creating profile for user=%s: %s", identity.uid, e)

        return self.store.watch_document(self.collection, identity.uid, on_snapshot)


class GallerySync:
    def __init__(self, store: DocumentStore, collection: str = config.GENERATIONS):
        self.store = store
        self.collection = collection

    def subscribe(self, user_id: str, callback: Callable[[List[str]], None]) -> Subscription:
        def on_snapshot(snaps: List[DocumentSnapshot]):
            records = [GenerationRecord(id=s.key, **s.to_dict()) for s in snaps]
            callback(build_gallery_view(records))

        return self.store.watch_query(self.collection, {"user_id": user_id}, on_snapshot)


class AccountSync:
    """Keeps the cached profile and gallery in step with the signed-in identity."""

    def __init__(self, store: DocumentStore):
        self.profiles = ProfileSync(store)
        self.galleries = GallerySync(store)
        self.identity: Optional[Identity] = None
        self.profile: Optional[Profile] = None
        self.gallery: List[str] = []
        self._subscriptions: List[Subscription] = []

    def on_identity(self, identity: Optional[Identity]) -> None:
        if identity is not None and self.identity is not None and identity.uid == self.identity.uid:
            return
        self.close()
        self.identity = identity
        if identity is None:
            return
        self._subscriptions = [
            self.profiles.subscribe(identity, self._set_profile),
            self.galleries.subscribe(identity.uid, self._set_gallery),
        ]

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []
        self.identity = None
        self.profile = None
        self.gallery = []

    def _set_profile(self, profile: Profile) -> None:
        self.profile = profile

    def _set_gallery(self, images: List[str]) -> None:
        self.gallery = images
