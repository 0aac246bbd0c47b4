import base64
import json
from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from conftest import FakeGemini, FakeProvider, make_png
from headshots import config
from headshots.gemini import GeminiClient
from headshots.studio import HeadshotStudio
from server import create_app


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture
def studio(store, gemini, alice):
    return HeadshotStudio(FakeProvider(popup=alice), store, gemini, host="localhost", cost=50)


@pytest.fixture
def client(studio):
    return TestClient(create_app(studio))


def sign_in(client):
    assert client.post("/api/session/sign-in").json()["state"] == "authenticated"


def upload(client, *images):
    items = [{"image": "data:image/png;base64," + base64.b64encode(img).decode()} for img in images]
    return client.post("/api/uploads", json={"images": items})


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_requires_sign_in(client):
    assert client.get("/api/session").json()["state"] == "unauthenticated"
    resp = client.post("/api/generate")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Please sign in first."


def test_sign_in_creates_profile(client, store):
    sign_in(client)
    body = client.get("/api/profile").json()
    assert body["profile"]["credits"] == 0
    assert body["generation_cost"] == 50
    assert store.get(config.PROFILES, "alice").exists


def test_full_generation_flow(client, gemini):
    sign_in(client)
    assert client.post("/api/credits/purchase").json()["credits"] == config.CREDIT_PACK_SIZE
    assert upload(client, make_png()).json() == {"count": 1}

    out = base64.b64encode(b"headshot").decode()
    gemini.image_results = [out]
    resp = client.post("/api/generate", json={"style_prompt": "Studio, grey backdrop"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["images"] == [f"data:image/png;base64,{out}"]
    assert body["credits"] == config.CREDIT_PACK_SIZE - 50
    assert "Studio, grey backdrop" in gemini.image_calls[0]["prompt"]
    assert client.get("/api/gallery").json()["images"] == body["images"]
    assert client.get("/api/profile").json()["can_generate"] is False


def test_insufficient_credits_maps_to_402(client):
    sign_in(client)
    upload(client, make_png())
    resp = client.post("/api/generate")
    assert resp.status_code == 402
    assert resp.json()["detail"] == "You need at least 50 credits to generate headshots."


def test_too_many_uploads(client):
    sign_in(client)
    resp = upload(client, *[make_png((i, i, i)) for i in range(6)])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "You can upload a maximum of 5 images."


def test_transport_failure_refunds_with_message(client, gemini, transport_error):
    sign_in(client)
    client.post("/api/credits/purchase", json={"amount": 100})
    upload(client, make_png(), make_png((0, 0, 0)))
    gemini.image_results = [base64.b64encode(b"ok").decode(), transport_error]

    resp = client.post("/api/generate")

    assert resp.status_code == 502
    assert resp.json()["detail"] == "Generation failed: API Error: model overloaded. Your credits have been refunded."
    assert client.get("/api/profile").json()["profile"]["credits"] == 100
    assert client.get("/api/gallery").json()["images"] == []


def test_style_suggestions_and_choice(client, gemini, studio):
    sign_in(client)
    gemini.text_results = [json.dumps([{"name": "Bold", "description": "Dramatic lighting, dark background."}])]
    assert client.post("/api/styles").json() == [{"name": "Bold", "description": "Dramatic lighting, dark background."}]
    assert client.post("/api/styles/choose", json={"index": 0}).json() == {
        "style_prompt": "Dramatic lighting, dark background."
    }
    assert studio.style_prompt == "Dramatic lighting, dark background."
    assert client.post("/api/styles/choose", json={"index": 0}).status_code == 404


def test_style_parse_failure_message(client, gemini):
    sign_in(client)
    gemini.text_results = ["nope"]
    resp = client.post("/api/styles")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Could not generate style suggestions. Please try again."


def test_bio(client, gemini):
    sign_in(client)
    gemini.text_results = ["I build things."]
    assert client.post("/api/bio", json={"style_prompt": "Casual"}).json() == {"bio": "I build things."}
    assert "'Casual'" in gemini.text_calls[0]["prompt"]


def test_bio_failure_message(client, gemini, transport_error):
    sign_in(client)
    gemini.text_results = [transport_error]
    resp = client.post("/api/bio")
    assert resp.json()["detail"] == "Could not generate LinkedIn bio. Please try again."


def test_sign_out_clears_account_cache(client, studio, store):
    sign_in(client)
    assert studio.account.profile is not None
    assert client.post("/api/session/sign-out").json()["state"] == "unauthenticated"
    assert studio.account.profile is None
    assert store.watcher_count() == 0
    assert client.get("/api/gallery").status_code == 401


def test_malformed_upstream_body_refunds_with_message(store, alice):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = 200
    resp.json.return_value = ["unexpected"]
    resp.text = '["unexpected"]'
    session = MagicMock(spec=requests.Session)
    session.post.return_value = resp
    gemini = GeminiClient(api_key="k", image_endpoint="https://img", text_endpoint="https://txt", session=session)
    client = TestClient(create_app(HeadshotStudio(FakeProvider(popup=alice), store, gemini, host="localhost", cost=50)))
    sign_in(client)
    client.post("/api/credits/purchase", json={"amount": 100})
    upload(client, make_png())

    resp = client.post("/api/generate")

    assert resp.status_code == 502
    assert resp.json()["detail"] == (
        "Generation failed: API Error: malformed response body. Your credits have been refunded."
    )
    assert client.get("/api/profile").json()["profile"]["credits"] == 100
    assert client.get("/api/gallery").json()["images"] == []


def test_unexpected_generation_error_refunds_with_message(client, gemini):
    sign_in(client)
    client.post("/api/credits/purchase", json={"amount": 50})
    upload(client, make_png())
    gemini.image_results = [RuntimeError("boom")]

    resp = client.post("/api/generate")

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Generation failed: boom. Your credits have been refunded."
    assert client.get("/api/profile").json()["profile"]["credits"] == 50


def test_bio_requires_sign_in_before_touching_style(client, studio):
    resp = client.post("/api/bio", json={"style_prompt": "Casual"})
    assert resp.status_code == 401
    assert studio.style_prompt == ""


def test_rejected_generate_keeps_bio(client, gemini, studio):
    sign_in(client)
    gemini.text_results = ["I build things."]
    client.post("/api/bio")

    assert client.post("/api/generate").status_code == 400
    upload(client, make_png())
    assert client.post("/api/generate").status_code == 402
    assert studio.bio == "I build things."
