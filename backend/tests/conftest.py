"""
Shared fixtures: an in-memory store, a scripted Gemini client and a fake
identity provider, all injected as explicit dependencies.
"""
import base64
from io import BytesIO

import pytest
from PIL import Image

from headshots.errors import AuthError, TransportError
from headshots.identity import IdentityProvider, ListenerMixin
from headshots.models import Identity, UploadedImage
from headshots.store import InMemoryDocumentStore


def make_png(color=(200, 120, 80), size=(16, 16)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeGemini:
    """Scripted stand-in for GeminiClient.

    ``image_results`` is consumed one entry per call: a base64 string is
    returned as a PNG part, None means "no image part", an exception is raised.
    """

    def __init__(self, image_results=None, text_results=None):
        self.image_results = list(image_results or [])
        self.text_results = list(text_results or [])
        self.image_calls = []
        self.text_calls = []

    def generate_image(self, prompt, image_b64, mime_type="image/jpeg"):
        self.image_calls.append({"prompt": prompt, "image": image_b64, "mime_type": mime_type})
        result = self.image_results.pop(0) if self.image_results else base64.b64encode(b"out").decode()
        if isinstance(result, Exception):
            raise result
        if result is None:
            return None
        return result, "image/png"

    def generate_text(self, prompt, json_output=False):
        self.text_calls.append({"prompt": prompt, "json_output": json_output})
        result = self.text_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeProvider(ListenerMixin, IdentityProvider):
    def __init__(self, user=None, popup=None, redirect=None, sign_out_error=None, redirect_start_error=None):
        super().__init__()
        self.user = user
        self.popup = popup
        self.redirect = redirect
        self.sign_out_error = sign_out_error
        self.redirect_start_error = redirect_start_error
        self.redirect_started = False

    def current_user(self):
        return self.user

    def sign_in_popup(self):
        if isinstance(self.popup, Exception):
            raise self.popup
        self.user = self.popup
        self._emit(self.user)
        return self.user

    def sign_in_redirect(self):
        if self.redirect_start_error:
            raise self.redirect_start_error
        self.redirect_started = True

    def get_redirect_result(self):
        result, self.redirect = self.redirect, None
        if isinstance(result, Exception):
            raise result
        if result is not None:
            self.user = result
            self._emit(result)
        return result

    def sign_out(self):
        if self.sign_out_error:
            raise self.sign_out_error
        self.user = None
        self._emit(None)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def alice():
    return Identity(uid="alice", email="alice@example.com")


@pytest.fixture
def png():
    return make_png()


@pytest.fixture
def selfie(png):
    return UploadedImage(data=png, mime_type="image/png", filename="selfie.png")


@pytest.fixture
def transport_error():
    return TransportError("API Error: model overloaded", status_code=503)


@pytest.fixture
def auth_error():
    return AuthError("network-request-failed")
