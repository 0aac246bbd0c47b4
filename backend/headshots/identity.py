"""
Identity provider boundary.

The session manager only talks to ``IdentityProvider``. ``LocalIdentityProvider``
signs everyone in as one configured development user. Its session lives on
the provider instance, so a studio restarted against the same provider finds
the user already signed in.
"""

import logging
from typing import Callable, List, Optional

from . import config
from .models import Identity
from .store import Subscription

logger = logging.getLogger("headshot_studio.identity")

AuthListener = Callable[[Optional[Identity]], None]


class IdentityProvider:
    def current_user(self) -> Optional[Identity]:
        raise NotImplementedError

    def sign_in_popup(self) -> Identity:
        """Interactive sign-in in a pop-up; raises ``SignInCancelled``/``AuthError``."""
        raise NotImplementedError

    def sign_in_redirect(self) -> None:
        """Start a full-page redirect; the outcome arrives via ``get_redirect_result``."""
        raise NotImplementedError

    def get_redirect_result(self) -> Optional[Identity]:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError

    def on_auth_state_changed(self, listener: AuthListener) -> Subscription:
        raise NotImplementedError


class ListenerMixin:
    def __init__(self):
        self._listeners: List[AuthListener] = []

    def on_auth_state_changed(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        listener(self.current_user())
        return Subscription(lambda: self._listeners.remove(listener))

    def _emit(self, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            listener(identity)


class LocalIdentityProvider(ListenerMixin, IdentityProvider):
    def __init__(self, uid: str = config.DEV_USER_ID, email: str = config.DEV_USER_EMAIL):
        super().__init__()
        self.identity = Identity(uid=uid, email=email)
        self._user: Optional[Identity] = None
        self._pending_redirect = False

    def current_user(self) -> Optional[Identity]:
        return self._user

    def sign_in_popup(self) -> Identity:
        self._user = self.identity
        logger.info("popup sign-in for %s", self.identity.email)
        self._emit(self._user)
        return self._user

    def sign_in_redirect(self) -> None:
        self._pending_redirect = True
        logger.info("redirect sign-in started for %s", self.identity.email)

    def get_redirect_result(self) -> Optional[Identity]:
        if not self._pending_redirect:
            return None
        self._pending_redirect = False
        self._user = self.identity
        self._emit(self._user)
        return self._user

    def sign_out(self) -> None:
        self._user = None
        self._emit(None)
