import logging
from enum import Enum
from typing import Callable, List, Optional

from . import config
from .errors import AuthError, SignInCancelled
from .identity import IdentityProvider
from .models import Identity
from .store import Subscription

logger = logging.getLogger("headshot_studio.session")


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class SessionManager:
    """Tracks who is signed in.

    None of the public methods raise on provider failures; the user-visible
    message is left in ``error`` and the state always resolves out of
    ``AUTHENTICATING`` once the provider outcome is known.
    """

    def __init__(self, provider: IdentityProvider, host: str = config.APP_HOST,
                 popup_hosts=config.LOCAL_HOSTS):
        self.provider = provider
        self.host = host
        self.popup_hosts = frozenset(popup_hosts)
        self.state = SessionState.UNAUTHENTICATED
        self.identity: Optional[Identity] = None
        self.error: Optional[str] = None
        self._listeners: List[Callable[[Optional[Identity]], None]] = []
        self._provider_sub: Optional[Subscription] = None

    @property
    def uses_popup(self) -> bool:
        return self.host in self.popup_hosts

    def subscribe(self, listener: Callable[[Optional[Identity]], None]) -> Subscription:
        self._listeners.append(listener)
        return Subscription(lambda: self._listeners.remove(listener))

    def start(self) -> None:
        self.state = SessionState.AUTHENTICATING
        if self._provider_sub is None:
            self._provider_sub = self.provider.on_auth_state_changed(self._on_auth_state)
        user = self.provider.current_user()
        if user is not None:
            logger.info("restored session for user=%s", user.uid)
            self._set_identity(user)
        self.complete_redirect()

    def stop(self) -> None:
        if self._provider_sub is not None:
            self._provider_sub.unsubscribe()
            self._provider_sub = None

    def sign_in(self) -> None:
        self.state = SessionState.AUTHENTICATING
        self.error = None
        if self.uses_popup:
            logger.info("local host %s, signing in with pop-up", self.host)
            try:
                self._set_identity(self.provider.sign_in_popup())
            except SignInCancelled:
                logger.info("pop-up sign-in cancelled")
            except Exception as e:
                logger.error("Popup sign-in error: %s", e)
                self.error = "Could not complete sign-in. Please check browser settings for pop-ups."
            finally:
                self._resolve()
            return

        try:
            self.provider.sign_in_redirect()
            logger.info("redirect sign-in initiated")
        except Exception as e:
            logger.error("Sign-in redirect error: %s", e)
            self.error = ("Could not start sign-in process. Please check browser settings "
                          "for pop-ups or third-party cookies.")
            self._resolve()

    def complete_redirect(self) -> None:
        try:
            user = self.provider.get_redirect_result()
            if user is not None:
                logger.info("redirect sign-in successful for user=%s", user.uid)
                self._set_identity(user)
            else:
                logger.debug("no redirect result")
        except SignInCancelled:
            logger.info("redirect sign-in cancelled")
        except Exception as e:
            logger.error("Auth redirect error: %s", e)
            reason = e.message if isinstance(e, AuthError) else str(e)
            self.error = f"Failed to complete sign-in: {reason}. Please try again."
        finally:
            self._resolve()

    def sign_out(self) -> bool:
        try:
            self.provider.sign_out()
        except Exception as e:
            logger.error("Sign-out error: %s", e)
            self.error = e.message if isinstance(e, AuthError) else str(e)
            return False
        self._set_identity(None)
        self._resolve()
        return True

    def _on_auth_state(self, identity: Optional[Identity]) -> None:
        logger.debug("auth state changed: %s", identity.uid if identity else None)
        self._set_identity(identity)
        if self.state != SessionState.AUTHENTICATING or identity is not None:
            self._resolve()

    def _set_identity(self, identity: Optional[Identity]) -> None:
        previous = self.identity.uid if self.identity else None
        current = identity.uid if identity else None
        self.identity = identity
        if previous != current:
            for listener in list(self._listeners):
                listener(identity)

    def _resolve(self) -> None:
        if self.identity is not None:
            self.state = SessionState.AUTHENTICATED
        else:
            self.state = SessionState.UNAUTHENTICATED
