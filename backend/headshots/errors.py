from typing import Optional


class StudioError(Exception):
    """Base for every error that ends up as a single user-visible message."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(StudioError):
    pass


class SignInCancelled(AuthError):
    """The user closed the provider window; never shown to the user."""

    def __init__(self, message: str = "Sign-in cancelled by user"):
        super().__init__(message)


class ValidationError(StudioError):
    pass


class InsufficientCredits(ValidationError):
    def __init__(self, user_id: str, required: int, available: int):
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(f"You need at least {required} credits to generate headshots.")


class GenerationInProgress(ValidationError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("A generation is already running. Please wait for it to finish.")


class UploadError(StudioError):
    pass


class TransportError(StudioError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class EmptyResultError(StudioError):
    pass


class ParseError(StudioError):
    pass


class StoreError(StudioError):
    pass


class DocumentExists(StoreError):
    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"Document {collection}/{key} already exists")


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"Document {collection}/{key} not found")


class PreconditionFailed(StoreError):
    """A conditional update was rejected; ``current`` is the stored value."""

    def __init__(self, collection: str, key: str, field: str, current: int):
        self.collection = collection
        self.key = key
        self.field = field
        self.current = current
        super().__init__(f"Precondition failed on {collection}/{key}.{field} (current={current})")


class GenerationFailed(StudioError):
    """A generation aborted after credits were reserved."""

    def __init__(self, cause: Exception, refunded: bool):
        self.cause = cause
        self.refunded = refunded
        reason = cause.message if isinstance(cause, StudioError) else str(cause)
        if refunded:
            notice = "Your credits have been refunded."
        else:
            notice = "Your credits could not be refunded automatically; please contact support."
        super().__init__(f"Generation failed: {reason.rstrip('.')}. {notice}")
