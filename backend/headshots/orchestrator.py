"""
Generation orchestrator.

``generate`` runs reserve -> encode -> per-image inference -> persist, and
compensates the reservation on every failure after the debit. Inference
calls are issued one after another in upload order; a failure on any call
discards the images produced so far, so a record is written for the whole
batch or not at all.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from . import config
from .errors import (
    EmptyResultError,
    GenerationFailed,
    GenerationInProgress,
    InsufficientCredits,
    StudioError,
    ValidationError,
)
from .gemini import GeminiClient
from .imaging import encode_upload, to_data_uri
from .ledger import CreditLedger, Reservation
from .models import GenerationRecord, Identity, Profile, UploadBatch
from .store import DocumentStore

logger = logging.getLogger("headshot_studio.orchestrator")

SYSTEM_INSTRUCTION = (
    "You are an expert photographer specializing in professional headshots. "
    "Your task is to generate a high-quality, photorealistic headshot based on the person in the provided image, "
    "following the user's style request. "
    "The final image should be clean, professional, and suitable for corporate or personal branding use."
)
DEFAULT_STYLE = (
    "A standard corporate headshot with a neutral, soft-focus background and professional lighting."
)


def build_prompt(style_prompt: Optional[str]) -> str:
    style = (style_prompt or "").strip() or DEFAULT_STYLE
    return f"{SYSTEM_INSTRUCTION}\n\nStyle request: {style}"


class GenerationOrchestrator:
    def __init__(
        self,
        store: DocumentStore,
        ledger: CreditLedger,
        client: GeminiClient,
        cost: int = config.GENERATION_COST,
        max_uploads: int = config.MAX_UPLOADS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.ledger = ledger
        self.client = client
        self.cost = cost
        self.max_uploads = max_uploads
        self.clock = clock
        self._in_flight = set()
        self._lock = threading.Lock()

    def check_preconditions(self, identity: Identity, uploads: UploadBatch, profile: Optional[Profile]) -> None:
        if len(uploads) == 0:
            raise ValidationError("Please upload at least one selfie.")
        if len(uploads) > self.max_uploads:
            raise ValidationError(f"You can upload a maximum of {self.max_uploads} images.")
        available = profile.credits if profile is not None else 0
        if available < self.cost:
            raise InsufficientCredits(identity.uid, self.cost, available)

    def generate(
        self,
        identity: Identity,
        uploads: UploadBatch,
        style_prompt: Optional[str],
        profile: Optional[Profile],
    ) -> GenerationRecord:
        self.check_preconditions(identity, uploads, profile)
        with self._lock:
            if identity.uid in self._in_flight:
                raise GenerationInProgress(identity.uid)
            self._in_flight.add(identity.uid)
        try:
            reservation = self.ledger.reserve(identity.uid, self.cost)
            return self._run(identity, uploads, style_prompt, reservation)
        finally:
            with self._lock:
                self._in_flight.discard(identity.uid)

    def _run(self, identity: Identity, uploads: UploadBatch, style_prompt: Optional[str],
             reservation: Reservation) -> GenerationRecord:
        try:
            encoded = [encode_upload(u) for u in uploads]
            prompt = build_prompt(style_prompt)

            images: List[str] = []
            for idx, (b64, mime) in enumerate(encoded):
                logger.info("generating image %s/%s for user=%s", idx + 1, len(encoded), identity.uid)
                result = self.client.generate_image(prompt, b64, mime)
                if result is None:
                    logger.warning("no image returned for upload %s of user=%s", idx + 1, identity.uid)
                    continue
                out_b64, out_mime = result
                images.append(to_data_uri(out_b64, out_mime))

            if not images:
                raise EmptyResultError("The AI failed to generate images.")

            record = GenerationRecord(user_id=identity.uid, images=images, created_at=self.clock())
            record.id = self.store.add(config.GENERATIONS, record.model_dump(exclude={"id"}))
            uploads.clear()
            logger.info("stored generation %s with %s images for user=%s", record.id, len(images), identity.uid)
            return record
        except StudioError as e:
            logger.error("generation failed for user=%s: %s", identity.uid, e)
            raise GenerationFailed(e, refunded=self._refund(reservation)) from e
        except Exception as e:
            logger.exception("unexpected generation failure for user=%s", identity.uid)
            raise GenerationFailed(e, refunded=self._refund(reservation)) from e

    def _refund(self, reservation: Reservation) -> bool:
        try:
            self.ledger.release(reservation)
        except Exception:
            logger.exception("refund of %s credits failed for user=%s", reservation.amount, reservation.user_id)
            return False
        return True
