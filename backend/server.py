import logging
import os
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from headshots import config
from headshots.errors import (
    AuthError,
    GenerationFailed,
    GenerationInProgress,
    InsufficientCredits,
    ParseError,
    StoreError,
    StudioError,
    TransportError,
    UploadError,
    ValidationError,
)
from headshots.gemini import GeminiClient
from headshots.identity import LocalIdentityProvider
from headshots.imaging import decode_image_b64
from headshots.models import StyleSuggestion, UploadedImage
from headshots.store import InMemoryDocumentStore
from headshots.studio import HeadshotStudio

logger = logging.getLogger("headshot_studio")
logger.setLevel(config.LOG_LEVEL)


class UploadItem(BaseModel):
    image: str  # base64-encoded image (PNG or JPEG), raw or data URL
    mime_type: Optional[str] = None
    filename: Optional[str] = None


class UploadBody(BaseModel):
    images: List[UploadItem] = Field(..., min_length=1)


class GenerateBody(BaseModel):
    style_prompt: Optional[str] = None


class PurchaseBody(BaseModel):
    amount: int = Field(config.CREDIT_PACK_SIZE, gt=0)


class ChooseStyleBody(BaseModel):
    index: int = Field(..., ge=0)


class BioBody(BaseModel):
    style_prompt: Optional[str] = None


def status_for(err: StudioError) -> int:
    if isinstance(err, GenerationFailed):
        return status_for(err.cause) if isinstance(err.cause, StudioError) else 500
    if isinstance(err, AuthError):
        return 401
    if isinstance(err, InsufficientCredits):
        return 402
    if isinstance(err, GenerationInProgress):
        return 409
    if isinstance(err, (ValidationError, UploadError)):
        return 400
    if isinstance(err, (TransportError, ParseError)):
        return 502
    return 500


def create_app(studio: Optional[HeadshotStudio] = None) -> FastAPI:
    if studio is None:
        studio = HeadshotStudio(LocalIdentityProvider(), InMemoryDocumentStore(), GeminiClient())
    studio.start()

    app = FastAPI(title="AI Headshot Studio API")
    app.state.studio = studio

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,  # use wildcard CORS header reliably
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def fail(err: StudioError, message: Optional[str] = None):
        logger.warning("%s: %s", type(err).__name__, err.message)
        raise HTTPException(status_code=status_for(err), detail=message or err.message)

    def signed_in():
        try:
            return studio.require_user()
        except AuthError as e:
            fail(e)

    def session_state():
        s = studio.session
        return {
            "state": s.state.value,
            "user": s.identity.model_dump() if s.identity else None,
            "error": s.error,
        }

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/api/session")
    def get_session():
        return session_state()

    @app.post("/api/session/sign-in")
    def sign_in():
        studio.session.sign_in()
        return session_state()

    @app.post("/api/session/redirect")
    def complete_redirect():
        studio.session.complete_redirect()
        return session_state()

    @app.post("/api/session/sign-out")
    def sign_out():
        studio.session.sign_out()
        return session_state()

    @app.get("/api/profile")
    def get_profile():
        signed_in()
        profile = studio.account.profile
        return {
            "profile": profile.model_dump() if profile else None,
            "generation_cost": studio.cost,
            "can_generate": bool(profile and profile.credits >= studio.cost and len(studio.uploads) > 0),
        }

    @app.post("/api/credits/purchase")
    def purchase(body: Optional[PurchaseBody] = None):
        try:
            credits = studio.buy_credits((body or PurchaseBody()).amount)
        except AuthError as e:
            fail(e)
        except StoreError as e:
            fail(e, "Failed to add credits. Please try again.")
        return {"credits": credits}

    @app.get("/api/gallery")
    def gallery():
        signed_in()
        return {"images": studio.account.gallery}

    @app.post("/api/uploads")
    def upload(body: UploadBody):
        try:
            images = []
            for item in body.images:
                data, mime = decode_image_b64(item.image)
                images.append(UploadedImage(data=data, mime_type=item.mime_type or mime, filename=item.filename))
            count = studio.select_images(images)
        except StudioError as e:
            fail(e)
        logger.info("/api/uploads selected=%s", count)
        return {"count": count}

    @app.post("/api/generate")
    def generate(body: Optional[GenerateBody] = None):
        try:
            record = studio.generate(body.style_prompt if body else None)
        except StudioError as e:
            fail(e)
        return {
            "id": record.id,
            "images": record.images,
            "created_at": record.created_at.isoformat(),
            "credits": studio.ledger.balance(record.user_id),
        }

    @app.post("/api/styles")
    def suggest_styles() -> List[StyleSuggestion]:
        try:
            return studio.suggest_styles()
        except AuthError as e:
            fail(e)
        except StudioError as e:
            fail(e, "Could not generate style suggestions. Please try again.")

    @app.post("/api/styles/choose")
    def choose_style(body: ChooseStyleBody):
        signed_in()
        if body.index >= len(studio.style_suggestions):
            raise HTTPException(status_code=404, detail="No such style suggestion")
        return {"style_prompt": studio.choose_style(body.index)}

    @app.post("/api/bio")
    def draft_bio(body: Optional[BioBody] = None):
        signed_in()
        if body is not None and body.style_prompt is not None:
            studio.set_style_prompt(body.style_prompt)
        try:
            return {"bio": studio.draft_bio()}
        except AuthError as e:
            fail(e)
        except StudioError as e:
            fail(e, "Could not generate LinkedIn bio. Please try again.")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
