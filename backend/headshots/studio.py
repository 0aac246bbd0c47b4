import logging
from typing import List, Optional

from . import config
from .assistant import Assistant
from .errors import AuthError
from .gemini import GeminiClient
from .identity import IdentityProvider
from .ledger import CreditLedger
from .models import GenerationRecord, Identity, StyleSuggestion, UploadBatch, UploadedImage
from .orchestrator import GenerationOrchestrator
from .session import SessionManager
from .store import DocumentStore
from .sync import AccountSync

logger = logging.getLogger("headshot_studio")


class HeadshotStudio:
    """One user's studio: session, live account data, uploads and actions."""

    def __init__(
        self,
        provider: IdentityProvider,
        store: DocumentStore,
        client: GeminiClient,
        host: str = config.APP_HOST,
        cost: int = config.GENERATION_COST,
    ):
        self.store = store
        self.session = SessionManager(provider, host=host)
        self.account = AccountSync(store)
        self.ledger = CreditLedger(store)
        self.orchestrator = GenerationOrchestrator(store, self.ledger, client, cost=cost)
        self.assistant = Assistant(client)
        self.uploads = UploadBatch()
        self.style_prompt = ""
        self.style_suggestions: List[StyleSuggestion] = []
        self.bio = ""
        self.session.subscribe(self.account.on_identity)

    @property
    def cost(self) -> int:
        return self.orchestrator.cost

    def start(self) -> None:
        self.session.start()

    def close(self) -> None:
        self.session.stop()
        self.account.close()

    def require_user(self) -> Identity:
        if self.session.identity is None:
            raise AuthError("Please sign in first.")
        return self.session.identity

    def select_images(self, images: List[UploadedImage]) -> int:
        self.require_user()
        self.uploads.select(images)
        return len(self.uploads)

    def set_style_prompt(self, prompt: str) -> None:
        self.style_prompt = prompt or ""

    def buy_credits(self, amount: int = config.CREDIT_PACK_SIZE) -> int:
        user = self.require_user()
        return self.ledger.purchase(user.uid, amount)

    def generate(self, style_prompt: Optional[str] = None) -> GenerationRecord:
        user = self.require_user()
        if style_prompt is not None:
            self.set_style_prompt(style_prompt)
        self.orchestrator.check_preconditions(user, self.uploads, self.account.profile)
        self.bio = ""
        return self.orchestrator.generate(user, self.uploads, self.style_prompt, self.account.profile)

    def suggest_styles(self) -> List[StyleSuggestion]:
        self.require_user()
        self.style_suggestions = self.assistant.suggest_styles()
        return self.style_suggestions

    def choose_style(self, index: int) -> str:
        suggestion = self.style_suggestions[index]
        self.set_style_prompt(suggestion.description)
        self.style_suggestions = []
        return self.style_prompt

    def draft_bio(self) -> str:
        self.require_user()
        self.bio = self.assistant.draft_bio(self.style_prompt)
        return self.bio
