import json
import logging
from typing import List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from .errors import ParseError
from .gemini import GeminiClient
from .models import StyleSuggestion

logger = logging.getLogger("headshot_studio.assistant")

STYLE_PROMPT = (
    "You are a creative director. Brainstorm 5 distinct and professional styles for a corporate headshot. "
    "For each, provide a short, catchy name and a brief description (less than 15 words). "
    'Return ONLY the JSON array of objects, where each object has a "name" and "description" key. '
    'Example: [{"name": "The CEO", "description": "Confident, powerful, with a dark, moody background."}]'
)

_suggestions = TypeAdapter(List[StyleSuggestion])


def bio_prompt(style_prompt: Optional[str]) -> str:
    style = (style_prompt or "").strip() or "Standard professional headshot"
    return (
        "You are a professional branding expert and copywriter. "
        "Write a compelling and professional LinkedIn 'About' section summary. "
        "The tone should be confident and engaging. The summary should be approximately 4-5 sentences long. "
        f"The user's recent headshot was generated with the following style prompt: '{style}'. "
        "Use this style as inspiration for the tone of the bio."
    )


class Assistant:
    """Style ideas and bio drafts. Neither costs credits."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def suggest_styles(self) -> List[StyleSuggestion]:
        text = self.client.generate_text(STYLE_PROMPT, json_output=True)
        try:
            return _suggestions.validate_python(json.loads(text))
        except (ValueError, SchemaError) as e:
            logger.error("could not parse style suggestions: %s", e)
            raise ParseError("Style suggestions were not valid JSON")

    def draft_bio(self, style_prompt: Optional[str] = None) -> str:
        return self.client.generate_text(bio_prompt(style_prompt)).strip()
