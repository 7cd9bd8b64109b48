import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from autopublisher import config
from autopublisher.core.exceptions import ExternalServiceError, ResponseParseError

logger = logging.getLogger(__name__)


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str = "image/jpeg"

    @property
    def format(self) -> str:
        if "png" in self.mime_type:
            return "png"
        if "webp" in self.mime_type:
            return "webp"
        return "jpeg"


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class GeminiClient:
    """
    Wrapper around the Gemini API with fallback support for multiple models.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[List[str]] = None,
        image_model: Optional[str] = None,
    ):
        api_key = api_key or config.GEMINI_API_KEY
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is not set in environment.")
        genai.configure(api_key=api_key)
        self.models = models or list(config.GEMINI_TEXT_MODELS)
        self.image_model = image_model or config.GEMINI_IMAGE_MODEL

    def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.8,
    ) -> Dict[str, Any]:
        """
        Ask each model in turn for a JSON object.

        Raises:
            ResponseParseError: If the last model answered with invalid JSON
            ExternalServiceError: If every model call failed
        """
        last_error: Optional[Exception] = None

        for model_name in self.models:
            logger.info("Attempting with model: %s", model_name)
            try:
                model = genai.GenerativeModel(model_name, system_instruction=system_instruction)
                response = model.generate_content(
                    prompt,
                    generation_config={
                        "response_mime_type": "application/json",
                        "temperature": temperature,
                    },
                )
                text = strip_code_fences(response.text or "")
                if not text:
                    raise ExternalServiceError(f"Empty response from {model_name}")
                data = json.loads(text)
                if not isinstance(data, dict):
                    raise json.JSONDecodeError("Expected a JSON object", text, 0)
                logger.info("Success with %s", model_name)
                return data
            except Exception as e:
                logger.warning("Failed with %s: %s", model_name, e)
                last_error = e
                continue

        if isinstance(last_error, json.JSONDecodeError):
            raise ResponseParseError(f"Failed to parse AI response as JSON: {last_error}")
        raise ExternalServiceError(f"All Gemini models failed. Last error: {last_error}")

    def generate_text(self, prompt: str) -> str:
        last_error: Optional[Exception] = None
        for model_name in self.models:
            try:
                response = genai.GenerativeModel(model_name).generate_content(prompt)
                return (response.text or "").strip()
            except Exception as e:
                logger.warning("Failed with %s: %s", model_name, e)
                last_error = e
        raise ExternalServiceError(f"All Gemini models failed. Last error: {last_error}")

    def generate_image(self, prompt: str) -> Optional[GeneratedImage]:
        """
        Request an image from the image model.

        Returns:
            The first inline image part, or None when the model answered without one
        """
        model = genai.GenerativeModel(self.image_model)
        try:
            response = model.generate_content(
                prompt,
                generation_config={"temperature": 0.9, "top_p": 0.95, "top_k": 40},
            )
        except Exception as e:
            raise ExternalServiceError(f"Image generation failed: {e}") from e

        for candidate in response.candidates or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is None or not inline.data:
                    continue
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return GeneratedImage(data=data, mime_type=inline.mime_type or "image/jpeg")
        return None
