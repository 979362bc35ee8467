"""Language model backends used by the note assistant and flashcard drafting."""

import json
import logging
import os
import re
from typing import Any, Optional, Protocol

from google import genai
from google.genai import types
from ollama import Client  # type: ignore[import-untyped]

from sprintnotes.config import Settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """A language model backend could not answer."""

    pass


class OllamaError(LLMError):
    """Error from the Ollama API."""

    pass


class GeminiError(LLMError):
    """Error from the Gemini API."""

    pass


class LanguageModel(Protocol):
    """Anything that turns a prompt into text."""

    def generate(self, prompt: str, system: Optional[str] = None) -> str: ...


def extract_json(response_text: str, expected: type) -> Any:
    """Pull the JSON array (``list``) or object (``dict``) out of a model reply.

    Prose or code fences around the JSON are ignored; the span between the
    outermost brackets is parsed.

    Raises:
        ValueError: If no JSON of the expected shape can be read
    """
    pattern = r"\[[\s\S]*\]" if expected is list else r"\{[\s\S]*\}"
    json_match = re.search(pattern, response_text)
    if not json_match:
        raise ValueError(f"Could not extract JSON from response: {response_text[:200]}")

    try:
        data = json.loads(json_match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, expected):
        shape = "array" if expected is list else "object"
        raise ValueError(f"Response must be a JSON {shape}")
    return data


class OllamaService:
    """Chat completions from an Ollama host (local or ollama.com)."""

    DEFAULT_MODEL = "gpt-oss:120b-cloud"
    DEFAULT_HOST = "https://ollama.com"

    def __init__(
        self,
        model_name: Optional[str] = None,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        """Initialize the backend.

        Args:
            model_name: Model to chat with (default: gpt-oss:120b-cloud)
            host: Ollama API host (default: https://ollama.com)
            api_key: Bearer token (default: OLLAMA_API_KEY env var)
        """
        self.model_name = model_name or self.DEFAULT_MODEL
        self.host = host or self.DEFAULT_HOST
        self.api_key = api_key or os.environ.get("OLLAMA_API_KEY", "")

        auth = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        self._client = Client(host=self.host, headers=auth)

    def check_connection(self) -> bool:
        """Whether the host answers a model listing."""
        try:
            self._client.list()
        except Exception as e:
            logger.debug("Ollama at %s unreachable: %s", self.host, e)
            return False
        return True

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Send one chat turn and return the reply text.

        Raises:
            OllamaError: If the request fails
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat(model=self.model_name, messages=messages, stream=False)
        except Exception as e:
            raise self._to_error(e) from e
        return response["message"]["content"].strip()

    def _to_error(self, error: Exception) -> OllamaError:
        text = str(error).lower()
        if "connection" in text:
            return OllamaError(
                f"Cannot connect to Ollama at {self.host}. Check your connection and API key."
            )
        if "timeout" in text:
            return OllamaError("Ollama request timed out")
        return OllamaError(f"Ollama request failed: {error}")


class GeminiService:
    """Text generation with Google Gemini."""

    DEFAULT_MODEL = "gemini-2.0-flash-lite"

    def __init__(self, api_key: str, model_name: Optional[str] = None):
        """Initialize the backend.

        Args:
            api_key: Google AI API key
            model_name: Model to use (default: gemini-2.0-flash-lite)
        """
        self.api_key = api_key
        self.model_name = model_name or self.DEFAULT_MODEL
        self._client: Any = None

    @property
    def client(self) -> Any:
        """Lazy-load the Gemini client."""
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Generate a reply, with ``system`` as the system instruction.

        Raises:
            GeminiError: If the request fails or the reply has no text
        """
        config = types.GenerateContentConfig(system_instruction=system) if system else None
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            raise GeminiError(f"Gemini request failed: {e}") from e
        if response.text is None:
            raise GeminiError("Gemini returned an empty response")
        return str(response.text).strip()


def create_language_model(settings: Settings) -> LanguageModel:
    """Backend selected by ``settings.llm_provider``.

    Raises:
        LLMError: If Gemini has no API key or the Ollama host is unreachable
    """
    if settings.llm_provider == "gemini":
        if not settings.gemini_api_key:
            raise GeminiError("SPRINTNOTES_GEMINI_API_KEY is required for the gemini provider")
        return GeminiService(api_key=settings.gemini_api_key, model_name=settings.gemini_model)

    ollama = OllamaService(
        model_name=settings.ollama_model,
        host=settings.ollama_host,
        api_key=settings.ollama_api_key or None,
    )
    if not ollama.check_connection():
        raise OllamaError(
            f"Cannot connect to Ollama at {settings.ollama_host}. "
            "Check your API key and connection."
        )
    return ollama
