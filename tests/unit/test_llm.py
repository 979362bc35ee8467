"""Unit tests for the language model backends."""

from unittest.mock import MagicMock, patch

import pytest

from sprintnotes.config import Settings
from sprintnotes.services.llm import (
    GeminiError,
    GeminiService,
    LLMError,
    OllamaError,
    OllamaService,
    create_language_model,
    extract_json,
)


@pytest.fixture
def mock_client():
    """Create a mocked Ollama Client."""
    with patch("sprintnotes.services.llm.Client") as mock:
        mock.return_value = MagicMock()
        yield mock


@pytest.fixture
def ollama_service(mock_client):
    """Create an OllamaService with a mocked client."""
    return OllamaService(model_name="llama3", host="http://localhost:11434", api_key="key")


@pytest.fixture
def mock_genai():
    """Mock the google.genai module."""
    with patch("sprintnotes.services.llm.genai") as mock:
        client = MagicMock()
        mock.Client.return_value = client
        yield mock, client


class TestOllamaService:
    """Tests for the Ollama backend."""

    def test_defaults_without_key(self, mock_client, monkeypatch):
        """Test default host and model, and no auth header without a key."""
        monkeypatch.delenv("OLLAMA_API_KEY", raising=False)

        service = OllamaService()

        assert service.model_name == "gpt-oss:120b-cloud"
        assert service.host == "https://ollama.com"
        assert mock_client.call_args[1]["headers"] is None

    def test_bearer_header(self, mock_client):
        """Test that an API key becomes a bearer header."""
        OllamaService(api_key="test-key")

        assert mock_client.call_args[1]["headers"] == {"Authorization": "Bearer test-key"}

    def test_key_from_environment(self, mock_client, monkeypatch):
        """Test falling back to OLLAMA_API_KEY."""
        monkeypatch.setenv("OLLAMA_API_KEY", "env-key")

        assert OllamaService().api_key == "env-key"

    def test_check_connection(self, ollama_service):
        """Test the reachability probe."""
        ollama_service._client.list.return_value = {"models": []}
        assert ollama_service.check_connection() is True

        ollama_service._client.list.side_effect = Exception("Connection error")
        assert ollama_service.check_connection() is False

    def test_generate_with_system_prompt(self, ollama_service):
        """Test the chat messages and reply stripping."""
        ollama_service._client.chat.return_value = {"message": {"content": "  Reply \n"}}

        result = ollama_service.generate("User prompt", system="System prompt")

        assert result == "Reply"
        call_kwargs = ollama_service._client.chat.call_args[1]
        assert call_kwargs["model"] == "llama3"
        assert call_kwargs["stream"] is False
        assert call_kwargs["messages"] == [
            {"role": "system", "content": "System prompt"},
            {"role": "user", "content": "User prompt"},
        ]

    @pytest.mark.parametrize(
        "error,message",
        [
            ("connection refused", "Cannot connect"),
            ("timeout exceeded", "timed out"),
            ("model not found", "request failed"),
        ],
    )
    def test_generate_errors(self, ollama_service, error, message):
        """Test that client errors become OllamaError."""
        ollama_service._client.chat.side_effect = Exception(error)

        with pytest.raises(OllamaError, match=message) as exc_info:
            ollama_service.generate("Test")

        assert isinstance(exc_info.value, LLMError)


class TestGeminiService:
    """Tests for the Gemini backend."""

    def test_lazy_client_loading(self, mock_genai):
        """Test that the client is created once, on first use."""
        mock, _ = mock_genai
        service = GeminiService(api_key="test-key")

        mock.Client.assert_not_called()
        _ = service.client
        _ = service.client

        mock.Client.assert_called_once_with(api_key="test-key")
        assert service.model_name == "gemini-2.0-flash-lite"

    def test_generate_without_system(self, mock_genai):
        """Test a plain prompt."""
        _, client = mock_genai
        client.models.generate_content.return_value = MagicMock(text="  Summary  \n")

        result = GeminiService(api_key="k", model_name="gemini-pro").generate("Summarize")

        assert result == "Summary"
        call_kwargs = client.models.generate_content.call_args[1]
        assert call_kwargs["model"] == "gemini-pro"
        assert call_kwargs["contents"] == "Summarize"
        assert call_kwargs["config"] is None

    def test_generate_with_system_instruction(self, mock_genai):
        """Test that a system prompt becomes a content config."""
        _, client = mock_genai
        client.models.generate_content.return_value = MagicMock(text="{}")

        with patch("sprintnotes.services.llm.types") as mock_types:
            GeminiService(api_key="k").generate("Prompt", system="JSON only")

        mock_types.GenerateContentConfig.assert_called_once_with(system_instruction="JSON only")
        call_kwargs = client.models.generate_content.call_args[1]
        assert call_kwargs["config"] is mock_types.GenerateContentConfig.return_value

    def test_generate_errors(self, mock_genai):
        """Test API failures and empty replies."""
        _, client = mock_genai
        service = GeminiService(api_key="k")

        client.models.generate_content.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(GeminiError, match="quota exceeded"):
            service.generate("Prompt")

        client.models.generate_content.side_effect = None
        client.models.generate_content.return_value = MagicMock(text=None)
        with pytest.raises(GeminiError, match="empty response"):
            service.generate("Prompt")


class TestCreateLanguageModel:
    """Tests for provider selection."""

    def test_gemini_provider(self, mock_genai):
        """Test choosing Gemini."""
        settings = Settings(llm_provider="gemini", gemini_api_key="g-key")

        model = create_language_model(settings)

        assert isinstance(model, GeminiService)
        assert model.api_key == "g-key"

    def test_gemini_requires_key(self, mock_genai):
        """Test that Gemini needs an API key."""
        with pytest.raises(GeminiError, match="GEMINI_API_KEY"):
            create_language_model(Settings(llm_provider="gemini", gemini_api_key=""))

    def test_ollama_provider(self, mock_client):
        """Test choosing a reachable Ollama host."""
        settings = Settings(llm_provider="ollama", ollama_host="http://localhost:11434")

        model = create_language_model(settings)

        assert isinstance(model, OllamaService)
        assert model.host == "http://localhost:11434"

    def test_unreachable_ollama(self, mock_client):
        """Test that an unreachable host is reported up front."""
        mock_client.return_value.list.side_effect = Exception("refused")

        with pytest.raises(OllamaError, match="Cannot connect"):
            create_language_model(Settings(llm_provider="ollama"))


class TestExtractJson:
    """Tests for reading JSON out of model replies."""

    def test_array_with_surrounding_text(self):
        """Test extracting an array from prose."""
        reply = 'Sure!\n```json\n[{"front": "Q", "back": "A"}]\n```\nDone.'

        assert extract_json(reply, list) == [{"front": "Q", "back": "A"}]

    def test_object(self):
        """Test extracting an object."""
        assert extract_json('Result: {"keyPoints": ["a"]}', dict) == {"keyPoints": ["a"]}

    def test_missing_json(self):
        """Test a reply without brackets."""
        with pytest.raises(ValueError, match="Could not extract JSON"):
            extract_json("This is not JSON", list)

    def test_broken_json(self):
        """Test a malformed array."""
        with pytest.raises(ValueError, match="Invalid JSON"):
            extract_json("[{front: Q}]", list)

    def test_wrong_shape(self):
        """Test an object where an array was expected."""
        with pytest.raises(ValueError, match="JSON array"):
            extract_json('{"cards": [1, 2]}', list)
