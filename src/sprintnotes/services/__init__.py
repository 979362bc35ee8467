"""Services for SprintNotes."""

from sprintnotes.services.assistant import AssistantService, LectureTranslation
from sprintnotes.services.auth import AuthError, AuthService
from sprintnotes.services.canvas_client import CanvasClient, CanvasError
from sprintnotes.services.connectivity import ConnectivityMonitor
from sprintnotes.services.flashcard_generator import FlashcardGenerator
from sprintnotes.services.llm import (
    GeminiError,
    GeminiService,
    LanguageModel,
    LLMError,
    OllamaError,
    OllamaService,
    create_language_model,
)
from sprintnotes.services.matching import (
    Candidate,
    InvalidTransitionError,
    MatchError,
    MatchNotFoundError,
    MatchPermissionError,
    MatchService,
)
from sprintnotes.services.messaging import MessageError, MessagePoller, MessageService
from sprintnotes.services.note_service import NoteNotFoundError, NoteService
from sprintnotes.services.ordering import CycleError, OrderingEngine
from sprintnotes.services.remote_client import HttpRemote, RemoteDeliveryError
from sprintnotes.services.sync_queue import FlushResult, SyncQueue

__all__ = [
    "AssistantService",
    "AuthError",
    "AuthService",
    "Candidate",
    "CanvasClient",
    "CanvasError",
    "ConnectivityMonitor",
    "CycleError",
    "FlashcardGenerator",
    "FlushResult",
    "GeminiError",
    "GeminiService",
    "HttpRemote",
    "InvalidTransitionError",
    "LanguageModel",
    "LectureTranslation",
    "LLMError",
    "MatchError",
    "MatchNotFoundError",
    "MatchPermissionError",
    "MatchService",
    "MessageError",
    "MessagePoller",
    "MessageService",
    "NoteNotFoundError",
    "NoteService",
    "OllamaError",
    "OllamaService",
    "OrderingEngine",
    "RemoteDeliveryError",
    "SyncQueue",
    "create_language_model",
]
