"""Remote backend access: a PostgREST client and per-entity services."""

from .backend import BackendClient
from .collections import CollectionService
from .poems import PoemService
from .prompts import FormService, PromptService
from .recitations import RecitationService
from .reviews import ReviewService
from .settings import SettingsService

__all__ = [
    "BackendClient",
    "CollectionService",
    "FormService",
    "PoemService",
    "PromptService",
    "RecitationService",
    "ReviewService",
    "SettingsService",
]
