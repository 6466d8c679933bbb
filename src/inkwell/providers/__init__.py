"""External providers: AI review, speech synthesis, classic poems and rhymes."""

from .poetrydb import DailyPoemCache, PoetryDbClient
from .reviewer import PoemReviewer, review_provider
from .rhymes import RhymeClient, RhymeResult, RhymeSuggestions
from .speech import SpeechClient, Voice

__all__ = [
    "DailyPoemCache",
    "PoemReviewer",
    "PoetryDbClient",
    "RhymeClient",
    "RhymeResult",
    "RhymeSuggestions",
    "SpeechClient",
    "Voice",
    "review_provider",
]
