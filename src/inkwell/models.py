"""Data models for Inkwell.

Records are plain dataclasses. ``to_dict``/``from_dict`` use snake_case keys
and are the on-device JSON shape; the remote services carry their own row
converters because backend columns differ in places (provenance, anthology
metadata).
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from .defaults import (
    ALL_POEMS_COLLECTION_ID,
    DRAFTS_COLLECTION_ID,
    NEW_COLLECTION_COLOR,
    NEW_COLLECTION_ICON,
)
from .text_metrics import hash_poem_body

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def new_id() -> str:
    """Collision-resistant local identifier (UUIDv4)."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string with a Z suffix."""
    return datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(previous: Optional[str]) -> str:
    """Return a timestamp strictly later than ``previous``.

    Two mutations inside the same clock tick still produce distinct,
    ordered ``updated_at`` values.
    """
    current = datetime.now(timezone.utc)
    if previous:
        try:
            earlier = parse_timestamp(previous)
        except ValueError:
            earlier = None
        if earlier is not None and current <= earlier:
            current = earlier + timedelta(microseconds=1)
    return current.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


class PoemStatus(str, Enum):
    DRAFT = "draft"
    COMPLETE = "complete"


class ReviewTone(str, Enum):
    ACADEMIC = "academic"
    CASUAL = "casual"
    ENCOURAGING = "encouraging"


class RecitationPace(str, Enum):
    SLOW = "slow"
    NORMAL = "normal"
    DRAMATIC = "dramatic"


class ThemePreference(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class EditorFontFamily(str, Enum):
    MONOSPACE = "monospace"
    SERIF = "serif"


class EditorFontSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class ImportMethod(str, Enum):
    TEXT = "text"
    FILE = "file"
    CLIPBOARD = "clipboard"
    OCR = "ocr"
    POETRYDB = "poetrydb"
    URL = "url"


class PromptCategory(str, Enum):
    EMOTION = "emotion"
    NATURE = "nature"
    MEMORY = "memory"
    ABSTRACT = "abstract"
    STORY = "story"
    OBSERVATION = "observation"


# Provenance ---------------------------------------------------------------


@dataclass(frozen=True)
class OriginalSource:
    """Written in the app."""

    type: ClassVar[str] = "original"


@dataclass(frozen=True)
class DictatedSource:
    """Captured through voice dictation."""

    type: ClassVar[str] = "dictated"


@dataclass(frozen=True)
class ImportedSource:
    """Brought in from outside the app, with whatever attribution is known."""

    method: ImportMethod
    imported_at: str
    author: Optional[str] = None
    source_url: Optional[str] = None
    source_book: Optional[str] = None

    type: ClassVar[str] = "imported"


@dataclass(frozen=True)
class CatalogSource:
    """Pulled from the PoetryDB classic-poem catalog."""

    external_id: Optional[str] = None

    type: ClassVar[str] = "poetrydb"


PoemSource = OriginalSource | DictatedSource | ImportedSource | CatalogSource


def source_to_dict(source: PoemSource) -> dict[str, Any]:
    """Serialize a provenance record with its ``type`` tag."""
    if isinstance(source, OriginalSource):
        return {"type": OriginalSource.type}
    if isinstance(source, DictatedSource):
        return {"type": DictatedSource.type}
    if isinstance(source, ImportedSource):
        return {
            "type": ImportedSource.type,
            "method": source.method.value,
            "imported_at": source.imported_at,
            "author": source.author,
            "source_url": source.source_url,
            "source_book": source.source_book,
        }
    if isinstance(source, CatalogSource):
        return {"type": CatalogSource.type, "external_id": source.external_id}
    raise TypeError(f"Unknown poem source: {source!r}")


def source_from_dict(data: Optional[dict[str, Any]]) -> PoemSource:
    """Rebuild a provenance record; a missing record means original work.

    Raises:
        ValueError: If the type tag is not a known provenance.
    """
    if not data:
        return OriginalSource()

    tag = data.get("type", OriginalSource.type)
    if tag == OriginalSource.type:
        return OriginalSource()
    if tag == DictatedSource.type:
        return DictatedSource()
    if tag == ImportedSource.type:
        return ImportedSource(
            method=ImportMethod(data.get("method") or ImportMethod.TEXT.value),
            imported_at=data.get("imported_at") or now_iso(),
            author=data.get("author"),
            source_url=data.get("source_url"),
            source_book=data.get("source_book"),
        )
    if tag == CatalogSource.type:
        return CatalogSource(external_id=data.get("external_id"))
    raise ValueError(f"Unknown poem source type: {tag}")


def describe_source(source: PoemSource) -> str:
    """Short badge label for a poem's provenance."""
    if isinstance(source, OriginalSource):
        return "Original"
    if isinstance(source, DictatedSource):
        return "Dictated"
    if isinstance(source, ImportedSource):
        label = f"Imported ({source.method.value})"
        return f"{label} - {source.author}" if source.author else label
    if isinstance(source, CatalogSource):
        return "Classic (PoetryDB)"
    raise TypeError(f"Unknown poem source: {source!r}")


def is_own_work(source: PoemSource) -> bool:
    """Whether the poem was authored by the user (eligible for anthology export)."""
    if isinstance(source, (OriginalSource, DictatedSource)):
        return True
    if isinstance(source, (ImportedSource, CatalogSource)):
        return False
    raise TypeError(f"Unknown poem source: {source!r}")


# Reviews and recitations --------------------------------------------------


@dataclass
class ReviewTheme:
    name: str
    explanation: str

    def to_dict(self) -> dict:
        return {"name": self.name, "explanation": self.explanation}


@dataclass
class LiteraryDevice:
    device: str
    example: str
    explanation: str

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "example": self.example,
            "explanation": self.explanation,
        }


@dataclass
class PoemReview:
    """AI-generated analysis of a poem at a point in time."""

    poem_id: str
    summary: str
    structure_analysis: str
    interpretation: str
    tone: ReviewTone
    poem_body_hash: str
    themes: list[ReviewTheme] = field(default_factory=list)
    literary_devices: list[LiteraryDevice] = field(default_factory=list)
    personal_notes: str = ""
    generated_at: str = field(default_factory=now_iso)
    id: str = field(default_factory=new_id)

    def is_stale(self, body: str) -> bool:
        """True when the poem body changed since the review was generated.

        Advisory only; nothing regenerates reviews automatically.
        """
        return hash_poem_body(body) != self.poem_body_hash

    def to_dict(self) -> dict:
        """Convert to dictionary for on-device storage."""
        return {
            "id": self.id,
            "poem_id": self.poem_id,
            "summary": self.summary,
            "themes": [theme.to_dict() for theme in self.themes],
            "literary_devices": [device.to_dict() for device in self.literary_devices],
            "structure_analysis": self.structure_analysis,
            "interpretation": self.interpretation,
            "tone": self.tone.value,
            "personal_notes": self.personal_notes,
            "generated_at": self.generated_at,
            "poem_body_hash": self.poem_body_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PoemReview":
        return cls(
            id=data["id"],
            poem_id=data["poem_id"],
            summary=data.get("summary", ""),
            themes=[ReviewTheme(**theme) for theme in data.get("themes") or []],
            literary_devices=[
                LiteraryDevice(**device) for device in data.get("literary_devices") or []
            ],
            structure_analysis=data.get("structure_analysis", ""),
            interpretation=data.get("interpretation", ""),
            tone=ReviewTone(data.get("tone", ReviewTone.ENCOURAGING.value)),
            personal_notes=data.get("personal_notes") or "",
            generated_at=data.get("generated_at") or now_iso(),
            poem_body_hash=data.get("poem_body_hash", ""),
        )


@dataclass
class AudioRecitation:
    """Metadata for a generated audio reading; the audio itself lives on disk."""

    poem_id: str
    file_uri: str
    voice_id: str
    voice_name: str
    duration_seconds: float
    file_size_bytes: int
    pace: RecitationPace = RecitationPace.NORMAL
    video_uri: Optional[str] = None
    background_track: Optional[str] = None
    generated_at: str = field(default_factory=now_iso)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "poem_id": self.poem_id,
            "file_uri": self.file_uri,
            "video_uri": self.video_uri,
            "voice_id": self.voice_id,
            "voice_name": self.voice_name,
            "pace": self.pace.value,
            "background_track": self.background_track,
            "duration_seconds": self.duration_seconds,
            "file_size_bytes": self.file_size_bytes,
            "generated_at": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AudioRecitation":
        return cls(
            id=data["id"],
            poem_id=data["poem_id"],
            file_uri=data["file_uri"],
            video_uri=data.get("video_uri"),
            voice_id=data.get("voice_id", ""),
            voice_name=data.get("voice_name", ""),
            pace=RecitationPace(data.get("pace") or RecitationPace.NORMAL.value),
            background_track=data.get("background_track"),
            duration_seconds=float(data.get("duration_seconds") or 0),
            file_size_bytes=int(data.get("file_size_bytes") or 0),
            generated_at=data.get("generated_at") or now_iso(),
        )


# Poems ----------------------------------------------------------------------


@dataclass
class Poem:
    """A unit of writing.

    ``word_count`` and ``line_count`` are derived from ``body`` by the store
    whenever the body changes.
    """

    id: str
    title: str = ""
    body: str = ""
    tags: list[str] = field(default_factory=list)
    form_type: Optional[str] = None
    status: PoemStatus = PoemStatus.DRAFT
    is_favorite: bool = False
    word_count: int = 0
    line_count: int = 0
    collection_ids: list[str] = field(default_factory=list)
    prompt_id: Optional[str] = None
    source: PoemSource = field(default_factory=OriginalSource)
    review: Optional[PoemReview] = None
    recitation_ids: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        """Convert to dictionary for on-device storage."""
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "tags": list(self.tags),
            "form_type": self.form_type,
            "status": self.status.value,
            "is_favorite": self.is_favorite,
            "word_count": self.word_count,
            "line_count": self.line_count,
            "collection_ids": list(self.collection_ids),
            "prompt_id": self.prompt_id,
            "source": source_to_dict(self.source),
            "review": self.review.to_dict() if self.review else None,
            "recitation_ids": list(self.recitation_ids),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Poem":
        review = data.get("review")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            body=data.get("body", ""),
            tags=list(data.get("tags") or []),
            form_type=data.get("form_type"),
            status=PoemStatus(data.get("status", PoemStatus.DRAFT.value)),
            is_favorite=bool(data.get("is_favorite", False)),
            word_count=int(data.get("word_count", 0)),
            line_count=int(data.get("line_count", 0)),
            collection_ids=list(data.get("collection_ids") or []),
            prompt_id=data.get("prompt_id"),
            source=source_from_dict(data.get("source")),
            review=PoemReview.from_dict(review) if review else None,
            recitation_ids=list(data.get("recitation_ids") or []),
            created_at=data.get("created_at") or now_iso(),
            updated_at=data.get("updated_at") or now_iso(),
        )


# Collections ----------------------------------------------------------------


@dataclass
class AnthologyMeta:
    """Publication metadata carried by a collection promoted to anthology."""

    subtitle: str = ""
    author_bio: str = ""
    dedication: str = ""
    foreword: str = ""
    cover_image_uri: Optional[str] = None
    include_reviews: bool = False
    published_at: Optional[str] = None

    FIELDS: ClassVar[tuple[str, ...]] = (
        "subtitle",
        "author_bio",
        "dedication",
        "foreword",
        "cover_image_uri",
        "include_reviews",
        "published_at",
    )

    def merged(self, changes: dict[str, Any]) -> "AnthologyMeta":
        """Return a copy with ``changes`` applied.

        Raises:
            ValueError: If a key is not an anthology field.
        """
        unknown = set(changes) - set(self.FIELDS)
        if unknown:
            raise ValueError(f"Unknown anthology fields: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.FIELDS}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnthologyMeta":
        return cls(**{name: data[name] for name in cls.FIELDS if name in data})


@dataclass
class SectionDivider:
    """Heading shown after ``after_poem_id`` inside a collection."""

    after_poem_id: str
    heading: str
    subtitle: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "after_poem_id": self.after_poem_id,
            "heading": self.heading,
            "subtitle": self.subtitle,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SectionDivider":
        return cls(
            after_poem_id=data["after_poem_id"],
            heading=data.get("heading", ""),
            subtitle=data.get("subtitle"),
        )


@dataclass
class Collection:
    """A named grouping of poems, optionally promoted to an anthology."""

    id: str
    name: str
    description: str = ""
    cover_color: str = NEW_COLLECTION_COLOR
    icon_name: str = NEW_COLLECTION_ICON
    is_default: bool = False
    is_anthology: bool = False
    anthology_meta: Optional[AnthologyMeta] = None
    poem_order: list[str] = field(default_factory=list)
    section_dividers: list[SectionDivider] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        """Convert to dictionary for on-device storage."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "cover_color": self.cover_color,
            "icon_name": self.icon_name,
            "is_default": self.is_default,
            "is_anthology": self.is_anthology,
            "anthology_meta": self.anthology_meta.to_dict()
            if self.anthology_meta
            else None,
            "poem_order": list(self.poem_order),
            "section_dividers": [d.to_dict() for d in self.section_dividers],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Collection":
        meta = data.get("anthology_meta")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description") or "",
            cover_color=data.get("cover_color") or NEW_COLLECTION_COLOR,
            icon_name=data.get("icon_name") or NEW_COLLECTION_ICON,
            is_default=bool(data.get("is_default", False)),
            is_anthology=bool(data.get("is_anthology", False)),
            anthology_meta=AnthologyMeta.from_dict(meta) if meta else None,
            poem_order=list(data.get("poem_order") or []),
            section_dividers=[
                SectionDivider.from_dict(d) for d in data.get("section_dividers") or []
            ],
            created_at=data.get("created_at") or now_iso(),
            updated_at=data.get("updated_at") or now_iso(),
        )


_DEFAULT_COLLECTION_TIMESTAMP = "2026-01-01T00:00:00.000Z"


def default_collections() -> list[Collection]:
    """Fresh copies of the two protected collections: All Poems and Drafts."""
    return [
        Collection(
            id=ALL_POEMS_COLLECTION_ID,
            name="All Poems",
            description="Every poem you have written or imported.",
            cover_color="#1A1A2E",
            icon_name="book",
            is_default=True,
            created_at=_DEFAULT_COLLECTION_TIMESTAMP,
            updated_at=_DEFAULT_COLLECTION_TIMESTAMP,
        ),
        Collection(
            id=DRAFTS_COLLECTION_ID,
            name="Drafts",
            description="Poems in progress.",
            cover_color="#F59E0B",
            icon_name="edit-3",
            is_default=True,
            created_at=_DEFAULT_COLLECTION_TIMESTAMP,
            updated_at=_DEFAULT_COLLECTION_TIMESTAMP,
        ),
    ]


# Settings -------------------------------------------------------------------


@dataclass
class AppSettings:
    """Per-user preferences. Field defaults are the reset values."""

    theme: ThemePreference = ThemePreference.SYSTEM
    editor_font_family: EditorFontFamily = EditorFontFamily.SERIF
    editor_font_size: EditorFontSize = EditorFontSize.MEDIUM
    show_syllable_counter: bool = True
    show_line_numbers: bool = True
    auto_save_interval: int = 30_000  # milliseconds
    tts_rate: float = 1.0
    share_watermark: bool = True
    default_collection_id: str = ALL_POEMS_COLLECTION_ID
    voice_recognition_lang: str = "en-US"
    recitation_voice_id: str = ""
    recitation_pace: RecitationPace = RecitationPace.NORMAL
    review_tone: ReviewTone = ReviewTone.ENCOURAGING

    ENUM_FIELDS: ClassVar[dict[str, type[Enum]]] = {
        "theme": ThemePreference,
        "editor_font_family": EditorFontFamily,
        "editor_font_size": EditorFontSize,
        "recitation_pace": RecitationPace,
        "review_tone": ReviewTone,
    }

    FIELDS: ClassVar[tuple[str, ...]] = (
        "theme",
        "editor_font_family",
        "editor_font_size",
        "show_syllable_counter",
        "show_line_numbers",
        "auto_save_interval",
        "tts_rate",
        "share_watermark",
        "default_collection_id",
        "voice_recognition_lang",
        "recitation_voice_id",
        "recitation_pace",
        "review_tone",
    )

    def to_dict(self) -> dict:
        result = {}
        for name in self.FIELDS:
            value = getattr(self, name)
            result[name] = value.value if isinstance(value, Enum) else value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppSettings":
        """Build settings from stored values; missing or unknown keys are ignored."""
        values = {}
        for name in cls.FIELDS:
            if name not in data or data[name] is None:
                continue
            enum_type = cls.ENUM_FIELDS.get(name)
            values[name] = enum_type(data[name]) if enum_type else data[name]
        return cls(**values)


# Reference content ---------------------------------------------------------


@dataclass
class WritingPrompt:
    id: str
    text: str
    category: PromptCategory
    is_favorite: bool = False
    is_used: bool = False


@dataclass
class PoetryFormExample:
    title: str
    author: str
    text: str


@dataclass
class PoetryForm:
    """Reference description of a poetic form (haiku, sonnet, ...)."""

    slug: str
    name: str
    origin: str
    description: str
    rules: list[str] = field(default_factory=list)
    rhyme_scheme: Optional[str] = None
    line_count: Optional[int] = None
    syllable_pattern: Optional[list[int]] = None
    examples: list[PoetryFormExample] = field(default_factory=list)


@dataclass
class ClassicPoem:
    """A public-domain poem as returned by PoetryDB."""

    title: str
    author: str
    lines: list[str]
    linecount: str

    @property
    def body(self) -> str:
        return "\n".join(self.lines)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "lines": list(self.lines),
            "linecount": self.linecount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassicPoem":
        return cls(
            title=data.get("title", ""),
            author=data.get("author", ""),
            lines=list(data.get("lines") or []),
            linecount=str(data.get("linecount", len(data.get("lines") or []))),
        )
