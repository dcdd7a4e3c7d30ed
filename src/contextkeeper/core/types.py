"""Core Pydantic models for contextkeeper."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, field_validator

from contextkeeper.core.content import Content, TextContent, coerce_text, wrap_content


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


Timestamp = Annotated[datetime, AfterValidator(_ensure_utc)]
Score = Annotated[float, Field(ge=0.0, le=1.0)]


class EntryType(str, Enum):
    """Kinds of transcript entries."""

    user = "user"
    assistant = "assistant"
    tool_use = "tool_use"
    tool_result = "tool_result"
    system = "system"


class PatternType(str, Enum):
    code = "code"
    command = "command"
    architecture = "architecture"
    error_handling = "error-handling"


class Impact(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Scope(str, Enum):
    session = "session"
    project = "project"
    global_ = "global"


class SortBy(str, Enum):
    relevance = "relevance"
    date = "date"
    frequency = "frequency"


class AutoLoadStrategy(str, Enum):
    disabled = "disabled"
    recent = "recent"
    relevant = "relevant"
    smart = "smart"
    custom = "custom"


class FormatStyle(str, Enum):
    summary = "summary"
    detailed = "detailed"


# ------------------------------------------------------------------
# Transcript input
# ------------------------------------------------------------------


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _name_as_str(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("input", mode="before")
    @classmethod
    def _input_as_dict(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        if isinstance(v, dict):
            return v
        return {"value": v}


class ToolOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    output: Any = None
    error: Any = None

    @property
    def error_text(self) -> str:
        return coerce_text(self.error) if self.error else ""


class TranscriptEntry(BaseModel):
    """One parsed line of a conversation transcript."""

    model_config = ConfigDict(frozen=True)

    type: EntryType
    timestamp: Timestamp = Field(default_factory=utcnow)
    session_id: str = "unknown"
    cwd: str | None = None
    content: Content = Field(default_factory=TextContent)
    tool: ToolCall | None = None
    result: ToolOutcome | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _wrap_content(cls, v: Any) -> Any:
        return wrap_content(v).model_dump()

    @field_validator("timestamp", mode="before")
    @classmethod
    def _default_timestamp(cls, v: Any) -> Any:
        return utcnow() if v in (None, "") else v

    @property
    def text(self) -> str:
        return coerce_text(self.content)


# ------------------------------------------------------------------
# Extracted records
# ------------------------------------------------------------------


class Solution(BaseModel):
    model_config = ConfigDict(frozen=True)

    approach: str
    files: list[str] = Field(default_factory=list)
    successful: bool = True


class Problem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    timestamp: Timestamp
    tags: list[str] = Field(default_factory=list)
    relevance: Score = 0.0
    solution: Solution | None = None


class Implementation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tool: str
    file: str
    description: str = ""
    timestamp: Timestamp
    relevance: Score = 0.0


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    decision: str
    context: str = ""
    rationale: str = ""
    timestamp: Timestamp
    impact: Impact = Impact.low
    tags: list[str] = Field(default_factory=list)


class Pattern(BaseModel):
    """A recurring command, edit, or error class."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: PatternType
    value: str
    frequency: int = Field(default=1, ge=1)
    first_seen: Timestamp
    last_seen: Timestamp
    examples: list[str] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.type.value, self.value)


class ContextMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_count: int = 0
    duration_ms: int = 0
    tools_used: list[str] = Field(default_factory=list)
    files_modified: list[str] = Field(default_factory=list)
    relevance_score: Score = 0.0
    extraction_version: str = ""
    redacted_count: int = 0


class ExtractedContext(BaseModel):
    """Everything extracted from one session transcript."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    timestamp: Timestamp = Field(default_factory=utcnow)
    project_path: str = "unknown"
    problems: list[Problem] = Field(default_factory=list)
    implementations: list[Implementation] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)

    @property
    def item_count(self) -> int:
        return (
            len(self.problems)
            + len(self.implementations)
            + len(self.decisions)
            + len(self.patterns)
        )


# ------------------------------------------------------------------
# Retrieval output
# ------------------------------------------------------------------


class DateRange(BaseModel):
    """Inclusive range; accepts ``from``/``to`` as well as ``start``/``end``."""

    start: Timestamp = Field(validation_alias=AliasChoices("start", "from"))
    end: Timestamp = Field(validation_alias=AliasChoices("end", "to"))

    @field_validator("end", mode="before")
    @classmethod
    def _end_of_day(cls, v: Any) -> Any:
        # a bare date covers the whole day
        if isinstance(v, str) and len(v) == 10:
            return v + "T23:59:59.999999"
        return v

    def contains(self, moment: datetime) -> bool:
        return self.start <= _ensure_utc(moment) <= self.end


class Match(BaseModel):
    field: str
    snippet: str
    score: Score = 0.0


class SearchResult(BaseModel):
    """A search hit with relevance metadata."""

    context: ExtractedContext
    relevance: Score = 0.0
    matches: list[Match] = Field(default_factory=list)
    snippet: str = ""


class LoadedContext(BaseModel):
    content: str = ""
    size_kb: float = 0.0
    item_count: int = 0
    strategy: AutoLoadStrategy = AutoLoadStrategy.disabled
    truncated: bool = False
    timestamp: Timestamp = Field(default_factory=utcnow)
