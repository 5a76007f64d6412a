"""
Pydantic models for prompt content.

Pieces and sections are built once by the caller and never mutated.
Anything the renderer changes (fallback substitution, truncation) is
written to a new copy via ContentPiece.with_overrides().
"""

from enum import Enum
from typing import Any, Callable, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator


# -----------------------------------------------------------------------------
# Priority
# -----------------------------------------------------------------------------

class Always:
    """
    Priority for pieces that are never dropped by the threshold search.

    Compares greater than every int and equal only to itself. Use the
    module-level ALWAYS instance rather than constructing new ones.
    """

    _instance: "Always | None" = None

    def __new__(cls) -> "Always":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALWAYS"

    def __reduce__(self) -> str:
        return "ALWAYS"

    def __copy__(self) -> "Always":
        return self

    def __deepcopy__(self, memo: dict) -> "Always":
        return self

    def __hash__(self) -> int:
        return hash("winnow.ALWAYS")

    def __eq__(self, other: object) -> bool:
        return other is self

    def __gt__(self, other: object) -> bool:
        return other is not self

    def __ge__(self, other: object) -> bool:
        return True

    def __lt__(self, other: object) -> bool:
        return False

    def __le__(self, other: object) -> bool:
        return other is self


ALWAYS = Always()

Priority = Union[int, Always]


def parse_priority(value: Any) -> Priority:
    """Accept an int, ALWAYS, or the strings "always" / "infinity"."""
    if isinstance(value, str) and value.lower() in ("always", "infinity"):
        return ALWAYS
    return value


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Role(str, Enum):
    """Message role. Passed through to the output untouched."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class OverflowPolicy(str, Enum):
    """What to do when neither the primary nor any fallback fits."""
    FAIL = "fail"                        # raise OversizedContentError
    TRUNCATE_END = "truncate_end"        # keep a prefix
    TRUNCATE_MIDDLE = "truncate_middle"  # keep prefix + suffix around a marker

    @property
    def truncates(self) -> bool:
        return self is not OverflowPolicy.FAIL


class ContentType(str, Enum):
    """Semantic marker for a piece. Only TOOL_DEF changes render output."""
    TEXT = "text"
    IMAGE = "image"
    TOOL_DEF = "tool_def"
    FILE = "file"


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------

class ContentPiece(BaseModel):
    """
    A single candidate fragment of prompt content.

    Higher priority survives budget pressure; sequence decides output
    order. Empty content marks a reservation: it consumes budget but
    produces no message.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    role: Role
    content: StrictStr
    priority: Priority
    sequence: StrictInt
    token_count: StrictInt | None = Field(default=None, ge=0)
    fallbacks: tuple[StrictStr, ...] = ()
    section: str | None = None
    cacheable: bool = False
    type: ContentType = ContentType.TEXT
    condition: Callable[[], bool] | None = None
    overflow: OverflowPolicy = OverflowPolicy.FAIL
    name: str | None = None
    metadata: Any = None

    @field_validator("priority", mode="plain")
    @classmethod
    def _check_priority(cls, value: Any) -> Priority:
        if value is ALWAYS:
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ValueError(f"invalid priority: {value!r}, must be an int or ALWAYS")

    @property
    def is_reservation(self) -> bool:
        return self.content == ""

    @property
    def is_tool(self) -> bool:
        return self.type == ContentType.TOOL_DEF

    def with_overrides(self, **fields: Any) -> "ContentPiece":
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=fields)


class Section(BaseModel):
    """A named sub-budget that pieces opt into via ContentPiece.section."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    max_tokens: StrictInt = Field(ge=0)
