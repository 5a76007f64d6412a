"""
Prompt builder.

Accumulates content pieces and sections, assigns sequence numbers in
insertion order, and hands everything to the renderer.

    result = (
        Prompt(budget=8000)
        .add("system", content="You are an analyst.", priority=ALWAYS)
        .add_each("user", memories, priority=500, formatter=lambda m: f"Memory: {m}")
        .add_tools(tools, priority=750)
        .reserve("response", tokens=1000)
        .render()
    )
"""

import logging
from typing import Any, Callable, Iterable, Mapping

from .schema import ALWAYS, ContentPiece, ContentType, Priority, Role, Section
from .renderer import RenderResult, render
from .tokenizer import ApproximateCounter, TokenCounter

logger = logging.getLogger(__name__)


class Prompt:
    """
    Collects pieces for a single render.

    Every method returns the prompt itself so calls can be chained.
    """

    def __init__(self, budget: int, counter: TokenCounter | None = None):
        if isinstance(budget, bool) or not isinstance(budget, int) or budget < 0:
            raise ValueError(f"budget must be a non-negative int, got {budget!r}")
        self.budget = budget
        self.counter = counter or ApproximateCounter()
        self._pieces: list[ContentPiece] = []
        self._sections: dict[str, Section] = {}
        self.next_sequence = 0

    @property
    def pieces(self) -> list[ContentPiece]:
        """All pieces (read-only copy)."""
        return list(self._pieces)

    @property
    def sections(self) -> dict[str, Section]:
        """Declared sections by name (read-only copy)."""
        return dict(self._sections)

    def __len__(self) -> int:
        return len(self._pieces)

    def _append(self, piece: ContentPiece) -> None:
        self._pieces.append(piece)
        self.next_sequence = max(self.next_sequence, piece.sequence + 1)

    def add(
        self,
        role: Role | str,
        *,
        content: str,
        priority: Priority,
        sequence: int | None = None,
        **options: Any,
    ) -> "Prompt":
        """
        Add one piece.

        Args:
            role: "system", "user" or "assistant"
            content: Text content; empty content reserves budget only
            priority: Int or ALWAYS, higher survives longer
            sequence: Output position; defaults to the next free number
            **options: Any other ContentPiece field (fallbacks, section,
                overflow, token_count, cacheable, condition, ...)

        Raises:
            pydantic.ValidationError: On invalid field values
        """
        if sequence is None:
            sequence = self.next_sequence
        piece = ContentPiece(
            role=role,
            content=content,
            priority=priority,
            sequence=sequence,
            **options,
        )
        self._append(piece)
        return self

    def add_each(
        self,
        role: Role | str,
        items: Iterable[Any],
        *,
        formatter: Callable[[Any], str] = str,
        priority: Priority | None = None,
        priority_fn: Callable[[Any, int], Priority] | None = None,
        **options: Any,
    ) -> "Prompt":
        """
        Add one piece per item.

        priority_fn(item, index) gives per-item priorities (e.g. newer
        memories rank higher); otherwise every item gets `priority`.
        """
        if (priority is None) == (priority_fn is None):
            raise ValueError("add_each needs exactly one of priority or priority_fn")
        for index, item in enumerate(items):
            item_priority = priority_fn(item, index) if priority_fn else priority
            self.add(role, content=formatter(item), priority=item_priority, **options)
        return self

    def add_tools(
        self,
        tools: Iterable[Mapping[str, Any]],
        *,
        priority: Priority,
        **options: Any,
    ) -> "Prompt":
        """
        Add tool definitions as system pieces.

        Content is "name: description"; the original mapping is carried in
        metadata and comes back in RenderResult.tools if the tool survives.
        """
        for tool in tools:
            name = tool["name"]
            description = tool.get("description")
            content = f"{name}: {description}" if description else str(name)
            self.add(
                Role.SYSTEM,
                content=content,
                priority=priority,
                type=ContentType.TOOL_DEF,
                metadata=tool,
                **options,
            )
        return self

    def reserve(self, name: str, *, tokens: int, priority: Priority = ALWAYS) -> "Prompt":
        """Hold back budget (e.g. for the response) without adding a message."""
        return self.add(
            Role.SYSTEM,
            content="",
            priority=priority,
            token_count=tokens,
            name=name,
        )

    def section(self, name: str, *, max_tokens: int) -> "Prompt":
        """Declare a sub-budget. Pieces join it with section=name."""
        self._sections[name] = Section(name=name, max_tokens=max_tokens)
        return self

    def merge(self, other: "Prompt") -> "Prompt":
        """
        Append another prompt's pieces after this one's.

        The other prompt's sequences are shifted past ours. Sections are
        combined, the other prompt winning on a name clash. Budget and
        counter stay ours.
        """
        # Snapshot first: other may be self
        offset = self.next_sequence
        other_next = other.next_sequence
        other_pieces = list(other._pieces)
        other_sections = dict(other._sections)
        for piece in other_pieces:
            self._append(piece.with_overrides(sequence=piece.sequence + offset))
        self.next_sequence = offset + other_next
        self._sections.update(other_sections)
        return self

    def render(self) -> RenderResult:
        """Render the accumulated pieces. See winnow.renderer.render()."""
        logger.debug(
            f"Rendering {len(self._pieces)} pieces, {len(self._sections)} sections, "
            f"budget {self.budget}"
        )
        return render(
            self._pieces,
            self.budget,
            counter=self.counter,
            sections=self._sections,
        )
