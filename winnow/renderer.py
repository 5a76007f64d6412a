"""
Renders content pieces into a message list that fits a token budget.

Pipeline:

1. Evaluate conditions; pieces whose condition is false are set aside
2. Fill in token counts for pieces that don't carry one
3. Render each declared section against its own sub-budget
4. Binary search the priority threshold using optimistic minimum costs
5. Greedy pass in sequence order: primary, then fallbacks, then overflow
6. Build messages, tools and the cache breakpoint

The threshold search assumes every piece can shrink to its cheapest form,
so step 5 may still drop pieces at or above the threshold. That is the
expected trade-off for a search that stays O(n log n).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from .errors import OversizedContentError
from .schema import ALWAYS, ContentPiece, Section
from .tokenizer import BYTES_PER_TOKEN, ApproximateCounter, TokenCounter
from .truncation import truncate_piece

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------

@dataclass
class FallbackUsage:
    """A piece that was rendered with one of its fallbacks."""
    piece: ContentPiece
    index: int


@dataclass
class RenderResult:
    """Output of a render."""
    messages: list[dict[str, str]] = field(default_factory=list)
    tools: list[Any] = field(default_factory=list)
    total_tokens: int = 0
    budget: int = 0
    threshold: int = 0
    included: list[ContentPiece] = field(default_factory=list)
    dropped: list[ContentPiece] = field(default_factory=list)
    condition_excluded: list[ContentPiece] = field(default_factory=list)
    fallbacks_used: list[FallbackUsage] = field(default_factory=list)
    cache_breakpoint: int | None = None

    @property
    def utilization(self) -> float:
        if self.budget == 0:
            return 0.0
        return self.total_tokens / self.budget

    @property
    def is_over_budget(self) -> bool:
        return self.total_tokens > self.budget

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly summary. Piece conditions are omitted."""
        return {
            "messages": list(self.messages),
            "tools": list(self.tools),
            "total_tokens": self.total_tokens,
            "budget": self.budget,
            "threshold": self.threshold,
            "included": [piece_summary(p) for p in self.included],
            "dropped": [piece_summary(p) for p in self.dropped],
            "condition_excluded": [piece_summary(p) for p in self.condition_excluded],
            "fallbacks_used": [
                {"piece": piece_summary(u.piece), "index": u.index}
                for u in self.fallbacks_used
            ],
            "cache_breakpoint": self.cache_breakpoint,
        }


def piece_summary(piece: ContentPiece) -> dict[str, Any]:
    return {
        "name": piece.name,
        "role": piece.role.value,
        "priority": "always" if piece.priority is ALWAYS else piece.priority,
        "sequence": piece.sequence,
        "token_count": piece.token_count,
        "section": piece.section,
        "type": piece.type.value,
        "content": piece.content,
    }


@dataclass
class FitResult:
    """Outcome of the greedy fit pass."""
    included: list[ContentPiece]
    dropped: list[ContentPiece]
    fallbacks_used: list[FallbackUsage]
    remaining: int


# -----------------------------------------------------------------------------
# Internal bookkeeping
# -----------------------------------------------------------------------------

@dataclass
class _Candidate:
    """
    A piece moving through the pipeline.

    `piece` is the current form (costed, later resolved); `origin` is the
    costed form reported in dropped/fallback lists. Fixed candidates were
    already resolved inside a section and are kept or dropped whole.
    """
    piece: ContentPiece
    origin: ContentPiece
    position: int
    fixed: bool = False


def _wrap(pieces: Iterable[ContentPiece]) -> list[_Candidate]:
    return [_Candidate(piece=p, origin=p, position=i) for i, p in enumerate(pieces)]


# -----------------------------------------------------------------------------
# Conditions and costs
# -----------------------------------------------------------------------------

def evaluate_conditions(
    pieces: Iterable[ContentPiece],
) -> tuple[list[ContentPiece], list[ContentPiece]]:
    """Split pieces into (kept, excluded). Each condition runs exactly once."""
    kept: list[ContentPiece] = []
    excluded: list[ContentPiece] = []
    for piece in pieces:
        if piece.condition is None or piece.condition():
            kept.append(piece)
        else:
            excluded.append(piece)
    return kept, excluded


def compute_token_costs(
    pieces: Iterable[ContentPiece],
    counter: TokenCounter,
) -> list[ContentPiece]:
    """Fill in token_count where missing. Existing counts are kept as given."""
    costed = []
    for piece in pieces:
        if piece.token_count is None:
            tokens = counter.count(piece.content) + counter.message_overhead()
            piece = piece.with_overrides(token_count=tokens)
        costed.append(piece)
    return costed


def fallback_cost(text: str, counter: TokenCounter) -> int:
    return counter.count(text) + counter.message_overhead()


def min_token_cost(piece: ContentPiece, counter: TokenCounter) -> int:
    """
    Cheapest cost the piece could possibly render at.

    Truncatable pieces can shrink to their message overhead; others to
    their smallest fallback.
    """
    if piece.overflow.truncates:
        return counter.message_overhead()
    costs = [piece.token_count]
    costs.extend(fallback_cost(fb, counter) for fb in piece.fallbacks)
    return min(costs)


# -----------------------------------------------------------------------------
# Threshold search
# -----------------------------------------------------------------------------

def _candidate_min_cost(candidate: _Candidate, counter: TokenCounter) -> int:
    if candidate.fixed:
        return candidate.piece.token_count
    return min_token_cost(candidate.piece, counter)


def _find_threshold(candidates: list[_Candidate], budget: int, counter: TokenCounter) -> int:
    levels = sorted({c.piece.priority for c in candidates if c.piece.priority is not ALWAYS})
    if not levels:
        return 0

    # One level above every real one: converging here means only ALWAYS
    # pieces are kept.
    levels.append(levels[-1] + 1)

    costed = [(c.piece.priority, _candidate_min_cost(c, counter)) for c in candidates]

    def tokens_at(threshold: int) -> int:
        return sum(cost for priority, cost in costed if priority >= threshold)

    # Lowest index whose tokens fit. lower is exclusive, upper inclusive.
    lower, upper = -1, len(levels) - 1
    while lower < upper - 1:
        mid = (lower + upper) // 2
        if tokens_at(levels[mid]) <= budget:
            upper = mid
        else:
            lower = mid
    return levels[upper]


def find_threshold(pieces: list[ContentPiece], budget: int, counter: TokenCounter) -> int:
    """
    Lowest priority level whose pieces optimistically fit in budget.

    Pieces must already carry a token_count. Returns 0 when there are no
    finite priorities, and one more than the highest priority when no
    finite level fits.
    """
    return _find_threshold(_wrap(pieces), budget, counter)


def _split_at_threshold(
    candidates: list[_Candidate],
    threshold: int,
) -> tuple[list[_Candidate], list[_Candidate]]:
    above: list[_Candidate] = []
    below: list[_Candidate] = []
    for candidate in candidates:
        if candidate.piece.priority >= threshold:
            above.append(candidate)
        else:
            below.append(candidate)
    return above, below


# -----------------------------------------------------------------------------
# Greedy fit
# -----------------------------------------------------------------------------

def _resolve_fit(
    candidates: list[_Candidate],
    budget: int,
    counter: TokenCounter,
    bytes_per_token: int = BYTES_PER_TOKEN,
) -> tuple[list[_Candidate], list[_Candidate], list[FallbackUsage], int]:
    included: list[_Candidate] = []
    dropped: list[_Candidate] = []
    fallbacks_used: list[FallbackUsage] = []
    remaining = budget
    overhead = counter.message_overhead()

    # sorted() is stable, so equal sequences keep insertion order
    for candidate in sorted(candidates, key=lambda c: c.piece.sequence):
        piece = candidate.piece

        if piece.token_count <= remaining:
            included.append(candidate)
            remaining -= piece.token_count
            continue

        if candidate.fixed:
            logger.debug(
                f"Dropping section result (seq {piece.sequence}, "
                f"{piece.token_count} tokens, {remaining} remaining)"
            )
            dropped.append(candidate)
            continue

        resolved = None
        for index, text in enumerate(piece.fallbacks):
            tokens = fallback_cost(text, counter)
            if tokens <= remaining:
                resolved = piece.with_overrides(content=text, token_count=tokens, fallbacks=())
                fallbacks_used.append(FallbackUsage(piece=candidate.origin, index=index))
                logger.debug(
                    f"Using fallback {index} for seq {piece.sequence} "
                    f"({piece.token_count} -> {tokens} tokens)"
                )
                break

        if resolved is None:
            if not piece.overflow.truncates:
                if piece.is_reservation:
                    dropped.append(candidate)
                    continue
                raise OversizedContentError(piece=piece, remaining_budget=remaining)

            if remaining < overhead:
                # Not even room for the message wrapper
                dropped.append(candidate)
                continue

            resolved = truncate_piece(piece, remaining, counter, bytes_per_token=bytes_per_token)
            logger.debug(
                f"Truncated seq {piece.sequence} ({piece.overflow.value}): "
                f"{piece.token_count} -> {resolved.token_count} tokens"
            )

        included.append(replace(candidate, piece=resolved))
        remaining -= resolved.token_count

    return included, dropped, fallbacks_used, remaining


def resolve_fit(
    pieces: list[ContentPiece],
    budget: int,
    counter: TokenCounter,
    bytes_per_token: int = BYTES_PER_TOKEN,
) -> FitResult:
    """
    Decide the final form of each piece, earliest sequence first.

    Each piece is included as-is if it fits the remaining budget, else
    with the first fallback that fits, else per its overflow policy.

    Raises:
        OversizedContentError: A non-empty piece with overflow=fail
            doesn't fit in any form
    """
    included, dropped, fallbacks_used, remaining = _resolve_fit(
        _wrap(pieces), budget, counter, bytes_per_token
    )
    return FitResult(
        included=[c.piece for c in included],
        dropped=[c.origin for c in dropped],
        fallbacks_used=fallbacks_used,
        remaining=remaining,
    )


# -----------------------------------------------------------------------------
# Sections
# -----------------------------------------------------------------------------

def _render_sections(
    candidates: list[_Candidate],
    sections: Mapping[str, Section],
    counter: TokenCounter,
    bytes_per_token: int = BYTES_PER_TOKEN,
) -> tuple[list[_Candidate], list[_Candidate], list[FallbackUsage]]:
    """
    Resolve sectioned pieces against their sub-budgets.

    Returns the main pool in input order, with section winners replaced by
    fixed-cost resolved copies and section losers removed.
    """
    if not sections:
        return candidates, [], []

    groups: dict[str, list[_Candidate]] = {}
    for candidate in candidates:
        name = candidate.piece.section
        if name is not None and name in sections:
            groups.setdefault(name, []).append(candidate)

    winners: dict[int, _Candidate] = {}
    dropped: list[_Candidate] = []
    fallbacks_used: list[FallbackUsage] = []

    for name, group in groups.items():
        max_tokens = sections[name].max_tokens
        threshold = _find_threshold(group, max_tokens, counter)
        above, below = _split_at_threshold(group, threshold)
        included, extra_dropped, used, remaining = _resolve_fit(
            above, max_tokens, counter, bytes_per_token
        )
        for candidate in included:
            winners[candidate.position] = replace(candidate, fixed=True)
        dropped.extend(below)
        dropped.extend(extra_dropped)
        fallbacks_used.extend(used)
        logger.debug(
            f"Section {name!r}: {len(included)}/{len(group)} pieces kept, "
            f"{max_tokens - remaining}/{max_tokens} tokens, threshold {threshold}"
        )

    main: list[_Candidate] = []
    for candidate in candidates:
        name = candidate.piece.section
        if name is not None and name in groups:
            if candidate.position in winners:
                main.append(winners[candidate.position])
        else:
            main.append(candidate)
    return main, dropped, fallbacks_used


# -----------------------------------------------------------------------------
# Assembly
# -----------------------------------------------------------------------------

def compute_cache_breakpoint(message_pieces: list[ContentPiece]) -> int | None:
    """Index of the last cacheable message, or None."""
    breakpoint_index = None
    for index, piece in enumerate(message_pieces):
        if piece.cacheable:
            breakpoint_index = index
    return breakpoint_index


def render(
    pieces: Iterable[ContentPiece],
    budget: int,
    counter: TokenCounter | None = None,
    sections: Mapping[str, Section] | None = None,
    bytes_per_token: int | None = None,
) -> RenderResult:
    """
    Render pieces into messages that fit within budget.

    Args:
        pieces: Candidate content, in insertion order
        budget: Token budget for the whole prompt
        counter: Token counter (ApproximateCounter by default)
        sections: Declared sub-budgets by name
        bytes_per_token: First guess used by truncation (defaults to the
            counter's own ratio when it has one)

    Returns:
        A fresh RenderResult; the input pieces are never modified

    Raises:
        OversizedContentError: See resolve_fit()
    """
    if isinstance(budget, bool) or not isinstance(budget, int) or budget < 0:
        raise ValueError(f"budget must be a non-negative int, got {budget!r}")

    counter = counter or ApproximateCounter()
    sections = sections or {}
    if bytes_per_token is None:
        bytes_per_token = getattr(counter, "bytes_per_token", BYTES_PER_TOKEN)

    kept, condition_excluded = evaluate_conditions(pieces)
    candidates = _wrap(compute_token_costs(kept, counter))

    main, section_dropped, section_fallbacks = _render_sections(
        candidates, sections, counter, bytes_per_token
    )

    threshold = _find_threshold(main, budget, counter)
    above, below = _split_at_threshold(main, threshold)
    logger.debug(
        f"Threshold {threshold}: {len(above)} pieces kept, "
        f"{len(below)} below (seq {[c.piece.sequence for c in below]})"
    )
    included, fit_dropped, fallbacks_used, _ = _resolve_fit(
        above, budget, counter, bytes_per_token
    )

    dropped = [c.origin for c in below + fit_dropped + section_dropped]
    final = [c.piece for c in included]
    message_pieces = [p for p in final if not p.is_reservation]
    total_tokens = sum(p.token_count for p in final)

    logger.debug(
        f"Rendered {len(final)} pieces ({total_tokens}/{budget} tokens), "
        f"threshold {threshold}, {len(dropped)} dropped, "
        f"{len(condition_excluded)} excluded by condition"
    )

    return RenderResult(
        messages=[{"role": p.role.value, "content": p.content} for p in message_pieces],
        tools=[p.metadata for p in final if p.is_tool and p.metadata is not None],
        total_tokens=total_tokens,
        budget=budget,
        threshold=threshold,
        included=final,
        dropped=dropped,
        condition_excluded=condition_excluded,
        fallbacks_used=fallbacks_used + section_fallbacks,
        cache_breakpoint=compute_cache_breakpoint(message_pieces),
    )
