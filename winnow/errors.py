"""
Exceptions raised by winnow.

Piece validation failures surface as pydantic ValidationErrors at
construction time; everything raised during a render derives from
WinnowError.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schema import ContentPiece


class WinnowError(Exception):
    """Base error for prompt composition."""
    pass


class OversizedContentError(WinnowError):
    """A piece with overflow=fail cannot fit in any of its forms."""
    def __init__(self, piece: "ContentPiece", remaining_budget: int):
        self.piece = piece
        self.remaining_budget = remaining_budget
        super().__init__(
            f"Content piece (priority: {piece.priority!r}, tokens: {piece.token_count}) "
            f"exceeds remaining budget of {remaining_budget} tokens. "
            "Set overflow to 'truncate_end' or 'truncate_middle' to auto-truncate."
        )


class ConfigError(WinnowError):
    """Invalid configuration or unknown tokenizer."""
    pass
