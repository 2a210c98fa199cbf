"""Exception hierarchy shared by the signature generation pipeline.

Every failure raised by the selector, builder, trimmer and formatters derives
from :class:`SignatureError`.  The base class subclasses :class:`ValueError`
so callers that only guard against malformed input keep working.  Each error
records a ``context`` string naming the offending field, item or fragment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .pattern import Pattern


class SignatureError(ValueError):
    """Base class for all generation failures."""

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        message = super().__str__()
        if self.context:
            return f"{message} ({self.context})"
        return message


class InvalidPolicy(SignatureError):
    """The generation policy contains a malformed selection or filter setup."""


class InsufficientData(SignatureError):
    """The selected items do not yield a usable pattern."""


class BudgetExceeded(SignatureError):
    """The pattern is longer than the trim budget allows.

    The best-effort pattern is kept on the exception so that callers can
    decide to accept it as a warning instead of a failure.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[str] = None,
        pattern: Optional["Pattern"] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.pattern = pattern


class TrimExhausted(BudgetExceeded):
    """No fragment subset honours both the budget and the length floor."""


class UnsupportedConstruct(SignatureError):
    """A qualifier or mask cannot be expressed in the requested dialect."""
