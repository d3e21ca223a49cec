"""Error kinds raised (or returned) by the rule editor core.

Nothing here is fatal to the process.  Every failure is scoped to one
editing session and leaves the in-memory RuleRecord intact so the analyst
can correct it and retry.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationFailure:
    """One failing field/rule pair.  A value, never raised.

    ``structural`` separates record-shape problems (dangling condition
    references, no selections) from plain per-field errors.
    """

    field: str
    message: str
    structural: bool = False


class RuleError(Exception):
    """Base class for rule editor errors."""


class ParseError(RuleError):
    """Text could not be reconciled with the supported rule grammar."""

    def __init__(self, line: int, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"line {line}: {reason}")


class SerializationError(RuleError):
    """Attempted to render an incomplete record in canonical form."""


class SubmissionFailure(RuleError):
    """The persistence collaborator rejected or could not complete a write."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class EditorStateError(RuleError):
    """A mutation was attempted in a state that does not allow it."""
