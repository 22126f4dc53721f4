"""Exceptions and warnings raised while building or transforming a layout."""

from dataclasses import dataclass


class LayoutError(ValueError):
    """Base class for all layout errors."""


class ConfigurationError(LayoutError):
    """Missing columns, ambiguous or unknown tracks, or no derivable seqs."""


class ReferenceError(LayoutError):
    """A feat or link points at a sequence that does not exist (strict mode)."""


class ValidationError(LayoutError):
    """A user supplied order, subset or focus selection is unusable."""


class UnresolvedReferenceWarning(UserWarning):
    pass


@dataclass(frozen=True)
class Diagnostic:
    """Rows dropped from one track because they reference unknown ids."""

    track_id: str
    count: int
    examples: tuple = ()
    target: str = "sequences"

    def __str__(self):
        shown = ", ".join(map(str, self.examples))
        return (
            f"{self.track_id}: dropped {self.count} row(s) referencing "
            f"unknown {self.target} (e.g. {shown})"
        )
