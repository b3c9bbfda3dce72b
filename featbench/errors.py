"""Error values passed between pipeline stages."""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(Enum):
    """Category of a recoverable stage failure."""
    CONFIGURATION = "configuration"
    DATA = "data"
    NUMERICAL = "numerical"


@dataclass(frozen=True)
class StageFailure:
    """A stage could not produce its output for the current combination."""
    stage: str
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.stage} failed ({self.kind.value}): {self.message}"


class ImageSourceError(ValueError):
    """Raised when a benchmark image is missing or empty."""
