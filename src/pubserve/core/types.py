"""Core type definitions."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class TargetKind(Enum):
    """Outcome of path resolution."""

    FILE = "file"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResolvedTarget:
    """File to stream in response to a request."""

    path: Path
    kind: TargetKind

    @property
    def found(self) -> bool:
        """Whether the target is a real match rather than the not-found page."""
        return self.kind is TargetKind.FILE
