"""Path resolution and directory listing engine.

Stateless per call over an immutable configuration.
"""

from .errors import ResourceAccessError
from .listing import DirectoryEntry, DirectoryListingRenderer, hide_dotfiles, show_all
from .resolver import PathResolver, has_traversal
from .types import ResolvedTarget, TargetKind

__all__ = [
    "DirectoryEntry",
    "DirectoryListingRenderer",
    "PathResolver",
    "ResolvedTarget",
    "ResourceAccessError",
    "TargetKind",
    "has_traversal",
    "hide_dotfiles",
    "show_all",
]
