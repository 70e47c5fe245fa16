"""HTML directory listings.

Each entry name is encoded twice, independently: percent-encoded for the link
target and HTML-escaped for the visible label.
"""

import html
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from pubserve.core.errors import ResourceAccessError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/html; charset=utf-8"

_STYLE = """\
body {
    background-color: #202124;
    font-family: monospace;
}
h1 {
    color: #93b5f6;
    margin: 50px 10px;
}
a {
    all: unset;
    margin-left: 10px;
    color: #aaa;
}
a:hover {
    text-decoration: underline;
    color: white;
}
ul {
    color: #93b5f6;
}
li {
    margin: 15px 0;
    font-size: 20px;
    list-style: '📁';
    cursor: pointer;
}
li.file {
    list-style: '📄';
}
li.back {
    list-style: '↩️';
}"""


@dataclass(frozen=True)
class DirectoryEntry:
    """Immediate child of a listed directory."""

    name: str
    path: Path
    is_dir: bool


VisibilityPredicate = Callable[[DirectoryEntry], bool]


def hide_dotfiles(entry: DirectoryEntry) -> bool:
    """Hide entries whose name starts with a dot."""
    return not entry.name.startswith(".")


def show_all(entry: DirectoryEntry) -> bool:
    """Show every entry."""
    return True


def encode_link(url_prefix: str, name: str, *, is_dir: bool = False) -> str:
    """Build the href for an entry.

    Args:
        url_prefix: URL path of the listed directory (decoded form)
        name: Raw entry name
        is_dir: Append a trailing slash for directories

    Returns:
        Percent-encoded link target
    """
    base = quote(url_prefix.rstrip("/"), safe="/", errors="surrogateescape")
    segment = quote(name, safe="", errors="surrogateescape")
    return f"{base}/{segment}/" if is_dir else f"{base}/{segment}"


def encode_label(name: str, *, is_dir: bool = False) -> str:
    """Build the visible label for an entry.

    Args:
        name: Raw entry name
        is_dir: Append a trailing slash for directories

    Returns:
        HTML-escaped label
    """
    # Undecodable bytes from the filesystem show as U+FFFD
    printable = name.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    label = html.escape(printable)
    return f"{label}/" if is_dir else label


class DirectoryListingRenderer:
    """Renders a self-contained HTML page listing a directory.

    Stateless apart from its default visibility policy; safe to share
    between concurrent requests. Enumeration is blocking I/O.
    """

    def __init__(self, visibility: VisibilityPredicate = hide_dotfiles) -> None:
        """Initialize renderer.

        Args:
            visibility: Default policy deciding which entries are listed
        """
        self._visibility = visibility

    @property
    def visibility(self) -> VisibilityPredicate:
        """Default visibility policy."""
        return self._visibility

    def list_entries(
        self,
        directory: Path,
        visibility: VisibilityPredicate | None = None,
    ) -> list[DirectoryEntry]:
        """Enumerate the visible children of a directory.

        Directories come first, then files, each group ordered by name.

        Args:
            directory: Directory to enumerate
            visibility: Policy overriding the renderer's default

        Returns:
            Visible entries

        Raises:
            ResourceAccessError: If the directory cannot be read
        """
        is_visible = visibility or self._visibility
        entries: list[DirectoryEntry] = []
        try:
            with os.scandir(directory) as it:
                for item in it:
                    try:
                        is_dir = item.is_dir()
                    except FileNotFoundError:
                        # removed while listing
                        continue
                    entry = DirectoryEntry(
                        name=item.name,
                        path=Path(item.path),
                        is_dir=is_dir,
                    )
                    if is_visible(entry):
                        entries.append(entry)
        except OSError as e:
            raise ResourceAccessError(directory, e) from e

        entries.sort(key=lambda e: (not e.is_dir, e.name))
        return entries

    def render(
        self,
        directory: Path,
        url_prefix: str,
        visibility: VisibilityPredicate | None = None,
    ) -> str:
        """Render the listing page for a directory.

        Args:
            directory: Directory to list
            url_prefix: Decoded URL path the directory is served under
            visibility: Policy overriding the renderer's default

        Returns:
            Complete HTML document

        Raises:
            ResourceAccessError: If the directory cannot be read; no partial
                document is produced
        """
        entries = self.list_entries(directory, visibility)
        logger.debug(f"Listing {len(entries)} entries of {directory}")

        items = "".join(self._render_entry(url_prefix, entry) for entry in entries)
        heading = html.escape(f"📂 {url_prefix}")

        return (
            "<!DOCTYPE html>\n"
            "<html>\n"
            f"<head><meta charset=\"utf-8\"><title>{heading}</title></head>\n"
            "<body>\n"
            f"<style>\n{_STYLE}\n</style>\n"
            f"<h1>{heading}</h1>\n"
            "<ul>\n"
            "<li class=\"back\"><a href=\"javascript:history.back()\">Go Back</a></li>\n"
            f"{items}"
            "</ul>\n"
            "</body>\n"
            "</html>\n"
        )

    def _render_entry(self, url_prefix: str, entry: DirectoryEntry) -> str:
        href = html.escape(encode_link(url_prefix, entry.name, is_dir=entry.is_dir))
        label = encode_label(entry.name, is_dir=entry.is_dir)
        css_class = "dir" if entry.is_dir else "file"
        return f"<li class=\"{css_class}\"><a href=\"{href}\">{label}</a></li>\n"
