"""Request path resolution.

Turns an untrusted, percent-decoded request path into a file below the public
root. Lookup order:

    1. reject any ".." segment (served as not found)
    2. path without its trailing slash, if it is a regular file
    3. path as given, if it is a regular file
    4. index.html in the path's directory, then in each parent up to the root
    5. the configured not-found page
"""

import errno
import logging
import os
import re
import stat
from pathlib import Path

from pubserve.core.errors import ResourceAccessError
from pubserve.core.types import ResolvedTarget, TargetKind

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.html"

_SEPARATORS = re.compile(r"[/\\]")

# Errors meaning "nothing usable at this path" rather than an access failure
_ABSENT_ERRNOS = frozenset(
    {errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP},
)


def has_traversal(request_path: str) -> bool:
    """Check whether a request path contains a parent-directory segment.

    Purely lexical: the filesystem is never consulted.

    Args:
        request_path: Percent-decoded request path

    Returns:
        True if any segment is ".."
    """
    return any(segment == ".." for segment in _SEPARATORS.split(request_path))


def is_regular_file(path: str | Path) -> bool:
    """Check whether a path names an existing regular file.

    Symlinks are followed. A trailing slash keeps its OS meaning, so
    "page.html/" is not a file even when "page.html" is.

    Args:
        path: Path to check

    Returns:
        True if the path exists and is a regular file

    Raises:
        ResourceAccessError: If the path cannot be inspected (permissions, I/O)
    """
    try:
        st = os.stat(path)
    except ValueError:
        # embedded NUL byte
        return False
    except OSError as e:
        if e.errno in _ABSENT_ERRNOS:
            return False
        raise ResourceAccessError(Path(path), e) from e
    return stat.S_ISREG(st.st_mode)


class PathResolver:
    """Resolves request paths to files below a public root.

    Holds no per-request state and may be shared between concurrent requests.
    All filesystem access is blocking; callers running an event loop should
    call resolve() from a worker thread.
    """

    def __init__(self, public_dir: Path, not_found_page: Path) -> None:
        """Initialize resolver.

        Args:
            public_dir: Root directory every served file must lie within
            not_found_page: File served when resolution finds nothing
        """
        self._public_dir = public_dir
        self._not_found_page = not_found_page

    @property
    def public_dir(self) -> Path:
        """Root directory for served files."""
        return self._public_dir

    @property
    def not_found_page(self) -> Path:
        """Fallback file for unresolved requests."""
        return self._not_found_page

    def resolve(self, request_path: str, client: str = "unknown ip") -> ResolvedTarget:
        """Resolve a request path to the file to serve.

        Args:
            request_path: Percent-decoded request path, e.g. "guide/setup/"
            client: Client identifier for log events

        Returns:
            ResolvedTarget for a matched file, or for the not-found page

        Raises:
            ResourceAccessError: If a filesystem check fails for a reason
                other than the path being absent
        """
        if has_traversal(request_path):
            logger.warning(
                f"[{client}] Not Safe: {request_path}",
                extra={"client": client, "event": "rejected", "path": request_path},
            )
            return self._not_found()

        no_slash = self._join(request_path.removesuffix("/"))
        if is_regular_file(no_slash):
            return self._served(Path(no_slash), client)

        as_given = self._join(request_path)
        if is_regular_file(as_given):
            return self._served(Path(as_given), client)

        index_path = self._find_index(request_path)
        if index_path is not None:
            return self._served(index_path, client)

        logger.info(
            f"[{client}] File not found: {as_given}",
            extra={"client": client, "event": "not_found", "path": as_given},
        )
        return self._not_found()

    def _join(self, request_path: str) -> str:
        # Plain concatenation: a leading "/" in the request cannot re-root the
        # candidate the way os.path.join or Path / would.
        return f"{self._public_dir}/{request_path}"

    def _find_index(self, request_path: str) -> Path | None:
        """Search for index.html from the request directory up to the root.

        Args:
            request_path: Request path already checked for traversal

        Returns:
            Path to the nearest index.html, or None if there is none
        """
        segments = [s for s in request_path.split("/") if s and s != "."]
        while True:
            candidate = self._public_dir.joinpath(*segments, INDEX_FILENAME)
            if is_regular_file(candidate):
                return candidate
            if not segments:
                return None
            segments.pop()

    def _served(self, path: Path, client: str) -> ResolvedTarget:
        logger.info(
            f"[{client}] Serving: {path}",
            extra={"client": client, "event": "served", "path": str(path)},
        )
        return ResolvedTarget(path=path, kind=TargetKind.FILE)

    def _not_found(self) -> ResolvedTarget:
        return ResolvedTarget(path=self._not_found_page, kind=TargetKind.NOT_FOUND)
