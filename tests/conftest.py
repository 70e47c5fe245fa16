"""Shared test fixtures."""

from pathlib import Path

import pytest
from pubserve.config import (
    Config,
    FilesConfig,
    FilteringConfig,
    HttpConfig,
    HttpsConfig,
    ListingConfig,
)


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    """Create an empty public directory with a not-found page."""
    public = tmp_path / "public"
    public.mkdir()
    (public / "404.html").write_text("<h1>Not Found</h1>")
    return public


@pytest.fixture
def listing_dir(tmp_path: Path) -> Path:
    """Create an empty directory for the listing route."""
    files = tmp_path / "files"
    files.mkdir()
    return files


@pytest.fixture
def test_config(public_dir: Path, listing_dir: Path) -> Config:
    """Create a test configuration with tmp_path directories.

    Listing is enabled under /files; filtering is off.
    """
    return Config(
        http=HttpConfig(),
        https=HttpsConfig(),
        files=FilesConfig(public_dir=public_dir, not_found_page=public_dir / "404.html"),
        listing=ListingConfig(enabled=True, route="/files", dir=listing_dir),
        filtering=FilteringConfig(),
    )
