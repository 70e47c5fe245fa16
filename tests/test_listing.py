"""Tests for HTML directory listings."""

import errno
import html
import re
from pathlib import Path
from unittest.mock import patch
from urllib.parse import unquote

import pytest
from pubserve.core.errors import ResourceAccessError
from pubserve.core.listing import (
    DirectoryEntry,
    DirectoryListingRenderer,
    encode_label,
    encode_link,
    hide_dotfiles,
    show_all,
)

ITEM_RE = re.compile(r'<li class="(dir|file)"><a href="([^"]*)">([^<]*)</a></li>')


def parse_items(document: str) -> list[tuple[str, str, str]]:
    return ITEM_RE.findall(document)


class TestVisibility:
    """Tests for visibility policies."""

    def test__hide_dotfiles__hides_dot_names(self, tmp_path: Path) -> None:
        """Hide names starting with a dot."""
        assert not hide_dotfiles(DirectoryEntry(".git", tmp_path / ".git", True))
        assert hide_dotfiles(DirectoryEntry("src", tmp_path / "src", True))

    def test__show_all__shows_everything(self, tmp_path: Path) -> None:
        """Show dot names too."""
        assert show_all(DirectoryEntry(".env", tmp_path / ".env", False))


class TestEncoding:
    """Tests for link and label encoding."""

    def test__space__percent_encoded_in_link(self) -> None:
        """Spaces become %20 in the link target only."""
        assert encode_link("/files", "My Report.pdf") == "/files/My%20Report.pdf"
        assert encode_label("My Report.pdf") == "My Report.pdf"

    def test__directory__trailing_slash_on_both(self) -> None:
        """Directories get a trailing slash on link and label."""
        assert encode_link("/files/", "2024", is_dir=True) == "/files/2024/"
        assert encode_label("2024", is_dir=True) == "2024/"

    def test__markup_in_name__escaped_independently(self) -> None:
        """HTML metacharacters are percent-encoded in links and entity-escaped in labels."""
        name = '<b>"a&b"</b>'

        assert encode_link("", name) == "/%3Cb%3E%22a%26b%22%3C%2Fb%3E"
        assert encode_label(name) == "&lt;b&gt;&quot;a&amp;b&quot;&lt;/b&gt;"

    def test__percent_and_hash__encoded(self) -> None:
        """Characters meaningful in URLs are encoded in the segment."""
        assert encode_link("/d", "100%#?.txt") == "/d/100%25%23%3F.txt"

    def test__prefix_with_space__encoded(self) -> None:
        """The URL prefix is encoded but keeps its slashes."""
        assert encode_link("/my files/", "a") == "/my%20files/a"

    @pytest.mark.parametrize(
        "name",
        ["My Report.pdf", "résumé.txt", "a&b<c>.html", "100% done", "q?x=1#frag", "日本語", "it's"],
    )
    def test__encodings__recover_raw_name(self, name: str) -> None:
        """Decoding the link segment and unescaping the label give back the name."""
        link = encode_link("/files", name)
        label = encode_label(name)

        assert unquote(link.rsplit("/", 1)[1]) == name
        assert html.unescape(label) == name


class TestListEntries:
    """Tests for DirectoryListingRenderer.list_entries()."""

    def test__mixed_entries__directories_first_sorted(self, tmp_path: Path) -> None:
        """Order directories first, then files, each by name."""
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "zeta").mkdir()
        (tmp_path / "alpha").mkdir()

        entries = DirectoryListingRenderer().list_entries(tmp_path)

        assert [(e.name, e.is_dir) for e in entries] == [
            ("alpha", True),
            ("zeta", True),
            ("a.txt", False),
            ("b.txt", False),
        ]

    def test__hidden_entries__skipped_by_default(self, tmp_path: Path) -> None:
        """Skip dotfiles with the default policy."""
        (tmp_path / ".secret").write_text("s")
        (tmp_path / "public.txt").write_text("p")

        entries = DirectoryListingRenderer().list_entries(tmp_path)

        assert [e.name for e in entries] == ["public.txt"]

    def test__visibility_override__applied(self, tmp_path: Path) -> None:
        """A per-call policy overrides the default."""
        (tmp_path / ".secret").write_text("s")

        entries = DirectoryListingRenderer().list_entries(tmp_path, show_all)

        assert [e.name for e in entries] == [".secret"]

    def test__custom_predicate__receives_entries(self, tmp_path: Path) -> None:
        """Any callable can decide visibility."""
        (tmp_path / "keep.txt").write_text("k")
        (tmp_path / "drop.log").write_text("d")
        renderer = DirectoryListingRenderer(lambda e: not e.name.endswith(".log"))

        entries = renderer.list_entries(tmp_path)

        assert [e.name for e in entries] == ["keep.txt"]
        assert entries[0].path == tmp_path / "keep.txt"

    def test__missing_directory__raises(self, tmp_path: Path) -> None:
        """Raise ResourceAccessError when the directory cannot be read."""
        with pytest.raises(ResourceAccessError) as exc_info:
            DirectoryListingRenderer().list_entries(tmp_path / "missing")

        assert exc_info.value.path == tmp_path / "missing"

    def test__permission_denied__raises(self, tmp_path: Path) -> None:
        """Raise ResourceAccessError on access failures."""
        denied = PermissionError(errno.EACCES, "Permission denied")
        with patch("pubserve.core.listing.os.scandir", side_effect=denied):
            with pytest.raises(ResourceAccessError):
                DirectoryListingRenderer().list_entries(tmp_path)


class TestRender:
    """Tests for DirectoryListingRenderer.render()."""

    def test__file_and_directory__two_items(self, tmp_path: Path) -> None:
        """Render one item per visible entry with encoded link and label."""
        (tmp_path / "My Report.pdf").write_text("pdf")
        (tmp_path / "2024").mkdir()

        document = DirectoryListingRenderer().render(tmp_path, "/files")

        assert parse_items(document) == [
            ("dir", "/files/2024/", "2024/"),
            ("file", "/files/My%20Report.pdf", "My Report.pdf"),
        ]

    def test__document__has_heading_and_back_link(self, tmp_path: Path) -> None:
        """Show the URL path in the title and heading, plus a back link."""
        document = DirectoryListingRenderer().render(tmp_path, "/files/docs/")

        assert document.startswith("<!DOCTYPE html>")
        assert "<title>📂 /files/docs/</title>" in document
        assert "<h1>📂 /files/docs/</h1>" in document
        assert 'href="javascript:history.back()">Go Back</a>' in document

    def test__document__self_contained(self, tmp_path: Path) -> None:
        """Use inline styles only."""
        document = DirectoryListingRenderer().render(tmp_path, "/")

        assert "<style>" in document
        assert "<link" not in document
        assert "<script" not in document

    def test__url_prefix_markup__escaped_in_heading(self, tmp_path: Path) -> None:
        """Escape the URL path shown in the heading."""
        document = DirectoryListingRenderer().render(tmp_path, "/<script>/")

        assert "<h1>📂 /&lt;script&gt;/</h1>" in document

    def test__markup_name__round_trips(self, tmp_path: Path) -> None:
        """Links and labels of hostile names decode back to the raw name."""
        name = 'x"><img src=y>&amp;'
        (tmp_path / name).write_text("x")

        document = DirectoryListingRenderer().render(tmp_path, "/files")

        [(kind, href, label)] = parse_items(document)
        assert kind == "file"
        assert unquote(html.unescape(href).rsplit("/", 1)[1]) == name
        assert html.unescape(label) == name

    def test__unreadable_directory__no_document(self, tmp_path: Path) -> None:
        """Fail as a whole; never return a partial document."""
        renderer = DirectoryListingRenderer()
        with pytest.raises(ResourceAccessError):
            renderer.render(tmp_path / "missing", "/files/missing")
