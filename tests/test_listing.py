import pytest

from services.listing import build_listing, file_icon, join_path, markdown_to_html, parent_of, readable_size, split_path
from services.paths import PathResolver


@pytest.mark.parametrize(
    "size, expected",
    [
        (None, ""),
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 4, "3.0 TB"),
    ],
)
def test_readable_size(size, expected):
    assert readable_size(size) == expected


@pytest.mark.parametrize(
    "name, icon",
    [
        ("notes.TXT", "description"),
        ("photo.jpeg", "image"),
        ("backup.tar", "archive"),
        ("song.mp3", "audiotrack"),
        ("clip.mkv", "movie"),
        ("sheet.xlsx", "grid_on"),
        ("Makefile", "insert_drive_file"),
    ],
)
def test_file_icon(name, icon):
    assert file_icon(name) == icon


def test_breadcrumb_helpers():
    assert split_path("/a/b/") == ["a", "b"]
    assert split_path("/") == []
    assert join_path("/", "x") == "/x"
    assert join_path("/a/", "x") == "/a/x"
    assert join_path("/a", "x") == "/a/x"


@pytest.mark.parametrize(
    "url, parent",
    [("/", ""), ("", ""), ("/docs/", "/"), ("/a/b/", "/a/"), ("/a/b", "/a/")],
)
def test_parent_of(url, parent):
    assert parent_of(url) == parent


def test_build_listing_sorts_dirs_first_and_renders_readme(root):
    (root / "zeta.txt").write_bytes(b"12345")
    (root / "Alpha.txt").write_bytes(b"")
    (root / "photos").mkdir()
    (root / "README.md").write_text("# Welcome\n\nHello *there*.\n", encoding="utf-8")

    listing = build_listing(PathResolver(str(root)), "/", str(root), is_logged_in=True)

    assert [e.name for e in listing.entries] == ["photos", "Alpha.txt", "README.md", "zeta.txt"]
    assert listing.entries[0].is_dir
    assert listing.entries[0].size is None
    assert listing.entries[-1].size == 5
    assert all(e.mtime is not None for e in listing.entries)
    assert listing.parent_dir == ""
    assert listing.is_logged_in is True
    assert "<h1>Welcome</h1>" in listing.readme_html
    assert "<em>there</em>" in listing.readme_html


def test_build_listing_without_readme(root):
    (root / "sub").mkdir()
    listing = build_listing(PathResolver(str(root)), "/sub/", str(root / "sub"), is_logged_in=False)
    assert listing.entries == []
    assert listing.readme_html == ""
    assert listing.parent_dir == "/"


def test_markdown_leaves_raw_html_out():
    html = markdown_to_html("hi\n\n<script>alert(1)</script>\n\nsee <b onmouseover=x>this</b>\n")
    assert "<script>" not in html
    assert "<b " not in html
    assert "&lt;script&gt;" in html
    assert "<p>hi</p>" in html


def test_markdown_keeps_formatting_and_code():
    html = markdown_to_html("## Notes\n\n```\n<tag>\n```\n\n| a | b |\n|---|---|\n| 1 | 2 |\n")
    assert "<h2>Notes</h2>" in html
    assert "&lt;tag&gt;" in html
    assert "<table>" in html


@pytest.mark.parametrize(
    "target",
    ["javascript:alert(1)", "JavaScript:alert(1)", "vbscript:x", "data:text/html,x"],
)
def test_markdown_blanks_scripting_link_targets(target):
    html = markdown_to_html(f"[click]({target}) ![img]({target})")
    assert "script:" not in html.lower()
    assert "data:text" not in html
    assert 'href=""' in html


def test_markdown_keeps_ordinary_links():
    html = markdown_to_html("[docs](https://example.com/docs) [local](sub/file.txt)")
    assert 'href="https://example.com/docs"' in html
    assert 'href="sub/file.txt"' in html


def test_readme_symlink_outside_root_is_not_rendered(root, tmp_path):
    secret = tmp_path / "secret.md"
    secret.write_text("TOP SECRET\n", encoding="utf-8")
    (root / "README.md").symlink_to(secret)

    listing = build_listing(PathResolver(str(root)), "/", str(root), is_logged_in=False)

    assert listing.readme_html == ""
    assert [e.name for e in listing.entries] == ["README.md"]
