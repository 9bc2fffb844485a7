import os

import pytest

from fakes import RecordingFilesystem
from services.errors import PathEscape
from services.paths import PathResolver, normalize_virtual_path


@pytest.fixture
def resolver(root):
    return PathResolver(str(root))


@pytest.mark.parametrize("vpath", ["", "/", None, ".", "./", "//", "a/.."])
def test_root_aliases_resolve_to_root(resolver, root, vpath):
    assert resolver.resolve(vpath) == str(root)


@pytest.mark.parametrize(
    "vpath, expected",
    [
        ("a/b/c.txt", "a/b/c.txt"),
        ("/a//b/./c.txt", "a/b/c.txt"),
        ("a\\b\\c.txt", "a/b/c.txt"),
        ("a/x/../b", "a/b"),
        ("docs/", "docs"),
    ],
)
def test_normalizes_inside_root(resolver, root, vpath, expected):
    assert normalize_virtual_path(vpath) == expected
    assert resolver.resolve(vpath) == os.path.join(str(root), *expected.split("/"))


@pytest.mark.parametrize(
    "vpath",
    [
        "..",
        "../",
        "../etc/passwd",
        "/../etc/passwd",
        "a/../../x",
        "a/b/../../../c",
        "..\\..\\windows\\system32",
        "/./../root",
        "ok\x00.txt",
    ],
)
def test_escapes_rejected_without_touching_filesystem(root, vpath):
    fs = RecordingFilesystem()
    resolver = PathResolver(str(root), fs)
    with pytest.raises(PathEscape):
        resolver.resolve(vpath, follow_symlinks=True)
    with pytest.raises(PathEscape):
        resolver.resolve_entry(vpath)
    assert fs.calls == []


def test_sibling_directory_with_common_prefix_is_outside(tmp_path):
    base = tmp_path / "base"
    evil = tmp_path / "base-evil"
    base.mkdir()
    evil.mkdir()
    resolver = PathResolver(str(base))
    with pytest.raises(PathEscape):
        resolver.resolve("../base-evil/secret.txt")


def test_symlink_leaving_root_rejected_when_following(tmp_path, root):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("nope")
    os.symlink(str(outside), str(root / "link"))
    resolver = PathResolver(str(root))

    assert resolver.resolve("link/secret.txt") == str(root / "link" / "secret.txt")
    with pytest.raises(PathEscape):
        resolver.resolve("link/secret.txt", follow_symlinks=True)


def test_resolve_entry_allows_acting_on_the_link_itself(tmp_path, root):
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(str(outside), str(root / "link"))
    resolver = PathResolver(str(root))

    assert resolver.resolve_entry("link") == str(root / "link")
    with pytest.raises(PathEscape):
        resolver.resolve_entry("link/inner")


def test_symlink_inside_root_is_fine(root):
    (root / "real").mkdir()
    (root / "real" / "f.txt").write_text("x")
    os.symlink(str(root / "real"), str(root / "alias"))
    resolver = PathResolver(str(root))
    assert resolver.resolve("alias/f.txt", follow_symlinks=True) == str(root / "alias" / "f.txt")


@pytest.mark.parametrize(
    "vpath, is_dir, expected",
    [
        ("", True, "/"),
        ("/", False, "/"),
        ("docs", True, "/docs/"),
        ("/docs/a.txt", False, "/docs/a.txt"),
        ("docs/../pics/", True, "/pics/"),
    ],
)
def test_url_for(resolver, vpath, is_dir, expected):
    assert resolver.url_for(vpath, is_dir=is_dir) == expected


def test_url_for_rejects_escape(resolver):
    with pytest.raises(PathEscape):
        resolver.url_for("//../../evil")
