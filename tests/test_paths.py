from pathlib import Path

import pytest

from libs.core.exceptions import NotFoundError, PathRejected
from libs.storage import paths


def test_resolve_plain_name_inside_root(tmp_path: Path) -> None:
    root = tmp_path / "attachments"
    root.mkdir()
    resolved = paths.resolve(root, "note-1-2-a.png")
    assert resolved == (root / "note-1-2-a.png").resolve()


def test_resolve_nested_name_inside_root(tmp_path: Path) -> None:
    resolved = paths.resolve(tmp_path, "sub/./file.txt")
    assert resolved == (tmp_path / "sub" / "file.txt").resolve()


@pytest.mark.parametrize(
    "candidate",
    [
        "../etc/passwd",
        "../../etc/passwd",
        "a/../../etc/passwd",
        "a/../b.txt",
        "../" * 12 + "etc/passwd",
        "..",
        "/etc/passwd",
        "//etc/passwd",
        "C:/Windows/win.ini",
        "..\\..\\etc\\passwd",
        "a\\b",
        "%2e%2e%2fetc%2fpasswd",
        "%2E%2E/%2E%2E/etc/passwd",
        "%252e%252e%252fetc%252fpasswd",
        "%2fetc%2fpasswd",
        "file\x00.png",
        "",
        ".",
    ],
)
def test_traversal_and_absolute_paths_are_rejected(tmp_path: Path, candidate: str) -> None:
    with pytest.raises(PathRejected):
        paths.resolve(tmp_path, candidate)


def test_symlink_escaping_root_is_rejected(tmp_path: Path) -> None:
    root = tmp_path / "attachments"
    root.mkdir()
    outside = tmp_path / "secret.txt"
    outside.write_text("secret")
    (root / "link.txt").symlink_to(outside)

    with pytest.raises(PathRejected):
        paths.resolve(root, "link.txt")


def test_rejection_is_reported_as_not_found(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        paths.resolve(tmp_path, "../outside")

