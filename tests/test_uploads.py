import io

import pytest

from conftest import make_payload
from libs.core.exceptions import ValidationError
from libs.storage import FilePayload, UploadPolicy, UploadValidator
from libs.storage.uploads import file_extension, normalize_mime


def _validator(max_bytes: int = 100, max_files: int = 2) -> UploadValidator:
    policy = UploadPolicy.build(
        extensions=["png", ".PDF"],
        mime_types=["image/png", "Application/PDF"],
        max_bytes=max_bytes,
        max_files=max_files,
    )
    return UploadValidator(policy)


def test_policy_build_normalizes_entries() -> None:
    policy = _validator().policy
    assert policy.allowed_extensions == frozenset({".png", ".pdf"})
    assert policy.allowed_mime_types == frozenset({"image/png", "application/pdf"})


def test_accepts_whitelisted_file() -> None:
    verdict = _validator().check(make_payload("a.PNG", b"x", "image/png"))
    assert verdict.accepted
    assert verdict.reason is None


def test_rejects_extension_outside_whitelist() -> None:
    verdict = _validator().check(make_payload("a.exe", b"x", "image/png"))
    assert not verdict.accepted
    assert verdict.reason == "uploads.extension_not_allowed"


def test_rejects_mime_outside_whitelist_even_with_good_extension() -> None:
    verdict = _validator().check(make_payload("a.png", b"x", "text/html"))
    assert verdict.reason == "uploads.mime_not_allowed"


def test_mime_parameters_are_ignored() -> None:
    verdict = _validator().check(make_payload("a.pdf", b"x", "application/pdf; charset=binary"))
    assert verdict.accepted


def test_declared_size_over_limit_rejects_without_reading() -> None:
    stream = io.BytesIO(b"x" * 10)
    payload = FilePayload("a.png", "image/png", 101, stream)

    verdict = _validator(max_bytes=100).check(payload)

    assert verdict.reason == "uploads.too_large"
    assert stream.tell() == 0


def test_missing_or_overlong_filename_is_rejected() -> None:
    assert _validator().check(make_payload("", b"x", "image/png")).reason == "uploads.missing_filename"
    long_name = "a" * 300 + ".png"
    assert _validator().check(make_payload(long_name, b"x", "image/png")).reason == (
        "uploads.filename_too_long"
    )


def test_batch_over_count_limit_is_rejected() -> None:
    files = [make_payload(f"{i}.png", b"x", "image/png") for i in range(3)]
    with pytest.raises(ValidationError) as excinfo:
        _validator(max_files=2).check_batch(files)
    assert excinfo.value.key == "uploads.too_many_files"


def test_one_bad_file_rejects_the_batch() -> None:
    files = [make_payload("ok.png", b"x", "image/png"), make_payload("bad.sh", b"x", "image/png")]
    with pytest.raises(ValidationError) as excinfo:
        _validator().check_batch(files)
    assert excinfo.value.key == "uploads.extension_not_allowed"


def test_empty_batch_is_fine() -> None:
    _validator().check_batch([])


def test_helpers() -> None:
    assert file_extension("dir/photo.JPG") == ".jpg"
    assert file_extension("..\\evil.Png") == ".png"
    assert file_extension("noext") == ""
    assert normalize_mime(" Image/PNG ; q=1") == "image/png"
    assert normalize_mime(None) == ""
