from types import SimpleNamespace

from libs.core.access import Access, decide


def _note(owner: int, public: bool) -> SimpleNamespace:
    return SimpleNamespace(user_id=owner, is_public=public)


def test_owner_of_private_and_public_note() -> None:
    assert decide(1, _note(1, False)) is Access.OWNER
    assert decide(1, _note(1, True)) is Access.OWNER


def test_other_user_sees_public_note_as_viewer() -> None:
    assert decide(2, _note(1, True)) is Access.VIEWER


def test_other_user_is_denied_private_note() -> None:
    assert decide(2, _note(1, False)) is Access.DENIED


def test_permissions_per_level() -> None:
    assert Access.OWNER.can_read and Access.OWNER.can_write
    assert Access.VIEWER.can_read and not Access.VIEWER.can_write
    assert not Access.DENIED.can_read and not Access.DENIED.can_write
