import pytest

from library_desk.validators import ContactValidator, IdValidator, TextValidator


@pytest.mark.parametrize("raw", ["B1", "U-001", "isbn.978", "a_b", "  B1  ", "X" * 20])
def test_valid_ids(raw):
    assert IdValidator.is_valid_id(raw)


@pytest.mark.parametrize("raw", [None, "", "   ", "has space", "-leading", "X" * 21, "B1/2"])
def test_invalid_ids(raw):
    assert not IdValidator.is_valid_id(raw)


def test_normalize_id_strips():
    assert IdValidator.normalize_id("  B7 ") == "B7"
    assert IdValidator.normalize_id(None) == ""


@pytest.mark.parametrize("email, ok", [
    ("", True),
    (None, True),
    ("asha@example.com", True),
    ("first.last@sub.example.org", True),
    ("no-at-sign.com", False),
    ("two@@example.com", False),
    ("user@localhost", False),
])
def test_email_validation(email, ok):
    assert ContactValidator.is_valid_email(email) is ok


@pytest.mark.parametrize("phone, ok", [
    ("", True),
    ("555-0101", True),
    ("+1 555 0101", True),
    ("call me", False),
    ("1" * 16, False),
])
def test_phone_validation(phone, ok):
    assert ContactValidator.is_valid_phone(phone) is ok


def test_title_and_name_checks():
    assert TextValidator.validate_title("Dune")
    assert not TextValidator.validate_title("   ")
    assert not TextValidator.validate_title(None)
    assert TextValidator.validate_name("Chen Li")
    assert not TextValidator.validate_name("12345")
    assert not TextValidator.validate_name(None)


def test_sanitize_text_removes_tags_and_control_characters():
    assert TextValidator.sanitize_text("  <b>Dune</b>\x07 ") == "Dune"
    assert TextValidator.sanitize_text(None) == ""
