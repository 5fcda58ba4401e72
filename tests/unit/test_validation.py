# tests/unit/test_validation.py
import pytest

from clinic_intake.data.intake_flow import INTAKE_FLOW
from clinic_intake.domain.models import InputKind, Option, StepSpec
from clinic_intake.execution.validation import (
    is_valid_email,
    is_valid_name,
    is_valid_phone,
    min_length,
    validate,
)


@pytest.mark.parametrize("value, expected", [
    ("Jane Doe", True),
    ("Jo", True),
    ("  J  ", False),
    ("", False),
])
def test_is_valid_name(value, expected):
    assert is_valid_name(value) is expected


@pytest.mark.parametrize("value, expected", [
    ("+353 87 476 6949", True),
    ("(01) 555-1234", True),
    ("0871234567", True),
    ("12345", False),
    ("call me maybe", False),
    ("+353 87 476 6949 1234 5678", False),
])
def test_is_valid_phone(value, expected):
    assert is_valid_phone(value) is expected


def test_is_valid_email():
    assert is_valid_email("jane.doe@gmail.com")
    assert not is_valid_email("not-an-email")
    assert not is_valid_email("")


def test_min_length_requires_more_than_n_characters():
    check = min_length(10)
    assert not check("0123456789")
    assert check("0123456789a")
    assert not check("   short   ")


def test_explicit_validation_uses_step_error_message():
    step = INTAKE_FLOW.get("name")
    result = validate(step, "J")
    assert not result.ok
    assert result.message == "Please enter your name (at least 2 characters)"
    assert validate(step, "Jane Doe").ok


def test_text_steps_reject_blank_unless_optional():
    required = StepSpec(id="q", input_kind=InputKind.LONG_TEXT)
    optional = StepSpec(id="q", input_kind=InputKind.LONG_TEXT, optional=True)
    assert not validate(required, "   ").ok
    assert validate(optional, "").ok


def test_optional_email_accepts_empty_but_not_garbage():
    step = INTAKE_FLOW.get("email")
    assert validate(step, "").ok
    rejected = validate(step, "not-an-email")
    assert not rejected.ok
    assert rejected.message == "Please enter a valid email address"


def test_option_value_must_be_listed():
    step = StepSpec(
        id="pick",
        input_kind=InputKind.OPTION_CHOICE,
        options=(Option("Yes", "yes"), Option("No", "no")),
    )
    assert validate(step, "yes").ok
    # Labels are not values
    assert not validate(step, "Yes").ok
    assert validate(step, "maybe").message == "Please choose one of the options."


def test_option_step_with_validation_override_accepts_free_text():
    step = StepSpec(
        id="pick",
        input_kind=InputKind.OPTION_CHOICE,
        options=(Option("Yes", "yes"),),
        validation=lambda value: bool(value.strip()),
        error_message="Say something",
    )
    assert validate(step, "something else").ok


def test_image_step_requires_data_url():
    step = INTAKE_FLOW.get("image_upload")
    assert validate(step, "data:image/png;base64,aGVsbG8=").ok
    assert not validate(step, "").ok
    assert validate(step, "data:text/plain;base64,aGVsbG8=").message == "Failed to upload image. Please try again."


def test_informational_step_is_always_valid():
    assert validate(StepSpec(id="info"), "anything").ok
