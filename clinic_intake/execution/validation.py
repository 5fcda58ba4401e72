"""
Validation Gate.

Deterministic, side-effect-free checks of raw user input against the step
being answered. A step's explicit validation predicate takes precedence;
otherwise the default rule for its input kind applies.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError

from ..domain.models import InputKind, StepSpec

_EMAIL = TypeAdapter(EmailStr)
_PHONE_SHAPE = re.compile(r"^\+?[\d\s().-]+$")
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    message: Optional[str] = None


VALID = ValidationResult(ok=True)


def is_valid_name(value: str) -> bool:
    return len(value.strip()) >= 2


def is_valid_email(value: str) -> bool:
    try:
        _EMAIL.validate_python(value.strip())
    except ValidationError:
        return False
    return True


def is_valid_phone(value: str) -> bool:
    value = value.strip()
    if not _PHONE_SHAPE.match(value):
        return False
    digits = sum(ch.isdigit() for ch in value)
    return MIN_PHONE_DIGITS <= digits <= MAX_PHONE_DIGITS


def min_length(n: int) -> Callable[[str], bool]:
    """Predicate: more than n characters after trimming."""
    return lambda value: len(value.strip()) > n


# Default rules per input kind: (predicate(step, raw), fallback error text)
def _text_rule(step: StepSpec, raw: str) -> bool:
    return step.optional or bool(raw.strip())


def _email_rule(step: StepSpec, raw: str) -> bool:
    if step.optional and not raw.strip():
        return True
    return is_valid_email(raw)


def _phone_rule(step: StepSpec, raw: str) -> bool:
    return is_valid_phone(raw)


def _option_rule(step: StepSpec, raw: str) -> bool:
    return any(option.value == raw for option in step.options)


def _image_rule(step: StepSpec, raw: str) -> bool:
    return raw.startswith("data:image/") and "base64," in raw


_DEFAULT_RULES: Dict[InputKind, tuple] = {
    InputKind.SHORT_TEXT: (_text_rule, "Please enter a response."),
    InputKind.LONG_TEXT: (_text_rule, "Please enter a response."),
    InputKind.EMAIL: (_email_rule, "Please enter a valid email address."),
    InputKind.PHONE: (_phone_rule, "Please enter a valid phone number."),
    InputKind.OPTION_CHOICE: (_option_rule, "Please choose one of the options."),
    InputKind.IMAGE: (_image_rule, "Please upload an image."),
}


def validate(step: StepSpec, raw: str) -> ValidationResult:
    """
    Gate a submission for the given step.

    Args:
        step: The step being answered.
        raw: The raw submitted string (option value, not label).

    Returns:
        VALID, or a failed ValidationResult carrying the user-facing message.
    """
    if raw is None:
        raw = ""

    if step.validation is not None:
        if step.validation(raw):
            return VALID
        return ValidationResult(ok=False, message=step.error_message)

    rule = _DEFAULT_RULES.get(step.input_kind)
    if rule is None:
        return VALID

    predicate, default_message = rule
    if predicate(step, raw):
        return VALID
    return ValidationResult(ok=False, message=step.error_message or default_message)
