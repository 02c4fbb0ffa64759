"""
Form validation for gig tracker inputs. Errors come back as {field: message}.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional


@dataclass(frozen=True)
class ValidationRule:
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[re.Pattern] = None
    custom: Optional[Callable[[Any], Optional[str]]] = None
    message: Optional[str] = None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_field(value: Any, rule: ValidationRule) -> Optional[str]:
    if rule.required and _blank(value):
        return rule.message or "This field is required"

    # 0 and False are real values; only None and "" count as empty
    if value is None or value == "":
        return None

    if isinstance(value, str):
        if rule.min_length is not None and len(value) < rule.min_length:
            return rule.message or f"Must be at least {rule.min_length} characters"
        if rule.max_length is not None and len(value) > rule.max_length:
            return rule.message or f"Must be no more than {rule.max_length} characters"
        if rule.pattern is not None and not rule.pattern.search(value):
            return rule.message or "Invalid format"

    if rule.custom is not None:
        error = rule.custom(value)
        if error:
            return error

    return None


def validate_form(values: Mapping[str, Any], rules: Mapping[str, ValidationRule]) -> dict[str, str]:
    errors = {}
    for field, rule in rules.items():
        error = validate_field(values.get(field), rule)
        if error:
            errors[field] = error
    return errors


def _future_date(value: Any) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    now = datetime.now(timezone.utc) if value.tzinfo else datetime.now()
    if value < now:
        return "Date must be in the future"
    return None


COMMON_RULES: dict[str, ValidationRule] = {
    "title": ValidationRule(
        required=True, min_length=1, max_length=100,
        message="Title is required and must be between 1-100 characters",
    ),
    "venue_name": ValidationRule(
        required=True, min_length=1, max_length=100,
        message="Venue name is required",
    ),
    "email": ValidationRule(
        pattern=re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
        message="Please enter a valid email address",
    ),
    "phone": ValidationRule(
        pattern=re.compile(r"^[\d\s\-\+\(\)]+$"),
        message="Please enter a valid phone number",
    ),
    "compensation": ValidationRule(
        pattern=re.compile(r"^\$?\d+(\.\d{1,2})?$"),
        message="Please enter a valid amount (e.g., 100 or $100.00)",
    ),
    "future_date": ValidationRule(custom=_future_date),
}
