"""
Request validation helpers.

Each check records a {'field', 'message'} pair instead of failing fast, so a
client gets every problem with its payload in a single 400 response.
"""

from datetime import datetime
import re

from bson import ObjectId

from insurewise_backend.errors import ValidationError
from insurewise_backend.models import ModelValidator

URL_PATTERN = re.compile(r'^https?://[^\s/$.?#].[^\s]*$', re.IGNORECASE)
PHONE_PATTERN = re.compile(r'^\+?[\d\s\-()]{10,}$')
PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])')


class RequestValidator:
    """Collects field errors for one request payload."""

    def __init__(self, data):
        self.data = data or {}
        self.errors = []
        self.cleaned = {}

    def _error(self, field, message):
        self.errors.append({'field': field, 'message': message})

    def _missing(self, field, required, label):
        value = self.data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self._error(field, f"{label} is required")
            return True
        return False

    def string(self, field, label=None, min_length=None, max_length=None, required=True):
        label = label or field
        if self._missing(field, required, label):
            return None
        value = self.data.get(field)
        if not isinstance(value, str):
            self._error(field, f"{label} must be a string")
            return None
        value = value.strip()
        if min_length is not None and max_length is not None and not (min_length <= len(value) <= max_length):
            self._error(field, f"{label} must be between {min_length} and {max_length} characters")
            return None
        if min_length is not None and len(value) < min_length:
            self._error(field, f"{label} must be at least {min_length} characters")
            return None
        if max_length is not None and len(value) > max_length:
            self._error(field, f"{label} cannot exceed {max_length} characters")
            return None
        self.cleaned[field] = value
        return value

    def email(self, field='email', label='Email', required=True):
        if self._missing(field, required, label):
            return None
        value = str(self.data.get(field)).lower().strip()
        if not ModelValidator.validate_email(value):
            self._error(field, 'Please provide a valid email')
            return None
        self.cleaned[field] = value
        return value

    def password(self, field='password', label='Password'):
        """At least 8 characters with upper, lower, digit and one of @$!%*?&."""
        if self._missing(field, True, label):
            return None
        value = self.data.get(field)
        if not isinstance(value, str) or len(value) < 8:
            self._error(field, f"{label} must be at least 8 characters long")
            return None
        if not PASSWORD_PATTERN.match(value):
            self._error(field, f"{label} must contain at least one uppercase letter, one lowercase letter, "
                               "one number, and one special character")
            return None
        self.cleaned[field] = value
        return value

    def phone(self, field='phoneNumber', label='Phone number', required=True):
        if self._missing(field, required, label):
            return None
        value = str(self.data.get(field)).strip()
        if not PHONE_PATTERN.match(value):
            self._error(field, 'Please provide a valid phone number')
            return None
        self.cleaned[field] = value
        return value

    def number(self, field, label=None, min_value=None, max_value=None, greater_than=None,
               required=True, integer=False):
        label = label or field
        if self._missing(field, required, label):
            return None
        raw = self.data.get(field)
        if isinstance(raw, bool):
            self._error(field, f"{label} must be a number")
            return None
        try:
            value = float(raw)
        except (TypeError, ValueError):
            self._error(field, f"{label} must be {'an integer' if integer else 'a number'}")
            return None
        if integer:
            if not value.is_integer():
                self._error(field, f"{label} must be an integer")
                return None
            value = int(value)
        if greater_than is not None and value <= greater_than:
            self._error(field, f"{label} must be greater than {greater_than}")
            return None
        if min_value is not None and value < min_value:
            self._error(field, f"{label} must be at least {min_value}")
            return None
        if max_value is not None and value > max_value:
            self._error(field, f"{label} cannot exceed {max_value}")
            return None
        self.cleaned[field] = value
        return value

    def choice(self, field, choices, label=None, required=True, default=None):
        label = label or field
        if self._missing(field, required, label):
            if default is not None:
                self.cleaned[field] = default
            return default
        value = self.data.get(field)
        if value not in choices:
            self._error(field, f"{label} must be one of: {', '.join(choices)}")
            return None
        self.cleaned[field] = value
        return value

    def boolean(self, field, label=None, required=False):
        label = label or field
        if self._missing(field, required, label):
            return None
        value = self.data.get(field)
        if not isinstance(value, bool):
            self._error(field, f"{label} must be true or false")
            return None
        self.cleaned[field] = value
        return value

    def url(self, field, label=None, required=False):
        label = label or field
        if self._missing(field, required, label):
            return None
        value = self.data.get(field)
        if not isinstance(value, str) or not URL_PATTERN.match(value.strip()):
            self._error(field, f"{label} must be a valid URL")
            return None
        self.cleaned[field] = value.strip()
        return value.strip()

    def url_list(self, field, label=None, required=False, min_items=0):
        label = label or field
        value = self.data.get(field)
        if value is None:
            if required:
                self._error(field, f"{label} is required")
            return None
        if not isinstance(value, list) or len(value) < min_items:
            self._error(field, f"{label} must be a list of at least {min_items} URL(s)" if min_items
                        else f"{label} must be a list of URLs")
            return None
        for index, item in enumerate(value):
            if not isinstance(item, str) or not URL_PATTERN.match(item.strip()):
                self._error(f"{field}[{index}]", 'Each document must be a valid URL')
                return None
        cleaned = [item.strip() for item in value]
        self.cleaned[field] = cleaned
        return cleaned

    def date(self, field, label=None, required=False, min_age_years=None, not_past=False):
        label = label or field
        if self._missing(field, required, label):
            return None
        value = parse_datetime(self.data.get(field))
        if value is None:
            self._error(field, f"{label} must be a valid date")
            return None
        if min_age_years is not None:
            today = datetime.utcnow()
            age = today.year - value.year - ((today.month, today.day) < (value.month, value.day))
            if age < min_age_years:
                self._error(field, f"You must be at least {min_age_years} years old")
                return None
        if not_past and value.date() < datetime.utcnow().date():
            self._error(field, f"{label} cannot be in the past")
            return None
        self.cleaned[field] = value
        return value

    def validate(self):
        """Raise one ValidationError with every collected field error."""
        if self.errors:
            raise ValidationError('Validation failed', errors=self.errors)
        return self.cleaned


def parse_datetime(value):
    """Parse an ISO date/datetime string (trailing 'Z' allowed)."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Stored dates are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def parse_object_id(value, label='id'):
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ValidationError(f"Invalid {label}",
                              errors=[{'field': label, 'message': f"Invalid {label}"}])
    return ObjectId(str(value))


def parse_pagination(args, default_limit=10, max_limit=100):
    """Return (page, limit, skip) from query args, rejecting out-of-range values."""
    errors = []
    try:
        page = int(args.get('page', 1))
        if page < 1:
            raise ValueError
    except (TypeError, ValueError):
        errors.append({'field': 'page', 'message': 'Page must be a positive integer'})
        page = 1
    try:
        limit = int(args.get('limit', default_limit))
        if not 1 <= limit <= max_limit:
            raise ValueError
    except (TypeError, ValueError):
        errors.append({'field': 'limit', 'message': f"Limit must be between 1 and {max_limit}"})
        limit = default_limit
    if errors:
        raise ValidationError('Validation failed', errors=errors)
    return page, limit, (page - 1) * limit
