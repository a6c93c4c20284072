"""
Input validation utilities for web routes.

Provides input validation and sanitization for all user inputs of the JSON
control plane.
"""

import re
import logging
from datetime import datetime, time, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


class InputValidator:
    """
    Input validation and sanitization utilities.

    - Input type validation
    - Length limits enforcement
    - Pattern validation
    - XSS prevention for display fields
    """

    HOST_PATTERN = re.compile(r'^[a-zA-Z0-9.\-]+$')
    DATE_ONLY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

    @staticmethod
    def validate_string(value: Any, field_name: str, max_length: int = 255,
                        required: bool = True, pattern: Optional[re.Pattern] = None,
                        sanitize: bool = True) -> str:
        """
        Validate and sanitize string input.

        Args:
            value: Input value to validate
            field_name: Name of field for error messages
            max_length: Maximum allowed length
            required: Whether field is required
            pattern: Optional regex pattern to match
            sanitize: Strip markup characters; disable for secrets

        Returns:
            Validated and sanitized string

        Raises:
            ValidationError: If validation fails
        """
        if value is None or value == '':
            if required:
                raise ValidationError(f"{field_name} is required")
            return ''

        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        if not sanitize:
            if len(value) > max_length:
                raise ValidationError(f"{field_name} exceeds maximum length of {max_length}")
            return value

        # Strip and sanitize
        cleaned = value.strip()
        if not cleaned and required:
            raise ValidationError(f"{field_name} is required")

        # Length validation
        if len(cleaned) > max_length:
            raise ValidationError(f"{field_name} exceeds maximum length of {max_length}")

        # Pattern validation
        if pattern and not pattern.match(cleaned):
            raise ValidationError(f"{field_name} contains invalid characters")

        # XSS prevention - remove potentially dangerous characters
        dangerous_chars = ['<', '>', '"', "'", '&', ';', '\\']
        for char in dangerous_chars:
            if char in cleaned:
                logger.warning(f"Dangerous character '{char}' removed from {field_name}")
                cleaned = cleaned.replace(char, '')

        return cleaned

    @staticmethod
    def validate_integer(value: Any, field_name: str, min_val: int = 0,
                         max_val: int = 2147483647, required: bool = True) -> Optional[int]:
        """
        Validate integer input with bounds checking.

        Returns:
            Validated integer, or None for an absent optional value

        Raises:
            ValidationError: If validation fails
        """
        if value is None or value == '':
            if required:
                raise ValidationError(f"{field_name} is required")
            return None

        if isinstance(value, bool):
            raise ValidationError(f"{field_name} must be a valid integer")
        try:
            int_val = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"{field_name} must be a valid integer")

        if int_val < min_val:
            raise ValidationError(f"{field_name} must be at least {min_val}")

        if int_val > max_val:
            raise ValidationError(f"{field_name} must not exceed {max_val}")

        return int_val

    @staticmethod
    def validate_port(value: Any, field_name: str, required: bool = True) -> Optional[int]:
        """Validate network port number."""
        return InputValidator.validate_integer(value, field_name, min_val=1, max_val=65535, required=required)

    @staticmethod
    def validate_host(value: Any, field_name: str) -> str:
        return InputValidator.validate_string(value, field_name, max_length=253, pattern=InputValidator.HOST_PATTERN)

    @staticmethod
    def validate_boolean(value: Any, field_name: str, default: bool = False) -> bool:
        """
        Validate a JSON boolean, also accepting the usual string and 0/1 forms.

        Raises:
            ValidationError: If the value is not recognisably boolean
        """
        if value is None or value == '':
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ('1', 'true', 'yes', 'on'):
                return True
            if lowered in ('0', 'false', 'no', 'off'):
                return False
        raise ValidationError(f"{field_name} must be a boolean")

    @staticmethod
    def validate_date(value: Any, field_name: str, end_of_day: bool = False) -> Optional[datetime]:
        """
        Validate an ISO 8601 date or datetime.

        A bare date is widened to the start of the day, or to its end when
        ``end_of_day`` is set. Naive values are taken as UTC.

        Raises:
            ValidationError: If the value is not an ISO 8601 date
        """
        if value is None or value == '':
            return None
        text = str(value).strip()
        try:
            if InputValidator.DATE_ONLY_PATTERN.match(text):
                day = datetime.strptime(text, '%Y-%m-%d').date()
                parsed = datetime.combine(day, time.max if end_of_day else time.min)
            else:
                parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"{field_name} must be an ISO 8601 date")
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
