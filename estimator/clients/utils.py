# estimator/clients/utils.py
"""Field validation for client records."""

import re

from estimator.errors import ValidationError

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_STRIP_RE = re.compile(r'[\s\-().]')


def validate_email(email: str | None, required: bool = False) -> str | None:
    email = (email or '').strip()
    if not email:
        if required:
            raise ValidationError('Email is required', field='email')
        return None
    if not EMAIL_RE.fullmatch(email):
        raise ValidationError('Please enter a valid email address', field='email')
    return email


def validate_phone(phone: str | None) -> str | None:
    """Phone is optional; when given it must have 10 to 15 digits."""
    phone = (phone or '').strip()
    if not phone:
        return None
    cleaned = PHONE_STRIP_RE.sub('', phone)
    if not 10 <= len(cleaned) <= 15:
        raise ValidationError('Please enter a valid phone number', field='phone')
    return phone


def validate_required(value: str | None, field: str, label: str) -> str:
    value = (value or '').strip()
    if not value:
        raise ValidationError(f'{label} is required', field=field)
    return value


def client_fields(data: dict) -> dict:
    return {
        'name': validate_required(data.get('name'), 'name', 'Name'),
        'email': validate_email(data.get('email')),
        'phone': validate_phone(data.get('phone')),
        'address': (data.get('address') or '').strip() or None,
    }
