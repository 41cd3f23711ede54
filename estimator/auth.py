# estimator/auth.py
"""Resolve the calling company for tenant-scoped blueprints.

Sessions are issued by the auth provider in front of this service; requests
reach us carrying the company's API key in ``X-Api-Key``.
"""

from flask import g, request

from estimator.errors import PermissionDeniedError
from estimator.models import Company
from estimator.repository import TenantRepository

API_KEY_HEADER = 'X-Api-Key'


def load_company():
    """``before_request`` hook: attach ``g.company`` and ``g.repo``."""
    key = request.headers.get(API_KEY_HEADER, '').strip()
    if not key:
        raise PermissionDeniedError('Missing API key')
    company = Company.query.filter_by(api_key=key).first()
    if company is None:
        raise PermissionDeniedError('Unknown API key')
    g.company = company
    g.repo = TenantRepository(company)


def current_repo() -> TenantRepository:
    return g.repo
