# estimator/company.py
"""Company settings blueprint."""

from flask import Blueprint, jsonify, request, g

from estimator.auth import load_company
from estimator.clients.utils import validate_email, validate_phone, validate_required
from estimator.errors import ValidationError
from estimator.estimates.calc import parse_number

bp = Blueprint('company', __name__)
bp.before_request(load_company)


def validate_percent(value, field: str, label: str) -> float:
    number = parse_number(value, default=-1)
    if not 0 <= number <= 100:
        raise ValidationError(f'{label} must be between 0 and 100', field=field)
    return number


@bp.route('', methods=['GET'])
def show_company():
    return jsonify(company=g.company.to_dict())


@bp.route('', methods=['PUT', 'PATCH', 'POST'])
def update_company():
    data = request.get_json(silent=True) or {}
    company = g.company
    if 'name' in data:
        company.name = validate_required(data['name'], 'name', 'Company name')
    if 'email' in data:
        company.email = validate_email(data['email'])
    if 'phone' in data:
        company.phone = validate_phone(data['phone'])
    if 'address' in data:
        company.address = (data['address'] or '').strip() or None
    if 'default_tax_rate' in data:
        company.default_tax_rate = validate_percent(
            data['default_tax_rate'], 'default_tax_rate', 'Tax rate')
    if 'default_deposit_percent' in data:
        company.default_deposit_percent = validate_percent(
            data['default_deposit_percent'], 'default_deposit_percent', 'Deposit')
    g.repo.commit()
    return jsonify(company=company.to_dict())
