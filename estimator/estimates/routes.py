# estimator/estimates/routes.py

from flask import Blueprint, request, jsonify, g

from estimator.auth import load_company
from estimator.errors import ValidationError
from estimator.models import Estimate, EstimateStatus
from estimator.estimates.editor import LineItemEditor
from estimator.estimates import lifecycle
from estimator.estimates.dispatch import ensure_renderable_artifact, send_estimate
from estimator.estimate_templates.utils import load_template_as_line_items
from estimator.integrations.functions_client import FunctionsClient

bp = Blueprint('estimates', __name__)
bp.before_request(load_company)


def functions_client():
    return FunctionsClient.from_config()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@bp.route('/')
def list_estimates():
    status = request.args.get('status')
    filters = {}
    if status:
        if status not in {s.value for s in EstimateStatus}:
            raise ValidationError(f'Unknown status: {status}', field='status')
        filters['status'] = status
    ests = g.repo.select(Estimate, order_by=Estimate.id.desc(), **filters)
    return jsonify(estimates=[e.to_dict() for e in ests])


@bp.route('/<int:estimate_id>')
def view_estimate(estimate_id):
    est = g.repo.get(Estimate, estimate_id)
    data = est.to_dict(with_items=True)
    data['client'] = est.client.to_dict() if est.client else None
    return jsonify(estimate=data)


@bp.route('/preview', methods=['POST'])
def preview_estimate():
    """Live totals for an unsaved item list, using the company's tax rate."""
    data = _payload()
    editor = LineItemEditor.from_rows(data.get('items') or [])
    deposit = data.get('deposit_percent', g.company.default_deposit_percent)
    totals = editor.totals(g.company.default_tax_rate, deposit)
    return jsonify(items=editor.to_list(), totals=totals.to_dict())


@bp.route('/', methods=['POST'])
def create_estimate():
    """
    Create a draft from { client_id, items, notes, terms, deposit_percent }.
    When ``items`` is absent and ``template_id`` is given the template's items
    are used.
    """
    data = _payload()
    if not data.get('items') and data.get('template_id'):
        editor = load_template_as_line_items(g.repo, data['template_id'])
    else:
        editor = LineItemEditor.from_rows(data.get('items') or [])
    est = lifecycle.create_estimate(
        g.repo,
        data.get('client_id'),
        editor,
        notes=data.get('notes'),
        terms=data.get('terms'),
        deposit_percent=data.get('deposit_percent'),
    )
    return jsonify(estimate=est.to_dict(with_items=True)), 201


@bp.route('/<int:estimate_id>/duplicate', methods=['POST'])
def duplicate_estimate(estimate_id):
    est = lifecycle.duplicate_estimate(g.repo, estimate_id)
    return jsonify(estimate=est.to_dict(with_items=True)), 201


@bp.route('/<int:estimate_id>', methods=['DELETE'])
@bp.route('/<int:estimate_id>/delete', methods=['POST'])
def delete_estimate(estimate_id):
    lifecycle.delete_estimate(g.repo, estimate_id)
    return jsonify(success=True)


@bp.route('/<int:estimate_id>/status', methods=['POST'])
def change_status(estimate_id):
    target = _payload().get('status')
    if not target:
        raise ValidationError('Status is required', field='status')
    est = lifecycle.set_status(g.repo, estimate_id, target)
    return jsonify(estimate=est.to_dict())


@bp.route('/<int:estimate_id>/render', methods=['POST'])
def render_estimate(estimate_id):
    est = ensure_renderable_artifact(g.repo, estimate_id, functions_client())
    return jsonify(estimate=est.to_dict())


@bp.route('/<int:estimate_id>/send', methods=['POST'])
def send_estimate_endpoint(estimate_id):
    est = send_estimate(g.repo, estimate_id, functions_client())
    return jsonify(estimate=est.to_dict(), sent_to=est.client.email)
