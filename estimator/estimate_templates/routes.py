# estimator/estimate_templates/routes.py

from flask import Blueprint, request, jsonify, g

from estimator.auth import load_company
from estimator.models import EstimateTemplate
from estimator.estimates.editor import LineItemEditor
from estimator.estimate_templates.utils import (
    load_template_as_line_items,
    save_template,
    update_template,
    delete_template,
)

bp = Blueprint('estimate_templates', __name__)
bp.before_request(load_company)


@bp.route('/', methods=['GET'])
def list_templates():
    templates = g.repo.select(EstimateTemplate, order_by=EstimateTemplate.name)
    return jsonify(templates=[t.to_dict() for t in templates])


@bp.route('/', methods=['POST'])
def create_template():
    data = request.get_json(silent=True) or {}
    template = save_template(
        g.repo,
        data.get('name'),
        data.get('description'),
        LineItemEditor.from_rows(data.get('items') or []),
    )
    return jsonify(template=template.to_dict(with_items=True)), 201


@bp.route('/<int:template_id>', methods=['GET'])
def view_template(template_id):
    template = g.repo.get(EstimateTemplate, template_id)
    return jsonify(template=template.to_dict(with_items=True))


@bp.route('/<int:template_id>', methods=['PUT', 'POST'])
def edit_template(template_id):
    data = request.get_json(silent=True) or {}
    template = update_template(
        g.repo,
        template_id,
        data.get('name'),
        data.get('description'),
        LineItemEditor.from_rows(data.get('items') or []),
    )
    return jsonify(template=template.to_dict(with_items=True))


@bp.route('/<int:template_id>', methods=['DELETE'])
@bp.route('/<int:template_id>/delete', methods=['POST'])
def remove_template(template_id):
    delete_template(g.repo, template_id)
    return jsonify(success=True)


@bp.route('/<int:template_id>/line-items')
def template_line_items(template_id):
    """
    Expand a template into editable line items for a new estimate.
    Returns { items: [ {temp_id, description, quantity, unit_price,
    labor_hours, labor_rate, taxable, line_total}, … ] }.
    """
    editor = load_template_as_line_items(g.repo, template_id)
    return jsonify(items=editor.to_list())
