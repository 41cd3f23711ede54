# estimator/public/routes.py
"""Client-facing estimate view: no tenant key, addressed by estimate id."""

from flask import Blueprint, render_template, request, jsonify

from estimator import db
from estimator.errors import NotFoundError
from estimator.models import Estimate
from estimator.estimates import lifecycle

bp = Blueprint('public', __name__)


@bp.route('/estimates/<int:estimate_id>')
def view_estimate(estimate_id):
    est = db.session.get(Estimate, estimate_id)
    if est is None:
        raise NotFoundError('Estimate', estimate_id)
    return render_template('public/estimate.html', estimate=est,
                           company=est.company, client=est.client)


@bp.route('/estimates/<int:estimate_id>/accept', methods=['POST'])
def accept_estimate(estimate_id):
    data = request.get_json(silent=True) or request.form
    est = lifecycle.accept_estimate(estimate_id, signature=data.get('signature'))
    return jsonify(status=est.status, accepted_at=est.accepted_at.isoformat())


@bp.route('/estimates/<int:estimate_id>/decline', methods=['POST'])
def decline_estimate(estimate_id):
    est = lifecycle.decline_estimate(estimate_id)
    return jsonify(status=est.status)
