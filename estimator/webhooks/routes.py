# estimator/webhooks/routes.py
"""Payment processor callbacks."""

import json
import logging

from flask import Blueprint, current_app, jsonify, request

from estimator.errors import InvalidTransitionError, PermissionDeniedError, ValidationError
from estimator.estimates.lifecycle import hold_payment, mark_paid
from estimator.webhooks.signature import verify_signature

bp = Blueprint('webhooks', __name__)
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'Stripe-Signature'


def _payment_reference(event_type: str, obj: dict) -> str | None:
    if event_type == 'payment_intent.succeeded':
        return obj.get('id')
    # checkout.session.completed
    intent = obj.get('payment_intent')
    if isinstance(intent, dict):
        return intent.get('id') or obj.get('id')
    return intent or obj.get('id')


@bp.route('/payments', methods=['POST'])
def payment_webhook():
    payload = request.get_data()
    header = request.headers.get(SIGNATURE_HEADER)
    if not header:
        raise ValidationError('No signature provided', field=SIGNATURE_HEADER)
    if not verify_signature(
        payload,
        header,
        current_app.config['PAYMENT_WEBHOOK_SECRET'],
        tolerance=current_app.config['PAYMENT_WEBHOOK_TOLERANCE'],
    ):
        logger.warning('payment webhook: invalid signature')
        raise PermissionDeniedError('Invalid signature')

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise ValidationError('Malformed event body') from e

    event_type = event.get('type')
    logger.info('payment webhook: received %s', event_type)
    if event_type not in ('payment_intent.succeeded', 'checkout.session.completed'):
        return jsonify(received=True, applied=False)

    obj = (event.get('data') or {}).get('object') or {}
    estimate_id = (obj.get('metadata') or {}).get('estimateId')
    if not estimate_id:
        logger.info('payment webhook: no estimateId in %s metadata', event_type)
        return jsonify(received=True, applied=False)

    try:
        estimate_id = int(estimate_id)
    except (TypeError, ValueError) as e:
        raise ValidationError('Malformed estimateId', field='estimateId') from e

    reference = _payment_reference(event_type, obj)
    try:
        estimate, changed = mark_paid(estimate_id, reference)
    except InvalidTransitionError as e:
        # acknowledged so the processor stops redelivering
        logger.warning('payment webhook: estimate %s is %s, payment %s held',
                       estimate_id, e.current, reference)
        estimate = hold_payment(estimate_id, reference)
        return jsonify(received=True, applied=False, estimate_id=estimate.id,
                       status=estimate.status)
    return jsonify(received=True, applied=changed, estimate_id=estimate.id)
