# estimator/estimates/dispatch.py
"""Render-then-send orchestration for estimates.

The render step is idempotent: once ``pdf_url`` is set it is never called
again, so a send that fails after rendering can simply be retried.
"""

import logging

from estimator.errors import ErrorCode, InvalidTransitionError, RemoteCallError, ValidationError
from estimator.estimates.lifecycle import transition
from estimator.integrations.functions_client import GENERATE_PDF
from estimator.models import Estimate, EstimateStatus

logger = logging.getLogger(__name__)

SENDABLE = (EstimateStatus.DRAFT.value, EstimateStatus.SENT.value)


def ensure_renderable_artifact(repo, estimate_id, client) -> Estimate:
    """Make sure the estimate has a rendered artifact, rendering it if absent."""
    estimate = repo.get(Estimate, estimate_id)
    if estimate.pdf_url:
        return estimate

    pdf_url = client.generate_pdf(estimate.id)
    # the render function writes pdf_url itself; pick that up, falling back
    # to the URL it answered with
    repo.refresh(estimate)
    if not estimate.pdf_url and pdf_url:
        estimate.pdf_url = pdf_url
        repo.commit()
    if not estimate.pdf_url:
        logger.warning('estimate %s: render returned no artifact', estimate.estimate_number)
        raise RemoteCallError(GENERATE_PDF, 'render returned no artifact')
    logger.info('estimate %s rendered: %s', estimate.estimate_number, estimate.pdf_url)
    return estimate


def send_estimate(repo, estimate_id, client) -> Estimate:
    """Email the estimate to its client and mark it sent.

    Validation runs before any remote call.  A draft moves to ``sent``; an
    estimate already sent can be sent again without a status change.
    """
    estimate = repo.get(Estimate, estimate_id)
    recipient = estimate.client
    if recipient is None or not (recipient.email or '').strip():
        raise ValidationError('This client has no email address', field='email',
                              code=ErrorCode.NO_EMAIL)
    if estimate.status not in SENDABLE:
        raise InvalidTransitionError(estimate.status, EstimateStatus.SENT.value)

    ensure_renderable_artifact(repo, estimate.id, client)
    client.send_estimate_email(estimate.id)

    repo.refresh(estimate)
    if estimate.status == EstimateStatus.DRAFT.value:
        transition(estimate, EstimateStatus.SENT)
        repo.commit()
    logger.info('estimate %s sent to %s', estimate.estimate_number, recipient.email)
    return estimate
