# estimator/estimates/lifecycle.py
"""Estimate status machine and the multi-row writes around estimates.

Money fields on an estimate are a snapshot: they are computed once when the
estimate is created (or copied verbatim when it is duplicated) and are never
re-derived from the items afterwards.  After creation only the status, its
timestamps, the signature and the rendered artifact URL change.

Creation and duplication write in two steps inside one transaction: the
estimate row is flushed first so its id exists, then the item rows that
reference it.  If a step fails the transaction is rolled back and a
``PartialWriteError`` names the step, so no estimate is left without items.
"""

import logging

from estimator import db
from estimator.errors import (
    ConstraintError,
    ErrorCode,
    EstimatorError,
    InvalidTransitionError,
    NotFoundError,
    PartialWriteError,
    ValidationError,
)
from estimator.estimates import calc
from estimator.estimates.editor import LineItemEditor
from estimator.models import Client, Estimate, EstimateItem, EstimateStatus, utcnow

logger = logging.getLogger(__name__)

S = EstimateStatus

TRANSITIONS = {
    S.DRAFT:    frozenset({S.SENT}),
    S.SENT:     frozenset({S.ACCEPTED, S.DECLINED}),
    S.ACCEPTED: frozenset({S.PAID, S.INVOICED}),
    S.DECLINED: frozenset(),
    S.PAID:     frozenset(),
    S.INVOICED: frozenset(),
}

TENANT_TRANSITIONS = {
    S.ACCEPTED: frozenset({S.INVOICED}),
}

NUMBER_FORMAT = 'EST-{:04d}'
NUMBER_ATTEMPTS = 3

ITEM_FIELDS = ('description', 'quantity', 'unit_price', 'labor_hours',
               'labor_rate', 'taxable', 'sort_order')


def _status(value) -> EstimateStatus | None:
    try:
        return EstimateStatus(value)
    except ValueError:
        return None


def can_transition(current, target) -> bool:
    cur, tgt = _status(current), _status(target)
    if cur is None or tgt is None:
        return False
    return tgt in TRANSITIONS[cur]


def transition(estimate: Estimate, target) -> Estimate:
    """Move ``estimate`` to ``target`` or raise InvalidTransitionError.

    Stamps ``accepted_at`` / ``paid_at`` on entry to those states.  Does not
    commit.
    """
    if not can_transition(estimate.status, target):
        raise InvalidTransitionError(str(estimate.status), str(getattr(target, 'value', target)))
    status = EstimateStatus(target)
    estimate.status = status.value
    if status is S.ACCEPTED:
        estimate.accepted_at = utcnow()
    elif status is S.PAID:
        estimate.paid_at = utcnow()
    logger.info('estimate %s -> %s', estimate.id, status.value)
    return estimate


def next_estimate_number(repo) -> str:
    """Next free ``EST-nnnn`` for the tenant.

    Starts from count + 1 and skips numbers already taken (numbers can be
    sparse after deletes).  The unique constraint on
    (company_id, estimate_number) backs this up under concurrent writers.
    """
    n = repo.count(Estimate) + 1
    while repo.exists(Estimate, estimate_number=NUMBER_FORMAT.format(n)):
        n += 1
    return NUMBER_FORMAT.format(n)


def _write_estimate(repo, operation: str, fields: dict, rows: list[dict]) -> Estimate:
    completed = []
    estimate = None
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        estimate = Estimate(estimate_number=next_estimate_number(repo), **fields)
        try:
            repo.add(estimate)
            break
        except ConstraintError as exc:
            repo.rollback()
            if attempt == NUMBER_ATTEMPTS:
                raise PartialWriteError(operation, 'insert_estimate', completed, cause=exc) from exc
            logger.warning('%s: estimate number %s taken, retrying',
                           operation, estimate.estimate_number)
        except EstimatorError as exc:
            repo.rollback()
            raise PartialWriteError(operation, 'insert_estimate', completed, cause=exc) from exc
    completed.append('insert_estimate')

    try:
        repo.add_all([EstimateItem(estimate_id=estimate.id, **row) for row in rows])
    except EstimatorError as exc:
        repo.rollback()
        logger.warning('%s: item insert failed for %s, rolled back',
                       operation, estimate.estimate_number)
        raise PartialWriteError(operation, 'insert_items', completed, cause=exc) from exc
    completed.append('insert_items')

    try:
        repo.commit()
    except EstimatorError as exc:
        raise PartialWriteError(operation, 'commit', completed, cause=exc) from exc

    logger.info('%s: %s saved with %d items', operation, estimate.estimate_number, len(rows))
    return estimate


def create_estimate(repo, client_id, editor: LineItemEditor, notes=None, terms=None,
                    deposit_percent=None) -> Estimate:
    """Validate, price and store a new draft estimate with its items."""
    if not client_id:
        raise ValidationError('Please select a client', field='client_id',
                              code=ErrorCode.CLIENT_REQUIRED)
    client = repo.get(Client, client_id)

    if not editor.has_valid_item():
        raise ValidationError('Please add at least one item with a price or labor rate',
                              field='items', code=ErrorCode.NO_VALID_ITEMS)

    company = repo.company
    if deposit_percent is None or deposit_percent == '':
        deposit = company.default_deposit_percent or 0.0
    else:
        deposit = calc.parse_number(deposit_percent, default=-1)
        if not 0 <= deposit <= 100:
            raise ValidationError('Deposit must be between 0 and 100 percent',
                                  field='deposit_percent')

    rows = editor.to_persistable_list()
    totals = calc.summarize(rows, company.default_tax_rate or 0.0, deposit)

    fields = dict(
        client_id=client.id,
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
        deposit_percent=deposit,
        deposit_amount=totals.deposit_amount,
        notes=(notes or '').strip() or None,
        terms=(terms or '').strip() or None,
        status=S.DRAFT.value,
    )
    return _write_estimate(repo, 'create_estimate', fields, rows)


def duplicate_estimate(repo, estimate_id) -> Estimate:
    """Copy an estimate and its items into a new, independent draft.

    Money fields are copied as stored, not recomputed.
    """
    source = repo.get(Estimate, estimate_id)
    fields = dict(
        client_id=source.client_id,
        subtotal=source.subtotal,
        tax=source.tax,
        total=source.total,
        deposit_percent=source.deposit_percent,
        deposit_amount=source.deposit_amount,
        notes=source.notes,
        terms=source.terms,
        status=S.DRAFT.value,
    )
    rows = [
        {name: getattr(item, name) for name in ITEM_FIELDS}
        for item in sorted(source.items, key=lambda i: i.sort_order or 0)
    ]
    return _write_estimate(repo, 'duplicate_estimate', fields, rows)


def delete_estimate(repo, estimate_id) -> None:
    """Delete an estimate; its items go with it through the cascade."""
    estimate = repo.get(Estimate, estimate_id)
    repo.delete(estimate)
    repo.commit()
    logger.info('deleted estimate %s', estimate.estimate_number)


def set_status(repo, estimate_id, target) -> Estimate:
    """Tenant-initiated status change.

    Only the moves in ``TENANT_TRANSITIONS`` are open to the tenant; sent,
    accepted/declined and paid are reached through sending, the public view
    and the payment webhook.
    """
    estimate = repo.get(Estimate, estimate_id)
    cur, tgt = _status(estimate.status), _status(target)
    if cur is None or tgt not in TENANT_TRANSITIONS.get(cur, ()):
        raise InvalidTransitionError(str(estimate.status), str(getattr(target, 'value', target)))
    transition(estimate, target)
    repo.commit()
    return estimate


# The operations below are driven from outside the tenant API (the public
# estimate view and the payment processor), so they load by id alone.

def _load(estimate_id) -> Estimate:
    estimate = db.session.get(Estimate, estimate_id) if estimate_id is not None else None
    if estimate is None:
        raise NotFoundError('Estimate', estimate_id)
    return estimate


def accept_estimate(estimate_id, signature=None) -> Estimate:
    estimate = _load(estimate_id)
    transition(estimate, S.ACCEPTED)
    if signature:
        estimate.signature = signature
    db.session.commit()
    return estimate


def decline_estimate(estimate_id) -> Estimate:
    estimate = _load(estimate_id)
    transition(estimate, S.DECLINED)
    db.session.commit()
    return estimate


def mark_paid(estimate_id, payment_reference) -> tuple[Estimate, bool]:
    """Record a payment. Returns ``(estimate, changed)``.

    A repeated delivery for an estimate that is already paid changes nothing,
    so ``paid_at`` keeps the first payment's timestamp.
    """
    estimate = _load(estimate_id)
    if estimate.status == S.PAID.value:
        logger.info('estimate %s already paid (ref %s), ignoring', estimate.id, payment_reference)
        return estimate, False
    transition(estimate, S.PAID)
    estimate.payment_intent_id = payment_reference
    db.session.commit()
    return estimate, True


def hold_payment(estimate_id, payment_reference) -> Estimate:
    """Keep the reference of a payment that arrived before acceptance.

    The status is left alone; the first reference seen is kept.
    """
    estimate = _load(estimate_id)
    if not estimate.payment_intent_id:
        estimate.payment_intent_id = payment_reference
        db.session.commit()
    return estimate
