# estimator/estimate_templates/utils.py
"""Saving estimate templates and expanding them into editable line items."""

import logging

from estimator.errors import EstimatorError, ErrorCode, PartialWriteError, ValidationError
from estimator.estimates.editor import LineItemEditor
from estimator.models import EstimateTemplate, EstimateTemplateItem

logger = logging.getLogger(__name__)


def load_template_as_line_items(repo, template_id) -> LineItemEditor:
    """
    Seed a line item editor from a saved template.
    Items come in sort_order, keep their numbers and taxable flag, lose their
    template link and get fresh temporary ids.
    """
    template = repo.get(EstimateTemplate, template_id)
    rows = (EstimateTemplateItem.query
            .filter_by(template_id=template.id)
            .order_by(EstimateTemplateItem.sort_order)
            .all())
    return LineItemEditor.from_rows(rows)


def _validate(name, editor: LineItemEditor) -> tuple[str, list[dict]]:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Please enter a template name', field='name')
    rows = editor.to_persistable_list()
    if not rows:
        raise ValidationError('Please add at least one item with a description',
                              field='items', code=ErrorCode.NO_VALID_ITEMS)
    return name, rows


def _insert_items(repo, template, rows, operation, completed):
    try:
        repo.add_all([EstimateTemplateItem(template_id=template.id, **row) for row in rows])
    except EstimatorError as exc:
        repo.rollback()
        raise PartialWriteError(operation, 'insert_items', completed, cause=exc) from exc


def save_template(repo, name, description, editor: LineItemEditor) -> EstimateTemplate:
    name, rows = _validate(name, editor)
    completed = []
    template = EstimateTemplate(name=name, description=(description or '').strip() or None)
    try:
        repo.add(template)
    except EstimatorError as exc:
        repo.rollback()
        raise PartialWriteError('save_template', 'insert_template', completed, cause=exc) from exc
    completed.append('insert_template')

    _insert_items(repo, template, rows, 'save_template', completed)
    repo.commit()
    logger.info('template %s saved with %d items', template.id, len(rows))
    return template


def update_template(repo, template_id, name, description, editor: LineItemEditor) -> EstimateTemplate:
    """Replace a template's name, description and whole item set.

    Items are not diffed: every stored item row for the template is deleted
    and the current set inserted fresh, so item ids change on every save and
    the last writer wins.
    """
    template = repo.get(EstimateTemplate, template_id)
    name, rows = _validate(name, editor)
    operation = 'update_template'
    completed = []

    try:
        template.name = name
        template.description = (description or '').strip() or None
        repo.flush()
    except EstimatorError as exc:
        repo.rollback()
        raise PartialWriteError(operation, 'update_template', completed, cause=exc) from exc
    completed.append('update_template')

    try:
        repo.delete_children(EstimateTemplateItem, template, 'items', template_id=template.id)
    except EstimatorError as exc:
        repo.rollback()
        raise PartialWriteError(operation, 'delete_items', completed, cause=exc) from exc
    completed.append('delete_items')

    _insert_items(repo, template, rows, operation, completed)
    repo.commit()
    logger.info('template %s replaced with %d items', template.id, len(rows))
    return template


def delete_template(repo, template_id) -> None:
    template = repo.get(EstimateTemplate, template_id)

    # 1) Delete all child items first so stores without cascades stay consistent
    repo.delete_children(EstimateTemplateItem, template, 'items', template_id=template.id)

    # 2) Now delete the template itself
    repo.delete(template)
    repo.commit()
    logger.info('template %s and its items deleted', template_id)
