import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import warnings

import pytest
from sqlalchemy.exc import SAWarning

from estimator import create_app, db
from estimator.cli import create_company
from estimator.errors import ErrorCode, NotFoundError, PartialWriteError, TransientError, ValidationError
from estimator.estimates.editor import LineItemEditor
from estimator.estimate_templates.utils import (
    delete_template,
    load_template_as_line_items,
    save_template,
    update_template,
)
from estimator.models import EstimateTemplate, EstimateTemplateItem
from estimator.repository import TenantRepository


def setup_app():
    app = create_app('development', {'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    with app.app_context():
        db.drop_all()
        db.create_all()
    return app


def make_repo(name='Acme Painting'):
    company = create_company(name, f'owner@{name.split()[0].lower()}.test', 8.0, 50.0)
    return TenantRepository(company)


def three_items():
    return LineItemEditor.from_rows([
        {'description': 'Prep walls', 'labor_hours': 4, 'labor_rate': 35, 'taxable': False},
        {'description': 'Primer', 'quantity': 2, 'unit_price': 30},
        {'description': 'Paint', 'quantity': 3, 'unit_price': 45},
    ])


def test_save_template_persists_items_in_order():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, ' Interior room ', '', three_items())
        assert tpl.name == 'Interior room'
        assert tpl.description is None
        rows = EstimateTemplateItem.query.filter_by(template_id=tpl.id).order_by(
            EstimateTemplateItem.sort_order).all()
        assert [(r.description, r.sort_order) for r in rows] == [
            ('Prep walls', 0), ('Primer', 1), ('Paint', 2)]


def test_save_template_validation():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        with pytest.raises(ValidationError) as exc:
            save_template(repo, '   ', None, three_items())
        assert exc.value.field == 'name'
        with pytest.raises(ValidationError) as exc:
            save_template(repo, 'Empty', None, LineItemEditor.from_rows([{'description': ''}]))
        assert exc.value.code == ErrorCode.NO_VALID_ITEMS
        assert EstimateTemplate.query.count() == 0


def test_update_replaces_items_instead_of_merging():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, 'Interior room', None, three_items())

        smaller = LineItemEditor.from_rows([{'description': 'Paint', 'quantity': 5, 'unit_price': 45}])
        updated = update_template(repo, tpl.id, 'Interior room v2', 'one coat', smaller)

        rows = EstimateTemplateItem.query.filter_by(template_id=tpl.id).all()
        assert len(rows) == 1
        assert rows[0].quantity == 5
        assert updated.name == 'Interior room v2'
        assert updated.description == 'one coat'
        assert len(updated.items) == 1


def test_repeated_updates_do_not_keep_deleted_items_in_session():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, 'Interior room', None, three_items())
        old_items = list(tpl.items)
        assert len(old_items) == 3

        with warnings.catch_warnings():
            warnings.simplefilter('error', SAWarning)
            update_template(repo, tpl.id, 'Interior room', None, three_items())
            assert all(item not in db.session for item in old_items)
            newer = list(tpl.items)
            update_template(repo, tpl.id, 'Interior room', None, three_items())

        assert all(item not in db.session for item in newer)
        assert EstimateTemplateItem.query.filter_by(template_id=tpl.id).count() == 3
        assert [i.description for i in tpl.items] == ['Prep walls', 'Primer', 'Paint']


def test_update_failure_names_the_step(monkeypatch):
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, 'Interior room', None, three_items())

        def failing_add_all(objs):
            raise TransientError('db went away')

        monkeypatch.setattr(repo, 'add_all', failing_add_all)
        with pytest.raises(PartialWriteError) as exc:
            update_template(repo, tpl.id, 'Renamed', None, three_items())
        assert exc.value.step == 'insert_items'
        assert exc.value.completed == ['update_template', 'delete_items']
        assert exc.value.retryable
        # rolled back: the old name and items are intact
        assert db.session.get(EstimateTemplate, tpl.id).name == 'Interior room'
        assert EstimateTemplateItem.query.filter_by(template_id=tpl.id).count() == 3


def test_load_template_as_line_items():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, 'Interior room', None, three_items())
        editor = load_template_as_line_items(repo, tpl.id)
        assert [i['description'] for i in editor] == ['Prep walls', 'Primer', 'Paint']
        first = editor.items[0]
        assert first['labor_hours'] == 4
        assert first['labor_rate'] == 35
        assert first['taxable'] is False
        assert 'template_id' not in first
        assert len({i['temp_id'] for i in editor}) == 3
        # the last row cannot be removed from a template-seeded editor either
        for item in editor.items[1:]:
            editor.remove_item(item['temp_id'])
        with pytest.raises(ValidationError):
            editor.remove_item(editor.items[0]['temp_id'])
        assert len(editor) == 1


def test_templates_are_tenant_scoped():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        other = make_repo('Other Builders')
        tpl = save_template(repo, 'Interior room', None, three_items())
        with pytest.raises(NotFoundError):
            load_template_as_line_items(other, tpl.id)
        with pytest.raises(NotFoundError):
            update_template(other, tpl.id, 'Hijack', None, three_items())


def test_delete_template_removes_items():
    app = setup_app()
    with app.app_context():
        repo = make_repo()
        tpl = save_template(repo, 'Interior room', None, three_items())
        delete_template(repo, tpl.id)
        assert EstimateTemplate.query.count() == 0
        assert EstimateTemplateItem.query.count() == 0
