# estimator/repository.py
"""Tenant-scoped access to the database.

Every query issued through ``TenantRepository`` is filtered by the owning
company.  Child rows (estimate items, template items) are reached through
their scoped parent.  SQLAlchemy errors are translated into the estimator
error taxonomy here so callers never see driver exceptions.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from estimator import db
from estimator.errors import ConstraintError, NotFoundError, TransientError

logger = logging.getLogger(__name__)


def translate_db_error(exc: SQLAlchemyError):
    """Map a SQLAlchemy exception onto an estimator error."""
    if isinstance(exc, IntegrityError):
        text = str(exc.orig).lower()
        kind = 'foreign_key' if 'foreign key' in text else 'unique'
        return ConstraintError(
            'This item already exists' if kind == 'unique'
            else 'This item is being used elsewhere',
            details={'kind': kind},
        )
    if isinstance(exc, OperationalError):
        timed_out = 'timeout' in str(exc).lower() or 'locked' in str(exc).lower()
        return TransientError('Database unavailable', timed_out=timed_out)
    return exc


@contextmanager
def translated_errors():
    try:
        yield
    except SQLAlchemyError as exc:
        # the session is unusable after a failed flush
        db.session.rollback()
        translated = translate_db_error(exc)
        if translated is exc:
            raise
        raise translated from exc


class TenantRepository:
    """Query helper bound to one company."""

    def __init__(self, company):
        self.company = company
        self.company_id = company.id

    def _scoped(self, model):
        return model.query.filter_by(company_id=self.company_id)

    def get(self, model, obj_id):
        """Return the row or raise NotFoundError, including for other tenants' rows."""
        obj = self._scoped(model).filter_by(id=obj_id).first() if obj_id is not None else None
        if obj is None:
            raise NotFoundError(model.__name__, obj_id)
        return obj

    def select(self, model, order_by=None, **filters):
        query = self._scoped(model).filter_by(**filters)
        if order_by is not None:
            query = query.order_by(order_by)
        return query.all()

    def count(self, model, **filters) -> int:
        return (
            db.session.query(func.count(model.id))
            .filter(model.company_id == self.company_id)
            .filter_by(**filters)
            .scalar()
        )

    def exists(self, model, **filters) -> bool:
        return self._scoped(model).filter_by(**filters).first() is not None

    def add(self, obj):
        """Insert ``obj`` (owned by this tenant) and flush so its id is known."""
        if hasattr(obj, 'company_id'):
            obj.company_id = self.company_id
        db.session.add(obj)
        self.flush()
        return obj

    def add_all(self, objs):
        db.session.add_all(objs)
        self.flush()
        return objs

    def delete(self, obj):
        db.session.delete(obj)
        self.flush()

    def delete_children(self, model, parent, relationship, **filters) -> int:
        """Bulk-delete child rows of ``parent`` and expire its collection.

        Deleted rows already loaded in the session are dropped from it, so a
        reinsert that reuses their ids does not collide in the identity map.

        Used where the store may not cascade; the parent must already have
        been loaded through this repository.
        """
        with translated_errors():
            deleted = model.query.filter_by(**filters).delete(synchronize_session='fetch')
        db.session.expire(parent, [relationship])
        return deleted

    def refresh(self, obj):
        """Reload ``obj`` to see writes made outside this session."""
        with translated_errors():
            db.session.refresh(obj)

    def flush(self):
        with translated_errors():
            db.session.flush()

    def commit(self):
        with translated_errors():
            db.session.commit()

    def rollback(self):
        db.session.rollback()
