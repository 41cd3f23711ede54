import enum
import secrets
from datetime import datetime, timezone

from estimator import db
from estimator.estimates import calc


def utcnow():
    return datetime.now(timezone.utc)


class EstimateStatus(str, enum.Enum):
    DRAFT    = 'draft'
    SENT     = 'sent'
    ACCEPTED = 'accepted'
    DECLINED = 'declined'
    PAID     = 'paid'
    INVOICED = 'invoiced'


class Company(db.Model):
    __tablename__ = 'companies'
    id                      = db.Column(db.Integer, primary_key=True)
    name                    = db.Column(db.String(200), nullable=False)
    email                   = db.Column(db.String(200))
    phone                   = db.Column(db.String(50))
    address                 = db.Column(db.String(300))
    logo_url                = db.Column(db.String(500))
    default_tax_rate        = db.Column(db.Float, nullable=False, default=0.0)
    default_deposit_percent = db.Column(db.Float, nullable=False, default=50.0)
    api_key                 = db.Column(db.String(64), unique=True, nullable=False,
                                        default=lambda: secrets.token_hex(24))
    created_at              = db.Column(db.DateTime, default=utcnow)

    users = db.relationship('User', backref='company', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'logo_url': self.logo_url,
            'default_tax_rate': self.default_tax_rate,
            'default_deposit_percent': self.default_deposit_percent,
        }


class User(db.Model):
    __tablename__ = 'users'
    id         = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False)
    email      = db.Column(db.String(200), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Client(db.Model):
    __tablename__ = 'clients'
    id         = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False, index=True)
    name       = db.Column(db.String(200), nullable=False)
    email      = db.Column(db.String(200))
    phone      = db.Column(db.String(50))
    address    = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
        }


class Estimate(db.Model):
    __tablename__ = 'estimates'
    __table_args__ = (
        db.UniqueConstraint('company_id', 'estimate_number', name='uq_estimate_number'),
    )
    id                = db.Column(db.Integer, primary_key=True)
    company_id        = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False, index=True)
    client_id         = db.Column(db.Integer, db.ForeignKey('clients.id', ondelete='SET NULL'),
                                  nullable=True)
    estimate_number   = db.Column(db.String(32), nullable=False)
    subtotal          = db.Column(db.Float, nullable=False, default=0.0)
    tax               = db.Column(db.Float, nullable=False, default=0.0)
    total             = db.Column(db.Float, nullable=False, default=0.0)
    deposit_percent   = db.Column(db.Float, nullable=False, default=0.0)
    deposit_amount    = db.Column(db.Float, nullable=False, default=0.0)
    notes             = db.Column(db.Text)
    terms             = db.Column(db.Text)
    status            = db.Column(db.String(32), nullable=False, default=EstimateStatus.DRAFT.value)
    signature         = db.Column(db.Text)
    pdf_url           = db.Column(db.String(500))
    payment_intent_id = db.Column(db.String(200))
    created_at        = db.Column(db.DateTime, default=utcnow)
    updated_at        = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    accepted_at       = db.Column(db.DateTime)
    paid_at           = db.Column(db.DateTime)

    client = db.relationship('Client', lazy=True)
    company = db.relationship('Company', lazy=True)
    items = db.relationship(
        'EstimateItem',
        backref='estimate',
        lazy=True,
        order_by='EstimateItem.sort_order',
        cascade='all, delete-orphan',
    )

    def to_dict(self, with_items=False):
        data = {
            'id': self.id,
            'client_id': self.client_id,
            'client_name': self.client.name if self.client else None,
            'estimate_number': self.estimate_number,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'total': self.total,
            'deposit_percent': self.deposit_percent,
            'deposit_amount': self.deposit_amount,
            'notes': self.notes,
            'terms': self.terms,
            'status': self.status,
            'pdf_url': self.pdf_url,
            'signature': self.signature,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'accepted_at': self.accepted_at.isoformat() if self.accepted_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
        }
        if with_items:
            data['items'] = [i.to_dict() for i in self.items]
        return data


class EstimateItem(db.Model):
    __tablename__ = 'estimate_items'
    id          = db.Column(db.Integer, primary_key=True)
    estimate_id = db.Column(
        db.Integer,
        db.ForeignKey('estimates.id', ondelete='CASCADE'),
        nullable=False
    )
    description = db.Column(db.Text, nullable=False)
    quantity    = db.Column(db.Float, default=1.0)
    unit_price  = db.Column(db.Float, default=0.0)
    labor_hours = db.Column(db.Float, default=0.0)
    labor_rate  = db.Column(db.Float, default=0.0)
    taxable     = db.Column(db.Boolean, default=True)
    sort_order  = db.Column(db.Integer, default=0)

    @property
    def line_total(self):
        return calc.line_total(self)

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'labor_hours': self.labor_hours,
            'labor_rate': self.labor_rate,
            'taxable': self.taxable,
            'sort_order': self.sort_order,
            'line_total': self.line_total,
        }


class EstimateTemplate(db.Model):
    __tablename__ = 'estimate_templates'
    id          = db.Column(db.Integer, primary_key=True)
    company_id  = db.Column(db.Integer, db.ForeignKey('companies.id'), nullable=False, index=True)
    name        = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at  = db.Column(db.DateTime, default=utcnow)
    updated_at  = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        'EstimateTemplateItem',
        backref='template',
        lazy=True,
        order_by='EstimateTemplateItem.sort_order',
        cascade='all, delete-orphan'
    )

    def to_dict(self, with_items=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'item_count': len(self.items),
        }
        if with_items:
            data['items'] = [i.to_dict() for i in self.items]
        return data


class EstimateTemplateItem(db.Model):
    __tablename__ = 'estimate_template_items'
    id          = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer,
        db.ForeignKey('estimate_templates.id', ondelete='CASCADE'),
        nullable=False
    )
    description = db.Column(db.Text, nullable=False)
    quantity    = db.Column(db.Float, default=1.0)
    unit_price  = db.Column(db.Float, default=0.0)
    labor_hours = db.Column(db.Float, default=0.0)
    labor_rate  = db.Column(db.Float, default=0.0)
    taxable     = db.Column(db.Boolean, default=True)
    sort_order  = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'labor_hours': self.labor_hours,
            'labor_rate': self.labor_rate,
            'taxable': self.taxable,
            'sort_order': self.sort_order,
        }
