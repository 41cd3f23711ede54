# estimator/clients/routes.py

import logging

from flask import Blueprint, request, jsonify, g

from estimator import db
from estimator.auth import load_company
from estimator.models import Client, Estimate
from estimator.clients.utils import client_fields

bp = Blueprint('clients', __name__)
bp.before_request(load_company)
logger = logging.getLogger(__name__)


@bp.route('/', methods=['GET'])
def list_clients():
    clients = g.repo.select(Client, order_by=Client.name)
    return jsonify(clients=[c.to_dict() for c in clients])


@bp.route('/', methods=['POST'])
def create_client():
    fields = client_fields(request.get_json(silent=True) or {})
    client = g.repo.add(Client(**fields))
    g.repo.commit()
    return jsonify(client=client.to_dict()), 201


@bp.route('/<int:client_id>', methods=['GET'])
def view_client(client_id):
    client = g.repo.get(Client, client_id)
    estimates = g.repo.select(Estimate, order_by=Estimate.id.desc(), client_id=client.id)
    return jsonify(client=client.to_dict(), estimates=[e.to_dict() for e in estimates])


@bp.route('/<int:client_id>', methods=['PUT', 'POST'])
def update_client(client_id):
    client = g.repo.get(Client, client_id)
    for name, value in client_fields(request.get_json(silent=True) or {}).items():
        setattr(client, name, value)
    g.repo.commit()
    return jsonify(client=client.to_dict())


@bp.route('/<int:client_id>', methods=['DELETE'])
@bp.route('/<int:client_id>/delete', methods=['POST'])
def delete_client(client_id):
    """Delete a client; its estimates stay, with the client reference cleared."""
    client = g.repo.get(Client, client_id)
    cleared = (Estimate.query
               .filter_by(company_id=g.company.id, client_id=client.id)
               .update({'client_id': None}, synchronize_session=False))
    db.session.delete(client)
    g.repo.commit()
    logger.info('client %s deleted, %d estimates detached', client_id, cleared)
    return jsonify(success=True)
