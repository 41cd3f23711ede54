import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from estimator import create_app, db
from estimator.cli import create_company
from estimator.estimates import routes as estimate_routes
from estimator.models import Client, Estimate


def setup_app():
    app = create_app('development', {'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    with app.app_context():
        db.drop_all()
        db.create_all()
    return app


def auth(company):
    return {'X-Api-Key': company.api_key}


def make_client(company, name='Jane Doe', email='jane@example.com'):
    client = Client(company_id=company.id, name=name, email=email)
    db.session.add(client)
    db.session.commit()
    return client


ITEMS = [
    {'description': 'Paint', 'quantity': 2, 'unit_price': 50},
    {'description': 'Labor', 'labor_hours': 4, 'labor_rate': 30, 'taxable': False},
    {'description': '', 'unit_price': 99},
]


def test_requests_without_key_are_denied():
    app = setup_app()
    with app.app_context():
        client = app.test_client()
        assert client.get('/estimates/').status_code == 403
        res = client.get('/estimates/', headers={'X-Api-Key': 'nope'})
        assert res.status_code == 403
        assert res.get_json()['error']['code'] == 'PERMISSION_DENIED'


def test_preview_returns_live_totals():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 10.0, 50.0)
        res = app.test_client().post('/estimates/preview', json={'items': ITEMS},
                                     headers=auth(company))
        assert res.status_code == 200
        totals = res.get_json()['totals']
        assert totals['subtotal'] == 319
        assert totals['tax'] == 19.9
        assert abs(totals['deposit_amount'] - totals['total'] / 2) < 0.01


def test_create_view_and_list_estimate():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 10.0, 50.0)
        customer = make_client(company)
        http = app.test_client()

        res = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': ITEMS, 'notes': ' Two coats ', 'deposit_percent': 25,
        })
        assert res.status_code == 201
        est = res.get_json()['estimate']
        assert est['estimate_number'] == 'EST-0001'
        assert est['status'] == 'draft'
        assert est['subtotal'] == 220
        assert est['tax'] == 10
        assert est['total'] == 230
        assert est['deposit_amount'] == 57.5
        assert est['notes'] == 'Two coats'
        assert [i['description'] for i in est['items']] == ['Paint', 'Labor']

        res = http.get(f"/estimates/{est['id']}", headers=auth(company))
        assert res.get_json()['estimate']['client']['email'] == 'jane@example.com'

        res = http.get('/estimates/?status=draft', headers=auth(company))
        assert [e['id'] for e in res.get_json()['estimates']] == [est['id']]
        res = http.get('/estimates/?status=bogus', headers=auth(company))
        assert res.status_code == 400


def test_create_rejects_missing_client_and_items():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 10.0, 50.0)
        customer = make_client(company)
        http = app.test_client()

        res = http.post('/estimates/', headers=auth(company), json={'items': ITEMS})
        assert res.status_code == 400
        assert res.get_json()['error']['code'] == 'CLIENT_REQUIRED'

        res = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': [{'description': 'Nothing priced'}],
        })
        assert res.status_code == 400
        assert res.get_json()['error']['code'] == 'NO_VALID_ITEMS'
        assert Estimate.query.count() == 0


def test_create_from_template_and_duplicate():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        customer = make_client(company)
        http = app.test_client()

        res = http.post('/templates/', headers=auth(company), json={
            'name': 'Bedroom', 'items': [{'description': 'Walls', 'quantity': 1, 'unit_price': 300}],
        })
        assert res.status_code == 201
        template_id = res.get_json()['template']['id']

        res = http.get(f'/templates/{template_id}/line-items', headers=auth(company))
        items = res.get_json()['items']
        assert items[0]['description'] == 'Walls'
        assert items[0]['temp_id'].startswith('tmp-')

        res = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'template_id': template_id,
        })
        assert res.status_code == 201
        original = res.get_json()['estimate']
        assert original['total'] == 300

        res = http.post(f"/estimates/{original['id']}/duplicate", headers=auth(company))
        assert res.status_code == 201
        copy = res.get_json()['estimate']
        assert copy['estimate_number'] == 'EST-0002'
        assert copy['total'] == original['total']
        assert len(copy['items']) == 1


def test_tenant_status_changes_are_limited():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        customer = make_client(company)
        http = app.test_client()
        est = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': ITEMS,
        }).get_json()['estimate']

        # sent, accepted and paid belong to sending, the client and the processor
        for target in ('paid', 'sent'):
            res = http.post(f"/estimates/{est['id']}/status", headers=auth(company),
                            json={'status': target})
            assert res.status_code == 409
            assert res.get_json()['error']['code'] == 'INVALID_TRANSITION'

        stored = db.session.get(Estimate, est['id'])
        stored.status = 'sent'
        db.session.commit()
        res = http.post(f"/estimates/{est['id']}/status", headers=auth(company),
                        json={'status': 'accepted'})
        assert res.status_code == 409

        stored = db.session.get(Estimate, est['id'])
        stored.status = 'accepted'
        db.session.commit()
        res = http.post(f"/estimates/{est['id']}/status", headers=auth(company),
                        json={'status': 'paid'})
        assert res.status_code == 409
        db.session.expire_all()
        stored = db.session.get(Estimate, est['id'])
        assert stored.paid_at is None
        assert stored.status == 'accepted'

        res = http.post(f"/estimates/{est['id']}/status", headers=auth(company),
                        json={'status': 'invoiced'})
        assert res.status_code == 200
        assert res.get_json()['estimate']['status'] == 'invoiced'


def test_other_company_sees_not_found():
    app = setup_app()
    with app.app_context():
        acme = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        rival = create_company('Rival Co', 'owner@rival.test', 0.0, 50.0)
        customer = make_client(acme)
        http = app.test_client()
        est = http.post('/estimates/', headers=auth(acme), json={
            'client_id': customer.id, 'items': ITEMS,
        }).get_json()['estimate']

        assert http.get(f"/estimates/{est['id']}", headers=auth(rival)).status_code == 404
        assert http.delete(f"/estimates/{est['id']}", headers=auth(rival)).status_code == 404
        assert http.get(f'/clients/{customer.id}', headers=auth(rival)).status_code == 404
        assert http.get('/estimates/', headers=auth(rival)).get_json()['estimates'] == []

        res = http.post('/estimates/', headers=auth(rival), json={
            'client_id': customer.id, 'items': ITEMS,
        })
        assert res.status_code == 404


def test_send_through_endpoint(monkeypatch):
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        customer = make_client(company)
        http = app.test_client()
        est = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': ITEMS,
        }).get_json()['estimate']

        calls = []

        class Remote:
            def generate_pdf(self, estimate_id):
                calls.append('generate_pdf')
                return f'https://files.test/{estimate_id}.html'

            def send_estimate_email(self, estimate_id):
                calls.append('send_estimate_email')
                return {'success': True}

        monkeypatch.setattr(estimate_routes, 'functions_client', lambda: Remote())
        res = http.post(f"/estimates/{est['id']}/send", headers=auth(company))
        assert res.status_code == 200
        body = res.get_json()
        assert body['sent_to'] == 'jane@example.com'
        assert body['estimate']['status'] == 'sent'
        assert body['estimate']['pdf_url'].endswith(f"/{est['id']}.html")
        assert calls == ['generate_pdf', 'send_estimate_email']


def test_clients_crud_and_validation():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        http = app.test_client()

        res = http.post('/clients/', headers=auth(company), json={'name': ''})
        assert res.status_code == 400
        res = http.post('/clients/', headers=auth(company),
                        json={'name': 'Bob', 'email': 'not-an-email'})
        assert res.status_code == 400
        assert res.get_json()['error']['details']['field'] == 'email'

        res = http.post('/clients/', headers=auth(company), json={
            'name': 'Bob Smith', 'email': 'bob@example.com', 'phone': '(555) 123-4567',
        })
        assert res.status_code == 201
        client_id = res.get_json()['client']['id']

        res = http.put(f'/clients/{client_id}', headers=auth(company), json={'name': 'Robert Smith'})
        assert res.get_json()['client']['name'] == 'Robert Smith'

        est = http.post('/estimates/', headers=auth(company), json={
            'client_id': client_id, 'items': ITEMS,
        }).get_json()['estimate']
        assert http.delete(f'/clients/{client_id}', headers=auth(company)).status_code == 200
        db.session.expire_all()
        kept = db.session.get(Estimate, est['id'])
        assert kept is not None
        assert kept.client_id is None


def test_company_settings():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        http = app.test_client()

        res = http.patch('/company', headers=auth(company), json={'default_tax_rate': 150})
        assert res.status_code == 400
        res = http.patch('/company', headers=auth(company),
                         json={'default_tax_rate': '7.5', 'phone': '5551234567'})
        assert res.status_code == 200
        assert res.get_json()['company']['default_tax_rate'] == 7.5
        assert 'api_key' not in res.get_json()['company']


def test_public_view_accept_and_decline():
    app = setup_app()
    with app.app_context():
        company = create_company('Acme Painting', 'owner@acme.test', 0.0, 50.0)
        customer = make_client(company)
        http = app.test_client()
        first = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': ITEMS,
        }).get_json()['estimate']
        second = http.post('/estimates/', headers=auth(company), json={
            'client_id': customer.id, 'items': ITEMS,
        }).get_json()['estimate']

        res = http.post(f"/public/estimates/{first['id']}/accept", json={'signature': 'Jane'})
        assert res.status_code == 409

        for est in (first, second):
            db.session.get(Estimate, est['id']).status = 'sent'
        db.session.commit()

        page = http.get(f"/public/estimates/{first['id']}")
        assert page.status_code == 200
        assert b'EST-0001' in page.data
        assert b'Accept &amp; Sign Estimate' in page.data

        res = http.post(f"/public/estimates/{first['id']}/accept", data={'signature': 'Jane Doe'})
        assert res.status_code == 200
        assert res.get_json()['status'] == 'accepted'
        assert db.session.get(Estimate, first['id']).signature == 'Jane Doe'

        res = http.post(f"/public/estimates/{second['id']}/decline")
        assert res.get_json()['status'] == 'declined'
        assert http.get('/public/estimates/999').status_code == 404
