# Overview: End-to-end API tests: authentication, permissions and the main flows over HTTP.

import io

import pytest

from gestion_pro.models import SecurityEvent


class TestAuthentication:

    def test_login_returns_token_and_context(self, client, admin_a, org_a, branch_a):
        response = client.post('/api/auth/login', json={'username': 'admin_a', 'password': 'Password123!'})

        assert response.status_code == 200
        body = response.json
        assert body['token']
        assert body['org_id'] == org_a.id
        assert body['branch_id'] == branch_a.id
        assert 'CREATE_SALE' in body['permissions']

    def test_login_by_email(self, client, admin_a):
        response = client.post('/api/auth/login', json={'email': 'admin_a@example.com', 'password': 'Password123!'})
        assert response.status_code == 200

    def test_bad_password_is_logged(self, client, db_session, admin_a):
        response = client.post('/api/auth/login', json={'username': 'admin_a', 'password': 'wrong'})

        assert response.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type='LOGIN_FAILED').count() == 1

    def test_missing_fields(self, client):
        assert client.post('/api/auth/login', json={'username': 'x'}).status_code == 400

    @pytest.mark.parametrize('path', ['/api/products', '/api/stock', '/api/documents', '/api/receivables/debtors'])
    def test_protected_routes_require_token(self, client, path):
        assert client.get(path).status_code == 401
        assert client.get(path, headers={'Authorization': 'Bearer not-a-token'}).status_code == 401

    def test_me_and_logout(self, client, headers_a, org_a):
        me = client.get('/api/auth/me', headers=headers_a)
        assert me.status_code == 200
        assert me.json['organization']['id'] == org_a.id

        assert client.post('/api/auth/logout', headers=headers_a).status_code == 200
        assert client.get('/api/auth/me', headers=headers_a).status_code == 401


class TestPermissions:

    @pytest.fixture
    def seller_headers(self, make_user, org_a, branch_a, login):
        make_user(org_a, 'vendedor', role='seller', branch=branch_a)
        return login('vendedor')

    def test_seller_can_sell_but_not_manage(self, client, seller_headers, org_a, branch_a, make_product):
        product = make_product(org_a, 'CABLE', {branch_a: 5}, price_cents=200)

        sale = client.post('/api/documents', headers=seller_headers, json={
            'document_type': 'INVOICE',
            'items': [{'product_id': product.id, 'quantity': 1}],
        })
        assert sale.status_code == 201

        assert client.post('/api/stock/adjust', headers=seller_headers, json={
            'product_id': product.id, 'branch_id': branch_a.id, 'delta': 10,
        }).status_code == 403
        assert client.post('/api/receivables/payments', headers=seller_headers, json={
            'amount_cents': 100, 'document_ids': [sale.json['id']],
        }).status_code == 403
        assert client.get('/api/ecommerce/orders', headers=seller_headers).status_code == 403
        assert client.get('/api/admin/users', headers=seller_headers).status_code == 403

    def test_denial_is_recorded(self, client, db_session, seller_headers):
        response = client.post('/api/branches', headers=seller_headers, json={'name': 'Nueva'})

        assert response.status_code == 403
        assert response.json['required_permission'] == 'MANAGE_BRANCHES'
        assert db_session.query(SecurityEvent).filter_by(success=False).count() >= 1


class TestSystem:

    def test_health_and_version(self, client, org_a):
        health = client.get('/health')
        assert health.status_code == 200
        assert health.json['checks']['database']['status'] == 'healthy'

        assert client.get('/version').json['api_version'] == '1.0.0'


class TestSalesApi:

    def test_invoice_flow(self, client, headers_a, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, 'SIERRA', {branch_a: 3}, price_cents=10000)

        created = client.post('/api/documents', headers=headers_a, json={
            'document_type': 'INVOICE',
            'items': [{'product_id': product.id, 'quantity': 2}],
        })

        assert created.status_code == 201
        assert created.json['total_cents'] == 24200
        assert created.json['document_number'] == 'F-000001'
        assert stock_of(product, branch_a) == 1

        fetched = client.get(f"/api/documents/{created.json['id']}", headers=headers_a)
        assert fetched.json['lines'][0]['product_sku'] == 'SIERRA'

        listing = client.get('/api/documents?document_type=INVOICE', headers=headers_a)
        assert listing.json['total'] == 1

    def test_insufficient_stock_is_409(self, client, headers_a, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, 'SIERRA', {branch_a: 1})

        response = client.post('/api/documents', headers=headers_a, json={
            'document_type': 'RESERVATION',
            'items': [{'product_id': product.id, 'quantity': 2}],
        })

        assert response.status_code == 409
        assert response.json['available_quantity'] == 1
        assert stock_of(product, branch_a) == 1

    def test_bad_payload_is_400(self, client, headers_a, branch_a):
        response = client.post('/api/documents', headers=headers_a, json={'document_type': 'INVOICE', 'items': []})
        assert response.status_code == 400

    def test_cancel_reservation(self, client, headers_a, org_a, branch_a, make_product, stock_of):
        product = make_product(org_a, 'SIERRA', {branch_a: 3})
        reservation = client.post('/api/documents', headers=headers_a, json={
            'document_type': 'RESERVATION',
            'items': [{'product_id': product.id, 'quantity': 3}],
        }).json

        response = client.post(f"/api/documents/{reservation['id']}/cancel", headers=headers_a)

        assert response.status_code == 200
        assert response.json['status'] == 'CANCELLED'
        assert stock_of(product, branch_a) == 3
        assert client.post(f"/api/documents/{reservation['id']}/cancel", headers=headers_a).status_code == 409

    def test_convert_with_explicit_rate(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'SIERRA', {branch_a: 3}, price_cents=100000)
        invoice = client.post('/api/documents', headers=headers_a, json={
            'document_type': 'QUOTE',
            'items': [{'product_id': product.id, 'quantity': 1}],
        }).json

        response = client.get(f"/api/documents/{invoice['id']}/convert?currency=USD&rate=1210", headers=headers_a)

        assert response.status_code == 200
        assert response.json['converted_cents'] == 100
        assert client.get(
            f"/api/documents/{invoice['id']}/convert?currency=USD&rate=abc", headers=headers_a
        ).status_code == 400


class TestReceivablesApi:

    def test_payment_settles_invoices_in_order(self, client, headers_a, org_a, branch_a, make_product, make_customer):
        product = make_product(org_a, 'CAJA', {branch_a: 10}, price_cents=1000)
        customer = make_customer(org_a, 'Ferretería López')

        ids = []
        for _ in range(2):
            ids.append(client.post('/api/documents', headers=headers_a, json={
                'document_type': 'INVOICE',
                'items': [{'product_id': product.id, 'quantity': 1}],
                'customer_id': customer.id,
                'payment_method': 'Cuenta corriente',
            }).json['id'])

        debtors = client.get('/api/receivables/debtors', headers=headers_a).json
        assert debtors['total_debt_cents'] == 2420

        payment = client.post('/api/receivables/payments', headers=headers_a, json={
            'amount_cents': 1500, 'document_ids': ids,
        })
        assert payment.status_code == 200
        assert [a['amount_cents'] for a in payment.json['applied']] == [1210, 290]
        assert payment.json['leftover_cents'] == 0

        account = client.get(f'/api/receivables/customers/{customer.id}', headers=headers_a).json
        assert account['debt_cents'] == 920
        assert [doc['status'] for doc in account['open_invoices']] == ['PARTIALLY_PAID']

        history = client.get(f'/api/receivables/documents/{ids[1]}/payments', headers=headers_a).json
        assert [p['amount_cents'] for p in history['payments']] == [290]

    def test_payment_validation(self, client, headers_a):
        assert client.post('/api/receivables/payments', headers=headers_a, json={
            'amount_cents': 100, 'document_ids': [],
        }).status_code == 400
        assert client.post('/api/receivables/payments', headers=headers_a, json={
            'amount_cents': 0, 'document_ids': [1],
        }).status_code == 400


class TestStockApi:

    def test_adjust_and_read(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'CLAVO', {branch_a: 2}, min_stock=5)

        low = client.get('/api/stock/low', headers=headers_a).json
        assert low['count'] == 1

        up = client.post('/api/stock/adjust', headers=headers_a, json={
            'product_id': product.id, 'branch_id': branch_a.id, 'delta': 8,
        })
        assert up.status_code == 200
        assert up.json['stock'] == 10

        down = client.post('/api/stock/adjust', headers=headers_a, json={
            'product_id': product.id, 'branch_id': branch_a.id, 'delta': -11,
        })
        assert down.status_code == 409

        total = client.get(f'/api/stock/consolidated/{product.id}', headers=headers_a).json
        assert total['consolidated_stock'] == 10

    def test_zero_delta_rejected(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'CLAVO', {branch_a: 2})
        response = client.post('/api/stock/adjust', headers=headers_a, json={
            'product_id': product.id, 'branch_id': branch_a.id, 'delta': 0,
        })
        assert response.status_code == 400


class TestEcommerceApi:

    def test_order_outcomes_are_201(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'MOUSE', {branch_a: 1})

        ok = client.post('/api/ecommerce/orders', headers=headers_a, json={
            'platform': 'Shopify', 'lines': [{'product_id': product.id, 'quantity': 1}],
        })
        short = client.post('/api/ecommerce/orders', headers=headers_a, json={
            'platform': 'Shopify', 'lines': [{'product_id': product.id, 'quantity': 1}],
        })

        assert ok.status_code == 201
        assert ok.json['status'] == 'PROCESSED'
        assert short.status_code == 201
        assert short.json['status'] == 'STOCK_UNAVAILABLE'

        orders = client.get('/api/ecommerce/orders?status=processed', headers=headers_a).json
        assert orders['count'] == 1

    def test_unrecordable_order_is_400(self, client, headers_a):
        response = client.post('/api/ecommerce/orders', headers=headers_a, json={'platform': 'Shopify', 'lines': []})
        assert response.status_code == 400

    def test_integration_crud_and_sync(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'MOUSE', {branch_a: 7})

        created = client.post('/api/ecommerce/integrations', headers=headers_a, json={
            'platform': 'Tienda Nube', 'is_active': True,
        })
        assert created.status_code == 201

        synced = client.post(f'/api/ecommerce/products/{product.id}/sync', headers=headers_a)
        assert synced.json['synced'] == 1

        logs = client.get('/api/ecommerce/sync-logs', headers=headers_a).json
        assert logs['count'] == 1

        deleted = client.delete(f"/api/ecommerce/integrations/{created.json['id']}", headers=headers_a)
        assert deleted.status_code == 200


class TestProductsApi:

    def test_create_duplicate_and_delete(self, client, headers_a, branch_a):
        payload = {
            'sku': 'LLAVE-10',
            'name': 'Llave 10mm',
            'stocks': [{'branch_id': branch_a.id, 'stock': 4, 'sale_price_cents': 1500}],
        }
        created = client.post('/api/products', headers=headers_a, json=payload)
        assert created.status_code == 201
        assert created.json['stock']['consolidated_stock'] == 4

        assert client.post('/api/products', headers=headers_a, json=payload).status_code == 409

        deleted = client.delete(f"/api/products/{created.json['id']}", headers=headers_a)
        assert deleted.json == {'deleted': True, 'deactivated': False}

    def test_import(self, client, headers_a, branch_a):
        response = client.post('/api/products/import', headers=headers_a, json={
            'rows': [{'sku': 'A1', 'name': 'Arandela', 'stock': 30}],
            'conflict_resolution': 'skip',
        })
        assert response.status_code == 200
        assert response.json['created'] == 1


class TestStorageApi:

    def test_avatar_upload_and_serve(self, client, headers_a, admin_a):
        response = client.post(
            '/api/storage/avatar',
            headers=headers_a,
            data={'file': (io.BytesIO(b'\x89PNG fake image'), 'avatar.png')},
            content_type='multipart/form-data',
        )

        assert response.status_code == 201
        url = response.json['url']
        assert url.startswith('http://testserver/storage/avatars/')
        assert '?t=' in url
        assert response.json['user']['avatar_url'] == url

        served = client.get(url.split('http://testserver', 1)[1].split('?')[0])
        assert served.status_code == 200
        assert served.data == b'\x89PNG fake image'

    def test_empty_upload_rejected(self, client, headers_a):
        response = client.post('/api/storage/avatar', headers=headers_a, data=b'')
        assert response.status_code == 400

    def test_path_traversal_is_not_served(self, client):
        assert client.get('/storage/avatars/../secret').status_code == 404
        assert client.get('/storage/unknown/file.png').status_code == 404
