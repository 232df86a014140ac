# Overview: API tests for branches, customers, suppliers and the admin area (users, roles, organization).

import pytest

from gestion_pro.models import Branch, BranchStock, Customer, EcommerceIntegration, Role, SecurityEvent
from gestion_pro.services import ecommerce_service


class TestBranchesApi:

    def test_create_goes_last_by_default(self, client, headers_a, org_a, branch_a):
        response = client.post('/api/branches', headers=headers_a, json={'name': 'Depósito'})

        assert response.status_code == 201
        assert response.json['priority_order'] == branch_a.priority_order + 1

        listed = client.get('/api/branches', headers=headers_a).json
        assert [b['name'] for b in listed] == ['Casa Central', 'Depósito']

    def test_create_rejects_blank_and_duplicate_names(self, client, headers_a, branch_a):
        assert client.post('/api/branches', headers=headers_a, json={}).status_code == 400
        assert client.post('/api/branches', headers=headers_a, json={'name': 'Casa Central'}).status_code == 400
        assert client.post('/api/branches', headers=headers_a, json={'name': 'X', 'color': 'red'}).status_code == 400

    def test_update_and_missing_branch(self, client, headers_a, branch_a):
        response = client.put(f'/api/branches/{branch_a.id}', headers=headers_a, json={
            'address': 'Av. Siempre Viva 742', 'is_ecommerce_source': False,
        })
        assert response.status_code == 200
        assert response.json['address'] == 'Av. Siempre Viva 742'
        assert response.json['is_ecommerce_source'] is False

        assert client.put('/api/branches/99999', headers=headers_a, json={'name': 'Y'}).status_code == 404
        assert client.get('/api/branches/99999', headers=headers_a).status_code == 404

    def test_reorder_sets_priorities(self, client, db_session, headers_a, org_a, branch_a, make_branch):
        second = make_branch(org_a, 'Sucursal Oeste', priority_order=1)

        response = client.post('/api/branches/reorder', headers=headers_a, json={
            'branch_ids': [second.id, branch_a.id],
        })

        assert response.status_code == 200
        assert [b['id'] for b in response.json] == [second.id, branch_a.id]
        assert db_session.get(Branch, second.id).priority_order == 0
        assert db_session.get(Branch, branch_a.id).priority_order == 1

    def test_reorder_must_list_every_branch(self, client, headers_a, org_a, branch_a, make_branch, branch_b):
        make_branch(org_a, 'Sucursal Oeste', priority_order=1)

        assert client.post('/api/branches/reorder', headers=headers_a, json={
            'branch_ids': [branch_a.id],
        }).status_code == 400
        assert client.post('/api/branches/reorder', headers=headers_a, json={
            'branch_ids': 'all',
        }).status_code == 400

    def test_delete_removes_stock_rows(self, client, db_session, headers_a, org_a, make_branch, make_product):
        extra = make_branch(org_a, 'Temporal', priority_order=5)
        make_product(org_a, 'TUERCA', {extra: 3})

        assert client.delete(f'/api/branches/{extra.id}', headers=headers_a).status_code == 200
        assert db_session.query(BranchStock).filter_by(branch_id=extra.id).count() == 0

    def test_delete_refused_with_documents(self, client, headers_a, org_a, branch_a, make_product):
        product = make_product(org_a, 'CLAVO', {branch_a: 5})
        client.post('/api/documents', headers=headers_a, json={
            'document_type': 'INVOICE',
            'items': [{'product_id': product.id, 'quantity': 1}],
        })

        assert client.delete(f'/api/branches/{branch_a.id}', headers=headers_a).status_code == 409

    def test_delete_refused_for_integration_stock_source(self, client, db_session, headers_a, org_a, make_branch):
        outlet = make_branch(org_a, 'Depósito Web', priority_order=3)
        integration = ecommerce_service.create_integration(org_a.id, {
            'platform': 'Shopify', 'stock_source': 'branch', 'branch_id': outlet.id,
        })

        assert client.delete(f'/api/branches/{outlet.id}', headers=headers_a).status_code == 409
        assert db_session.get(Branch, outlet.id) is not None
        assert db_session.get(EcommerceIntegration, integration.id).branch_id == outlet.id


class TestCustomersApi:

    def test_crud(self, client, headers_a):
        created = client.post('/api/customers', headers=headers_a, json={
            'name': 'Ana Gómez', 'email': 'ANA@Example.com', 'cuit': '27-11111111-3',
        })
        assert created.status_code == 201
        assert created.json['email'] == 'ana@example.com'
        customer_id = created.json['id']

        updated = client.put(f'/api/customers/{customer_id}', headers=headers_a, json={'phone': '11-5555-0000'})
        assert updated.status_code == 200
        assert updated.json['phone'] == '11-5555-0000'

        found = client.get('/api/customers?search=27-1111', headers=headers_a).json
        assert [c['id'] for c in found['customers']] == [customer_id]

        assert client.delete(f'/api/customers/{customer_id}', headers=headers_a).status_code == 200
        assert client.get(f'/api/customers/{customer_id}', headers=headers_a).status_code == 404

    def test_validation(self, client, headers_a):
        assert client.post('/api/customers', headers=headers_a, json={'email': 'x@y.com'}).status_code == 400
        assert client.post('/api/customers', headers=headers_a, json={'name': 'A', 'org_id': 2}).status_code == 400

    def test_delete_refused_with_unpaid_invoice(self, client, db_session, headers_a, org_a, branch_a,
                                                make_product, make_customer):
        product = make_product(org_a, 'MECHA', {branch_a: 5})
        customer = make_customer(org_a, 'Deudor SA')
        client.post('/api/documents', headers=headers_a, json={
            'document_type': 'INVOICE',
            'items': [{'product_id': product.id, 'quantity': 1}],
            'customer_id': customer.id,
            'payment_method': 'Cuenta corriente',
        })

        assert client.delete(f'/api/customers/{customer.id}', headers=headers_a).status_code == 409
        assert db_session.get(Customer, customer.id) is not None

    def test_with_debt_flag(self, client, headers_a, org_a, branch_a, make_product, make_customer):
        product = make_product(org_a, 'BROCA', {branch_a: 5}, price_cents=1000)
        customer = make_customer(org_a, 'Cliente Fiado')
        client.post('/api/documents', headers=headers_a, json={
            'document_type': 'INVOICE',
            'items': [{'product_id': product.id, 'quantity': 1}],
            'customer_id': customer.id,
            'payment_method': 'Cuenta corriente',
        })

        body = client.get('/api/customers?with_debt=true', headers=headers_a).json
        assert body['customers'][0]['debt_cents'] == 1210


class TestSuppliersApi:

    def test_crud(self, client, headers_a):
        created = client.post('/api/suppliers', headers=headers_a, json={
            'name': 'Distribuidora Río', 'contact_person': 'Marta',
        })
        assert created.status_code == 201
        supplier_id = created.json['id']

        listed = client.get('/api/suppliers', headers=headers_a).json
        assert listed['count'] == 1

        updated = client.put(f'/api/suppliers/{supplier_id}', headers=headers_a, json={'notes': 'Entrega martes'})
        assert updated.json['notes'] == 'Entrega martes'

        assert client.delete(f'/api/suppliers/{supplier_id}', headers=headers_a).status_code == 200
        assert client.delete(f'/api/suppliers/{supplier_id}', headers=headers_a).status_code == 404

    def test_seller_cannot_manage_suppliers(self, client, make_user, org_a, branch_a, login):
        make_user(org_a, 'vendedor', role='seller', branch=branch_a)
        headers = login('vendedor')

        assert client.get('/api/suppliers', headers=headers).status_code == 403


class TestUsersAdmin:

    def test_invite_user_with_role(self, client, headers_a, org_a, branch_a, login):
        response = client.post('/api/admin/users', headers=headers_a, json={
            'email': 'nuevo@example.com',
            'password': 'Password123!',
            'role': 'seller',
            'branch_id': branch_a.id,
        })

        assert response.status_code == 201
        user = response.json['user']
        assert user['username'] == 'nuevo'
        assert user['roles'] == ['seller']
        assert user['org_id'] == org_a.id

        listed = client.get('/api/admin/users', headers=headers_a).json
        assert {'admin_a', 'nuevo'} <= {u['username'] for u in listed['users']}
        assert login('nuevo')

    def test_invite_validation(self, client, headers_a, branch_b):
        assert client.post('/api/admin/users', headers=headers_a, json={
            'email': 'x@example.com', 'password': 'Password123!',
        }).status_code == 400
        assert client.post('/api/admin/users', headers=headers_a, json={
            'email': 'x@example.com', 'password': 'weak', 'role': 'seller',
        }).status_code == 400
        assert client.post('/api/admin/users', headers=headers_a, json={
            'email': 'x@example.com', 'password': 'Password123!', 'role': 'nope',
        }).status_code == 400
        assert client.post('/api/admin/users', headers=headers_a, json={
            'email': 'x@example.com', 'password': 'Password123!', 'role': 'seller', 'branch_id': branch_b.id,
        }).status_code == 404

    def test_deactivate_revokes_access(self, client, headers_a, make_user, org_a, branch_a, login):
        seller = make_user(org_a, 'vendedor', role='seller', branch=branch_a)
        seller_headers = login('vendedor')

        response = client.post(f'/api/admin/users/{seller.id}/deactivate', headers=headers_a)
        assert response.status_code == 200
        assert response.json['sessions_revoked'] == 1
        assert client.get('/api/auth/me', headers=seller_headers).status_code == 401
        assert client.post('/api/auth/login', json={
            'username': 'vendedor', 'password': 'Password123!',
        }).status_code == 401

        assert client.post(f'/api/admin/users/{seller.id}/reactivate', headers=headers_a).status_code == 200
        assert login('vendedor')

    def test_cannot_deactivate_self(self, client, headers_a, admin_a):
        assert client.post(f'/api/admin/users/{admin_a.id}/deactivate', headers=headers_a).status_code == 400

    def test_foreign_user_not_found(self, client, headers_a, admin_b):
        assert client.post(f'/api/admin/users/{admin_b.id}/deactivate', headers=headers_a).status_code == 404
        assert client.post(f'/api/admin/users/{admin_b.id}/roles', headers=headers_a,
                           json={'role': 'seller'}).status_code == 404

    def test_assign_role(self, client, headers_a, make_user, org_a, branch_a):
        seller = make_user(org_a, 'vendedor', role='seller', branch=branch_a)

        response = client.post(f'/api/admin/users/{seller.id}/roles', headers=headers_a, json={'role': 'manager'})

        assert response.status_code == 200
        assert set(response.json['user']['roles']) == {'seller', 'manager'}


class TestRolesAdmin:

    def test_create_role_with_permissions(self, client, headers_a):
        response = client.post('/api/admin/roles', headers=headers_a, json={
            'name': 'cajero', 'permissions': ['CREATE_SALE', 'VIEW_PRODUCTS'],
        })

        assert response.status_code == 201
        assert response.json['role']['permissions'] == ['CREATE_SALE', 'VIEW_PRODUCTS']

        names = [r['name'] for r in client.get('/api/admin/roles', headers=headers_a).json['roles']]
        assert 'cajero' in names

    def test_create_role_errors(self, client, headers_a):
        assert client.post('/api/admin/roles', headers=headers_a, json={'name': 'admin'}).status_code == 400
        assert client.post('/api/admin/roles', headers=headers_a, json={}).status_code == 400
        assert client.post('/api/admin/roles', headers=headers_a, json={
            'name': 'raro', 'permissions': ['FLY'],
        }).status_code == 400

    def test_set_permissions_replaces_set(self, client, db_session, headers_a, org_a):
        role_id = client.post('/api/admin/roles', headers=headers_a, json={
            'name': 'cajero', 'permissions': ['CREATE_SALE', 'VIEW_PRODUCTS'],
        }).json['role']['id']

        response = client.put(f'/api/admin/roles/{role_id}/permissions', headers=headers_a, json={
            'permissions': ['VIEW_STOCK'],
        })

        assert response.status_code == 200
        assert response.json['role']['permissions'] == ['VIEW_STOCK']
        assert db_session.query(SecurityEvent).filter_by(event_type='ROLE_PERMISSIONS_CHANGED').count() == 1

        assert client.put(f'/api/admin/roles/{role_id}/permissions', headers=headers_a, json={
            'permissions': 'VIEW_STOCK',
        }).status_code == 400
        assert client.put('/api/admin/roles/99999/permissions', headers=headers_a, json={
            'permissions': [],
        }).status_code == 404

    def test_rename_role(self, client, headers_a):
        role_id = client.post('/api/admin/roles', headers=headers_a, json={'name': 'cajero'}).json['role']['id']

        renamed = client.put(f'/api/admin/roles/{role_id}', headers=headers_a, json={'name': 'caja'})
        assert renamed.status_code == 200
        assert renamed.json['role']['name'] == 'caja'

        assert client.put(f'/api/admin/roles/{role_id}', headers=headers_a, json={'name': 'admin'}).status_code == 400
        assert client.put('/api/admin/roles/99999', headers=headers_a, json={'name': 'x'}).status_code == 404

    def test_delete_role_refused_while_assigned(self, client, db_session, headers_a, org_a):
        admin_role = db_session.query(Role).filter_by(org_id=org_a.id, name='admin').one()

        assert client.delete(f'/api/admin/roles/{admin_role.id}', headers=headers_a).status_code == 409

        role_id = client.post('/api/admin/roles', headers=headers_a, json={'name': 'temporal'}).json['role']['id']
        assert client.delete(f'/api/admin/roles/{role_id}', headers=headers_a).status_code == 200
        assert client.delete(f'/api/admin/roles/{role_id}', headers=headers_a).status_code == 404

    def test_list_permissions_by_category(self, client, headers_a):
        body = client.get('/api/admin/permissions?category=SYSTEM', headers=headers_a).json
        codes = {p['code'] for p in body['permissions']}

        assert {'MANAGE_SETTINGS', 'VIEW_AUDIT_LOG'} <= codes
        assert all(p['category'] == 'SYSTEM' for p in body['permissions'])


class TestOrganizationAdmin:

    def test_profile_update(self, client, headers_a):
        response = client.put('/api/admin/profile', headers=headers_a, json={'full_name': '  Laura Díaz '})

        assert response.status_code == 200
        assert response.json['user']['full_name'] == 'Laura Díaz'

    def test_read_and_update_configuration(self, client, headers_a, org_a):
        assert client.get('/api/admin/organization', headers=headers_a).json['organization']['id'] == org_a.id

        response = client.put('/api/admin/organization', headers=headers_a, json={
            'base_currency': 'usd', 'active_plan': 'Pymes', 'tax_rate_bps': 1050, 'business_name': 'Norte SRL',
        })

        assert response.status_code == 200
        org = response.json['organization']
        assert org['base_currency'] == 'USD'
        assert org['active_plan'] == 'Pymes'
        assert org['tax_rate_bps'] == 1050
        assert org['business_name'] == 'Norte SRL'

    @pytest.mark.parametrize('payload', [
        {'base_currency': 'EUR'},
        {'active_plan': 'Gold'},
        {'tax_rate_bps': 20000},
        {'name': ''},
        {'code': 'OTRO'},
    ])
    def test_invalid_configuration(self, client, headers_a, payload):
        assert client.put('/api/admin/organization', headers=headers_a, json=payload).status_code == 400

    def test_settings_need_permission(self, client, make_user, org_a, branch_a, login):
        make_user(org_a, 'gerente', role='manager', branch=branch_a)
        headers = login('gerente')

        assert client.get('/api/admin/organization', headers=headers).status_code == 200
        assert client.put('/api/admin/organization', headers=headers, json={'active_plan': 'Pymes'}).status_code == 403
        assert client.get('/api/admin/security-events', headers=headers).status_code == 403

    def test_security_events_are_org_scoped(self, client, headers_a, headers_b):
        client.put('/api/admin/organization', headers=headers_a, json={'business_phone': '0800-111'})

        events = client.get('/api/admin/security-events', headers=headers_a).json['events']
        assert 'ORG_CONFIG_UPDATED' in {e['event_type'] for e in events}

        other = client.get('/api/admin/security-events', headers=headers_b).json['events']
        assert 'ORG_CONFIG_UPDATED' not in {e['event_type'] for e in other}
