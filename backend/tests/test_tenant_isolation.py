# Overview: Cross-tenant isolation through the HTTP API.

"""
MULTI-TENANT: a user of one organization must never read, change or
consume another organization's products, stock, documents or customers.
Foreign ids answer 404, never 403, so their existence is not leaked.
"""

import pytest


@pytest.fixture
def foreign(org_b, branch_b, make_product, make_customer):
    """Data owned by org B."""
    product = make_product(org_b, 'LIBRO', {branch_b: 5}, price_cents=8000)
    customer = make_customer(org_b, 'Cliente Sur')
    return {'product': product, 'customer': customer, 'branch': branch_b}


def test_products_of_other_org_are_invisible(client, headers_a, foreign):
    assert client.get(f"/api/products/{foreign['product'].id}", headers=headers_a).status_code == 404
    assert client.get('/api/products', headers=headers_a).json['count'] == 0


def test_cannot_sell_foreign_product(client, headers_a, branch_a, foreign, stock_of):
    response = client.post('/api/documents', headers=headers_a, json={
        'document_type': 'INVOICE',
        'items': [{'product_id': foreign['product'].id, 'quantity': 1}],
    })

    assert response.status_code == 404
    assert stock_of(foreign['product'], foreign['branch']) == 5


def test_cannot_sell_from_foreign_branch(client, headers_a, org_a, branch_a, make_product, foreign):
    product = make_product(org_a, 'PROPIO', {branch_a: 5})
    response = client.post('/api/documents', headers=headers_a, json={
        'document_type': 'INVOICE',
        'branch_id': foreign['branch'].id,
        'items': [{'product_id': product.id, 'quantity': 1}],
    })
    assert response.status_code == 404


def test_cannot_adjust_foreign_stock(client, headers_a, foreign, stock_of):
    response = client.post('/api/stock/adjust', headers=headers_a, json={
        'product_id': foreign['product'].id,
        'branch_id': foreign['branch'].id,
        'delta': -5,
    })

    assert response.status_code == 404
    assert stock_of(foreign['product'], foreign['branch']) == 5


def test_foreign_documents_and_customers(client, headers_a, headers_b, foreign):
    invoice = client.post('/api/documents', headers=headers_b, json={
        'document_type': 'INVOICE',
        'items': [{'product_id': foreign['product'].id, 'quantity': 1}],
        'customer_id': foreign['customer'].id,
        'payment_method': 'Cuenta corriente',
    })
    assert invoice.status_code == 201
    doc_id = invoice.json['id']

    assert client.get(f'/api/documents/{doc_id}', headers=headers_a).status_code == 404
    assert client.get('/api/documents', headers=headers_a).json['total'] == 0
    assert client.get(f"/api/customers/{foreign['customer'].id}", headers=headers_a).status_code == 404
    assert client.get('/api/receivables/debtors', headers=headers_a).json['count'] == 0


def test_payment_never_touches_foreign_invoice(client, headers_a, headers_b, foreign):
    invoice = client.post('/api/documents', headers=headers_b, json={
        'document_type': 'INVOICE',
        'items': [{'product_id': foreign['product'].id, 'quantity': 1}],
        'customer_id': foreign['customer'].id,
        'payment_method': 'Cuenta corriente',
    }).json

    response = client.post('/api/receivables/payments', headers=headers_a, json={
        'amount_cents': 500, 'document_ids': [invoice['id']],
    })

    assert response.status_code == 404
    assert response.json['entity'] == 'SaleDocument'

    still_owed = client.get(f"/api/documents/{invoice['id']}", headers=headers_b).json
    assert still_owed['paid_amount_cents'] == 0


def test_orders_never_use_foreign_branches(client, headers_a, org_a, branch_a, make_product, foreign):
    product = make_product(org_a, 'LIBRO', {branch_a: 0})

    response = client.post('/api/ecommerce/orders', headers=headers_a, json={
        'platform': 'Shopify',
        'lines': [{'product_id': product.id, 'quantity': 1}],
    })

    assert response.status_code == 201
    assert response.json['status'] == 'STOCK_UNAVAILABLE'
