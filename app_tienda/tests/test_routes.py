import io

from app_tienda.app_container import get_container

from conftest import ADMIN_EMAIL, SHIPPING, add_product, add_user, get_csrf, login


def _store(app):
    return get_container(app).data_store


def test_security_headers(client):
    r = client.get('/api/products')
    assert r.headers['X-Frame-Options'] == 'DENY'
    assert r.headers['X-Content-Type-Options'] == 'nosniff'
    assert 'Strict-Transport-Security' not in r.headers


def test_post_without_csrf_is_rejected(client):
    r = client.post('/api/cart/add', json={'id': 'x'})
    assert r.status_code == 403
    assert r.get_json() == {'ok': False, 'error': 'CSRF token inválido'}


def test_public_catalog(client, app):
    product = add_product(_store(app), name='Cuaderno', category='escolar')
    add_product(_store(app), name='Oculto', is_active=False)

    r = client.get('/api/products?category=escolar')
    assert r.status_code == 200
    assert [p['name'] for p in r.get_json()['products']] == ['Cuaderno']

    assert client.get(f"/api/products/{product['id']}").get_json()['product']['name'] == 'Cuaderno'
    assert client.get('/api/products/no-existe').status_code == 404
    assert client.get('/api/categories').get_json()['categories'] == {'escolar': 1}

    settings = client.get('/api/settings/public').get_json()['settings']
    assert settings['payment']['enabledMethods'] == ['yape', 'plin', 'transfer']


def test_signup_login_logout(client, app):
    token = get_csrf(client)
    headers = {'X-CSRF-Token': token}

    r = client.post('/api/auth/signup', json={'email': 'Nuevo@Correo.pe', 'password': '123'}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()['field'] == 'password'

    r = client.post('/api/auth/signup', json={'email': 'Nuevo@Correo.pe', 'password': 'clave123'}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()['user']['email'] == 'nuevo@correo.pe'

    me = client.get('/api/auth/me').get_json()['user']
    assert me['email'] == 'nuevo@correo.pe'
    assert me['is_admin'] is False

    assert client.post('/api/auth/logout', headers=headers).status_code == 200
    assert client.get('/api/auth/me').get_json()['user'] is None

    r = client.post('/api/auth/login', json={'email': 'nuevo@correo.pe', 'password': 'mala'}, headers=headers)
    assert r.status_code == 401
    assert r.get_json()['error'] == 'Email o contraseña incorrectos'

    r = client.post('/api/auth/login', json={'email': 'nuevo@correo.pe', 'password': 'clave123'}, headers=headers)
    assert r.status_code == 200


def test_guest_cannot_login(client, app):
    _store(app).insert('users', {'email': None, 'kind': 'guest'})
    token = get_csrf(client)
    r = client.post('/api/auth/login', json={'email': '', 'password': ''}, headers={'X-CSRF-Token': token})
    assert r.status_code == 401


def test_cart_and_checkout_flow(client, app):
    store = _store(app)
    product = add_product(store, name='Mochila', price=45.0, stock=4)
    token = get_csrf(client)
    headers = {'X-CSRF-Token': token}

    r = client.post('/api/cart/add', json={'id': product['id'], 'quantity': 2}, headers=headers)
    assert r.status_code == 200
    assert r.get_json()['cart']['total'] == 90.0 + 15.0

    r = client.post('/api/checkout/shipping', json=SHIPPING, headers=headers)
    assert r.status_code == 200
    assert r.get_json()['step'] == 'payment'

    r = client.post('/api/checkout/payment', json={'payment_method': 'card'}, headers=headers)
    assert r.status_code == 400

    r = client.post('/api/checkout', json={'payment_method': 'yape'}, headers=headers)
    body = r.get_json()
    assert r.status_code == 200, body
    assert body['total'] == 105.0
    assert store.get('products', product['id'])['stock'] == 2

    assert client.get('/api/cart').get_json()['cart']['items'] == []


def test_checkout_at_free_shipping_threshold(client, app):
    store = _store(app)
    product = add_product(store, name='Polo A', price=50.0, stock=10)
    headers = {'X-CSRF-Token': get_csrf(client)}
    client.post('/api/cart/add', json={'id': product['id'], 'quantity': 2}, headers=headers)

    r = client.post('/api/checkout', json={'shipping': SHIPPING, 'payment_method': 'yape'}, headers=headers)

    body = r.get_json()
    assert r.status_code == 200, body
    assert body['subtotal'] == 100.0
    assert body['shipping'] == 0.0
    assert body['total'] == 100.0
    assert body['step'] == 'confirmation'
    assert store.get('orders', body['order_id'])['total_amount'] == 100.0
    assert store.get('products', product['id'])['stock'] == 8
    assert client.get('/api/cart').get_json()['cart']['items'] == []


def test_checkout_single_call_with_insufficient_stock(client, app):
    product = add_product(_store(app), name='Lámpara', stock=1)
    token = get_csrf(client)
    headers = {'X-CSRF-Token': token}
    client.post('/api/cart/add', json={'id': product['id'], 'quantity': 3}, headers=headers)

    r = client.post('/api/checkout', json={'shipping': SHIPPING, 'payment_method': 'plin'}, headers=headers)

    assert r.status_code == 400
    assert r.get_json()['code'] == 'insufficient_stock'
    assert len(client.get('/api/cart').get_json()['cart']['items']) == 1


def test_guest_checkout_disabled_returns_401(tmp_path):
    from app_tienda.main import create_app
    from conftest import _config

    app = create_app(_config(tmp_path, ALLOW_GUEST_CHECKOUT=False))
    product = add_product(get_container(app).data_store)
    with app.test_client() as client:
        headers = {'X-CSRF-Token': get_csrf(client)}
        client.post('/api/cart/add', json={'id': product['id']}, headers=headers)
        r = client.post('/api/checkout', json={'shipping': SHIPPING, 'payment_method': 'yape'}, headers=headers)

    assert r.status_code == 401
    assert r.get_json()['code'] == 'authentication_required'


def test_print_quote_and_submit(client, app):
    headers = {'X-CSRF-Token': get_csrf(client)}

    r = client.post('/api/print/quote', json={'paperType': 'cartulina', 'copies': 10}, headers=headers)
    assert r.get_json()['price'] == 10.0

    data = {
        'file': (io.BytesIO(b'%PDF-1.4'), 'afiche.pdf'),
        'paper_type': 'bond',
        'copies': '2',
        'color': 'true',
        'name': 'Luis Rojas',
        'email': 'luis@correo.pe',
    }
    r = client.post('/api/print/jobs', data=data, headers=headers, content_type='multipart/form-data')
    body = r.get_json()
    assert r.status_code == 200, body
    assert body['progress'] == ['uploading', 'saving', 'success']
    assert body['price'] == 3.0

    file_response = client.get(body['url'])
    assert file_response.status_code == 200
    assert file_response.data == b'%PDF-1.4'
    file_response.close()


def test_storage_route_blocks_traversal(client):
    assert client.get('/storage/products/../../data/users.json').status_code == 404


def test_admin_routes_require_admin(client, app):
    store = _store(app)
    assert client.get('/api/admin/dashboard').status_code == 401

    add_user(store, 'cliente@correo.pe')
    login(client, 'cliente@correo.pe')
    assert client.get('/api/admin/dashboard').status_code == 403


def test_admin_panel(client, app):
    store = _store(app)
    add_user(store, ADMIN_EMAIL)
    token = login(client, ADMIN_EMAIL)
    headers = {'X-CSRF-Token': token}

    r = client.post('/api/admin/products', json={'name': 'Regla', 'category': 'escolar', 'price': 3.5, 'stock': 20},
                    headers=headers)
    assert r.status_code == 200
    product_id = r.get_json()['product']['id']

    r = client.put(f'/api/admin/products/{product_id}', json={'price': 4}, headers=headers)
    assert r.get_json()['product']['price'] == 4.0

    r = client.post(f'/api/admin/products/{product_id}/toggle', headers=headers)
    assert r.get_json()['product']['is_active'] is False
    assert client.get('/api/admin/products?active=false').get_json()['products'][0]['id'] == product_id

    stats = client.get('/api/admin/dashboard').get_json()['stats']
    assert stats['products']['total'] == 1

    r = client.post('/api/admin/settings', json={'key': 'shipping', 'value': {'shippingCost': 9}}, headers=headers)
    assert r.status_code == 200
    assert client.get('/api/settings/public').get_json()['settings']['shipping']['shippingCost'] == 9

    r = client.post('/api/admin/settings', json={'key': 'shipping', 'value': {'shippingCost': -9}}, headers=headers)
    assert r.status_code == 400

    assert client.get('/api/admin/users').get_json()['users'][0]['email'] == ADMIN_EMAIL
    assert client.get('/api/admin/audit?type=PRODUCTO').get_json()['logs']

    r = client.delete(f'/api/admin/products/{product_id}', headers=headers)
    assert r.status_code == 200


def test_admin_product_form_inactive(client, app):
    add_user(_store(app), ADMIN_EMAIL)
    headers = {'X-CSRF-Token': login(client, ADMIN_EMAIL)}
    form = {'name': 'Estuche', 'category': 'escolar', 'price': '8.50', 'stock': '3', 'is_active': 'false'}

    r = client.post('/api/admin/products', data=form, headers=headers)

    assert r.status_code == 200
    assert r.get_json()['product']['is_active'] is False
    assert client.get('/api/products').get_json()['products'] == []


def test_admin_order_management(client, app):
    store = _store(app)
    add_user(store, ADMIN_EMAIL)
    product = add_product(store, price=10.0, stock=10)
    headers = {'X-CSRF-Token': get_csrf(client)}
    client.post('/api/cart/add', json={'id': product['id'], 'quantity': 1}, headers=headers)
    order_id = client.post('/api/checkout', json={'shipping': SHIPPING, 'payment_method': 'yape'},
                           headers=headers).get_json()['order_id']

    headers = {'X-CSRF-Token': login(client, ADMIN_EMAIL)}

    orders = client.get('/api/admin/orders').get_json()['orders']
    assert orders[0]['id'] == order_id
    assert client.get('/api/admin/orders/no-es-uuid').status_code == 404

    r = client.post(f'/api/admin/orders/{order_id}/status', json={'status': 'shipped'}, headers=headers)
    assert r.status_code == 400
    r = client.post(f'/api/admin/orders/{order_id}/status', json={'status': 'processing'}, headers=headers)
    assert r.status_code == 200

    r = client.delete(f'/api/admin/orders/{order_id}', headers=headers)
    assert r.get_json()['items_deleted'] == 1
    assert store.select('orders') == []


def test_unexpected_error_returns_json(client, app, monkeypatch):
    container = get_container(app)

    def explode(*args, **kwargs):
        raise RuntimeError('fallo inesperado')

    monkeypatch.setattr(container.product_service, 'list_active', explode)

    r = client.get('/api/products')
    assert r.status_code == 500
    assert r.get_json()['ok'] is False
