import pytest
from werkzeug.security import generate_password_hash

from app_tienda.app_container import AppContainer
from app_tienda.main import create_app


ADMIN_EMAIL = 'admin@tienda.pe'


def _config(tmp_path, **overrides):
    config = {
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'DATA_DIR': str(tmp_path / 'data'),
        'STORAGE_DIR': str(tmp_path / 'storage'),
        'LOGS_DIR': str(tmp_path / 'logs'),
        'PUBLIC_STORAGE_URL': '/storage',
        'ADMIN_EMAIL': ADMIN_EMAIL,
        'ALLOW_GUEST_CHECKOUT': True,
        'PROFILING_ENABLED': False,
    }
    config.update(overrides)
    return config


@pytest.fixture
def container(tmp_path):
    return AppContainer(_config(tmp_path))


@pytest.fixture
def app(tmp_path):
    return create_app(_config(tmp_path))


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def store(container):
    return container.data_store


def add_product(store, name='Polo estampado', price=25.0, stock=10, category='ropa', is_active=True, **extra):
    row = {
        'name': name,
        'price': price,
        'stock': stock,
        'category': category,
        'description': '',
        'is_active': is_active,
    }
    row.update(extra)
    return store.insert('products', row)


def add_user(store, email, password='secreto123', is_admin=False, full_name=''):
    return store.insert('users', {
        'email': email,
        'password_hash': generate_password_hash(password),
        'full_name': full_name,
        'is_admin': is_admin,
        'kind': 'registered',
    })


def get_csrf(client):
    r = client.get('/api/csrf')
    assert r.status_code == 200
    return r.get_json()['csrf_token']


def login(client, email, password='secreto123'):
    token = get_csrf(client)
    r = client.post('/api/auth/login', json={'email': email, 'password': password},
                    headers={'X-CSRF-Token': token})
    assert r.status_code == 200, r.get_json()
    return token


def cart_line(product, quantity=1, price=None):
    return {
        'id': product['id'],
        'type': 'product',
        'name': product['name'],
        'price': product['price'] if price is None else price,
        'quantity': quantity,
    }


SHIPPING = {
    'full_name': 'Ana Quispe',
    'address': 'Jr. Lampa 456',
    'phone': '987111222',
    'city': 'Lima',
    'postal_code': '15001',
}
