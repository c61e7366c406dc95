import threading

import pytest

from app_tienda.app_container import AppContainer
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.services.checkout_service import (
    AUTH_REQUIRED_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    NO_PRODUCTS_MESSAGE,
    STOCK_WARNING_MESSAGE,
    CompensationLog,
)

from conftest import SHIPPING, _config, add_product, add_user, cart_line


@pytest.fixture
def checkout(container):
    return container.checkout_service


def _guests(store):
    return [u for u in store.select('users') if u.get('kind') == 'guest']


def test_guest_checkout_creates_order_and_decrements_stock(checkout, store):
    product = add_product(store, price=25.0, stock=10)

    result = checkout.submit_order([cart_line(product, 2)], SHIPPING, 'yape')

    assert result['ok'], result
    assert result['step'] == 'confirmation'
    assert result['subtotal'] == 50.0
    assert result['shipping'] == 15.0
    assert result['total'] == 65.0
    assert result['order_number'] == result['order_id'][:8].upper()

    order = store.get('orders', result['order_id'])
    assert order['status'] == 'pending'
    assert order['total_amount'] == 65.0
    assert order['shipping_cost'] == 15.0
    assert order['shipping_address'] == 'Jr. Lampa 456, Lima, 15001'
    assert order['payment_method'] == 'yape'

    items = store.select('order_items', {'order_id': order['id']})
    assert len(items) == 1
    assert items[0]['quantity'] == 2
    assert items[0]['unit_price'] == 25.0

    assert store.get('products', product['id'])['stock'] == 8

    guests = _guests(store)
    assert len(guests) == 1
    assert guests[0]['email'] is None
    assert order['user_id'] == guests[0]['id']


def test_order_lines_use_catalog_price(checkout, store):
    product = add_product(store, price=40.0, stock=5)

    result = checkout.submit_order([cart_line(product, 1, price=0.01)], SHIPPING, 'plin')

    assert result['ok']
    item = store.select('order_items', {'order_id': result['order_id']})[0]
    assert item['unit_price'] == 40.0
    assert result['subtotal'] == 40.0


def test_free_shipping_over_threshold(checkout, store):
    product = add_product(store, price=60.0, stock=5)

    result = checkout.submit_order([cart_line(product, 2)], SHIPPING, 'yape')

    assert result['shipping'] == 0.0
    assert result['total'] == 120.0


def test_empty_cart_is_rejected(checkout, store):
    result = checkout.submit_order([], SHIPPING, 'yape')

    assert not result['ok']
    assert result['step'] == 'failure'
    assert result['field'] == 'cart'
    assert store.select('orders') == []
    assert store.select('users') == []


@pytest.mark.parametrize('field, message', [
    ('full_name', 'Por favor, ingresa tu nombre completo'),
    ('address', 'Por favor, ingresa tu dirección'),
    ('phone', 'Por favor, ingresa tu número de teléfono'),
])
def test_missing_shipping_field(checkout, store, field, message):
    product = add_product(store)
    shipping = dict(SHIPPING, **{field: '   '})

    result = checkout.submit_order([cart_line(product)], shipping, 'yape')

    assert not result['ok']
    assert result['field'] == field
    assert result['error'] == message
    assert store.select('users') == []


def test_quantity_over_limit_is_rejected(checkout, store):
    product = add_product(store, stock=5000)

    result = checkout.submit_order([cart_line(product, 1001)], SHIPPING, 'yape')

    assert not result['ok']
    assert store.select('orders') == []


def test_disabled_payment_method_is_rejected(checkout, store):
    product = add_product(store)

    # card viene deshabilitado por defecto
    result = checkout.submit_order([cart_line(product)], SHIPPING, 'card')

    assert not result['ok']
    assert result['field'] == 'payment_method'
    assert store.select('orders') == []


def test_unknown_payment_method_is_rejected(checkout, store):
    product = add_product(store)
    result = checkout.submit_order([cart_line(product)], SHIPPING, 'bitcoin')
    assert result['error'] == 'Selecciona un método de pago válido'


def test_guest_rejected_by_access_policy(tmp_path):
    container = AppContainer(_config(tmp_path, ALLOW_GUEST_CHECKOUT=False))
    store = container.data_store
    product = add_product(store, stock=3)

    result = container.checkout_service.submit_order([cart_line(product)], SHIPPING, 'yape')

    assert not result['ok']
    assert result['error'] == AUTH_REQUIRED_MESSAGE
    assert result['code'] == 'authentication_required'
    assert store.select('orders') == []
    assert store.select('users') == []
    assert store.get('products', product['id'])['stock'] == 3


def test_registered_user_checkout_updates_profile(checkout, store):
    user = add_user(store, 'cliente@correo.pe')
    product = add_product(store)

    result = checkout.submit_order(
        [cart_line(product)], SHIPPING, 'transfer',
        current_user={'id': user['id'], 'email': user['email']},
    )

    assert result['ok']
    assert store.get('orders', result['order_id'])['user_id'] == user['id']
    profile = store.get('users', user['id'])
    assert profile['phone'] == '987111222'
    assert profile['full_name'] == 'Ana Quispe'
    assert _guests(store) == []


def test_print_only_cart_is_rejected_and_guest_removed(checkout, store):
    print_item = {'id': 'print-1', 'type': 'print', 'name': 'Afiches', 'price': 5.0, 'quantity': 1}

    result = checkout.submit_order([print_item], SHIPPING, 'yape')

    assert not result['ok']
    assert result['error'] == NO_PRODUCTS_MESSAGE
    assert store.select('orders') == []
    assert _guests(store) == []


def test_print_items_are_dropped_from_mixed_cart(checkout, store):
    product = add_product(store, price=30.0)
    print_item = {'id': 'print-1', 'type': 'print', 'name': 'Afiches', 'price': 5.0, 'quantity': 4}

    result = checkout.submit_order([cart_line(product), print_item], SHIPPING, 'yape')

    assert result['ok']
    assert result['subtotal'] == 50.0
    assert result['total'] == 65.0
    assert [i['id'] for i in result['dropped_print_items']] == ['print-1']
    items = store.select('order_items', {'order_id': result['order_id']})
    assert len(items) == 1
    assert items[0]['product_id'] == product['id']


def test_print_items_count_towards_free_shipping(checkout, store):
    product = add_product(store, price=90.0)
    print_item = {'id': 'print-1', 'type': 'print', 'name': 'Volantes', 'price': 20.0, 'quantity': 1}

    result = checkout.submit_order([cart_line(product), print_item], SHIPPING, 'yape')

    assert result['shipping'] == 0.0
    assert result['total'] == 110.0
    assert store.get('orders', result['order_id'])['total_amount'] == 110.0


def test_insufficient_stock_creates_nothing(checkout, store):
    scarce = add_product(store, name='Taza mágica', stock=1)
    plenty = add_product(store, name='Llavero', stock=50)

    result = checkout.submit_order([cart_line(plenty, 3), cart_line(scarce, 2)], SHIPPING, 'yape')

    assert not result['ok']
    assert result['code'] == 'insufficient_stock'
    assert result['error'].startswith('Stock insuficiente:')
    assert 'Taza mágica: Stock disponible (1) es menor a la cantidad solicitada (2)' in result['errors']
    assert store.select('orders') == []
    assert store.select('order_items') == []
    assert _guests(store) == []
    assert store.get('products', plenty['id'])['stock'] == 50
    assert store.get('products', scarce['id'])['stock'] == 1


def test_stock_check_sums_duplicate_lines(checkout, store):
    product = add_product(store, stock=5)

    result = checkout.submit_order([cart_line(product, 3), cart_line(product, 3)], SHIPPING, 'yape')

    assert not result['ok']
    assert len(result['errors']) == 1
    assert '(6)' in result['errors'][0]


def test_inactive_product_is_rejected(checkout, store):
    product = add_product(store, is_active=False)

    result = checkout.submit_order([cart_line(product)], SHIPPING, 'yape')

    assert not result['ok']
    assert 'ya no está disponible' in result['errors'][0]


def test_backend_failure_runs_compensation(checkout, store, monkeypatch):
    product = add_product(store, stock=5)
    original_insert = store.insert

    def failing_insert(table, row):
        if table == 'order_items':
            raise DataStoreError('disco lleno', table=table)
        return original_insert(table, row)

    monkeypatch.setattr(store, 'insert', failing_insert)

    result = checkout.submit_order([cart_line(product)], SHIPPING, 'yape')

    assert not result['ok']
    assert result['error'] == GENERIC_ERROR_MESSAGE
    assert result['code'] == 'backend_error'
    assert store.select('orders') == []
    assert store.select('order_items') == []
    assert _guests(store) == []
    assert store.get('products', product['id'])['stock'] == 5


def test_oversell_is_reported_as_warning(checkout, store, monkeypatch):
    product = add_product(store, stock=5)

    # Otro checkout consumió el stock después de la verificación
    monkeypatch.setattr(store, 'decrement_stock', lambda product_id, qty: (1, 0))

    result = checkout.submit_order([cart_line(product, 3)], SHIPPING, 'yape')

    assert result['ok']
    assert result['warnings'][0] == STOCK_WARNING_MESSAGE
    assert any('solo quedaban 1' in w for w in result['warnings'])
    assert store.get('orders', result['order_id']) is not None
    stock_logs = store.select('audit_logs', {'type': 'STOCK'})
    assert any('solo quedaban 1' in log['message'] for log in stock_logs)


def test_decrement_failure_keeps_order(checkout, store, monkeypatch):
    product = add_product(store, stock=5)

    def broken_decrement(product_id, qty):
        raise DataStoreError('timeout', table='products')

    monkeypatch.setattr(store, 'decrement_stock', broken_decrement)

    result = checkout.submit_order([cart_line(product)], SHIPPING, 'yape')

    assert result['ok']
    assert STOCK_WARNING_MESSAGE in result['warnings']
    assert len(store.select('orders')) == 1


def test_order_created_is_audited(checkout, store):
    product = add_product(store)
    result = checkout.submit_order([cart_line(product)], SHIPPING, 'yape')

    logs = store.select('audit_logs', {'type': 'PEDIDO'})
    assert any(log['related_id'] == result['order_id'] for log in logs)


def test_concurrent_checkouts_never_oversell_silently(tmp_path):
    container = AppContainer(_config(tmp_path))
    store = container.data_store
    product = add_product(store, stock=3)
    results = []

    def buy():
        results.append(container.checkout_service.submit_order([cart_line(product, 1)], SHIPPING, 'yape'))

    threads = [threading.Thread(target=buy) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get('products', product['id'])['stock'] == 0
    confirmed = [r for r in results if r['ok']]
    clean = [r for r in confirmed if STOCK_WARNING_MESSAGE not in r['warnings']]
    # Solo 3 pedidos pueden descontar stock sin advertencia
    assert len(clean) <= 3
    assert len(confirmed) == len(store.select('orders'))


def test_compensation_log_runs_in_reverse():
    calls = []
    log = CompensationLog()
    log.record('primero', lambda: calls.append(1))
    log.record('segundo', lambda: calls.append(2))

    assert log.run() == []
    assert calls == [2, 1]
    assert len(log) == 0


def test_compensation_log_continues_after_failure():
    calls = []

    def boom():
        raise DataStoreError('falló')

    log = CompensationLog()
    log.record('primero', lambda: calls.append(1))
    log.record('roto', boom)

    assert log.run() == ['roto']
    assert calls == [1]


def test_compensation_log_discard():
    calls = []
    log = CompensationLog()
    log.record('x', lambda: calls.append(1))
    log.discard()
    assert log.run() == []
    assert calls == []
