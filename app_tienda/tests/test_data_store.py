import threading

import pytest

from app_tienda.repositories import JsonDataStore, LocalObjectStore
from app_tienda.repositories.exceptions import (
    DataStoreError,
    PolicyViolationError,
    RecordNotFoundError,
    StorageError,
)


@pytest.fixture
def data_store(tmp_path):
    return JsonDataStore(str(tmp_path / 'data'))


@pytest.fixture
def object_store(tmp_path):
    return LocalObjectStore(str(tmp_path / 'storage'), '/storage')


def test_insert_assigns_id_and_timestamps(data_store):
    row = data_store.insert('products', {'name': 'Mouse', 'price': 25, 'stock': 3})
    assert len(row['id']) == 36
    assert row['created_at']
    assert data_store.get('products', row['id'])['name'] == 'Mouse'


def test_select_filters_order_and_limit(data_store):
    for i, status in enumerate(['pending', 'completed', 'pending']):
        data_store.insert('orders', {'status': status, 'total_amount': i, 'created_at': f'2024-01-0{i + 1}'})

    pending = data_store.select('orders', {'status': 'pending'}, order_by='created_at', descending=True)
    assert [o['total_amount'] for o in pending] == [2, 0]
    assert len(data_store.select('orders', limit=1)) == 1


def test_select_puts_missing_sort_values_last(data_store):
    data_store.insert('products', {'name': 'b', 'price': None})
    data_store.insert('products', {'name': 'a', 'price': 5})
    rows = data_store.select('products', order_by='price')
    assert rows[-1]['name'] == 'b'


def test_unknown_table(data_store):
    with pytest.raises(DataStoreError):
        data_store.select('clientes')


def test_unique_email(data_store):
    data_store.insert('users', {'email': 'a@b.pe'})
    with pytest.raises(DataStoreError):
        data_store.insert('users', {'email': 'a@b.pe'})
    # Varios invitados sin email no chocan
    data_store.insert('users', {'email': None, 'kind': 'guest'})
    data_store.insert('users', {'email': None, 'kind': 'guest'})


def test_update_and_delete_require_filters(data_store):
    with pytest.raises(DataStoreError):
        data_store.update('products', {}, {'stock': 1})
    with pytest.raises(DataStoreError):
        data_store.delete('products', {})


def test_update_returns_changed_rows(data_store):
    row = data_store.insert('products', {'name': 'Taza', 'stock': 1})
    updated = data_store.update('products', {'id': row['id']}, {'stock': 9, 'id': 'otro'})
    assert updated[0]['stock'] == 9
    assert updated[0]['id'] == row['id']
    assert data_store.update('products', {'id': 'no-existe'}, {'stock': 1}) == []


def test_upsert_by_conflict_key(data_store):
    data_store.upsert('settings', {'key': 'shipping', 'value': {'shippingCost': 10}}, conflict_key='key')
    data_store.upsert('settings', {'key': 'shipping', 'value': {'shippingCost': 12}}, conflict_key='key')
    rows = data_store.select('settings')
    assert len(rows) == 1
    assert rows[0]['value'] == {'shippingCost': 12}


def test_insert_policy(data_store):
    data_store.set_insert_policy('users', lambda row: row.get('kind') != 'guest')
    with pytest.raises(PolicyViolationError):
        data_store.insert('users', {'kind': 'guest'})
    data_store.insert('users', {'kind': 'registered', 'email': 'x@y.pe'})

    data_store.set_insert_policy('users', None)
    data_store.insert('users', {'kind': 'guest'})


def test_prune_keeps_newest(data_store):
    for day in range(1, 6):
        data_store.insert('audit_logs', {'message': str(day), 'created_at': f'2024-01-0{day}'})
    assert data_store.prune('audit_logs', 2) == 3
    assert sorted(r['message'] for r in data_store.select('audit_logs')) == ['4', '5']


def test_decrement_stock_floors_at_zero(data_store):
    row = data_store.insert('products', {'name': 'Gorra', 'stock': 2})
    assert data_store.decrement_stock(row['id'], 5) == (2, 0)
    assert data_store.get('products', row['id'])['stock'] == 0


def test_decrement_stock_errors(data_store):
    with pytest.raises(RecordNotFoundError):
        data_store.decrement_stock('no-existe', 1)
    row = data_store.insert('products', {'name': 'Gorra', 'stock': 2})
    with pytest.raises(DataStoreError):
        data_store.decrement_stock(row['id'], -1)


def test_decrement_stock_is_atomic(data_store):
    row = data_store.insert('products', {'name': 'Polo', 'stock': 5})
    results = []

    def take():
        results.append(data_store.decrement_stock(row['id'], 1))

    threads = [threading.Thread(target=take) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert data_store.get('products', row['id'])['stock'] == 0
    assert sum(old - new for old, new in results) == 5


def test_corrupt_table_raises(data_store, tmp_path):
    (tmp_path / 'data' / 'orders.json').write_text('{no es json', encoding='utf-8')
    with pytest.raises(DataStoreError):
        data_store.select('orders')


def test_object_store_upload_and_url(object_store):
    object_store.upload('products', 'print-files/1-abc.pdf', b'%PDF')
    url = object_store.get_public_url('products', 'print-files/1-abc.pdf')
    assert url == '/storage/products/print-files/1-abc.pdf'
    assert object_store.exists('products', 'print-files/1-abc.pdf')
    assert object_store.path_from_public_url('products', url) == 'print-files/1-abc.pdf'


def test_object_store_never_overwrites(object_store):
    object_store.upload('products', 'a.png', b'1')
    with pytest.raises(StorageError):
        object_store.upload('products', 'a.png', b'2')


def test_object_store_rejects_path_traversal(object_store):
    with pytest.raises(StorageError):
        object_store.upload('products', '../../fuera.txt', b'x')


def test_object_store_remove_ignores_missing(object_store):
    object_store.upload('products', 'a.png', b'1')
    assert object_store.remove('products', ['a.png', 'b.png']) == ['a.png']
    assert not object_store.exists('products', 'a.png')


def test_path_from_foreign_url(object_store):
    assert object_store.path_from_public_url('products', 'https://cdn.otro.com/img.png') is None
    assert object_store.path_from_public_url('products', 'https://cdn.otro.com/products/a.png') is None
    assert object_store.path_from_public_url('products', '/otro/products/a.png') is None
    assert object_store.path_from_public_url('products', '') is None
