from datetime import datetime

from app_tienda.services.stats_service import StatsService

from conftest import add_product


NOW = datetime(2024, 6, 30, 12, 0, 0)


def _order(store, status, total, created_at):
    return store.insert('orders', {
        'status': status,
        'total_amount': total,
        'shipping_address': 'Lima',
        'payment_method': 'yape',
        'created_at': created_at,
    })


def test_dashboard_stats(store):
    taza = add_product(store, name='Taza', stock=3)
    polo = add_product(store, name='Polo', stock=40)
    add_product(store, name='Gorra', stock=0, is_active=False)

    recent = _order(store, 'completed', 100.0, '2024-06-28T10:00:00')
    _order(store, 'completed', 50.0, '2024-06-10T10:00:00')
    _order(store, 'completed', 25.0, '2024-01-01T10:00:00')
    _order(store, 'pending', 999.0, '2024-06-29T10:00:00')
    _order(store, 'processing', 10.0, '2024-06-29T11:00:00')

    store.insert('order_items', {'order_id': recent['id'], 'product_id': polo['id'], 'quantity': 5, 'unit_price': 20})
    store.insert('order_items', {'order_id': recent['id'], 'product_id': taza['id'], 'quantity': 2, 'unit_price': 20})
    store.insert('order_items', {'order_id': recent['id'], 'product_id': 'borrado', 'quantity': 50, 'unit_price': 1})
    store.insert('print_jobs', {'status': 'pending'})
    store.insert('print_jobs', {'status': 'delivered'})

    stats = StatsService(store, clock=lambda: NOW).get_dashboard_stats()

    orders = stats['orders']
    assert orders['total'] == 5
    assert orders['pending'] == 1
    assert orders['processing'] == 1
    assert orders['completed'] == 3
    assert orders['by_status']['cancelled'] == 0
    # Solo los pedidos completados cuentan como ingresos
    assert orders['revenue'] == 175.0
    assert orders['revenue_7_days'] == 100.0
    assert orders['revenue_30_days'] == 150.0
    assert orders['recent'][0]['status'] == 'processing'
    assert len(orders['recent']) == 5

    assert stats['products'] == {'total': 3, 'active': 2, 'low_stock': 2}
    assert stats['print_jobs'] == {'total': 2, 'pending': 1}
    assert stats['top_products'] == [
        {'id': polo['id'], 'name': 'Polo', 'sales': 5},
        {'id': taza['id'], 'name': 'Taza', 'sales': 2},
    ]


def test_dashboard_stats_empty_store(store):
    stats = StatsService(store).get_dashboard_stats()
    assert stats['orders']['total'] == 0
    assert stats['orders']['revenue'] == 0.0
    assert stats['top_products'] == []
