import logging
from logging.handlers import RotatingFileHandler

from app_tienda.app_container import get_container
from app_tienda.main import create_app
from app_tienda.performance_logger import (
    PERFORMANCE_LOGGER,
    get_function_stats,
    profile_function,
    reset_stats,
)

from conftest import ADMIN_EMAIL, SHIPPING, _config, add_product, add_user, get_csrf, login


def test_profile_function_collects_stats():
    reset_stats()

    @profile_function(name='Sumar')
    def sumar(a, b):
        return a + b

    assert sumar(2, 3) == 5
    sumar(1, 1)

    stats = get_function_stats()['Sumar']
    assert stats['calls'] == 2
    assert stats['max_time'] >= stats['avg_time'] >= 0


def test_dashboard_reports_profiled_functions(client, app):
    reset_stats()
    store = get_container(app).data_store
    add_user(store, ADMIN_EMAIL)
    product = add_product(store)
    headers = {'X-CSRF-Token': get_csrf(client)}
    client.post('/api/cart/add', json={'id': product['id']}, headers=headers)
    client.post('/api/checkout', json={'shipping': SHIPPING, 'payment_method': 'yape'}, headers=headers)

    login(client, ADMIN_EMAIL)
    body = client.get('/api/admin/dashboard').get_json()

    assert body['performance']['Confirmar pedido']['calls'] == 1


def _file_handlers(logger, kind):
    return [h for h in logger.handlers if isinstance(h, kind)]


def test_new_app_moves_log_files(tmp_path):
    create_app(_config(tmp_path / 'a', PROFILING_ENABLED=True))
    create_app(_config(tmp_path / 'b', PROFILING_ENABLED=True))

    app_handlers = _file_handlers(logging.getLogger('app_tienda'), RotatingFileHandler)
    assert len(app_handlers) == 1
    assert app_handlers[0].baseFilename == str(tmp_path / 'b' / 'logs' / 'app.log')

    perf_handlers = _file_handlers(logging.getLogger(PERFORMANCE_LOGGER), logging.FileHandler)
    assert len(perf_handlers) == 1
    assert perf_handlers[0].baseFilename == str(tmp_path / 'b' / 'logs' / 'performance.log')
