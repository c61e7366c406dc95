# ==============================================================================
# PROFILING INTERNO
# ==============================================================================
# Mide rendimiento de rutas y funciones sin afectar la experiencia del usuario.
# Escribe logs legibles en logs/ para análisis humano:
#   performance.log      - todas las rutas
#   slow_routes.log      - rutas sobre el umbral
#   slow_functions.log   - funciones decoradas sobre el umbral
#
# ACTIVAR/DESACTIVAR: PROFILING_ENABLED en la configuración de la app
# ==============================================================================

import logging
import os
import threading
import time
from collections import defaultdict
from functools import wraps
from typing import Any, Dict, Optional

from flask import Flask, g, request, session

# ═══════════════════════════════════════════════════════════════════════════
# CONFIGURACIÓN
# ═══════════════════════════════════════════════════════════════════════════

# Umbrales de tiempo (en milisegundos)
THRESHOLD_WARNING = 300
THRESHOLD_CRITICAL = 700

PERFORMANCE_LOGGER = 'app_tienda.performance'
SLOW_ROUTES_LOGGER = 'app_tienda.performance.slow_routes'
SLOW_FUNCTIONS_LOGGER = 'app_tienda.performance.slow_functions'

# Mapeo de rutas a nombres legibles
ROUTE_NAMES = {
    # Tienda
    'GET /api/products': 'Ver catálogo',
    'GET /api/products/<product_id>': 'Ver producto',
    'GET /api/categories': 'Ver categorías',
    'GET /api/settings/public': 'Ver configuración pública',

    # Carrito
    'GET /api/cart': 'Ver carrito',
    'POST /api/cart/add': 'Agregar al carrito',
    'POST /api/cart/update': 'Cambiar cantidad',
    'POST /api/cart/remove': 'Quitar del carrito',
    'POST /api/cart/clear': 'Vaciar carrito',

    # Checkout
    'POST /api/checkout/shipping': 'Datos de envío',
    'POST /api/checkout/payment': 'Método de pago',
    'POST /api/checkout': 'Confirmar pedido',

    # Impresión
    'POST /api/print/quote': 'Cotizar impresión',
    'POST /api/print/jobs': 'Enviar trabajo de impresión',

    # Autenticación
    'POST /api/auth/signup': 'Registrarse',
    'POST /api/auth/login': 'Iniciar sesión',
    'POST /api/auth/logout': 'Cerrar sesión',

    # Panel
    'GET /api/admin/dashboard': 'Ver panel principal',
    'GET /api/admin/orders': 'Ver pedidos',
    'POST /api/admin/orders/<order_id>/status': 'Cambiar estado de pedido',
    'DELETE /api/admin/orders/<order_id>': 'Eliminar pedido',
    'GET /api/admin/print-jobs': 'Ver trabajos de impresión',
    'POST /api/admin/products': 'Crear producto',
    'PUT /api/admin/products/<product_id>': 'Editar producto',
    'DELETE /api/admin/products/<product_id>': 'Eliminar producto',
    'GET /api/admin/users': 'Ver usuarios',
    'POST /api/admin/settings': 'Guardar configuración',
}


# ═══════════════════════════════════════════════════════════════════════════
# ESTADÍSTICAS DE FUNCIONES (en memoria)
# ═══════════════════════════════════════════════════════════════════════════

# {nombre_funcion: {calls, total_time, max_time}}
_function_stats = defaultdict(lambda: {'calls': 0, 'total_time': 0.0, 'max_time': 0.0})
_stats_lock = threading.Lock()

_perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
_slow_routes_logger = logging.getLogger(SLOW_ROUTES_LOGGER)
_slow_functions_logger = logging.getLogger(SLOW_FUNCTIONS_LOGGER)


def _attach_file_handler(logger: logging.Logger, path: str) -> None:
    """Deja un solo FileHandler en el logger, apuntando a path."""
    path = os.path.abspath(path)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            if handler.baseFilename == path:
                return
            logger.removeHandler(handler)
            handler.close()
    handler = logging.FileHandler(path, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s %(message)s', '%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def _get_route_name(method: str, path: str, rule: Optional[str] = None) -> str:
    """Nombre legible de una ruta (si no está mapeada, la ruta raw)."""
    for key in (f'{method} {path}', f'{method} {rule}' if rule else None):
        if key and key in ROUTE_NAMES:
            return ROUTE_NAMES[key]
    return f'{method} {path}'


# ═══════════════════════════════════════════════════════════════════════════
# 1️⃣ PROFILING DE RUTAS
# ═══════════════════════════════════════════════════════════════════════════

def log_route_performance(method, path, rule, time_ms, user=None):
    action_name = _get_route_name(method, path, rule)
    _perf_logger.info(
        '[PERFORMANCE] Acción: %s | Usuario: %s | Ruta: %s %s | Tiempo: %.0f ms',
        action_name, user or 'anónimo', method, path, time_ms,
    )


def log_slow_route(method, path, rule, time_ms, user=None, level='WARNING'):
    """
    Registra una ruta lenta.

    Args:
        level: 'WARNING' (>300ms) o 'CRITICAL' (>700ms)
    """
    action_name = _get_route_name(method, path, rule)
    severity = 'LENTA' if level == 'WARNING' else 'MUY LENTA'
    threshold = THRESHOLD_WARNING if level == 'WARNING' else THRESHOLD_CRITICAL
    _slow_routes_logger.log(
        logging.WARNING if level == 'WARNING' else logging.CRITICAL,
        '[%s] Ruta %s: %s | Usuario: %s | Detalle: %s %s | Tiempo: %.0f ms (umbral: %d ms)',
        level, severity, action_name, user or 'anónimo', method, path, time_ms, threshold,
    )


# ═══════════════════════════════════════════════════════════════════════════
# 2️⃣ HOOKS PARA FLASK
# ═══════════════════════════════════════════════════════════════════════════

def init_profiling(app: Flask, logs_dir: str) -> None:
    """
    Inicializa el profiling en una app Flask.
    Registra hooks before_request y after_request.

    Uso:
        init_profiling(app, os.path.join(base, 'logs'))
    """
    if not app.config.get('PROFILING_ENABLED', True):
        return

    os.makedirs(logs_dir, exist_ok=True)
    _attach_file_handler(_perf_logger, os.path.join(logs_dir, 'performance.log'))
    _attach_file_handler(_slow_routes_logger, os.path.join(logs_dir, 'slow_routes.log'))
    _attach_file_handler(_slow_functions_logger, os.path.join(logs_dir, 'slow_functions.log'))

    @app.before_request
    def _start_timer():
        g.start_time = time.perf_counter()

    @app.after_request
    def _log_request(response):
        if not hasattr(g, 'start_time'):
            return response

        elapsed = (time.perf_counter() - g.start_time) * 1000
        path = request.path
        if path.startswith('/static') or path.startswith('/storage'):
            return response

        method = request.method
        rule = str(request.url_rule) if request.url_rule else path
        user = session.get('user_email')

        log_route_performance(method, path, rule, elapsed, user)
        if elapsed >= THRESHOLD_CRITICAL:
            log_slow_route(method, path, rule, elapsed, user, 'CRITICAL')
        elif elapsed >= THRESHOLD_WARNING:
            log_slow_route(method, path, rule, elapsed, user, 'WARNING')
        return response


# ═══════════════════════════════════════════════════════════════════════════
# 3️⃣ DECORADOR PARA FUNCIONES CLAVE
# ═══════════════════════════════════════════════════════════════════════════

def profile_function(func=None, name=None):
    """
    Decorador para medir rendimiento de funciones críticas.

    Uso:
        @profile_function
        def mi_funcion():
            ...

        @profile_function(name="Confirmar pedido")
        def submit_order(...):
            ...

    Registra cantidad de llamadas, tiempo promedio y tiempo máximo.
    """
    def decorator(fn):
        func_name = name or fn.__name__

        @wraps(fn)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                with _stats_lock:
                    stats = _function_stats[func_name]
                    stats['calls'] += 1
                    stats['total_time'] += elapsed_ms
                    if elapsed_ms > stats['max_time']:
                        stats['max_time'] = elapsed_ms

                if elapsed_ms >= THRESHOLD_WARNING:
                    severity = 'CRÍTICO' if elapsed_ms >= THRESHOLD_CRITICAL else 'LENTO'
                    _slow_functions_logger.warning(
                        '[%s] Función: %s | Tiempo: %.0f ms', severity, func_name, elapsed_ms
                    )

        return wrapper

    # Permitir uso sin paréntesis: @profile_function
    if func is not None:
        return decorator(func)
    return decorator


# ═══════════════════════════════════════════════════════════════════════════
# 4️⃣ REPORTE DE ESTADÍSTICAS
# ═══════════════════════════════════════════════════════════════════════════

def get_function_stats() -> Dict[str, Dict[str, Any]]:
    """
    Estadísticas de las funciones perfiladas.

    Returns:
        {nombre: {calls, avg_time, max_time}}
    """
    with _stats_lock:
        result = {}
        for func_name, stats in _function_stats.items():
            calls = stats['calls']
            avg = stats['total_time'] / calls if calls > 0 else 0
            result[func_name] = {
                'calls': calls,
                'avg_time': round(avg, 2),
                'max_time': round(stats['max_time'], 2),
            }
        return result


def reset_stats() -> None:
    """Reinicia todas las estadísticas (útil para testing)."""
    with _stats_lock:
        _function_stats.clear()


__all__ = [
    'THRESHOLD_WARNING',
    'THRESHOLD_CRITICAL',
    'init_profiling',
    'profile_function',
    'get_function_stats',
    'reset_stats',
]
