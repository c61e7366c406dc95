# ==============================================================================
# APLICACIÓN FLASK - API JSON de la tienda e imprenta
# ==============================================================================
# Las rutas solo orquestan request -> service -> response.
# Toda la lógica de negocio vive en services/.
#
# Respuestas: {'ok': bool, ...}; en error 'error' (mensaje) y opcionalmente
# 'errors' (lista). Las rutas que modifican datos exigen token CSRF.
# ==============================================================================

import logging
import os
import uuid
from functools import wraps
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

from flask import Blueprint, Flask, abort, current_app, request, send_from_directory, session
from werkzeug.exceptions import HTTPException
from werkzeug.utils import safe_join

from app_tienda import config as app_config
from app_tienda.app_container import AppContainer, get_container
from app_tienda.models.entities import to_bool
from app_tienda.performance_logger import get_function_stats, init_profiling

logger = logging.getLogger(__name__)

bp = Blueprint('tienda', __name__)

INTERNAL_ERROR_MESSAGE = 'Error interno del servidor. Por favor, intenta nuevamente.'


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _container() -> AppContainer:
    return get_container()


def _payload() -> Dict[str, Any]:
    """Datos del request: JSON o formulario."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _respond(result: Dict[str, Any], error_status: int = 400):
    """Traduce un resultado de servicio a respuesta HTTP."""
    if result.get('ok'):
        return result, 200
    return result, error_status


def _current_user():
    return _container().auth_service.get_current_user()


def _current_email():
    return session.get('user_email')


# ═══════════════════════════════════════════════════════════════════════════════
# DECORADORES DE SEGURIDAD
# ═══════════════════════════════════════════════════════════════════════════════

def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if _current_user() is None:
            return {'ok': False, 'error': 'Debes iniciar sesión'}, 401
        return f(*args, **kwargs)
    return wrapper


def admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        user = _current_user()
        if user is None:
            return {'ok': False, 'error': 'Debes iniciar sesión'}, 401
        if not _container().auth_service.is_admin(user):
            return {'ok': False, 'error': 'Permiso denegado'}, 403
        return f(*args, **kwargs)
    return wrapper


def generate_csrf_token() -> str:
    if 'csrf_token' not in session:
        session['csrf_token'] = uuid.uuid4().hex
    return session['csrf_token']


def verify_csrf(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if request.method in ('POST', 'PUT', 'PATCH', 'DELETE'):
            token = session.get('csrf_token')
            form_token = (
                request.form.get('csrf_token') or
                request.headers.get('X-CSRF-Token') or
                request.headers.get('X-CSRFToken')
            )
            if not form_token and request.is_json:
                json_data = request.get_json(silent=True) or {}
                form_token = json_data.get('csrf_token')

            if not token or not form_token or token != form_token:
                return {'ok': False, 'error': 'CSRF token inválido'}, 403
        return f(*args, **kwargs)
    return wrapper


@bp.after_app_request
def set_security_headers(response):
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
    response.headers['Permissions-Policy'] = 'geolocation=(), microphone=()'
    if request.is_secure:
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


@bp.app_errorhandler(HTTPException)
def handle_http_error(e):
    return {'ok': False, 'error': e.description}, e.code


@bp.app_errorhandler(Exception)
def handle_unexpected_error(e):
    logger.exception('Error no controlado en %s %s', request.method, request.path)
    return {'ok': False, 'error': INTERNAL_ERROR_MESSAGE}, 500


# ═══════════════════════════════════════════════════════════════════════════════
# AUTENTICACIÓN
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/csrf', methods=['GET'])
def api_csrf():
    return {'ok': True, 'csrf_token': generate_csrf_token()}


@bp.route('/api/auth/signup', methods=['POST'])
@verify_csrf
def api_signup():
    data = _payload()
    result = _container().auth_service.sign_up(
        data.get('email'), data.get('password'), data.get('full_name', '')
    )
    return _respond(result)


@bp.route('/api/auth/login', methods=['POST'])
@verify_csrf
def api_login():
    data = _payload()
    result = _container().auth_service.sign_in(data.get('email'), data.get('password'))
    return _respond(result, 401)


@bp.route('/api/auth/logout', methods=['POST'])
@login_required
@verify_csrf
def api_logout():
    _container().auth_service.sign_out()
    return {'ok': True}


@bp.route('/api/auth/me', methods=['GET'])
def api_me():
    auth = _container().auth_service
    user = auth.get_current_user()
    if user is None:
        return {'ok': True, 'user': None}
    return {'ok': True, 'user': dict(user, is_admin=auth.is_admin(user))}


# ═══════════════════════════════════════════════════════════════════════════════
# TIENDA
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/products', methods=['GET'])
def api_products():
    result = _container().product_service.list_active(
        category=request.args.get('category'), search=request.args.get('search')
    )
    return _respond(result)


@bp.route('/api/products/<product_id>', methods=['GET'])
def api_product(product_id):
    product = _container().product_service.get_product(product_id)
    if not product:
        return {'ok': False, 'error': 'Producto no encontrado'}, 404
    return {'ok': True, 'product': product}


@bp.route('/api/categories', methods=['GET'])
def api_categories():
    return {'ok': True, 'categories': _container().product_service.category_counts()}


@bp.route('/api/settings/public', methods=['GET'])
def api_public_settings():
    return {'ok': True, 'settings': _container().settings_service.public_settings()}


# ═══════════════════════════════════════════════════════════════════════════════
# CARRITO
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/cart', methods=['GET'])
def api_cart():
    result = _container().cart_service.prune_inactive()
    return {'ok': True, 'cart': result['cart'], 'removed': result['removed']}


@bp.route('/api/cart/add', methods=['POST'])
@verify_csrf
def api_cart_add():
    data = _payload()
    result = _container().cart_service.add_item(
        data.get('id'),
        item_type=data.get('type', 'product'),
        quantity=data.get('quantity', 1),
        customization=data.get('customization'),
        print_options=data.get('print_options'),
        name=data.get('name'),
    )
    return _respond(result)


@bp.route('/api/cart/update', methods=['POST'])
@verify_csrf
def api_cart_update():
    data = _payload()
    result = _container().cart_service.update_quantity(
        data.get('id'), data.get('quantity'), data.get('type')
    )
    return _respond(result)


@bp.route('/api/cart/remove', methods=['POST'])
@verify_csrf
def api_cart_remove():
    data = _payload()
    return _respond(_container().cart_service.remove_item(data.get('id'), data.get('type')))


@bp.route('/api/cart/clear', methods=['POST'])
@verify_csrf
def api_cart_clear():
    cart_service = _container().cart_service
    cart_service.clear_cart()
    return {'ok': True, 'cart': cart_service.get_cart()}


# ═══════════════════════════════════════════════════════════════════════════════
# CHECKOUT
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/checkout/shipping', methods=['POST'])
@verify_csrf
def api_checkout_shipping():
    checkout = _container().checkout_session
    if checkout.state().get('step') == 'cart':
        started = checkout.start()
        if not started['ok']:
            return started, 400
    return _respond(checkout.set_shipping(_payload()))


@bp.route('/api/checkout/payment', methods=['POST'])
@verify_csrf
def api_checkout_payment():
    data = _payload()
    return _respond(_container().checkout_session.set_payment_method(data.get('payment_method')))


@bp.route('/api/checkout', methods=['POST'])
@verify_csrf
def api_checkout():
    """
    Confirma el pedido. Acepta opcionalmente 'shipping' y 'payment_method'
    en el cuerpo para completar los pasos en una sola llamada.
    """
    data = _payload()
    checkout = _container().checkout_session

    if data.get('shipping'):
        if checkout.state().get('step') == 'cart':
            started = checkout.start()
            if not started['ok']:
                return started, 400
        shipping = checkout.set_shipping(data['shipping'])
        if not shipping['ok']:
            return shipping, 400
    if data.get('payment_method'):
        payment = checkout.set_payment_method(data['payment_method'])
        if not payment['ok']:
            return payment, 400

    result = checkout.submit(_current_user())
    if result['ok']:
        return result, 200
    status = {'authentication_required': 401, 'backend_error': 500}.get(result.get('code'), 400)
    return result, status


# ═══════════════════════════════════════════════════════════════════════════════
# IMPRESIÓN
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/print/quote', methods=['POST'])
@verify_csrf
def api_print_quote():
    data = _payload()
    return _respond(_container().print_job_service.quote(data))


@bp.route('/api/print/jobs', methods=['POST'])
@verify_csrf
def api_print_submit():
    data = request.form.to_dict()
    steps = []
    result = _container().print_job_service.submit(
        request.files.get('file'),
        data,
        {'name': data.get('name'), 'email': data.get('email'), 'phone': data.get('phone')},
        current_user=_current_user(),
        on_progress=steps.append,
    )
    result['progress'] = steps
    return _respond(result, 500 if result.get('step') in ('uploading', 'saving') else 400)


# ═══════════════════════════════════════════════════════════════════════════════
# ARCHIVOS PÚBLICOS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/storage/<bucket>/<path:path>', methods=['GET'])
def storage_file(bucket, path):
    bucket_dir = safe_join(current_app.config['STORAGE_DIR'], bucket)
    if not bucket_dir:
        abort(404)
    return send_from_directory(bucket_dir, path)


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: DASHBOARD Y AUDITORÍA
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/dashboard', methods=['GET'])
@admin_required
def api_admin_dashboard():
    return {
        'ok': True,
        'stats': _container().stats_service.get_dashboard_stats(),
        'performance': get_function_stats(),
    }


@bp.route('/api/admin/audit', methods=['GET'])
@admin_required
def api_admin_audit():
    audit = _container().audit_service
    log_type = request.args.get('type')
    limit = request.args.get('limit', 100, type=int)
    logs = audit.get_logs_by_type(log_type, limit) if log_type else audit.get_recent_logs(limit)
    return {'ok': True, 'logs': logs}


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: PEDIDOS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/orders', methods=['GET'])
@admin_required
def api_admin_orders():
    result = _container().order_service.list_orders(
        status=request.args.get('status'),
        search=request.args.get('search'),
        limit=request.args.get('limit'),
    )
    return _respond(result)


@bp.route('/api/admin/orders/<order_id>', methods=['GET'])
@admin_required
def api_admin_order(order_id):
    order = _container().order_service.get_order(order_id)
    if not order:
        return {'ok': False, 'error': 'Pedido no encontrado'}, 404
    return {'ok': True, 'order': order}


@bp.route('/api/admin/orders/<order_id>/status', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_order_status(order_id):
    data = _payload()
    result = _container().order_service.update_status(order_id, data.get('status'), _current_email())
    return _respond(result)


@bp.route('/api/admin/orders/<order_id>', methods=['DELETE'])
@admin_required
@verify_csrf
def api_admin_order_delete(order_id):
    return _respond(_container().order_service.delete_order(order_id, _current_email()))


@bp.route('/api/admin/orders/<order_id>/items/<item_id>', methods=['DELETE'])
@admin_required
@verify_csrf
def api_admin_order_item_delete(order_id, item_id):
    result = _container().order_service.delete_order_item(item_id, order_id, _current_email())
    return _respond(result)


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: TRABAJOS DE IMPRESIÓN
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/print-jobs', methods=['GET'])
@admin_required
def api_admin_print_jobs():
    result = _container().print_job_service.list_jobs(
        status=request.args.get('status'),
        search=request.args.get('search'),
        limit=request.args.get('limit'),
    )
    return _respond(result)


@bp.route('/api/admin/print-jobs/<job_id>/status', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_print_job_status(job_id):
    data = _payload()
    result = _container().print_job_service.update_status(job_id, data.get('status'), _current_email())
    return _respond(result)


@bp.route('/api/admin/print-jobs/<job_id>', methods=['DELETE'])
@admin_required
@verify_csrf
def api_admin_print_job_delete(job_id):
    return _respond(_container().print_job_service.delete_job(job_id, _current_email()))


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: PRODUCTOS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/products', methods=['GET'])
@admin_required
def api_admin_products():
    active = request.args.get('active')
    result = _container().product_service.list_all(
        category=request.args.get('category'),
        search=request.args.get('search'),
        active=to_bool(active) if active not in (None, '') else None,
        limit=request.args.get('limit'),
    )
    return _respond(result)


@bp.route('/api/admin/products', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_product_create():
    return _respond(_container().product_service.create_product(_payload(), _current_email()))


@bp.route('/api/admin/products/<product_id>', methods=['PUT'])
@admin_required
@verify_csrf
def api_admin_product_update(product_id):
    data = _payload()
    data.pop('csrf_token', None)
    result = _container().product_service.update_product(product_id, data, _current_email())
    return _respond(result)


@bp.route('/api/admin/products/<product_id>/toggle', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_product_toggle(product_id):
    return _respond(_container().product_service.toggle_active(product_id, _current_email()))


@bp.route('/api/admin/products/<product_id>', methods=['DELETE'])
@admin_required
@verify_csrf
def api_admin_product_delete(product_id):
    return _respond(_container().product_service.delete_product(product_id, _current_email()))


@bp.route('/api/admin/products/image', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_product_image():
    return _respond(_container().product_service.upload_image(request.files.get('file')))


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: USUARIOS
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/users', methods=['GET'])
@admin_required
def api_admin_users():
    result = _container().user_service.list_users(
        role=request.args.get('role'),
        search=request.args.get('search'),
        limit=request.args.get('limit'),
    )
    return _respond(result)


@bp.route('/api/admin/users/<user_id>/admin', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_user_set_admin(user_id):
    data = _payload()
    flag = data.get('is_admin')
    if flag not in (None, ''):
        flag = to_bool(flag)
    result = _container().user_service.set_admin(user_id, flag, _current_user())
    return _respond(result)


@bp.route('/api/admin/users/<user_id>', methods=['PUT'])
@admin_required
@verify_csrf
def api_admin_user_update(user_id):
    data = _payload()
    data.pop('csrf_token', None)
    return _respond(_container().user_service.update_user(user_id, data, _current_user()))


@bp.route('/api/admin/users/<user_id>', methods=['DELETE'])
@admin_required
@verify_csrf
def api_admin_user_delete(user_id):
    return _respond(_container().user_service.delete_user(user_id, _current_user()))


# ═══════════════════════════════════════════════════════════════════════════════
# PANEL: CONFIGURACIÓN
# ═══════════════════════════════════════════════════════════════════════════════

@bp.route('/api/admin/settings', methods=['GET'])
@admin_required
def api_admin_settings():
    return {'ok': True, 'settings': _container().settings_service.get_all()}


@bp.route('/api/admin/settings', methods=['POST'])
@admin_required
@verify_csrf
def api_admin_settings_save():
    """Acepta {'key': ..., 'value': {...}} o {'settings': {clave: {...}}}."""
    data = _payload()
    settings_service = _container().settings_service
    if 'settings' in data:
        result = settings_service.save_all(data['settings'], _current_email())
    else:
        result = settings_service.save(data.get('key'), data.get('value'), _current_email())
    return _respond(result)


# ═══════════════════════════════════════════════════════════════════════════════
# FÁBRICA DE LA APLICACIÓN
# ═══════════════════════════════════════════════════════════════════════════════

def _configure_logging(logs_dir: str) -> None:
    """Log rotativo en logs/app.log para el paquete app_tienda."""
    package_logger = logging.getLogger('app_tienda')
    log_path = os.path.abspath(os.path.join(logs_dir, 'app.log'))
    for handler in list(package_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            if handler.baseFilename == log_path:
                return
            package_logger.removeHandler(handler)
            handler.close()
    os.makedirs(logs_dir, exist_ok=True)
    handler = RotatingFileHandler(log_path, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)


def create_app(config: Dict[str, Any] = None) -> Flask:
    """
    Crea la aplicación Flask.

    Args:
        config: Valores que sobreescriben la configuración del entorno
                (DATA_DIR, STORAGE_DIR, LOGS_DIR, ADMIN_EMAIL, ...)

    Returns:
        App lista para servir
    """
    app = Flask(__name__)
    app.config.update(app_config.default_config())
    if config:
        app.config.update(config)

    _configure_logging(app.config['LOGS_DIR'])
    init_profiling(app, app.config['LOGS_DIR'])

    app.extensions['tienda'] = AppContainer(app.config)
    app.register_blueprint(bp)
    return app


app = create_app()


if __name__ == '__main__':
    # En producción usar WSGI (gunicorn, waitress, etc.)
    print(f"\n{'=' * 50}")
    print(f'  Servidor iniciado en http://{app_config.FLASK_HOST}:{app_config.FLASK_PORT}')
    print(f"{'=' * 50}\n")
    app.run(host=app_config.FLASK_HOST, port=app_config.FLASK_PORT, debug=app_config.FLASK_DEBUG)
