# ==============================================================================
# CONFIGURACIÓN DE LA APLICACIÓN
# ==============================================================================
# Valores por defecto sobreescribibles con variables de entorno (TIENDA_*).
# La configuración del negocio (envío, pagos, empresa) NO vive aquí:
# está en SettingsService.
# ==============================================================================

import logging
import os
import secrets

logger = logging.getLogger(__name__)

BASE = os.path.dirname(os.path.abspath(__file__))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        logger.warning('Valor inválido para %s, usando %s', name, default)
        return default


# Modo producción: exige SECRET_KEY explícita
PRODUCTION_MODE = _env_bool('TIENDA_PRODUCTION', False)

SECRET_KEY = os.environ.get('TIENDA_SECRET_KEY') or os.environ.get('SECRET_KEY')

DATA_DIR = os.environ.get('TIENDA_DATA_DIR', os.path.join(BASE, 'data'))
STORAGE_DIR = os.environ.get('TIENDA_STORAGE_DIR', os.path.join(BASE, 'storage'))
LOGS_DIR = os.environ.get('TIENDA_LOGS_DIR', os.path.join(BASE, 'logs'))
PUBLIC_STORAGE_URL = os.environ.get('TIENDA_PUBLIC_STORAGE_URL', '/storage')

# Email con acceso de administrador aunque su perfil no tenga el flag
ADMIN_EMAIL = os.environ.get('TIENDA_ADMIN_EMAIL', '')

# Política de acceso: permitir identidades invitadas en el checkout
ALLOW_GUEST_CHECKOUT = _env_bool('TIENDA_ALLOW_GUEST_CHECKOUT', True)

MAX_UPLOAD_MB = _env_int('TIENDA_MAX_UPLOAD_MB', 20)

# Servidor de desarrollo
FLASK_DEBUG = _env_bool('FLASK_DEBUG', False)
FLASK_HOST = os.environ.get('FLASK_HOST', '127.0.0.1')
FLASK_PORT = _env_int('FLASK_PORT', 5000)


def default_config() -> dict:
    """
    Configuración de Flask a partir del entorno.

    Returns:
        Diccionario listo para app.config.update()
    """
    secret = SECRET_KEY
    if not secret:
        if PRODUCTION_MODE:
            logger.warning('TIENDA_SECRET_KEY no está definida en modo producción')
        secret = secrets.token_hex(32)

    return {
        'SECRET_KEY': secret,
        'DATA_DIR': DATA_DIR,
        'STORAGE_DIR': STORAGE_DIR,
        'LOGS_DIR': LOGS_DIR,
        'PUBLIC_STORAGE_URL': PUBLIC_STORAGE_URL,
        'ADMIN_EMAIL': ADMIN_EMAIL,
        'ALLOW_GUEST_CHECKOUT': ALLOW_GUEST_CHECKOUT,
        'MAX_CONTENT_LENGTH': MAX_UPLOAD_MB * 1024 * 1024,
        'PROFILING_ENABLED': True,
        'SESSION_COOKIE_HTTPONLY': True,
        'SESSION_COOKIE_SAMESITE': 'Lax',
        'SESSION_COOKIE_SECURE': PRODUCTION_MODE,
    }
