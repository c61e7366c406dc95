# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Toda la lógica de negocio vive aquí. Los servicios dependen de las
# interfaces del Data Store / Object Store, nunca de rutas Flask.
# Las rutas solo orquestan request -> service -> response.
# ==============================================================================

from .audit_service import AuditService
from .settings_service import SettingsService, DEFAULT_SETTINGS
from .user_service import UserService
from .auth_service import AuthService
from .product_service import ProductService
from .cart_service import CartService
from .checkout_service import CheckoutService, CheckoutSession, CompensationLog
from .print_job_service import PrintJobService
from .order_service import OrderService
from .stats_service import StatsService
from . import pricing_service
from . import validators

__all__ = [
    'AuditService',
    'SettingsService',
    'DEFAULT_SETTINGS',
    'UserService',
    'AuthService',
    'ProductService',
    'CartService',
    'CheckoutService',
    'CheckoutSession',
    'CompensationLog',
    'PrintJobService',
    'OrderService',
    'StatsService',
    'pricing_service',
    'validators',
]
