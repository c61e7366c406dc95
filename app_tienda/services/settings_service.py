# ==============================================================================
# SERVICIO DE CONFIGURACIÓN DEL NEGOCIO
# ==============================================================================
# Configuración por clave (company, shipping, payment, receipt) guardada
# en la tabla settings. Se inyecta en quien la necesite; los cambios se
# avisan con subscribe() en lugar de un bus global.
# ==============================================================================

import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from app_tienda.models.entities import PaymentMethod
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.repositories.interfaces import IDataStore

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    'company': {
        'name': 'JuBeTech',
        'ruc': '20123456789',
        'address': 'Av. Principal 123, Lima, Perú',
        'phone': '+51 987 654 321',
        'email': 'ventas@jubetech.com',
        'website': 'https://www.jubetech.com',
    },
    'shipping': {
        'freeShippingThreshold': 100,
        'shippingCost': 15,
        'estimatedDays': 3,
    },
    'payment': {
        'yapeEnabled': True,
        'plinEnabled': True,
        'bankTransferEnabled': True,
        'cardEnabled': False,
        'yapeNumber': '987654321',
        'plinNumber': '987654321',
        'bankAccount': 'CCI: 003-12345678901234567890',
        'bankName': 'Interbank',
    },
    'receipt': {
        'headerText': '¡Gracias por su compra!',
        'footerText': 'Conserve este documento para sus registros.',
        'showIGV': True,
        'receiptPrefix': 'BOL',
    },
}

# Forma esperada de cada clave: campo -> tipo
SETTINGS_SCHEMA: Dict[str, Dict[str, type]] = {
    'company': {
        'name': str, 'ruc': str, 'address': str,
        'phone': str, 'email': str, 'website': str,
    },
    'shipping': {
        'freeShippingThreshold': float, 'shippingCost': float, 'estimatedDays': int,
    },
    'payment': {
        'yapeEnabled': bool, 'plinEnabled': bool,
        'bankTransferEnabled': bool, 'cardEnabled': bool,
        'yapeNumber': str, 'plinNumber': str,
        'bankAccount': str, 'bankName': str,
    },
    'receipt': {
        'headerText': str, 'footerText': str,
        'showIGV': bool, 'receiptPrefix': str,
    },
}

REQUIRED_FIELDS = {
    'company': ('name',),
    'shipping': ('freeShippingThreshold', 'shippingCost'),
}

# Flag de configuración -> método de pago
PAYMENT_FLAGS = {
    'yapeEnabled': PaymentMethod.YAPE.value,
    'plinEnabled': PaymentMethod.PLIN.value,
    'bankTransferEnabled': PaymentMethod.TRANSFER.value,
    'cardEnabled': PaymentMethod.CARD.value,
}

SettingsListener = Callable[[Dict[str, Dict[str, Any]]], None]


def validate_setting(key: str, value: Any, partial: bool = False) -> List[str]:
    """
    Valida la forma de una clave de configuración.

    Con partial=True los campos obligatorios solo se exigen si vienen
    en value (save() completa el resto con los valores actuales).

    Returns:
        Lista de errores (vacía si es válida)
    """
    schema = SETTINGS_SCHEMA.get(key)
    if schema is None:
        return [f'Clave de configuración desconocida: {key}']
    if not isinstance(value, dict):
        return [f'La configuración "{key}" debe ser un objeto']

    errors = []
    for field_name in REQUIRED_FIELDS.get(key, ()):
        if (not partial or field_name in value) and value.get(field_name) in (None, ''):
            errors.append(f'{key}.{field_name} es obligatorio')

    for field_name, field_value in value.items():
        expected = schema.get(field_name)
        if expected is None:
            errors.append(f'Campo desconocido: {key}.{field_name}')
            continue
        if field_value is None:
            continue
        if expected is bool:
            if not isinstance(field_value, bool):
                errors.append(f'{key}.{field_name} debe ser verdadero o falso')
        elif expected in (int, float):
            if isinstance(field_value, bool) or not isinstance(field_value, (int, float)):
                errors.append(f'{key}.{field_name} debe ser numérico')
            elif field_value < 0:
                errors.append(f'{key}.{field_name} no puede ser negativo')
            elif expected is int and int(field_value) != field_value:
                errors.append(f'{key}.{field_name} debe ser entero')
        elif not isinstance(field_value, str):
            errors.append(f'{key}.{field_name} debe ser texto')
    return errors


class SettingsService:
    """
    Configuración del negocio con caché en memoria.

    Uso:
        settings = SettingsService(data_store)
        unsubscribe = settings.subscribe(lambda s: print(s['shipping']))
        settings.save('shipping', {'freeShippingThreshold': 150, 'shippingCost': 10})
        unsubscribe()
    """

    TABLE = 'settings'

    def __init__(self, data_store: IDataStore, audit_service=None):
        self.data_store = data_store
        self.audit_service = audit_service
        self._cache: Optional[Dict[str, Dict[str, Any]]] = None
        self._listeners: List[SettingsListener] = []
        self._lock = threading.RLock()

    # =========================================================================
    # CARGA
    # =========================================================================

    def _load(self) -> Dict[str, Dict[str, Any]]:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        try:
            rows = self.data_store.select(self.TABLE)
        except DataStoreError as e:
            logger.error('No se pudo cargar la configuración, usando valores por defecto: %s', e)
            return settings

        for row in rows:
            key = row.get('key')
            value = row.get('value')
            if key in settings and isinstance(value, dict):
                # Los campos faltantes conservan su valor por defecto
                settings[key].update(value)
        return settings

    def _settings(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if self._cache is None:
                self._cache = self._load()
            return self._cache

    def refresh(self) -> Dict[str, Dict[str, Any]]:
        """Recarga desde el Data Store y avisa a los suscriptores."""
        with self._lock:
            self._cache = self._load()
            snapshot = copy.deepcopy(self._cache)
        self._notify(snapshot)
        return snapshot

    # =========================================================================
    # LECTURA
    # =========================================================================

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._settings())

    def get(self, key: str) -> Dict[str, Any]:
        """Una clave de configuración (copia). Clave desconocida -> {}."""
        return copy.deepcopy(self._settings().get(key, {}))

    def shipping_config(self) -> Dict[str, Any]:
        return self.get('shipping')

    def enabled_payment_methods(self) -> List[str]:
        """Métodos de pago habilitados, en el orden de PaymentMethod."""
        payment = self._settings().get('payment', {})
        enabled = {method for flag, method in PAYMENT_FLAGS.items() if payment.get(flag)}
        return [m.value for m in PaymentMethod if m.value in enabled]

    def public_settings(self) -> Dict[str, Dict[str, Any]]:
        """Configuración visible en la tienda (sin datos internos)."""
        settings = self.get_all()
        return {
            'company': settings['company'],
            'shipping': settings['shipping'],
            'payment': {
                **settings['payment'],
                'enabledMethods': self.enabled_payment_methods(),
            },
            'receipt': settings['receipt'],
        }

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    def save(self, key: str, value: Dict[str, Any], user: Optional[str] = None) -> Dict[str, Any]:
        """
        Guarda una clave de configuración.

        Los campos no enviados conservan su valor actual.

        Returns:
            {'ok': True, 'value': {...}} o {'ok': False, 'error': ..., 'errors': [...]}
        """
        errors = validate_setting(key, value, partial=True)
        if errors:
            return {'ok': False, 'error': errors[0], 'errors': errors}

        with self._lock:
            merged = copy.deepcopy(self._settings()[key])
            merged.update(value)
            try:
                self.data_store.upsert(self.TABLE, {'key': key, 'value': merged}, conflict_key='key')
            except DataStoreError as e:
                logger.error('Error guardando configuración %s: %s', key, e)
                return {'ok': False, 'error': 'No se pudo guardar la configuración', 'errors': []}
            self._cache[key] = merged
            snapshot = copy.deepcopy(self._cache)

        if self.audit_service:
            self.audit_service.log_settings_saved(user, key)
        self._notify(snapshot)
        return {'ok': True, 'value': copy.deepcopy(merged)}

    def save_all(self, settings: Dict[str, Dict[str, Any]], user: Optional[str] = None) -> Dict[str, Any]:
        """Guarda varias claves; valida todas antes de escribir ninguna."""
        if not isinstance(settings, dict) or not settings:
            return {'ok': False, 'error': 'No hay configuración para guardar', 'errors': []}

        errors = []
        for key, value in settings.items():
            errors.extend(validate_setting(key, value, partial=True))
        if errors:
            return {'ok': False, 'error': errors[0], 'errors': errors}

        for key, value in settings.items():
            result = self.save(key, value, user)
            if not result['ok']:
                return result
        return {'ok': True, 'settings': self.get_all()}

    # =========================================================================
    # SUSCRIPCIONES
    # =========================================================================

    def subscribe(self, callback: SettingsListener) -> Callable[[], None]:
        """
        Registra un callback que recibe la configuración completa tras
        cada save/refresh exitoso.

        Returns:
            Función que cancela la suscripción
        """
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception('Error en suscriptor de configuración')
