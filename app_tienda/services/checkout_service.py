# ==============================================================================
# SERVICIO DE CHECKOUT
# ==============================================================================
# Convierte el carrito en un pedido:
#
#   1. Validar carrito, datos de envío y método de pago
#   2. Resolver identidad (perfil del cliente o identidad invitada)
#   3. Separar productos de ítems de impresión (no generan líneas,
#      pero cuentan en el total)
#   4. Verificar stock de TODOS los productos (error agregado)
#   5. Crear pedido y líneas
#   6. Descontar stock (atómico, piso 0). Los fallos son advertencias.
#
# Cada escritura confirmada registra su compensación; si un paso
# posterior falla, las compensaciones se ejecutan en orden inverso.
# ==============================================================================

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from flask import session

from app_tienda.models.entities import (
    CartItem,
    CheckoutStep,
    MAX_ITEM_QUANTITY,
    OrderStatus,
    PaymentMethod,
    ShippingDetails,
)
from app_tienda.performance_logger import profile_function
from app_tienda.repositories.exceptions import DataStoreError, PolicyViolationError
from app_tienda.repositories.interfaces import IDataStore
from app_tienda.services.cart_service import CartService
from app_tienda.services.pricing_service import compute_cart_totals
from app_tienda.services.settings_service import SettingsService
from app_tienda.services.user_service import UserService
from app_tienda.services.validators import sanitize_string

logger = logging.getLogger(__name__)


AUTH_REQUIRED_MESSAGE = (
    'Para realizar pedidos necesitas estar registrado. '
    'Por favor, crea una cuenta primero o inicia sesión.'
)
GENERIC_ERROR_MESSAGE = 'No se pudo procesar el pedido. Por favor, intenta nuevamente.'
NO_PRODUCTS_MESSAGE = (
    'El carrito debe contener al menos un producto. '
    'Los servicios de impresión deben gestionarse por separado.'
)
STOCK_WARNING_MESSAGE = (
    'El pedido se creó pero hubo problemas al actualizar el stock. '
    'Por favor, contacta al administrador.'
)

MAX_SHIPPING_FIELD_LENGTH = 200

# Campo -> mensaje cuando está vacío
REQUIRED_SHIPPING_FIELDS = (
    ('full_name', 'Por favor, ingresa tu nombre completo'),
    ('address', 'Por favor, ingresa tu dirección'),
    ('phone', 'Por favor, ingresa tu número de teléfono'),
)


# ==============================================================================
# LOG DE COMPENSACIÓN
# ==============================================================================

class CompensationLog:
    """
    Registro de acciones para deshacer escrituras ya confirmadas.

    Uso:
        compensation = CompensationLog()
        order = store.insert('orders', {...})
        compensation.record('eliminar pedido', lambda: store.delete('orders', {'id': order['id']}))
        ...
        compensation.run()   # ante un fallo: deshace en orden inverso
    """

    def __init__(self):
        self._actions: List[Tuple[str, Callable[[], Any]]] = []

    def record(self, description: str, action: Callable[[], Any]) -> None:
        self._actions.append((description, action))

    def run(self) -> List[str]:
        """
        Ejecuta las compensaciones en orden inverso. Un fallo no detiene
        las siguientes.

        Returns:
            Descripciones de las compensaciones que fallaron
        """
        failed = []
        while self._actions:
            description, action = self._actions.pop()
            try:
                action()
            except DataStoreError as e:
                logger.error('Falló la compensación "%s": %s', description, e)
                failed.append(description)
        return failed

    def discard(self) -> None:
        """Confirma el flujo: las escrituras ya no se deshacen."""
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)


# ==============================================================================
# VALIDACIÓN
# ==============================================================================

def validate_shipping(details: ShippingDetails) -> Optional[Tuple[str, str]]:
    """
    Valida los datos de envío.

    Returns:
        None si son válidos, o (campo, mensaje)
    """
    for field_name, message in REQUIRED_SHIPPING_FIELDS:
        if not sanitize_string(getattr(details, field_name)):
            return field_name, message
    for field_name in ('full_name', 'address', 'phone', 'city', 'postal_code'):
        if len(getattr(details, field_name) or '') > MAX_SHIPPING_FIELD_LENGTH:
            return field_name, 'El texto ingresado es demasiado largo'
    return None


def _failure(error: str, errors: List[str] = None, field: str = None, code: str = None) -> Dict[str, Any]:
    result = {
        'ok': False,
        'step': CheckoutStep.FAILURE.value,
        'error': error,
        'errors': errors or [error],
    }
    if field:
        result['field'] = field
    if code:
        result['code'] = code
    return result


def _as_cart_item(item: Union[CartItem, Dict[str, Any]]) -> CartItem:
    return item if isinstance(item, CartItem) else CartItem.from_dict(item)


# ==============================================================================
# ORQUESTADOR
# ==============================================================================

class CheckoutService:
    """
    Orquesta la creación de pedidos.

    Todas las fallas de validación y de negocio se devuelven como
    resultado {'ok': False, ...}; los errores del backend se registran,
    se compensan y se traducen a un mensaje genérico.
    """

    def __init__(
        self,
        data_store: IDataStore,
        settings_service: SettingsService,
        user_service: UserService,
        audit_service=None
    ):
        self.data_store = data_store
        self.settings_service = settings_service
        self.user_service = user_service
        self.audit_service = audit_service

    def validate_payment_method(self, payment_method: Any) -> Optional[str]:
        """None si el método es válido y está habilitado, o el mensaje de error."""
        valid = [m.value for m in PaymentMethod]
        if payment_method not in valid:
            return 'Selecciona un método de pago válido'
        if payment_method not in self.settings_service.enabled_payment_methods():
            return 'El método de pago seleccionado no está disponible'
        return None

    # =========================================================================
    # PASO 2: IDENTIDAD
    # =========================================================================

    def _resolve_identity(
        self,
        shipping: ShippingDetails,
        current_user: Optional[Dict[str, Any]],
        compensation: CompensationLog,
        warnings: List[str]
    ) -> str:
        """
        Retorna el user_id del pedido.

        Raises:
            PolicyViolationError: Invitados no permitidos
            DataStoreError: Fallo al crear la identidad invitada
        """
        if current_user and current_user.get('id'):
            try:
                self.user_service.ensure_profile(
                    current_user['id'],
                    current_user.get('email'),
                    full_name=shipping.full_name,
                    phone=shipping.phone,
                    address=shipping.full_address(),
                )
            except DataStoreError as e:
                # El pedido puede continuar sin el perfil actualizado
                logger.warning('No se pudo actualizar el perfil de %s: %s', current_user['id'], e)
                warnings.append('No se pudo actualizar tu perfil con los datos de envío')
            return current_user['id']

        guest = self.user_service.create_guest(
            shipping.full_name, phone=shipping.phone, address=shipping.full_address()
        )
        compensation.record('eliminar identidad invitada', lambda: self.user_service.delete_guest(guest['id']))
        return guest['id']

    # =========================================================================
    # PASO 4: STOCK
    # =========================================================================

    def _check_stock(self, product_items: List[CartItem]) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
        """
        Verifica stock de todos los productos.

        Returns:
            (filas de productos por ID, lista de errores)
        """
        requested: Dict[str, int] = {}
        names: Dict[str, str] = {}
        for item in product_items:
            requested[item.id] = requested.get(item.id, 0) + item.quantity
            names.setdefault(item.id, item.name or item.id)

        rows: Dict[str, Dict[str, Any]] = {}
        errors = []
        for product_id, quantity in requested.items():
            row = self.data_store.get('products', product_id)
            if not row or not row.get('is_active', True):
                errors.append(f'{names[product_id]}: El producto ya no está disponible')
                continue
            rows[product_id] = row
            stock = int(row.get('stock') or 0)
            if stock < quantity:
                errors.append(
                    f'{row.get("name") or names[product_id]}: Stock disponible ({stock}) '
                    f'es menor a la cantidad solicitada ({quantity})'
                )
        return rows, errors

    # =========================================================================
    # FLUJO COMPLETO
    # =========================================================================

    @profile_function(name='Confirmar pedido')
    def submit_order(
        self,
        cart_items: List[Union[CartItem, Dict[str, Any]]],
        shipping_details: Union[ShippingDetails, Dict[str, Any]],
        payment_method: str,
        current_user: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Crea un pedido a partir del carrito.

        Args:
            cart_items: Ítems del carrito
            shipping_details: Datos de envío
            payment_method: yape | plin | transfer | card
            current_user: {id, email} si hay sesión, None para invitados

        Returns:
            Éxito: {'ok': True, 'order_id', 'order_number', 'total', 'subtotal',
                    'shipping', 'status', 'step', 'warnings', 'dropped_print_items'}
            Falla: {'ok': False, 'step': 'failure', 'error', 'errors', 'field'?}
        """
        # 1. Validación (sin escrituras)
        items = [_as_cart_item(i) for i in (cart_items or [])]
        if not items:
            return _failure('Tu carrito está vacío', field='cart')
        for item in items:
            if item.quantity < 1 or item.quantity > MAX_ITEM_QUANTITY:
                return _failure(
                    f'{item.name}: la cantidad debe estar entre 1 y {MAX_ITEM_QUANTITY}', field='cart'
                )

        if not isinstance(shipping_details, ShippingDetails):
            shipping_details = ShippingDetails.from_dict(shipping_details or {})
        invalid = validate_shipping(shipping_details)
        if invalid:
            field_name, message = invalid
            return _failure(message, field=field_name)

        payment_error = self.validate_payment_method(payment_method)
        if payment_error:
            return _failure(payment_error, field='payment_method')

        compensation = CompensationLog()
        warnings: List[str] = []

        try:
            # 2. Identidad
            try:
                user_id = self._resolve_identity(shipping_details, current_user, compensation, warnings)
            except PolicyViolationError as e:
                logger.info('Checkout de invitado rechazado por la política de acceso: %s', e)
                return _failure(AUTH_REQUIRED_MESSAGE, code='authentication_required')

            # 3. Separar productos de impresión
            product_items = [i for i in items if i.is_product]
            print_items = [i for i in items if not i.is_product]
            if print_items:
                logger.info(
                    'Se descartaron %d ítem(s) de impresión del pedido: %s',
                    len(print_items), ', '.join(i.name or i.id for i in print_items),
                )
            if not product_items:
                compensation.run()
                return _failure(NO_PRODUCTS_MESSAGE, field='cart')

            # 4. Stock
            rows, stock_errors = self._check_stock(product_items)
            if stock_errors:
                compensation.run()
                return _failure(
                    'Stock insuficiente:\n' + '\n'.join(stock_errors),
                    errors=stock_errors,
                    field='cart',
                    code='insufficient_stock',
                )

            # Precios vigentes del catálogo
            lines = []
            for item in product_items:
                unit_price = round(float(rows[item.id].get('price') or 0), 2)
                lines.append((item, unit_price))
            # El total cubre todo el carrito, impresiones incluidas
            totals = compute_cart_totals(
                [{'price': price, 'quantity': item.quantity} for item, price in lines]
                + [{'price': item.price, 'quantity': item.quantity} for item in print_items],
                self.settings_service.shipping_config(),
            )

            # 5. Pedido y líneas
            order = self.data_store.insert('orders', {
                'user_id': user_id,
                'status': OrderStatus.PENDING.value,
                'total_amount': totals['total'],
                'shipping_cost': totals['shipping'],
                'shipping_address': shipping_details.full_address(),
                'payment_method': payment_method,
            })
            order_id = order['id']
            compensation.record('eliminar pedido', lambda: self.data_store.delete('orders', {'id': order_id}))
            compensation.record(
                'eliminar líneas del pedido',
                lambda: self.data_store.delete('order_items', {'order_id': order_id}),
            )

            for item, unit_price in lines:
                self.data_store.insert('order_items', {
                    'order_id': order_id,
                    'product_id': item.id,
                    'print_job_id': None,
                    'quantity': item.quantity,
                    'unit_price': unit_price,
                    'customization': item.customization,
                })
        except DataStoreError as e:
            logger.error('Error del backend durante el checkout: %s', e)
            failed = compensation.run()
            if failed:
                logger.error('Quedaron escrituras sin compensar: %s', ', '.join(failed))
            return _failure(GENERIC_ERROR_MESSAGE, code='backend_error')

        # A partir de aquí el pedido queda confirmado
        compensation.discard()

        # 6. Descontar stock
        stock_warnings = self._decrement_stock(order_id, lines)
        if stock_warnings:
            warnings.append(STOCK_WARNING_MESSAGE)
            warnings.extend(stock_warnings)

        if self.audit_service:
            self.audit_service.log_order_created(
                (current_user or {}).get('email'), order_id, totals['total'], len(lines)
            )

        return {
            'ok': True,
            'step': CheckoutStep.CONFIRMATION.value,
            'order_id': order_id,
            'order_number': order_id[:8].upper(),
            'status': OrderStatus.PENDING.value,
            'subtotal': totals['subtotal'],
            'shipping': totals['shipping'],
            'total': totals['total'],
            'warnings': warnings,
            'dropped_print_items': [i.to_dict() for i in print_items],
        }

    def _decrement_stock(self, order_id: str, lines: List[Tuple[CartItem, float]]) -> List[str]:
        """
        Descuenta stock por línea. Nunca lanza: los problemas se devuelven
        como advertencias para el administrador.
        """
        warnings = []
        for item, _ in lines:
            try:
                old_stock, new_stock = self.data_store.decrement_stock(item.id, item.quantity)
            except DataStoreError as e:
                logger.warning('Error actualizando stock de %s (pedido %s): %s', item.id, order_id, e)
                warning = f'{item.name}: no se pudo actualizar el stock'
                warnings.append(warning)
                if self.audit_service:
                    self.audit_service.log_stock_warning(order_id, warning)
                continue

            if self.audit_service:
                self.audit_service.log_stock_decrement(order_id, item.name, old_stock, new_stock)

            if old_stock < item.quantity:
                # Otro checkout consumió el stock entre la verificación y el descuento
                warning = (
                    f'{item.name}: se solicitaron {item.quantity} pero solo quedaban {old_stock}; '
                    f'el stock quedó en 0 y debe conciliarse'
                )
                logger.warning('Sobreventa en pedido %s: %s', order_id, warning)
                warnings.append(warning)
                if self.audit_service:
                    self.audit_service.log_stock_warning(order_id, warning)
        return warnings


# ==============================================================================
# SESIÓN DE CHECKOUT
# ==============================================================================

class CheckoutSession:
    """
    Estado de un intento de checkout guardado en la sesión de Flask:

        cart -> shipping -> payment -> confirmation | failure

    Solo el submit final escribe en el Data Store. El carrito se vacía
    únicamente si el pedido se creó; ante una falla se conservan el
    carrito y los datos del formulario.
    """

    SESSION_KEY = 'checkout'

    def __init__(self, checkout_service: CheckoutService, cart_service: CartService):
        self.checkout_service = checkout_service
        self.cart_service = cart_service

    def _state(self) -> Dict[str, Any]:
        state = session.get(self.SESSION_KEY)
        if not isinstance(state, dict):
            state = {'step': CheckoutStep.CART.value, 'shipping': None, 'payment_method': None}
        return dict(state)

    def _save(self, state: Dict[str, Any]) -> None:
        session[self.SESSION_KEY] = state
        session.modified = True

    def state(self) -> Dict[str, Any]:
        return self._state()

    def reset(self) -> None:
        session.pop(self.SESSION_KEY, None)

    def start(self) -> Dict[str, Any]:
        """Pasa del carrito a los datos de envío."""
        if not self.cart_service.get_cart_items():
            return _failure('Tu carrito está vacío', field='cart')
        state = self._state()
        state['step'] = CheckoutStep.SHIPPING.value
        self._save(state)
        return {'ok': True, **state}

    def set_shipping(self, details: Dict[str, Any]) -> Dict[str, Any]:
        shipping = ShippingDetails.from_dict(details or {})
        invalid = validate_shipping(shipping)
        if invalid:
            field_name, message = invalid
            return {'ok': False, 'error': message, 'field': field_name}

        state = self._state()
        state['shipping'] = shipping.to_dict()
        state['step'] = CheckoutStep.PAYMENT.value
        self._save(state)
        return {'ok': True, **state}

    def set_payment_method(self, payment_method: str) -> Dict[str, Any]:
        state = self._state()
        if not state.get('shipping'):
            return {'ok': False, 'error': 'Completa primero los datos de envío', 'field': 'shipping'}

        error = self.checkout_service.validate_payment_method(payment_method)
        if error:
            return {'ok': False, 'error': error, 'field': 'payment_method'}

        state['payment_method'] = payment_method
        state['step'] = CheckoutStep.PAYMENT.value
        self._save(state)
        return {'ok': True, **state}

    def submit(self, current_user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Confirma el pedido con los datos guardados en la sesión."""
        state = self._state()
        if not state.get('shipping'):
            return _failure('Completa primero los datos de envío', field='shipping')
        if not state.get('payment_method'):
            return _failure('Selecciona un método de pago', field='payment_method')

        result = self.checkout_service.submit_order(
            self.cart_service.get_cart_items(),
            state['shipping'],
            state['payment_method'],
            current_user,
        )

        if result['ok']:
            self.cart_service.clear_cart()
            self._save({
                'step': CheckoutStep.CONFIRMATION.value,
                'shipping': None,
                'payment_method': None,
                'order_id': result['order_id'],
            })
        else:
            state['step'] = CheckoutStep.FAILURE.value
            self._save(state)
        return result
