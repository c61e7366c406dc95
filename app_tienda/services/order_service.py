# ==============================================================================
# SERVICIO DE PEDIDOS (PANEL)
# ==============================================================================
# Consulta y gestión de pedidos desde el panel de administración.
# Todas las entradas se validan antes de llegar al Data Store.
# ==============================================================================

import logging
from typing import Any, Dict, List, Optional

from app_tienda.models.entities import MAX_ITEM_QUANTITY, Order, OrderItem, OrderStatus
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.repositories.interfaces import IDataStore
from app_tienda.services.status_transitions import ORDER_TRANSITIONS, check_transition
from app_tienda.services.validators import (
    cap_limit,
    is_valid_order_status,
    is_valid_uuid,
    matches_search,
    normalize_search_term,
    sanitize_string,
)

logger = logging.getLogger(__name__)


# Máximo de líneas embebidas por pedido
MAX_ITEMS_PER_ORDER = 100

USER_FIELDS = ('id', 'email', 'full_name', 'phone', 'address')
PRODUCT_FIELDS = ('id', 'name', 'image_url', 'category')


class OrderService:
    """
    Servicio de pedidos para el panel.

    Responsabilidades:
    - Listado con usuario y líneas embebidas
    - Cambios de estado según la tabla de transiciones
    - Eliminación de líneas (recalcula el total) y de pedidos completos
    """

    def __init__(self, data_store: IDataStore, audit_service=None):
        self.data_store = data_store
        self.audit_service = audit_service

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def _embed_items(self, order_id: str) -> List[Dict[str, Any]]:
        items = []
        rows = self.data_store.select('order_items', {'order_id': order_id}, limit=MAX_ITEMS_PER_ORDER)
        for row in rows:
            item = OrderItem.from_dict(row).to_dict()
            item['quantity'] = max(1, min(item['quantity'], MAX_ITEM_QUANTITY))
            item['unit_price'] = max(0.0, item['unit_price'])
            product = self.data_store.get('products', row['product_id']) if row.get('product_id') else None
            item['product'] = {k: product.get(k) for k in PRODUCT_FIELDS} if product else None
            items.append(item)
        return items

    def _present(self, row: Dict[str, Any], with_items: bool = True) -> Dict[str, Any]:
        order = Order.from_dict(row).to_dict()
        order['shipping_address'] = sanitize_string(order['shipping_address'])
        order['payment_method'] = sanitize_string(order['payment_method'])
        order['order_number'] = order['id'][:8].upper()
        user = self.data_store.get('users', row.get('user_id')) if row.get('user_id') else None
        order['user'] = {k: user.get(k) for k in USER_FIELDS} if user else None
        if with_items:
            order['order_items'] = self._embed_items(order['id'])
        return order

    @staticmethod
    def _is_well_formed(row: Dict[str, Any]) -> bool:
        total = row.get('total_amount')
        return (
            is_valid_uuid(row.get('id'))
            and is_valid_order_status(row.get('status'))
            and isinstance(total, (int, float)) and not isinstance(total, bool) and total >= 0
            and isinstance(row.get('shipping_address'), str)
            and isinstance(row.get('payment_method'), str)
        )

    def list_orders(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = None
    ) -> Dict[str, Any]:
        """
        Lista pedidos, más recientes primero.

        Args:
            status: Filtrar por estado (debe ser válido)
            search: Texto libre sobre ID, email/nombre del cliente y dirección
            limit: Máximo de pedidos (<= 1000)

        Returns:
            {'ok': True, 'orders': [...]} o {'ok': False, 'error': ...}
        """
        if status and not is_valid_order_status(status):
            return {'ok': False, 'error': 'Estado inválido'}
        term = normalize_search_term(search)
        if term is None:
            return {'ok': False, 'error': 'Búsqueda demasiado larga (máximo 100 caracteres)'}

        filters = {'status': status} if status else None
        rows = self.data_store.select('orders', filters, order_by='created_at', descending=True)

        orders = []
        max_rows = cap_limit(limit)
        for row in rows:
            if not self._is_well_formed(row):
                continue
            order = self._present(row, with_items=False)
            user = order['user'] or {}
            if not matches_search(term, order['id'], user.get('email'), user.get('full_name'), order['shipping_address']):
                continue
            order['order_items'] = self._embed_items(order['id'])
            orders.append(order)
            if len(orders) >= max_rows:
                break
        return {'ok': True, 'orders': orders}

    def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        if not is_valid_uuid(order_id):
            return None
        row = self.data_store.get('orders', order_id)
        return self._present(row) if row else None

    # =========================================================================
    # CAMBIOS DE ESTADO
    # =========================================================================

    def update_status(self, order_id: str, new_status: str, user: Optional[str] = None) -> Dict[str, Any]:
        """
        Cambia el estado de un pedido respetando la tabla de transiciones.
        """
        if not is_valid_uuid(order_id):
            return {'ok': False, 'error': 'ID de pedido inválido'}
        if not is_valid_order_status(new_status):
            return {'ok': False, 'error': 'Estado inválido'}

        current = self.data_store.get('orders', order_id)
        if not current:
            return {'ok': False, 'error': 'Pedido no encontrado'}

        old_status = current.get('status', OrderStatus.PENDING.value)
        error = check_transition(ORDER_TRANSITIONS, old_status, new_status)
        if error:
            return {'ok': False, 'error': error}

        try:
            updated = self.data_store.update('orders', {'id': order_id}, {'status': new_status})
        except DataStoreError as e:
            logger.error('Error actualizando pedido %s: %s', order_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el pedido'}

        if self.audit_service:
            self.audit_service.log_order_status_change(user, order_id, old_status, new_status)
        return {'ok': True, 'order': Order.from_dict(updated[0]).to_dict()}

    # =========================================================================
    # ELIMINACIONES
    # =========================================================================

    def delete_order_item(self, item_id: str, order_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """
        Elimina una línea y recalcula el total del pedido (líneas restantes
        más el envío registrado en el pedido). Un pedido sin líneas no es
        válido: si era la última, se elimina el pedido.

        Returns:
            {'ok': True, 'total': float, 'order_deleted': bool, 'warnings': [...]}
        """
        if not is_valid_uuid(item_id) or not is_valid_uuid(order_id):
            return {'ok': False, 'error': 'Datos inválidos'}

        order_row = self.data_store.get('orders', order_id)
        if not order_row:
            return {'ok': False, 'error': 'Pedido no encontrado'}

        items = self.data_store.select('order_items', {'order_id': order_id})
        if not any(i.get('id') == item_id for i in items):
            return {'ok': False, 'error': 'La línea no pertenece al pedido'}

        try:
            self.data_store.delete('order_items', {'id': item_id, 'order_id': order_id})
        except DataStoreError as e:
            logger.error('Error eliminando línea %s: %s', item_id, e)
            return {'ok': False, 'error': 'No se pudo eliminar la línea del pedido'}

        remaining = [OrderItem.from_dict(i) for i in items if i.get('id') != item_id]
        if not remaining:
            result = self.delete_order(order_id, user)
            if not result['ok']:
                return result
            return {'ok': True, 'total': 0.0, 'order_deleted': True, 'warnings': result.get('warnings', [])}

        shipping = float(order_row.get('shipping_cost') or 0)
        new_total = round(sum(i.line_total for i in remaining) + shipping, 2)

        warnings = []
        try:
            self.data_store.update('orders', {'id': order_id}, {'total_amount': new_total})
        except DataStoreError as e:
            logger.warning('Línea eliminada pero no se pudo recalcular el total de %s: %s', order_id, e)
            warnings.append('La línea se eliminó pero no se pudo actualizar el total del pedido')

        if self.audit_service:
            self.audit_service.log_order_item_deleted(user, order_id, item_id, new_total)
        return {'ok': True, 'total': new_total, 'order_deleted': False, 'warnings': warnings}

    def delete_order(self, order_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """Elimina un pedido: primero cada línea explícitamente, luego el pedido."""
        if not is_valid_uuid(order_id):
            return {'ok': False, 'error': 'ID de pedido inválido'}

        if not self.data_store.get('orders', order_id):
            return {'ok': False, 'error': 'Pedido no encontrado'}

        try:
            items = self.data_store.select('order_items', {'order_id': order_id})
            for item in items:
                self.data_store.delete('order_items', {'id': item['id']})
            self.data_store.delete('orders', {'id': order_id})
        except DataStoreError as e:
            logger.error('Error eliminando pedido %s: %s', order_id, e)
            return {'ok': False, 'error': 'No se pudo eliminar el pedido'}

        if self.audit_service:
            self.audit_service.log_order_deleted(user, order_id, len(items))
        return {'ok': True, 'items_deleted': len(items)}
