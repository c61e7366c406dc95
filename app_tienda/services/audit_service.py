# ==============================================================================
# SERVICIO DE AUDITORÍA
# ==============================================================================
# Centraliza el registro de auditoría del negocio (tabla audit_logs).
# Formatea mensajes humanizados y categoriza eventos.
# ==============================================================================

import logging
from typing import Any, Dict, List, Optional

from app_tienda.models.entities import AuditType
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.repositories.interfaces import IDataStore

logger = logging.getLogger(__name__)


class AuditService:
    """
    Servicio para registro y consulta de auditoría.

    Categorías: PEDIDO, STOCK, PRODUCTO, IMPRESION, USUARIO, SISTEMA.

    Un fallo al escribir la auditoría se registra en el log de la
    aplicación y no interrumpe la operación principal.
    """

    TABLE = 'audit_logs'

    # Límite de registros para evitar archivos muy grandes
    MAX_LOGS = 10000

    def __init__(self, data_store: IDataStore):
        self.data_store = data_store

    # =========================================================================
    # REGISTRO DE EVENTOS
    # =========================================================================

    def log(
        self,
        log_type: str,
        user: Optional[str],
        message: str,
        related_id: str = '',
        details: Dict[str, Any] = None
    ) -> None:
        """
        Registra un evento de auditoría genérico.

        Args:
            log_type: Tipo de evento (AuditType)
            user: Email o ID de quien realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (pedido, producto, etc.)
            details: Detalles adicionales
        """
        entry = {
            'type': getattr(log_type, 'value', log_type),
            'user': user or 'sistema',
            'message': message,
            'related_id': related_id or '',
            'details': details or {},
        }
        try:
            self.data_store.insert(self.TABLE, entry)
            self.data_store.prune(self.TABLE, self.MAX_LOGS)
        except DataStoreError as e:
            logger.warning('No se pudo registrar auditoría (%s): %s', entry['type'], e)

    # --- Pedidos ---

    def log_order_created(self, user: Optional[str], order_id: str, total: float, items_count: int) -> None:
        message = f'Pedido {order_id[:8].upper()} creado: {items_count} producto(s), total S/ {total:.2f}'
        self.log(AuditType.PEDIDO, user, message, order_id, {'total': total, 'items': items_count})

    def log_order_status_change(self, user: Optional[str], order_id: str, old_status: str, new_status: str) -> None:
        message = f'Pedido {order_id[:8].upper()} cambió de "{old_status}" a "{new_status}"'
        self.log(AuditType.PEDIDO, user, message, order_id, {'old': old_status, 'new': new_status})

    def log_order_deleted(self, user: Optional[str], order_id: str, items_deleted: int) -> None:
        message = f'Pedido {order_id[:8].upper()} eliminado ({items_deleted} línea(s))'
        self.log(AuditType.PEDIDO, user, message, order_id)

    def log_order_item_deleted(self, user: Optional[str], order_id: str, item_id: str, new_total: float) -> None:
        message = f'Línea eliminada del pedido {order_id[:8].upper()}, nuevo total S/ {new_total:.2f}'
        self.log(AuditType.PEDIDO, user, message, order_id, {'item_id': item_id, 'total': new_total})

    # --- Stock ---

    def log_stock_decrement(self, order_id: str, product_name: str, old_stock: int, new_stock: int) -> None:
        message = f'Stock de "{product_name}": {old_stock} -> {new_stock} (pedido {order_id[:8].upper()})'
        self.log(AuditType.STOCK, None, message, order_id, {'old': old_stock, 'new': new_stock})

    def log_stock_warning(self, order_id: str, warning: str) -> None:
        self.log(AuditType.STOCK, None, warning, order_id)

    # --- Productos ---

    def log_product_created(self, user: Optional[str], product_id: str, name: str) -> None:
        self.log(AuditType.PRODUCTO, user, f'Producto "{name}" creado', product_id)

    def log_product_updated(self, user: Optional[str], product_id: str, name: str, changes: List[str] = None) -> None:
        detail = f': {", ".join(changes)}' if changes else ''
        self.log(AuditType.PRODUCTO, user, f'Producto "{name}" actualizado{detail}', product_id)

    def log_product_deleted(self, user: Optional[str], product_id: str, name: str) -> None:
        self.log(AuditType.PRODUCTO, user, f'Producto "{name}" eliminado', product_id)

    # --- Impresión ---

    def log_print_job_created(self, user: Optional[str], job_id: str, price: float) -> None:
        message = f'Trabajo de impresión {job_id[:8].upper()} recibido (S/ {price:.2f})'
        self.log(AuditType.IMPRESION, user, message, job_id)

    def log_print_job_status_change(self, user: Optional[str], job_id: str, old_status: str, new_status: str) -> None:
        message = f'Trabajo {job_id[:8].upper()} cambió de "{old_status}" a "{new_status}"'
        self.log(AuditType.IMPRESION, user, message, job_id, {'old': old_status, 'new': new_status})

    def log_print_job_deleted(self, user: Optional[str], job_id: str) -> None:
        self.log(AuditType.IMPRESION, user, f'Trabajo {job_id[:8].upper()} eliminado', job_id)

    # --- Usuarios ---

    def log_user_created(self, email: str, user_id: str) -> None:
        self.log(AuditType.USUARIO, email, f'Usuario {email} registrado', user_id)

    def log_admin_change(self, admin_user: Optional[str], target_email: str, is_admin: bool) -> None:
        action = 'otorgó' if is_admin else 'revocó'
        self.log(AuditType.USUARIO, admin_user, f'Se {action} acceso de administrador a {target_email}')

    def log_user_updated(self, admin_user: Optional[str], target_email: str, fields: List[str]) -> None:
        self.log(AuditType.USUARIO, admin_user, f'Usuario {target_email} actualizado: {", ".join(fields)}')

    def log_user_deleted(self, admin_user: Optional[str], target_email: str) -> None:
        self.log(AuditType.USUARIO, admin_user, f'Usuario {target_email} eliminado')

    # --- Sistema ---

    def log_settings_saved(self, user: Optional[str], key: str) -> None:
        self.log(AuditType.SISTEMA, user, f'Configuración "{key}" actualizada', key)

    def log_user_login(self, email: str) -> None:
        self.log(AuditType.SISTEMA, email, f'{email} inició sesión')

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_recent_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Logs más recientes primero."""
        return self.data_store.select(self.TABLE, order_by='created_at', descending=True, limit=limit)

    def get_logs_by_type(self, log_type: str, limit: int = 100) -> List[Dict[str, Any]]:
        return self.data_store.select(
            self.TABLE,
            {'type': getattr(log_type, 'value', log_type)},
            order_by='created_at',
            descending=True,
            limit=limit,
        )
