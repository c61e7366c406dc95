# ==============================================================================
# SERVICIO DE USUARIOS
# ==============================================================================
# Clientes registrados, invitados de checkout y administradores.
#
# REGLAS:
# - Los invitados (kind=guest) no tienen email y no aparecen en el panel
# - El flag is_admin solo lo cambia otro administrador
# - Un administrador no puede quitarse su propio acceso
# - Los administradores no se pueden eliminar
# ==============================================================================

import logging
from typing import Any, Callable, Dict, List, Optional

from app_tienda.models.entities import User, UserKind
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.repositories.interfaces import IDataStore
from app_tienda.services.validators import (
    cap_limit,
    is_valid_email,
    is_valid_uuid,
    matches_search,
    normalize_search_term,
    sanitize_string,
)

logger = logging.getLogger(__name__)


# Campos que el administrador puede editar de un usuario
EDITABLE_FIELDS = ('full_name', 'phone', 'address')

MAX_FIELD_LENGTH = 200


def guest_insert_policy(allow_guest_checkout: bool) -> Callable[[Dict[str, Any]], bool]:
    """
    Política de inserción de la tabla users.

    Con allow_guest_checkout=False se rechaza cualquier identidad invitada.
    """
    def policy(row: Dict[str, Any]) -> bool:
        if row.get('kind') == UserKind.GUEST.value:
            return allow_guest_checkout
        return True
    return policy


class UserService:
    """
    Servicio para gestión de usuarios.

    Responsabilidades:
    - Perfiles de clientes (registro, actualización desde el checkout)
    - Identidades invitadas
    - Gestión del flag de administrador
    """

    TABLE = 'users'

    def __init__(self, data_store: IDataStore, audit_service=None, admin_email: str = ''):
        """
        Args:
            data_store: Data Store
            audit_service: Servicio de auditoría (opcional)
            admin_email: Email que siempre tiene acceso de administrador
        """
        self.data_store = data_store
        self.audit_service = audit_service
        self.admin_email = (admin_email or '').strip().lower()

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        if not user_id:
            return None
        return self.data_store.get(self.TABLE, user_id)

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        rows = self.data_store.select(self.TABLE, {'email': email.strip().lower()}, limit=1)
        return rows[0] if rows else None

    def is_admin(self, user: Optional[Dict[str, Any]]) -> bool:
        """
        Verifica acceso de administrador: flag is_admin del perfil, o
        email igual al email de administrador configurado.
        """
        if not user:
            return False
        email = (user.get('email') or '').lower()
        if self.admin_email and email == self.admin_email:
            return True
        profile = self.get_user(user.get('id'))
        return bool(profile and profile.get('is_admin'))

    def list_users(
        self,
        role: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = None
    ) -> Dict[str, Any]:
        """
        Lista clientes registrados (sin invitados).

        Args:
            role: 'admin' | 'customer' | None
            search: Texto libre sobre email, nombre o ID
            limit: Máximo de filas

        Returns:
            {'ok': True, 'users': [...]} o {'ok': False, 'error': ...}
        """
        term = normalize_search_term(search)
        if term is None:
            return {'ok': False, 'error': 'Búsqueda demasiado larga (máximo 100 caracteres)'}
        if role not in (None, '', 'admin', 'customer'):
            return {'ok': False, 'error': 'Rol inválido'}

        rows = self.data_store.select(self.TABLE, order_by='created_at', descending=True)
        users = []
        for row in rows:
            if row.get('kind', UserKind.REGISTERED.value) == UserKind.GUEST.value:
                continue
            if not is_valid_email(row.get('email')):
                continue
            if role == 'admin' and not row.get('is_admin'):
                continue
            if role == 'customer' and row.get('is_admin'):
                continue
            if not matches_search(term, row.get('email'), row.get('full_name'), row.get('id')):
                continue
            users.append(self._public(row))

        return {'ok': True, 'users': users[:cap_limit(limit)]}

    @staticmethod
    def _public(row: Dict[str, Any]) -> Dict[str, Any]:
        """Fila sin datos sensibles."""
        user = User.from_dict(row).to_dict()
        user['created_at'] = row.get('created_at')
        return user

    # =========================================================================
    # ALTA DE USUARIOS
    # =========================================================================

    def create_registered(self, email: str, password_hash: str, full_name: str = '') -> Dict[str, Any]:
        """
        Crea un cliente registrado.

        Raises:
            DataStoreError: Email duplicado o fallo del backend
        """
        row = {
            'email': email.strip().lower(),
            'password_hash': password_hash,
            'full_name': sanitize_string(full_name)[:MAX_FIELD_LENGTH],
            'phone': '',
            'address': '',
            'is_admin': False,
            'kind': UserKind.REGISTERED.value,
        }
        user = self.data_store.insert(self.TABLE, row)
        if self.audit_service:
            self.audit_service.log_user_created(row['email'], user['id'])
        return user

    def ensure_profile(
        self,
        user_id: str,
        email: str,
        full_name: str = '',
        phone: str = '',
        address: str = ''
    ) -> Dict[str, Any]:
        """
        Crea o actualiza el perfil de un cliente autenticado con los datos
        de envío del checkout.

        Raises:
            DataStoreError: Fallo del backend
        """
        row = {
            'id': user_id,
            'email': (email or '').strip().lower() or None,
            'full_name': sanitize_string(full_name)[:MAX_FIELD_LENGTH],
            'phone': sanitize_string(phone)[:MAX_FIELD_LENGTH],
            'address': sanitize_string(address)[:MAX_FIELD_LENGTH],
        }
        if self.get_user(user_id) is None:
            row['kind'] = UserKind.REGISTERED.value
            row['is_admin'] = False
        return self.data_store.upsert(self.TABLE, row, conflict_key='id')

    def create_guest(self, full_name: str, phone: str = '', address: str = '') -> Dict[str, Any]:
        """
        Crea una identidad invitada para un checkout sin sesión.

        Raises:
            PolicyViolationError: Si la política de acceso no permite invitados
            DataStoreError: Fallo del backend
        """
        row = {
            'email': None,
            'full_name': sanitize_string(full_name)[:MAX_FIELD_LENGTH],
            'phone': sanitize_string(phone)[:MAX_FIELD_LENGTH],
            'address': sanitize_string(address)[:MAX_FIELD_LENGTH],
            'is_admin': False,
            'kind': UserKind.GUEST.value,
        }
        return self.data_store.insert(self.TABLE, row)

    def delete_guest(self, user_id: str) -> int:
        """Elimina una identidad invitada (compensación del checkout)."""
        return self.data_store.delete(self.TABLE, {'id': user_id, 'kind': UserKind.GUEST.value})

    # =========================================================================
    # ADMINISTRACIÓN
    # =========================================================================

    def set_admin(self, user_id: str, is_admin: bool, acting_user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Otorga o revoca acceso de administrador.

        Args:
            user_id: Usuario objetivo
            is_admin: Nuevo valor del flag
            acting_user: Usuario que realiza el cambio ({id, email})
        """
        if not is_valid_uuid(user_id):
            return {'ok': False, 'error': 'ID de usuario inválido'}
        if not isinstance(is_admin, bool):
            return {'ok': False, 'error': 'Valor de administrador inválido'}
        if not self.is_admin(acting_user):
            return {'ok': False, 'error': 'Solo un administrador puede cambiar permisos'}
        if acting_user.get('id') == user_id and not is_admin:
            return {'ok': False, 'error': 'No puedes quitarte tu propio acceso de administrador'}

        target = self.get_user(user_id)
        if not target or target.get('kind') == UserKind.GUEST.value:
            return {'ok': False, 'error': 'Usuario no encontrado'}

        try:
            updated = self.data_store.update(self.TABLE, {'id': user_id}, {'is_admin': is_admin})
        except DataStoreError as e:
            logger.error('Error cambiando permisos de %s: %s', user_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el usuario'}

        if self.audit_service:
            self.audit_service.log_admin_change(acting_user.get('email'), target.get('email'), is_admin)
        return {'ok': True, 'user': self._public(updated[0])}

    def update_user(self, user_id: str, updates: Dict[str, Any], acting_user: Dict[str, Any] = None) -> Dict[str, Any]:
        """Actualiza nombre, teléfono o dirección de un usuario."""
        if not is_valid_uuid(user_id):
            return {'ok': False, 'error': 'ID de usuario inválido'}
        if not isinstance(updates, dict):
            return {'ok': False, 'error': 'Datos inválidos'}

        unknown = [k for k in updates if k not in EDITABLE_FIELDS]
        if unknown:
            return {'ok': False, 'error': f'Campos no editables: {", ".join(unknown)}'}

        patch = {}
        for key, value in updates.items():
            cleaned = sanitize_string(value)
            if len(cleaned) > MAX_FIELD_LENGTH:
                return {'ok': False, 'error': f'{key} es demasiado largo'}
            patch[key] = cleaned
        if not patch:
            return {'ok': False, 'error': 'No hay cambios'}

        target = self.get_user(user_id)
        if not target:
            return {'ok': False, 'error': 'Usuario no encontrado'}

        try:
            updated = self.data_store.update(self.TABLE, {'id': user_id}, patch)
        except DataStoreError as e:
            logger.error('Error actualizando usuario %s: %s', user_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el usuario'}

        if self.audit_service:
            self.audit_service.log_user_updated(
                (acting_user or {}).get('email'), target.get('email') or user_id, list(patch)
            )
        return {'ok': True, 'user': self._public(updated[0])}

    def delete_user(self, user_id: str, acting_user: Dict[str, Any] = None) -> Dict[str, Any]:
        """Elimina un cliente. Los administradores no se pueden eliminar."""
        if not is_valid_uuid(user_id):
            return {'ok': False, 'error': 'ID de usuario inválido'}

        target = self.get_user(user_id)
        if not target:
            return {'ok': False, 'error': 'Usuario no encontrado'}
        if self.is_admin(target):
            return {'ok': False, 'error': 'No se puede eliminar un administrador'}

        try:
            self.data_store.delete(self.TABLE, {'id': user_id})
        except DataStoreError as e:
            logger.error('Error eliminando usuario %s: %s', user_id, e)
            return {'ok': False, 'error': 'No se pudo eliminar el usuario'}

        if self.audit_service:
            self.audit_service.log_user_deleted((acting_user or {}).get('email'), target.get('email') or user_id)
        return {'ok': True}

    def count_users(self) -> int:
        rows = self.data_store.select(self.TABLE)
        return sum(1 for r in rows if r.get('kind', UserKind.REGISTERED.value) != UserKind.GUEST.value)
