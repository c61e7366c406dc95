# ==============================================================================
# SERVICIO DE AUTENTICACIÓN
# ==============================================================================
# Registro, login y logout con hash de contraseñas (werkzeug).
# La sesión de Flask guarda user_id y user_email.
# ==============================================================================

import logging
from typing import Any, Dict, Optional

from flask import session
from werkzeug.security import check_password_hash, generate_password_hash

from app_tienda.models.entities import UserKind
from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.services.user_service import UserService
from app_tienda.services.validators import is_valid_email

logger = logging.getLogger(__name__)


MIN_PASSWORD_LENGTH = 6


class AuthService:
    """
    Servicio de autenticación.

    Los invitados nunca pueden iniciar sesión: no tienen email ni hash.
    """

    def __init__(self, user_service: UserService, audit_service=None):
        self.user_service = user_service
        self.audit_service = audit_service

    def sign_up(self, email: str, password: str, full_name: str = '') -> Dict[str, Any]:
        """
        Registra un cliente e inicia su sesión.

        Returns:
            {'ok': True, 'user': {id, email}} o {'ok': False, 'error': ..., 'field': ...}
        """
        email = (email or '').strip().lower()
        if not is_valid_email(email):
            return {'ok': False, 'error': 'Email inválido', 'field': 'email'}
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            return {
                'ok': False,
                'error': f'La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres',
                'field': 'password',
            }
        if self.user_service.get_by_email(email):
            return {'ok': False, 'error': 'El email ya está registrado', 'field': 'email'}

        try:
            user = self.user_service.create_registered(email, generate_password_hash(password), full_name)
        except DataStoreError as e:
            logger.error('Error registrando %s: %s', email, e)
            return {'ok': False, 'error': 'No se pudo completar el registro'}

        self._start_session(user)
        return {'ok': True, 'user': self.get_current_user()}

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """
        Verifica credenciales e inicia sesión.

        Returns:
            {'ok': True, 'user': {id, email}} o {'ok': False, 'error': ...}
        """
        email = (email or '').strip().lower()
        user = self.user_service.get_by_email(email) if email else None

        if (
            not user
            or user.get('kind') == UserKind.GUEST.value
            or not user.get('password_hash')
            or not check_password_hash(user['password_hash'], password or '')
        ):
            return {'ok': False, 'error': 'Email o contraseña incorrectos'}

        self._start_session(user)
        if self.audit_service:
            self.audit_service.log_user_login(email)
        return {'ok': True, 'user': self.get_current_user()}

    def sign_out(self) -> None:
        """Cierra la sesión (el carrito se conserva)."""
        session.pop('user_id', None)
        session.pop('user_email', None)

    def get_current_user(self) -> Optional[Dict[str, Any]]:
        """
        Usuario autenticado de la sesión actual.

        Returns:
            {'id': ..., 'email': ...} o None
        """
        user_id = session.get('user_id')
        if not user_id:
            return None
        return {'id': user_id, 'email': session.get('user_email')}

    def is_admin(self, user: Optional[Dict[str, Any]] = None) -> bool:
        if user is None:
            user = self.get_current_user()
        return self.user_service.is_admin(user)

    def _start_session(self, user: Dict[str, Any]) -> None:
        session['user_id'] = user['id']
        session['user_email'] = user.get('email')
        session.modified = True
