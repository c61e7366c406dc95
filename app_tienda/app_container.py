# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Forma centralizada de obtener instancias de repositorios y servicios.
# Facilita:
#   - Inyección de dependencias
#   - Testing (cada app de prueba tiene su propio contenedor)
#   - Migración (cambiar el Data Store sin tocar servicios)
#
# Para pasar de JSON a un backend SQL solo se cambia data_store aquí:
# los servicios dependen de IDataStore / IObjectStore.
# ==============================================================================

from typing import Any, Dict, Optional

from app_tienda.repositories import JsonDataStore, LocalObjectStore
from app_tienda.services import (
    AuditService,
    AuthService,
    CartService,
    CheckoutService,
    CheckoutSession,
    OrderService,
    PrintJobService,
    ProductService,
    SettingsService,
    StatsService,
    UserService,
)
from app_tienda.services.user_service import guest_insert_policy


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Una instancia por app Flask (app.extensions['tienda']); cada
    dependencia se crea una sola vez, la primera vez que se pide.

    Uso:
        container = AppContainer({'DATA_DIR': '...', 'STORAGE_DIR': '...'})
        checkout = container.checkout_service
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: Configuración (DATA_DIR, STORAGE_DIR, PUBLIC_STORAGE_URL,
                    ADMIN_EMAIL, ALLOW_GUEST_CHECKOUT)
        """
        self._config = config
        self.reset()

    # =========================================================================
    # REPOSITORIOS
    # =========================================================================

    @property
    def data_store(self) -> JsonDataStore:
        """Data Store (una instancia por contenedor)."""
        if self._data_store is None:
            self._data_store = JsonDataStore(self._config['DATA_DIR'])
            self._data_store.set_insert_policy(
                'users', guest_insert_policy(bool(self._config.get('ALLOW_GUEST_CHECKOUT', True)))
            )
        return self._data_store

    @property
    def object_store(self) -> LocalObjectStore:
        if self._object_store is None:
            self._object_store = LocalObjectStore(
                self._config['STORAGE_DIR'],
                self._config.get('PUBLIC_STORAGE_URL', '/storage'),
            )
        return self._object_store

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def audit_service(self) -> AuditService:
        if self._audit_service is None:
            self._audit_service = AuditService(self.data_store)
        return self._audit_service

    @property
    def settings_service(self) -> SettingsService:
        if self._settings_service is None:
            self._settings_service = SettingsService(self.data_store, self.audit_service)
        return self._settings_service

    @property
    def user_service(self) -> UserService:
        if self._user_service is None:
            self._user_service = UserService(
                self.data_store,
                self.audit_service,
                admin_email=self._config.get('ADMIN_EMAIL', ''),
            )
        return self._user_service

    @property
    def auth_service(self) -> AuthService:
        if self._auth_service is None:
            self._auth_service = AuthService(self.user_service, self.audit_service)
        return self._auth_service

    @property
    def product_service(self) -> ProductService:
        if self._product_service is None:
            self._product_service = ProductService(self.data_store, self.object_store, self.audit_service)
        return self._product_service

    @property
    def cart_service(self) -> CartService:
        if self._cart_service is None:
            self._cart_service = CartService(self.product_service, self.settings_service)
        return self._cart_service

    @property
    def checkout_service(self) -> CheckoutService:
        if self._checkout_service is None:
            self._checkout_service = CheckoutService(
                self.data_store,
                self.settings_service,
                self.user_service,
                self.audit_service,
            )
        return self._checkout_service

    @property
    def checkout_session(self) -> CheckoutSession:
        if self._checkout_session is None:
            self._checkout_session = CheckoutSession(self.checkout_service, self.cart_service)
        return self._checkout_session

    @property
    def print_job_service(self) -> PrintJobService:
        if self._print_job_service is None:
            self._print_job_service = PrintJobService(self.data_store, self.object_store, self.audit_service)
        return self._print_job_service

    @property
    def order_service(self) -> OrderService:
        if self._order_service is None:
            self._order_service = OrderService(self.data_store, self.audit_service)
        return self._order_service

    @property
    def stats_service(self) -> StatsService:
        if self._stats_service is None:
            self._stats_service = StatsService(self.data_store)
        return self._stats_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    def reset(self) -> None:
        """
        Reinicia todas las instancias.
        Útil para testing o para recargar datos.
        """
        self._data_store: Optional[JsonDataStore] = None
        self._object_store: Optional[LocalObjectStore] = None

        self._audit_service: Optional[AuditService] = None
        self._settings_service: Optional[SettingsService] = None
        self._user_service: Optional[UserService] = None
        self._auth_service: Optional[AuthService] = None
        self._product_service: Optional[ProductService] = None
        self._cart_service: Optional[CartService] = None
        self._checkout_service: Optional[CheckoutService] = None
        self._checkout_session: Optional[CheckoutSession] = None
        self._print_job_service: Optional[PrintJobService] = None
        self._order_service: Optional[OrderService] = None
        self._stats_service: Optional[StatsService] = None


def get_container(app=None) -> AppContainer:
    """
    Contenedor de la app Flask actual (o de la indicada).

    Returns:
        Instancia del contenedor registrada por create_app()
    """
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions['tienda']
