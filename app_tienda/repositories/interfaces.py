# ==============================================================================
# INTERFACES DE PERSISTENCIA
# ==============================================================================
#
# Contratos (protocolos) de los colaboradores externos del sistema:
#
# 1. DATA STORE
#    - Almacenamiento por filas, consultable por tabla y filtros
#    - Tablas: products, orders, order_items, print_jobs, users,
#      settings, audit_logs
#
# 2. OBJECT STORE
#    - Archivos organizados en buckets (imágenes de productos,
#      archivos de impresión)
#
# Los servicios dependen de estas interfaces, NO de las implementaciones.
# Cambiar JSON -> Postgres solo requiere una nueva implementación y
# cambiar la instanciación en app_container.py.
#
# ==============================================================================

from typing import Any, BinaryIO, Callable, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable


# Política de acceso: recibe la fila a insertar, retorna False para rechazarla
InsertPolicy = Callable[[Dict[str, Any]], bool]

# Máximo de filas devueltas por cualquier consulta
MAX_QUERY_ROWS = 1000


# ==============================================================================
# DATA STORE
# ==============================================================================

@runtime_checkable
class IDataStore(Protocol):
    """
    Interfaz del almacenamiento de datos por filas.

    Todas las operaciones pueden lanzar DataStoreError (o sus subclases
    PolicyViolationError / RecordNotFoundError).
    """

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Filas que cumplen los filtros de igualdad (máx. MAX_QUERY_ROWS)."""
        ...

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Una fila por ID."""
        ...

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Inserta una fila y la retorna con id y timestamps."""
        ...

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Actualiza las filas que cumplen los filtros."""
        ...

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Elimina filas; retorna cuántas se eliminaron."""
        ...

    def upsert(self, table: str, row: Dict[str, Any], conflict_key: str = 'id') -> Dict[str, Any]:
        """Inserta o actualiza según la columna de conflicto."""
        ...

    def decrement_stock(self, product_id: str, quantity: int) -> Tuple[int, int]:
        """Descuenta stock de forma atómica (piso 0). Retorna (anterior, nuevo)."""
        ...

    def set_insert_policy(self, table: str, policy: Optional[InsertPolicy]) -> None:
        """Instala (o quita) la política de inserción de una tabla."""
        ...


# ==============================================================================
# OBJECT STORE
# ==============================================================================

FileLike = Union[bytes, BinaryIO, Any]


@runtime_checkable
class IObjectStore(Protocol):
    """
    Interfaz del almacenamiento de archivos.

    Las operaciones lanzan StorageError ante fallos.
    """

    def upload(self, bucket: str, path: str, file: FileLike) -> str:
        """Sube un archivo; retorna la ruta guardada."""
        ...

    def get_public_url(self, bucket: str, path: str) -> str:
        """URL pública de un archivo."""
        ...

    def remove(self, bucket: str, paths: List[str]) -> List[str]:
        """Elimina archivos; retorna las rutas efectivamente eliminadas."""
        ...

    def path_from_public_url(self, bucket: str, url: str) -> Optional[str]:
        """Ruta interna a partir de una URL pública (None si no pertenece al bucket)."""
        ...
