# ==============================================================================
# EXCEPCIONES DE LA CAPA DE PERSISTENCIA
# ==============================================================================
# Los repositorios lanzan estas excepciones ante fallos del backend.
# Los servicios las capturan en el borde del flujo, registran el detalle
# y devuelven un mensaje genérico al usuario.
# ==============================================================================


class DataStoreError(Exception):
    """Error base del almacenamiento de datos."""

    def __init__(self, message: str, table: str = None):
        super().__init__(message)
        self.table = table


class PolicyViolationError(DataStoreError):
    """Una política de acceso rechazó la escritura."""


class RecordNotFoundError(DataStoreError):
    """El registro solicitado no existe."""


class StorageError(Exception):
    """Error del almacenamiento de archivos (object store)."""

    def __init__(self, message: str, bucket: str = None, path: str = None):
        super().__init__(message)
        self.bucket = bucket
        self.path = path
