# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos y archivos
# ==============================================================================
# Implementaciones de los colaboradores externos (Data Store, Object Store)
# detrás de interfaces Protocol. Los servicios dependen de las interfaces.
# ==============================================================================

from .interfaces import IDataStore, IObjectStore, InsertPolicy, MAX_QUERY_ROWS
from .exceptions import (
    DataStoreError,
    PolicyViolationError,
    RecordNotFoundError,
    StorageError,
)
from .base import JsonTable
from .data_store import JsonDataStore, TABLES
from .object_store import LocalObjectStore

__all__ = [
    'IDataStore',
    'IObjectStore',
    'InsertPolicy',
    'MAX_QUERY_ROWS',
    'DataStoreError',
    'PolicyViolationError',
    'RecordNotFoundError',
    'StorageError',
    'JsonTable',
    'JsonDataStore',
    'TABLES',
    'LocalObjectStore',
]
