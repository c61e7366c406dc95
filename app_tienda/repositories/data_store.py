# ==============================================================================
# DATA STORE JSON - Implementación de IDataStore sobre archivos
# ==============================================================================
# Una tabla = un archivo <tabla>.json en el directorio de datos.
# Cada operación es una llamada independiente (sin transacciones entre
# llamadas); decrement_stock es la única lectura-modificación-escritura
# que se resuelve completa bajo el lock.
# ==============================================================================

import json
import logging
import os
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .base import JsonTable
from .exceptions import DataStoreError, PolicyViolationError, RecordNotFoundError
from .interfaces import InsertPolicy, MAX_QUERY_ROWS

logger = logging.getLogger(__name__)


TABLES = (
    'products',
    'orders',
    'order_items',
    'print_jobs',
    'users',
    'settings',
    'audit_logs',
)

# Columnas con restricción de unicidad (valores None no cuentan)
UNIQUE_COLUMNS = {
    'users': ('email',),
    'settings': ('key',),
}


def _now() -> str:
    return datetime.now().isoformat()


class JsonDataStore:
    """
    Data Store respaldado por archivos JSON.

    Uso:
        store = JsonDataStore('/ruta/data')
        product = store.insert('products', {'name': 'Mouse', 'price': 25, 'stock': 10})
        store.decrement_stock(product['id'], 2)
    """

    def __init__(self, data_dir: str):
        """
        Args:
            data_dir: Directorio donde viven los archivos de tablas
        """
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._tables = {
            name: JsonTable(name, os.path.join(data_dir, f'{name}.json'))
            for name in TABLES
        }
        self._policies: Dict[str, InsertPolicy] = {}

    # ==========================================================================
    # HELPERS INTERNOS
    # ==========================================================================

    def _table(self, table: str) -> JsonTable:
        try:
            return self._tables[table]
        except KeyError:
            raise DataStoreError(f'Tabla desconocida: {table}', table=table)

    def _load(self, table: str) -> List[Dict[str, Any]]:
        try:
            return self._table(table).rows()
        except (OSError, json.JSONDecodeError) as e:
            logger.error('No se pudo leer la tabla %s: %s', table, e)
            raise DataStoreError(f'Error leyendo {table}', table=table) from e

    def _save(self, table: str, rows: List[Dict[str, Any]]) -> None:
        try:
            self._table(table).save(rows)
        except (OSError, TypeError, ValueError) as e:
            logger.error('No se pudo escribir la tabla %s: %s', table, e)
            raise DataStoreError(f'Error escribiendo {table}', table=table) from e

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        if not filters:
            return True
        return all(row.get(k) == v for k, v in filters.items())

    def _check_unique(self, table: str, rows: List[Dict[str, Any]], row: Dict[str, Any]) -> None:
        for column in UNIQUE_COLUMNS.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            for existing in rows:
                if existing.get('id') != row.get('id') and existing.get(column) == value:
                    raise DataStoreError(
                        f'Valor duplicado en {table}.{column}', table=table
                    )

    # ==========================================================================
    # POLÍTICAS DE ACCESO
    # ==========================================================================

    def set_insert_policy(self, table: str, policy: Optional[InsertPolicy]) -> None:
        """Instala (o quita con None) la política de inserción de una tabla."""
        self._table(table)
        if policy is None:
            self._policies.pop(table, None)
        else:
            self._policies[table] = policy

    # ==========================================================================
    # CONSULTAS
    # ==========================================================================

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Filas que cumplen los filtros de igualdad.

        Args:
            table: Nombre de la tabla
            filters: {columna: valor}
            order_by: Columna de ordenamiento (None al final)
            descending: Orden descendente
            limit: Máximo de filas (siempre acotado a MAX_QUERY_ROWS)

        Returns:
            Copias de las filas encontradas
        """
        rows = [dict(r) for r in self._load(table) if self._matches(r, filters)]

        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + missing

        if limit is None or limit > MAX_QUERY_ROWS:
            limit = MAX_QUERY_ROWS
        return rows[:max(0, limit)]

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        for row in self._load(table):
            if row.get('id') == record_id:
                return dict(row)
        return None

    # ==========================================================================
    # ESCRITURAS
    # ==========================================================================

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Inserta una fila.

        Raises:
            PolicyViolationError: Si la política de la tabla la rechaza
            DataStoreError: Si viola una columna única o falla la escritura
        """
        policy = self._policies.get(table)
        if policy is not None and not policy(row):
            raise PolicyViolationError(
                f'La política de acceso rechazó la inserción en {table}', table=table
            )

        record = dict(row)
        record.setdefault('id', str(uuid.uuid4()))
        now = _now()
        record.setdefault('created_at', now)
        record['updated_at'] = record.get('updated_at') or now

        with self._table(table).lock:
            rows = self._load(table)
            if any(r.get('id') == record['id'] for r in rows):
                raise DataStoreError(f'ID duplicado en {table}', table=table)
            self._check_unique(table, rows, record)
            rows.append(record)
            self._save(table, rows)
        return dict(record)

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Actualiza las filas que cumplen los filtros. Retorna las filas actualizadas."""
        if not filters:
            raise DataStoreError('update requiere filtros', table=table)

        updated = []
        with self._table(table).lock:
            rows = self._load(table)
            for r in rows:
                if self._matches(r, filters):
                    candidate = dict(r)
                    candidate.update(patch)
                    candidate['id'] = r.get('id')
                    candidate['updated_at'] = _now()
                    self._check_unique(table, rows, candidate)
                    r.clear()
                    r.update(candidate)
                    updated.append(dict(r))
            if updated:
                self._save(table, rows)
        return updated

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        if not filters:
            raise DataStoreError('delete requiere filtros', table=table)

        with self._table(table).lock:
            rows = self._load(table)
            kept = [r for r in rows if not self._matches(r, filters)]
            removed = len(rows) - len(kept)
            if removed:
                self._save(table, kept)
        return removed

    def upsert(self, table: str, row: Dict[str, Any], conflict_key: str = 'id') -> Dict[str, Any]:
        """
        Inserta o actualiza según la columna de conflicto.

        Si existe una fila con el mismo valor en conflict_key se actualiza
        con los campos recibidos; si no, se inserta (pasando por la política).
        """
        key_value = row.get(conflict_key)
        with self._table(table).lock:
            if key_value is not None:
                existing = self.select(table, {conflict_key: key_value}, limit=1)
                if existing:
                    patch = {k: v for k, v in row.items() if k != 'id'}
                    return self.update(table, {conflict_key: key_value}, patch)[0]
            return self.insert(table, row)

    def prune(self, table: str, keep: int, order_by: str = 'created_at') -> int:
        """
        Conserva solo las `keep` filas más recientes según order_by.

        Returns:
            Cantidad de filas eliminadas
        """
        with self._table(table).lock:
            rows = self._load(table)
            if len(rows) <= keep:
                return 0
            rows.sort(key=lambda r: r.get(order_by) or '', reverse=True)
            self._save(table, rows[:keep])
            return len(rows) - keep

    def decrement_stock(self, product_id: str, quantity: int) -> Tuple[int, int]:
        """
        Descuenta stock de un producto de forma atómica.

        Lectura y escritura ocurren bajo el mismo lock, por lo que dos
        checkouts concurrentes no pierden actualizaciones. El stock nunca
        queda negativo.

        Returns:
            (stock_anterior, stock_nuevo)

        Raises:
            RecordNotFoundError: Si el producto no existe
        """
        if int(quantity) < 0:
            raise DataStoreError('La cantidad a descontar no puede ser negativa', table='products')

        with self._table('products').lock:
            rows = self._load('products')
            for r in rows:
                if r.get('id') == product_id:
                    old_stock = int(r.get('stock') or 0)
                    new_stock = max(0, old_stock - int(quantity))
                    r['stock'] = new_stock
                    r['updated_at'] = _now()
                    self._save('products', rows)
                    return old_stock, new_stock
        raise RecordNotFoundError(f'Producto no encontrado: {product_id}', table='products')
