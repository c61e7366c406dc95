# ==============================================================================
# TABLA BASE - Acceso a archivos JSON
# ==============================================================================

import json
import os
import threading
from typing import Any, Dict, List


class JsonTable:
    """
    Una tabla persistida como lista de filas en un archivo JSON.

    Las escrituras pasan por un archivo temporal y os.replace para que
    un fallo a mitad de escritura no deje el archivo corrupto.

    Ejemplo: products.json -> [{...}, {...}]
    """

    # Lock global para evitar escrituras concurrentes a archivos
    _file_lock = threading.RLock()

    def __init__(self, name: str, file_path: str):
        """
        Args:
            name: Nombre lógico de la tabla
            file_path: Ruta absoluta al archivo JSON
        """
        self.name = name
        self.file_path = file_path
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        """Crea el archivo con una lista vacía si no existe."""
        if not os.path.exists(self.file_path):
            os.makedirs(os.path.dirname(self.file_path) or '.', exist_ok=True)
            self._write_raw([])

    def _read_raw(self) -> Any:
        with self._file_lock:
            try:
                with open(self.file_path, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except FileNotFoundError:
                return []

    def _write_raw(self, data: Any) -> None:
        with self._file_lock:
            # Escribir a archivo temporal primero para atomicidad
            temp_path = self.file_path + '.tmp'
            try:
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(temp_path, self.file_path)
            except Exception:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise

    def rows(self) -> List[Dict[str, Any]]:
        """
        Todas las filas de la tabla.

        Raises:
            json.JSONDecodeError: Si el archivo tiene JSON inválido
            OSError: Si hay error de lectura
        """
        data = self._read_raw()
        return data if isinstance(data, list) else []

    def save(self, rows: List[Dict[str, Any]]) -> None:
        """Reemplaza el contenido completo de la tabla."""
        self._write_raw(rows)

    @property
    def lock(self) -> threading.RLock:
        return self._file_lock
