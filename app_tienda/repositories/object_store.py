# ==============================================================================
# OBJECT STORE LOCAL - Implementación de IObjectStore sobre el disco
# ==============================================================================
# Estructura: <root>/<bucket>/<ruta>
# URL pública: <public_url>/<bucket>/<ruta>
# ==============================================================================

import logging
import os
from typing import List, Optional

from werkzeug.utils import safe_join

from .exceptions import StorageError
from .interfaces import FileLike

logger = logging.getLogger(__name__)


class LocalObjectStore:
    """
    Almacenamiento de archivos en un directorio local.

    Nunca sobrescribe un archivo existente y rechaza rutas que escapen
    del bucket.
    """

    def __init__(self, root_dir: str, public_url: str = '/storage'):
        """
        Args:
            root_dir: Directorio raíz del almacenamiento
            public_url: Prefijo de las URLs públicas
        """
        self.root_dir = root_dir
        self.public_url = public_url.rstrip('/')
        os.makedirs(root_dir, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> str:
        bucket_dir = safe_join(self.root_dir, bucket)
        target = safe_join(bucket_dir, path) if bucket_dir and path else None
        if not target:
            raise StorageError('Ruta de archivo inválida', bucket=bucket, path=path)
        return target

    def upload(self, bucket: str, path: str, file: FileLike) -> str:
        """
        Guarda un archivo.

        Args:
            bucket: Bucket destino
            path: Ruta relativa dentro del bucket
            file: bytes, archivo abierto o FileStorage de werkzeug

        Returns:
            La ruta guardada

        Raises:
            StorageError: Ruta inválida, archivo existente o error de escritura
        """
        target = self._resolve(bucket, path)
        if os.path.exists(target):
            raise StorageError('El archivo ya existe', bucket=bucket, path=path)

        if isinstance(file, (bytes, bytearray)):
            data = bytes(file)
        elif hasattr(file, 'read'):
            data = file.read()
        else:
            raise StorageError('Archivo no soportado', bucket=bucket, path=path)

        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            # 'xb' falla si otro proceso creó el archivo entre medio
            with open(target, 'xb') as f:
                f.write(data)
        except FileExistsError:
            raise StorageError('El archivo ya existe', bucket=bucket, path=path)
        except OSError as e:
            logger.error('Error subiendo %s/%s: %s', bucket, path, e)
            raise StorageError('No se pudo guardar el archivo', bucket=bucket, path=path) from e

        logger.info('Archivo guardado: %s/%s (%d bytes)', bucket, path, len(data))
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f'{self.public_url}/{bucket}/{path}'

    def remove(self, bucket: str, paths: List[str]) -> List[str]:
        """
        Elimina archivos. Las rutas inexistentes se ignoran.

        Returns:
            Rutas efectivamente eliminadas
        """
        removed = []
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                os.remove(target)
                removed.append(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error('Error eliminando %s/%s: %s', bucket, path, e)
                raise StorageError('No se pudo eliminar el archivo', bucket=bucket, path=path) from e
        return removed

    def path_from_public_url(self, bucket: str, url: str) -> Optional[str]:
        """
        Extrae la ruta dentro del bucket desde una URL pública.

        Ejemplo:
            '/storage/products/print-files/1-abc.pdf' -> 'print-files/1-abc.pdf'
        """
        if not url:
            return None
        prefix = f'{self.public_url}/{bucket}/'
        if not url.startswith(prefix):
            return None
        path = url[len(prefix):]
        return path.split('?', 1)[0] or None

    def exists(self, bucket: str, path: str) -> bool:
        try:
            return os.path.isfile(self._resolve(bucket, path))
        except StorageError:
            return False
