# ==============================================================================
# NOMBRES DE ARCHIVO EN EL OBJECT STORE
# ==============================================================================

import os
import secrets
import time
from typing import Optional

from werkzeug.utils import secure_filename


# Bucket único para imágenes de productos y archivos de impresión
PRODUCTS_BUCKET = 'products'
PRINT_FILES_PREFIX = 'print-files'
PRODUCT_IMAGES_PREFIX = 'product-images'

_BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


def random_base36(length: int = 6) -> str:
    return ''.join(secrets.choice(_BASE36) for _ in range(length))


def file_extension(filename: Optional[str]) -> str:
    """Extensión en minúsculas sin el punto ('' si no tiene)."""
    name = secure_filename(filename or '')
    ext = os.path.splitext(name)[1]
    return ext[1:].lower() if ext else ''


def generate_object_name(prefix: str, filename: Optional[str]) -> str:
    """
    Nombre resistente a colisiones: <prefijo>/<epoch-ms>-<base36>.<ext>

    Ejemplo:
        >>> generate_object_name('print-files', 'tesis final.pdf')
        'print-files/1718900000000-k3j9x2.pdf'
    """
    stamp = int(time.time() * 1000)
    ext = file_extension(filename)
    name = f'{stamp}-{random_base36()}'
    if ext:
        name = f'{name}.{ext}'
    return f'{prefix}/{name}'
