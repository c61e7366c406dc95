# ==============================================================================
# VALIDADORES - Filtros de entrada del panel de administración
# ==============================================================================
# Se aplican ANTES de que cualquier consulta/actualización llegue al
# Data Store: IDs con forma de UUID, estados del enum, texto sin < >,
# búsquedas acotadas y límites de filas.
# ==============================================================================

import re
from typing import Any, Optional

from app_tienda.models.entities import OrderStatus, PrintJobStatus
from app_tienda.repositories.interfaces import MAX_QUERY_ROWS


UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
URL_PATTERN = re.compile(r'^https?://[^\s/$.?#].[^\s]*$', re.IGNORECASE)

# Caracteres no permitidos en nombres de archivo (incluye controles)
_UNSAFE_FILE_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')

# Etiquetas guardadas en los datos; no participan en las búsquedas
_MARKUP = re.compile(r'<[^>]*>')

MAX_SEARCH_LENGTH = 100

ORDER_STATUSES = tuple(s.value for s in OrderStatus)
PRINT_JOB_STATUSES = tuple(s.value for s in PrintJobStatus)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def sanitize_string(value: Any) -> str:
    """Quita < y > y espacios en los extremos."""
    if value is None:
        return ''
    return re.sub(r'[<>]', '', str(value)).strip()


def normalize_search_term(term: Any) -> Optional[str]:
    """
    Prepara un término de búsqueda libre.

    Returns:
        Término saneado en minúsculas, '' si está vacío, o None si
        supera MAX_SEARCH_LENGTH caracteres
    """
    cleaned = sanitize_string(term)
    if len(cleaned) > MAX_SEARCH_LENGTH:
        return None
    return cleaned.lower()


def is_valid_order_status(status: Any) -> bool:
    return status in ORDER_STATUSES


def is_valid_print_job_status(status: Any) -> bool:
    return status in PRINT_JOB_STATUSES


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and len(email) <= 254 and bool(EMAIL_PATTERN.match(email))


def is_valid_url(url: Any) -> bool:
    return isinstance(url, str) and bool(URL_PATTERN.match(url))


def sanitize_file_name(name: Any) -> str:
    """Quita '..', separadores y caracteres peligrosos de un nombre de archivo."""
    cleaned = str(name or '').replace('..', '')
    cleaned = cleaned.replace('/', '').replace('\\', '')
    return _UNSAFE_FILE_CHARS.sub('', cleaned).strip()


def cap_limit(limit: Any, default: int = MAX_QUERY_ROWS) -> int:
    """Límite de filas entre 1 y MAX_QUERY_ROWS."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, MAX_QUERY_ROWS))


def matches_search(term: str, *fields: Any) -> bool:
    """
    Coincidencia de subcadena sin distinguir mayúsculas en cualquiera de
    los campos. Las etiquetas HTML de los campos se ignoran.
    """
    if not term:
        return True
    return any(term in _MARKUP.sub('', str(f)).lower() for f in fields if f is not None)
