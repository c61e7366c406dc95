# ==============================================================================
# TRANSICIONES DE ESTADO - Pedidos y trabajos de impresión
# ==============================================================================
# Tabla de transiciones por entidad. Los estados terminales no tienen
# salidas. Cancelar es posible desde cualquier estado no terminal.
# ==============================================================================

from typing import Dict, FrozenSet, Optional

from app_tienda.models.entities import OrderStatus, PrintJobStatus


ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING.value: frozenset({OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value}),
    OrderStatus.PROCESSING.value: frozenset({OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.SHIPPED.value: frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.COMPLETED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}

PRINT_JOB_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PrintJobStatus.PENDING.value: frozenset({PrintJobStatus.PROCESSING.value, PrintJobStatus.CANCELLED.value}),
    PrintJobStatus.PROCESSING.value: frozenset({PrintJobStatus.PRINTED.value, PrintJobStatus.CANCELLED.value}),
    PrintJobStatus.PRINTED.value: frozenset({PrintJobStatus.DELIVERED.value, PrintJobStatus.CANCELLED.value}),
    PrintJobStatus.DELIVERED.value: frozenset(),
    PrintJobStatus.CANCELLED.value: frozenset(),
}


def check_transition(
    transitions: Dict[str, FrozenSet[str]],
    current: str,
    new: str,
) -> Optional[str]:
    """
    Valida un cambio de estado.

    Returns:
        None si la transición es válida, o el mensaje de error
    """
    if current == new:
        return f'El estado ya es "{new}"'
    allowed = transitions.get(current)
    if allowed is None:
        return f'Estado actual desconocido: "{current}"'
    if new not in allowed:
        if not allowed:
            return f'No se puede cambiar de "{current}" a "{new}": "{current}" es un estado final'
        return f'No se puede cambiar de "{current}" a "{new}"'
    return None


def can_transition_order(current: str, new: str) -> bool:
    return check_transition(ORDER_TRANSITIONS, current, new) is None


def can_transition_print_job(current: str, new: str) -> bool:
    return check_transition(PRINT_JOB_TRANSITIONS, current, new) is None
