# ==============================================================================
# SERVICIO DE PRECIOS
# ==============================================================================
# Funciones puras: precio de impresión y totales del carrito.
# Sin I/O ni efectos secundarios; mismas entradas, mismo resultado.
# ==============================================================================

from typing import Any, Dict, Iterable, Union

from app_tienda.models.entities import CartItem, PrintOptions


# Precio base por hoja (S/)
BASE_PRINT_PRICE = 0.50

PAPER_MULTIPLIERS = {
    'bond': 1.0,
    'couche': 1.5,
    'cartulina': 2.0,
}

SIZE_MULTIPLIERS = {
    'a4': 1.0,
    'a3': 2.0,
    'letter': 1.0,
    'legal': 1.5,
}

COLOR_MULTIPLIER = 3.0
DOUBLE_SIDED_MULTIPLIER = 0.9


# ==============================================================================
# MULTIPLICADORES
# ==============================================================================

def paper_multiplier(paper_type: str) -> float:
    """Multiplicador por tipo de papel (desconocido -> 1)."""
    return PAPER_MULTIPLIERS.get(str(paper_type or '').lower(), 1.0)


def size_multiplier(size: str) -> float:
    """Multiplicador por tamaño de hoja (desconocido -> 1)."""
    return SIZE_MULTIPLIERS.get(str(size or '').lower(), 1.0)


def color_multiplier(color: bool) -> float:
    return COLOR_MULTIPLIER if color else 1.0


def double_sided_multiplier(double_sided: bool) -> float:
    return DOUBLE_SIDED_MULTIPLIER if double_sided else 1.0


# ==============================================================================
# PRECIO DE IMPRESIÓN
# ==============================================================================

def compute_print_price(options: Union[PrintOptions, Dict[str, Any]]) -> float:
    """
    Calcula el precio de un trabajo de impresión.

    precio = 0.50 * papel * color * tamaño * copias * doble_cara

    Args:
        options: PrintOptions o diccionario equivalente

    Returns:
        Precio redondeado a 2 decimales (nunca negativo)

    Ejemplo:
        >>> compute_print_price({'paper_type': 'bond', 'copies': 10})
        5.0
    """
    if not isinstance(options, PrintOptions):
        options = PrintOptions.from_dict(options)

    copies = max(1, int(options.copies or 1))

    price = (
        BASE_PRINT_PRICE
        * paper_multiplier(options.paper_type)
        * color_multiplier(options.color)
        * size_multiplier(options.size)
        * copies
        * double_sided_multiplier(options.double_sided)
    )
    return max(0.0, round(price, 2))


# ==============================================================================
# TOTALES DEL CARRITO
# ==============================================================================

def line_total(item: Union[CartItem, Dict[str, Any]]) -> float:
    """Precio unitario por cantidad de una línea."""
    if isinstance(item, CartItem):
        return item.subtotal
    price = float(item.get('price', item.get('unit_price', 0)) or 0)
    quantity = int(item.get('quantity', 0) or 0)
    return round(price * quantity, 2)


def compute_cart_totals(
    items: Iterable[Union[CartItem, Dict[str, Any]]],
    shipping_config: Dict[str, Any],
) -> Dict[str, float]:
    """
    Calcula subtotal, envío y total.

    El subtotal incluye todos los ítems sin importar su tipo. El envío es
    una tarifa plana: 0 si el subtotal alcanza el umbral de envío gratis,
    shippingCost en caso contrario.

    Args:
        items: Ítems del carrito
        shipping_config: {'freeShippingThreshold': ..., 'shippingCost': ...}

    Returns:
        {'subtotal': float, 'shipping': float, 'total': float}
    """
    subtotal = round(sum(line_total(i) for i in items), 2)

    threshold = float(shipping_config.get('freeShippingThreshold', 0) or 0)
    cost = float(shipping_config.get('shippingCost', 0) or 0)
    shipping = 0.0 if subtotal >= threshold else cost

    return {
        'subtotal': subtotal,
        'shipping': shipping,
        'total': round(subtotal + shipping, 2),
    }
