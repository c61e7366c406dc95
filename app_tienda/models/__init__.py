# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Entidades del dominio (catálogo, carrito, pedidos, impresión, usuarios)
# definidas con dataclasses. Independientes del Data Store: se persisten
# como diccionarios y se tipan con from_dict()/to_dict().
# ==============================================================================

from .entities import (
    # Catálogo
    Product,

    # Carrito
    CartItem,
    CartItemType,
    MAX_ITEM_QUANTITY,

    # Pedidos
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    ShippingDetails,
    CheckoutStep,

    # Impresión
    PrintJob,
    PrintOptions,
    PrintJobStatus,
    PrintJobStep,
    PaperType,
    PrintSize,
    CustomerInfo,

    # Usuarios
    User,
    UserKind,

    # Auditoría
    AuditType,
)

__all__ = [
    'Product',
    'CartItem',
    'CartItemType',
    'MAX_ITEM_QUANTITY',
    'Order',
    'OrderItem',
    'OrderStatus',
    'PaymentMethod',
    'ShippingDetails',
    'CheckoutStep',
    'PrintJob',
    'PrintOptions',
    'PrintJobStatus',
    'PrintJobStep',
    'PaperType',
    'PrintSize',
    'CustomerInfo',
    'User',
    'UserKind',
    'AuditType',
]
