# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad representa un concepto del negocio (tienda + imprenta).
# Diseñadas para ser independientes del mecanismo de persistencia:
# el Data Store guarda diccionarios, estas clases los tipan.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class CartItemType(str, Enum):
    """Tipos de ítem en el carrito."""
    PRODUCT = "product"
    PRINT = "print"


class OrderStatus(str, Enum):
    """Estados posibles de un pedido."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    COMPLETED = "completed"      # Terminal
    CANCELLED = "cancelled"      # Terminal


class PrintJobStatus(str, Enum):
    """Estados posibles de un trabajo de impresión."""
    PENDING = "pending"
    PROCESSING = "processing"
    PRINTED = "printed"
    DELIVERED = "delivered"      # Terminal
    CANCELLED = "cancelled"      # Terminal


class PaymentMethod(str, Enum):
    """Métodos de pago aceptados en el checkout."""
    YAPE = "yape"
    PLIN = "plin"
    TRANSFER = "transfer"
    CARD = "card"


class PaperType(str, Enum):
    """Tipos de papel para impresión."""
    BOND = "bond"
    COUCHE = "couche"
    CARTULINA = "cartulina"


class PrintSize(str, Enum):
    """Tamaños de hoja para impresión."""
    A4 = "a4"
    A3 = "a3"
    LETTER = "letter"
    LEGAL = "legal"


class UserKind(str, Enum):
    """Tipo de identidad: cliente registrado o invitado de checkout."""
    REGISTERED = "registered"
    GUEST = "guest"


class AuditType(str, Enum):
    """Tipos de eventos de auditoría."""
    PEDIDO = "PEDIDO"
    STOCK = "STOCK"
    PRODUCTO = "PRODUCTO"
    IMPRESION = "IMPRESION"
    USUARIO = "USUARIO"
    SISTEMA = "SISTEMA"


class CheckoutStep(str, Enum):
    """Pasos del checkout (un intento por sesión)."""
    CART = "cart"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"
    FAILURE = "failure"


class PrintJobStep(str, Enum):
    """Progreso visible al enviar un trabajo de impresión."""
    UPLOADING = "uploading"
    SAVING = "saving"
    SUCCESS = "success"


# Cantidad máxima por línea de pedido
MAX_ITEM_QUANTITY = 1000


# ==============================================================================
# CATÁLOGO
# ==============================================================================

@dataclass
class Product:
    """
    Producto del catálogo.

    Attributes:
        id: Identificador (UUID)
        name: Nombre del producto
        description: Descripción
        price: Precio en soles
        category: Categoría (tecnologia, oficina, escolar, ...)
        stock: Unidades disponibles (nunca negativo)
        image_url: URL pública de la imagen
        available_colors: Colores ofrecidos
        available_sizes: Tallas/tamaños ofrecidos
        is_active: Visible en la tienda
    """
    id: str
    name: str
    price: float
    category: str = ''
    description: str = ''
    stock: int = 0
    image_url: Optional[str] = None
    available_colors: List[str] = field(default_factory=list)
    available_sizes: List[str] = field(default_factory=list)
    is_active: bool = True

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': round(self.price, 2),
            'category': self.category,
            'stock': max(0, self.stock),
            'image_url': self.image_url,
            'available_colors': list(self.available_colors),
            'available_sizes': list(self.available_sizes),
            'is_active': self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            price=float(data.get('price', 0) or 0),
            category=data.get('category', ''),
            description=data.get('description', '') or '',
            stock=int(data.get('stock', 0) or 0),
            image_url=data.get('image_url'),
            available_colors=data.get('available_colors') or [],
            available_sizes=data.get('available_sizes') or [],
            is_active=bool(data.get('is_active', True)),
        )


# ==============================================================================
# IMPRESIÓN
# ==============================================================================

@dataclass
class PrintOptions:
    """Opciones de un trabajo de impresión."""
    paper_type: str = PaperType.BOND.value
    color: bool = False
    size: str = PrintSize.A4.value
    copies: int = 1
    double_sided: bool = False
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'paper_type': self.paper_type,
            'color': self.color,
            'size': self.size,
            'copies': self.copies,
            'double_sided': self.double_sided,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PrintOptions':
        """Acepta claves snake_case o las del formulario (paperType, doubleSided)."""
        data = data or {}
        return cls(
            paper_type=data.get('paper_type', data.get('paperType', PaperType.BOND.value)),
            color=to_bool(data.get('color', False)),
            size=data.get('size', PrintSize.A4.value),
            copies=_to_int(data.get('copies'), 1),
            double_sided=to_bool(data.get('double_sided', data.get('doubleSided', False))),
            notes=data.get('notes', data.get('additionalNotes')),
        )


@dataclass
class CustomerInfo:
    """Datos de contacto del cliente de un trabajo de impresión."""
    name: str = ''
    email: str = ''
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name.strip(),
            'email': self.email.strip(),
            'phone': (self.phone or '').strip() or None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomerInfo':
        data = data or {}
        return cls(
            name=str(data.get('name') or ''),
            email=str(data.get('email') or ''),
            phone=data.get('phone'),
        )


@dataclass
class PrintJob:
    """
    Trabajo de impresión enviado por un cliente.

    Attributes:
        id: Identificador (UUID)
        file_url: URL pública del archivo subido
        options: Opciones de impresión
        price: Precio calculado
        status: Estado del trabajo
        customer_info: Snapshot de los datos del cliente
        user_id: Cliente registrado (opcional)
    """
    id: str
    file_url: str
    options: PrintOptions
    price: float
    status: str = PrintJobStatus.PENDING.value
    customer_info: CustomerInfo = field(default_factory=CustomerInfo)
    user_id: Optional[str] = None
    created_at: str = ''
    updated_at: str = ''

    @property
    def order_number(self) -> str:
        """Número corto mostrado al cliente."""
        return self.id[:8].upper()

    def to_dict(self) -> Dict[str, Any]:
        d = {
            'id': self.id,
            'user_id': self.user_id,
            'file_url': self.file_url,
            'price': round(self.price, 2),
            'status': self.status,
            'customer_info': self.customer_info.to_dict(),
        }
        d.update(self.options.to_dict())
        if self.created_at:
            d['created_at'] = self.created_at
        if self.updated_at:
            d['updated_at'] = self.updated_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PrintJob':
        return cls(
            id=data.get('id', ''),
            file_url=data.get('file_url', ''),
            options=PrintOptions.from_dict(data),
            price=float(data.get('price', 0) or 0),
            status=data.get('status', PrintJobStatus.PENDING.value),
            customer_info=CustomerInfo.from_dict(data.get('customer_info') or {}),
            user_id=data.get('user_id'),
            created_at=data.get('created_at', ''),
            updated_at=data.get('updated_at', ''),
        )


# ==============================================================================
# CARRITO
# ==============================================================================

@dataclass
class CartItem:
    """
    Ítem en el carrito (vive solo en la sesión).

    Attributes:
        id: ID del producto (o del ítem de impresión)
        type: product | print
        name: Nombre mostrado
        price: Precio unitario
        quantity: Cantidad (1..MAX_ITEM_QUANTITY)
        image: Imagen mostrada
        category: Categoría del producto
        customization: Personalización libre (texto, fuente, color)
        print_options: Opciones si es un ítem de impresión
    """
    id: str
    type: str
    name: str
    price: float
    quantity: int = 1
    image: str = ''
    category: Optional[str] = None
    customization: Optional[Dict[str, Any]] = None
    print_options: Optional[Dict[str, Any]] = None

    @property
    def subtotal(self) -> float:
        """Subtotal de este ítem."""
        return round(self.quantity * self.price, 2)

    @property
    def is_product(self) -> bool:
        return self.type == CartItemType.PRODUCT.value

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para la sesión."""
        return {
            'id': self.id,
            'type': self.type,
            'name': self.name,
            'price': self.price,
            'quantity': self.quantity,
            'image': self.image,
            'category': self.category,
            'customization': self.customization,
            'print_options': self.print_options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        """Crea instancia desde diccionario de sesión."""
        return cls(
            id=str(data.get('id', '')),
            type=data.get('type', CartItemType.PRODUCT.value),
            name=data.get('name', ''),
            price=float(data.get('price', 0) or 0),
            quantity=_to_int(data.get('quantity'), 1),
            image=data.get('image', '') or '',
            category=data.get('category'),
            customization=data.get('customization'),
            print_options=data.get('print_options', data.get('printOptions')),
        )


# ==============================================================================
# PEDIDOS
# ==============================================================================

@dataclass
class ShippingDetails:
    """Datos de envío ingresados en el checkout."""
    full_name: str = ''
    address: str = ''
    phone: str = ''
    city: str = ''
    postal_code: str = ''

    def full_address(self) -> str:
        """Dirección completa tal como se guarda en el pedido."""
        parts = [self.address.strip(), self.city.strip(), self.postal_code.strip()]
        return ', '.join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'full_name': self.full_name,
            'address': self.address,
            'phone': self.phone,
            'city': self.city,
            'postal_code': self.postal_code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShippingDetails':
        data = data or {}
        return cls(
            full_name=str(data.get('full_name', data.get('fullName')) or ''),
            address=str(data.get('address') or ''),
            phone=str(data.get('phone') or ''),
            city=str(data.get('city') or ''),
            postal_code=str(data.get('postal_code', data.get('postalCode')) or ''),
        )


@dataclass
class OrderItem:
    """
    Línea de un pedido. product_id o print_job_id identifica el tipo.
    """
    id: str
    order_id: str
    quantity: int
    unit_price: float
    product_id: Optional[str] = None
    print_job_id: Optional[str] = None
    customization: Optional[Dict[str, Any]] = None

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'order_id': self.order_id,
            'product_id': self.product_id,
            'print_job_id': self.print_job_id,
            'quantity': self.quantity,
            'unit_price': round(self.unit_price, 2),
            'customization': self.customization,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderItem':
        return cls(
            id=data.get('id', ''),
            order_id=data.get('order_id', ''),
            quantity=_to_int(data.get('quantity'), 0),
            unit_price=float(data.get('unit_price', 0) or 0),
            product_id=data.get('product_id'),
            print_job_id=data.get('print_job_id'),
            customization=data.get('customization'),
        )


@dataclass
class Order:
    """
    Pedido de un cliente.

    Attributes:
        id: Identificador (UUID)
        user_id: Cliente (registrado o invitado)
        status: Estado del pedido
        total_amount: Total cobrado (subtotal + envío)
        shipping_cost: Envío aplicado al crear el pedido
        shipping_address: Dirección completa
        payment_method: yape | plin | transfer | card
    """
    id: str
    user_id: str
    total_amount: float
    shipping_address: str
    payment_method: str
    status: str = OrderStatus.PENDING.value
    shipping_cost: float = 0.0
    created_at: str = ''
    updated_at: str = ''

    def to_dict(self) -> Dict[str, Any]:
        d = {
            'id': self.id,
            'user_id': self.user_id,
            'status': self.status,
            'total_amount': round(self.total_amount, 2),
            'shipping_cost': round(self.shipping_cost, 2),
            'shipping_address': self.shipping_address,
            'payment_method': self.payment_method,
        }
        if self.created_at:
            d['created_at'] = self.created_at
        if self.updated_at:
            d['updated_at'] = self.updated_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        return cls(
            id=data.get('id', ''),
            user_id=data.get('user_id', ''),
            total_amount=float(data.get('total_amount', 0) or 0),
            shipping_address=data.get('shipping_address', ''),
            payment_method=data.get('payment_method', ''),
            status=data.get('status', OrderStatus.PENDING.value),
            shipping_cost=float(data.get('shipping_cost', 0) or 0),
            created_at=data.get('created_at', ''),
            updated_at=data.get('updated_at', ''),
        )


# ==============================================================================
# USUARIOS
# ==============================================================================

@dataclass
class User:
    """
    Cliente o administrador.

    Los invitados (kind=guest) no tienen email ni contraseña y nunca
    pueden iniciar sesión.
    """
    id: str
    email: Optional[str] = None
    full_name: str = ''
    phone: str = ''
    address: str = ''
    is_admin: bool = False
    kind: str = UserKind.REGISTERED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'address': self.address,
            'is_admin': self.is_admin,
            'kind': self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data.get('id', ''),
            email=data.get('email'),
            full_name=data.get('full_name', '') or '',
            phone=data.get('phone', '') or '',
            address=data.get('address', '') or '',
            is_admin=bool(data.get('is_admin', False)),
            kind=data.get('kind', UserKind.REGISTERED.value),
        )


# ==============================================================================
# HELPERS
# ==============================================================================

def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'on', 'yes', 'si', 'sí')
    return bool(value)
