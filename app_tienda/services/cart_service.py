# ==============================================================================
# SERVICIO DE CARRITO
# ==============================================================================
# Centraliza la lógica del carrito de compras.
# El carrito se almacena en la sesión de Flask y nunca se persiste:
# se traduce a líneas de pedido en el checkout.
# ==============================================================================

import time
from typing import Any, Dict, List, Optional

from flask import session

from app_tienda.models.entities import CartItem, CartItemType, MAX_ITEM_QUANTITY, PrintOptions
from app_tienda.services.pricing_service import compute_cart_totals, compute_print_price
from app_tienda.services.product_service import ProductService
from app_tienda.services.settings_service import SettingsService


class CartService:
    """
    Servicio para gestión del carrito de compras.

    Responsabilidades:
    - Agregar/actualizar/eliminar ítems
    - Precios tomados del catálogo (nunca del cliente)
    - Totales con la configuración de envío vigente

    El carrito se almacena en session['cart'].
    """

    SESSION_KEY = 'cart'

    def __init__(self, product_service: ProductService, settings_service: SettingsService):
        self.product_service = product_service
        self.settings_service = settings_service

    def _get_cart(self) -> List[Dict[str, Any]]:
        return list(session.get(self.SESSION_KEY, []))

    def _save_cart(self, cart: List[Dict[str, Any]]) -> None:
        session[self.SESSION_KEY] = cart
        session.modified = True

    def get_cart_items(self) -> List[CartItem]:
        return [CartItem.from_dict(i) for i in self._get_cart()]

    def get_cart(self) -> Dict[str, Any]:
        """
        Carrito con totales calculados.

        Returns:
            Dict con items, item_count, subtotal, shipping, total
        """
        items = self.get_cart_items()
        totals = compute_cart_totals(items, self.settings_service.shipping_config())
        return {
            'items': [dict(i.to_dict(), subtotal=i.subtotal) for i in items],
            'item_count': sum(i.quantity for i in items),
            **totals,
        }

    @staticmethod
    def _parse_quantity(quantity: Any) -> Optional[int]:
        try:
            value = int(quantity)
        except (TypeError, ValueError):
            return None
        if value < 1 or value > MAX_ITEM_QUANTITY:
            return None
        return value

    def add_item(
        self,
        item_id: str,
        item_type: str = CartItemType.PRODUCT.value,
        quantity: Any = 1,
        customization: Dict[str, Any] = None,
        print_options: Dict[str, Any] = None,
        name: str = None
    ) -> Dict[str, Any]:
        """
        Agrega un ítem al carrito. Si ya existe (mismo id y tipo) se suman
        las cantidades, con tope MAX_ITEM_QUANTITY.

        Args:
            item_id: ID del producto (o identificador del ítem de impresión)
            item_type: product | print
            quantity: Cantidad a agregar
            customization: Personalización libre
            print_options: Opciones de impresión (solo tipo print)
            name: Nombre mostrado (solo tipo print)

        Returns:
            Dict con resultado (ok, error, cart)
        """
        if item_type not in (CartItemType.PRODUCT.value, CartItemType.PRINT.value):
            return {'ok': False, 'error': 'Tipo de ítem inválido'}

        qty = self._parse_quantity(quantity)
        if qty is None:
            return {'ok': False, 'error': f'La cantidad debe estar entre 1 y {MAX_ITEM_QUANTITY}'}

        if item_type == CartItemType.PRODUCT.value:
            product = self.product_service.get_product(item_id)
            if not product:
                return {'ok': False, 'error': 'Producto no encontrado'}
            new_item = CartItem(
                id=product['id'],
                type=item_type,
                name=product['name'],
                price=product['price'],
                quantity=qty,
                image=product.get('image_url') or '',
                category=product.get('category'),
                customization=customization or None,
            )
        else:
            options = PrintOptions.from_dict(print_options or {})
            new_item = CartItem(
                id=item_id or f'print-{int(time.time() * 1000)}',
                type=item_type,
                name=name or 'Trabajo de impresión',
                price=compute_print_price(options),
                quantity=qty,
                print_options=options.to_dict(),
            )

        cart = self._get_cart()
        for item in cart:
            if item.get('id') == new_item.id and item.get('type') == new_item.type:
                item['quantity'] = min(MAX_ITEM_QUANTITY, int(item.get('quantity', 0)) + qty)
                if customization:
                    item['customization'] = customization
                break
        else:
            cart.append(new_item.to_dict())

        self._save_cart(cart)
        return {'ok': True, 'cart': self.get_cart()}

    def update_quantity(self, item_id: str, quantity: Any, item_type: str = None) -> Dict[str, Any]:
        """Cambia la cantidad de un ítem (cantidades menores a 1 se rechazan)."""
        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            return {'ok': False, 'error': 'Cantidad inválida'}
        if qty < 1:
            return {'ok': False, 'error': 'La cantidad debe ser al menos 1'}
        qty = min(qty, MAX_ITEM_QUANTITY)

        cart = self._get_cart()
        for item in cart:
            if item.get('id') == item_id and (item_type is None or item.get('type') == item_type):
                item['quantity'] = qty
                self._save_cart(cart)
                return {'ok': True, 'cart': self.get_cart()}
        return {'ok': False, 'error': 'El ítem no está en el carrito'}

    def remove_item(self, item_id: str, item_type: str = None) -> Dict[str, Any]:
        cart = self._get_cart()
        kept = [
            i for i in cart
            if not (i.get('id') == item_id and (item_type is None or i.get('type') == item_type))
        ]
        if len(kept) == len(cart):
            return {'ok': False, 'error': 'El ítem no está en el carrito'}
        self._save_cart(kept)
        return {'ok': True, 'cart': self.get_cart()}

    def clear_cart(self) -> None:
        self._save_cart([])

    def prune_inactive(self) -> Dict[str, Any]:
        """
        Quita del carrito los productos eliminados o desactivados.

        Returns:
            {'ok': True, 'removed': [nombres], 'cart': {...}}
        """
        cart = self._get_cart()
        kept, removed = [], []
        for item in cart:
            if item.get('type') == CartItemType.PRODUCT.value and not self.product_service.get_product(item.get('id')):
                removed.append(item.get('name') or item.get('id'))
            else:
                kept.append(item)
        if removed:
            self._save_cart(kept)
        return {'ok': True, 'removed': removed, 'cart': self.get_cart()}
