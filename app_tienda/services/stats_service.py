# ==============================================================================
# SERVICIO DE ESTADÍSTICAS DEL PANEL
# ==============================================================================
# Resumen para el panel principal: pedidos por estado, ingresos,
# productos y trabajos de impresión.
#
# REGLA PRINCIPAL: solo los pedidos "completed" cuentan como ingresos.
# ==============================================================================

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from app_tienda.models.entities import OrderStatus, PrintJobStatus
from app_tienda.repositories.interfaces import IDataStore
from app_tienda.services.product_service import LOW_STOCK_THRESHOLD


class StatsService:
    """
    Estadísticas del panel de administración.

    Args:
        data_store: Data Store
        clock: Función que retorna la hora actual (inyectable para tests)
    """

    RECENT_ORDERS = 5
    TOP_PRODUCTS = 5

    def __init__(self, data_store: IDataStore, clock: Callable[[], datetime] = None):
        self.data_store = data_store
        self._clock = clock or datetime.now

    def _parse_date(self, date_str: str) -> Optional[datetime]:
        """Parsea una fecha ISO. Retorna None si no puede parsear."""
        if not date_str:
            return None
        try:
            parsed = datetime.fromisoformat(str(date_str).replace('Z', '+00:00'))
        except (ValueError, TypeError):
            return None
        # Comparamos siempre en hora local sin zona
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed

    def _revenue_since(self, orders: List[Dict[str, Any]], since: Optional[datetime]) -> float:
        total = 0.0
        for order in orders:
            if order.get('status') != OrderStatus.COMPLETED.value:
                continue
            if since is not None:
                created = self._parse_date(order.get('created_at'))
                if created is None or created < since:
                    continue
            total += float(order.get('total_amount') or 0)
        return round(total, 2)

    def get_dashboard_stats(self) -> Dict[str, Any]:
        """
        Calcula las estadísticas del panel.

        Returns:
            {'orders': {...}, 'products': {...}, 'print_jobs': {...}, 'top_products': [...]}
        """
        now = self._clock()
        orders = self.data_store.select('orders', order_by='created_at', descending=True)
        products = self.data_store.select('products')
        print_jobs = self.data_store.select('print_jobs')

        by_status = {s.value: 0 for s in OrderStatus}
        for order in orders:
            status = order.get('status')
            if status in by_status:
                by_status[status] += 1

        # Unidades vendidas por producto
        product_sales: Dict[str, int] = defaultdict(int)
        for item in self.data_store.select('order_items'):
            if item.get('product_id'):
                product_sales[item['product_id']] += int(item.get('quantity') or 0)

        products_by_id = {p['id']: p for p in products}
        top_products = []
        for product_id, units in sorted(product_sales.items(), key=lambda kv: kv[1], reverse=True):
            product = products_by_id.get(product_id)
            if not product:
                continue
            top_products.append({'id': product_id, 'name': product.get('name'), 'sales': units})
            if len(top_products) >= self.TOP_PRODUCTS:
                break

        recent = [
            {
                'id': o['id'],
                'order_number': o['id'][:8].upper(),
                'status': o.get('status'),
                'total_amount': o.get('total_amount'),
                'created_at': o.get('created_at'),
            }
            for o in orders[:self.RECENT_ORDERS]
        ]

        return {
            'orders': {
                'total': len(orders),
                'by_status': by_status,
                'pending': by_status[OrderStatus.PENDING.value],
                'processing': by_status[OrderStatus.PROCESSING.value],
                'completed': by_status[OrderStatus.COMPLETED.value],
                'revenue': self._revenue_since(orders, None),
                'revenue_7_days': self._revenue_since(orders, now - timedelta(days=7)),
                'revenue_30_days': self._revenue_since(orders, now - timedelta(days=30)),
                'recent': recent,
            },
            'products': {
                'total': len(products),
                'active': sum(1 for p in products if p.get('is_active')),
                'low_stock': sum(1 for p in products if int(p.get('stock') or 0) < LOW_STOCK_THRESHOLD),
            },
            'print_jobs': {
                'total': len(print_jobs),
                'pending': sum(1 for j in print_jobs if j.get('status') == PrintJobStatus.PENDING.value),
            },
            'top_products': top_products,
        }
