# ==============================================================================
# SERVICIO DE PRODUCTOS
# ==============================================================================
# Catálogo de la tienda (lectura pública) y gestión desde el panel
# (crear, editar, activar/desactivar, eliminar, subir imágenes).
# ==============================================================================

import logging
import math
from typing import Any, Dict, List, Optional

from app_tienda.models.entities import Product, to_bool
from app_tienda.repositories.exceptions import DataStoreError, StorageError
from app_tienda.repositories.interfaces import IDataStore, IObjectStore
from app_tienda.services.storage_paths import (
    PRODUCT_IMAGES_PREFIX,
    PRODUCTS_BUCKET,
    file_extension,
    generate_object_name,
)
from app_tienda.services.validators import (
    cap_limit,
    is_valid_url,
    is_valid_uuid,
    matches_search,
    normalize_search_term,
    sanitize_string,
)

logger = logging.getLogger(__name__)


# Umbral de stock bajo para el panel
LOW_STOCK_THRESHOLD = 10

MAX_IMAGE_BYTES = 5 * 1024 * 1024
IMAGE_EXTENSIONS = frozenset(['jpg', 'jpeg', 'png', 'gif', 'webp'])

MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000


class ProductService:
    """
    Servicio de productos.

    Responsabilidades:
    - Catálogo público (solo productos activos)
    - CRUD del panel con validación previa
    - Imágenes en el Object Store (limpieza best-effort)
    """

    TABLE = 'products'

    def __init__(self, data_store: IDataStore, object_store: IObjectStore, audit_service=None):
        self.data_store = data_store
        self.object_store = object_store
        self.audit_service = audit_service

    # =========================================================================
    # CATÁLOGO PÚBLICO
    # =========================================================================

    def list_active(self, category: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
        """
        Productos activos, más recientes primero.

        Args:
            category: Filtrar por categoría
            search: Texto libre sobre nombre y descripción
        """
        term = normalize_search_term(search)
        if term is None:
            return {'ok': False, 'error': 'Búsqueda demasiado larga (máximo 100 caracteres)'}

        filters = {'is_active': True}
        category = sanitize_string(category)
        if category:
            filters['category'] = category

        rows = self.data_store.select(self.TABLE, filters, order_by='created_at', descending=True)
        products = [
            self._present(r) for r in rows
            if matches_search(term, r.get('name'), r.get('description'))
        ]
        return {'ok': True, 'products': products}

    def get_product(self, product_id: str, include_inactive: bool = False) -> Optional[Dict[str, Any]]:
        """Un producto por ID (None si no existe, o si está inactivo y no se pidió)."""
        if not is_valid_uuid(product_id):
            return None
        row = self.data_store.get(self.TABLE, product_id)
        if not row or (not include_inactive and not row.get('is_active', True)):
            return None
        return self._present(row)

    def category_counts(self) -> Dict[str, int]:
        """Cantidad de productos activos por categoría."""
        counts: Dict[str, int] = {}
        for row in self.data_store.select(self.TABLE, {'is_active': True}):
            category = row.get('category') or 'sin-categoria'
            counts[category] = counts.get(category, 0) + 1
        return dict(sorted(counts.items()))

    @staticmethod
    def _present(row: Dict[str, Any]) -> Dict[str, Any]:
        product = Product.from_dict(row).to_dict()
        product['in_stock'] = product['stock'] > 0
        product['created_at'] = row.get('created_at')
        return product

    # =========================================================================
    # PANEL DE ADMINISTRACIÓN
    # =========================================================================

    def list_all(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        active: Optional[bool] = None,
        limit: int = None
    ) -> Dict[str, Any]:
        """Todos los productos (activos e inactivos) con filtros."""
        term = normalize_search_term(search)
        if term is None:
            return {'ok': False, 'error': 'Búsqueda demasiado larga (máximo 100 caracteres)'}

        filters: Dict[str, Any] = {}
        category = sanitize_string(category)
        if category:
            filters['category'] = category
        if active is not None:
            filters['is_active'] = bool(active)

        rows = self.data_store.select(self.TABLE, filters, order_by='created_at', descending=True)
        products = [
            self._present(r) for r in rows
            if matches_search(term, r.get('name'), r.get('category'), r.get('id'))
        ]
        return {'ok': True, 'products': products[:cap_limit(limit)]}

    def validate_product_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Valida y normaliza los datos de un producto.

        Args:
            data: Datos del formulario
            partial: True para ediciones (solo se validan los campos enviados)

        Returns:
            {'ok': True, 'data': {...}} o {'ok': False, 'error': ..., 'errors': [...]}
        """
        if not isinstance(data, dict):
            return {'ok': False, 'error': 'Datos inválidos', 'errors': ['Datos inválidos']}

        errors: List[str] = []
        clean: Dict[str, Any] = {}

        if 'name' in data or not partial:
            name = sanitize_string(data.get('name'))
            if not name:
                errors.append('El nombre es obligatorio')
            elif len(name) > MAX_NAME_LENGTH:
                errors.append('El nombre es demasiado largo')
            clean['name'] = name

        if 'category' in data or not partial:
            category = sanitize_string(data.get('category'))
            if not category:
                errors.append('La categoría es obligatoria')
            clean['category'] = category

        if 'price' in data or not partial:
            try:
                price = float(data.get('price'))
                if not math.isfinite(price) or price <= 0:
                    errors.append('El precio debe ser mayor a 0')
                clean['price'] = round(price, 2)
            except (TypeError, ValueError):
                errors.append('El precio debe ser mayor a 0')

        if 'stock' in data or not partial:
            stock = data.get('stock', 0)
            if isinstance(stock, bool):
                stock = None
            try:
                if isinstance(stock, float) and not stock.is_integer():
                    raise ValueError()
                stock = int(stock)
                if stock < 0:
                    errors.append('El stock no puede ser negativo')
                clean['stock'] = stock
            except (TypeError, ValueError):
                errors.append('El stock debe ser un número entero')

        if 'description' in data or not partial:
            description = sanitize_string(data.get('description'))
            if len(description) > MAX_DESCRIPTION_LENGTH:
                errors.append('La descripción es demasiado larga')
            clean['description'] = description

        for list_field in ('available_colors', 'available_sizes'):
            if list_field in data or not partial:
                values = data.get(list_field) or []
                if isinstance(values, str):
                    values = values.split(',')
                if not isinstance(values, list):
                    errors.append(f'{list_field} debe ser una lista')
                    continue
                clean[list_field] = [v for v in (sanitize_string(x) for x in values) if v]

        if 'image_url' in data or not partial:
            image_url = data.get('image_url') or None
            public_prefix = self.object_store.get_public_url(PRODUCTS_BUCKET, '')
            if image_url and not (is_valid_url(image_url) or str(image_url).startswith(public_prefix)):
                errors.append('La URL de la imagen no es válida')
            clean['image_url'] = image_url

        if 'is_active' in data or not partial:
            clean['is_active'] = to_bool(data.get('is_active', True))

        if errors:
            return {'ok': False, 'error': errors[0], 'errors': errors}
        return {'ok': True, 'data': clean}

    def create_product(self, data: Dict[str, Any], user: Optional[str] = None) -> Dict[str, Any]:
        validation = self.validate_product_data(data)
        if not validation['ok']:
            return validation

        try:
            row = self.data_store.insert(self.TABLE, validation['data'])
        except DataStoreError as e:
            logger.error('Error creando producto: %s', e)
            return {'ok': False, 'error': 'No se pudo crear el producto'}

        if self.audit_service:
            self.audit_service.log_product_created(user, row['id'], row['name'])
        return {'ok': True, 'product': self._present(row), 'message': 'Producto creado correctamente'}

    def update_product(self, product_id: str, data: Dict[str, Any], user: Optional[str] = None) -> Dict[str, Any]:
        """
        Actualiza un producto. Si la imagen cambió, la anterior se elimina
        del almacenamiento (best-effort).
        """
        if not is_valid_uuid(product_id):
            return {'ok': False, 'error': 'ID de producto inválido'}

        validation = self.validate_product_data(data, partial=True)
        if not validation['ok']:
            return validation
        patch = validation['data']
        if not patch:
            return {'ok': False, 'error': 'No hay cambios'}

        current = self.data_store.get(self.TABLE, product_id)
        if not current:
            return {'ok': False, 'error': 'Producto no encontrado'}

        try:
            updated = self.data_store.update(self.TABLE, {'id': product_id}, patch)
        except DataStoreError as e:
            logger.error('Error actualizando producto %s: %s', product_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el producto'}

        warnings = []
        old_image = current.get('image_url')
        if 'image_url' in patch and old_image and old_image != patch['image_url']:
            warning = self._remove_image(old_image)
            if warning:
                warnings.append(warning)

        if self.audit_service:
            self.audit_service.log_product_updated(user, product_id, updated[0].get('name'), sorted(patch))
        return {
            'ok': True,
            'product': self._present(updated[0]),
            'warnings': warnings,
            'message': 'Producto actualizado correctamente',
        }

    def toggle_active(self, product_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        if not is_valid_uuid(product_id):
            return {'ok': False, 'error': 'ID de producto inválido'}

        current = self.data_store.get(self.TABLE, product_id)
        if not current:
            return {'ok': False, 'error': 'Producto no encontrado'}

        new_value = not current.get('is_active', True)
        try:
            updated = self.data_store.update(self.TABLE, {'id': product_id}, {'is_active': new_value})
        except DataStoreError as e:
            logger.error('Error cambiando estado de producto %s: %s', product_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el producto'}

        if self.audit_service:
            state = 'activo' if new_value else 'inactivo'
            self.audit_service.log_product_updated(user, product_id, current.get('name'), [f'estado: {state}'])
        return {'ok': True, 'product': self._present(updated[0])}

    def delete_product(self, product_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """Elimina un producto y, best-effort, su imagen."""
        if not is_valid_uuid(product_id):
            return {'ok': False, 'error': 'ID de producto inválido'}

        current = self.data_store.get(self.TABLE, product_id)
        if not current:
            return {'ok': False, 'error': 'Producto no encontrado'}

        try:
            self.data_store.delete(self.TABLE, {'id': product_id})
        except DataStoreError as e:
            logger.error('Error eliminando producto %s: %s', product_id, e)
            return {'ok': False, 'error': 'No se pudo eliminar el producto'}

        warnings = []
        if current.get('image_url'):
            warning = self._remove_image(current['image_url'])
            if warning:
                warnings.append(warning)

        if self.audit_service:
            self.audit_service.log_product_deleted(user, product_id, current.get('name'))
        return {'ok': True, 'warnings': warnings, 'message': 'Producto eliminado correctamente'}

    # =========================================================================
    # IMÁGENES
    # =========================================================================

    def upload_image(self, file: Any) -> Dict[str, Any]:
        """
        Sube una imagen de producto.

        Args:
            file: FileStorage de werkzeug (o cualquier objeto con filename/read)

        Returns:
            {'ok': True, 'path': ..., 'url': ...} o {'ok': False, 'error': ...}
        """
        if file is None or not getattr(file, 'filename', ''):
            return {'ok': False, 'error': 'Selecciona una imagen'}

        ext = file_extension(file.filename)
        mimetype = getattr(file, 'mimetype', '') or ''
        if ext not in IMAGE_EXTENSIONS or (mimetype and not mimetype.startswith('image/')):
            return {'ok': False, 'error': 'Solo se permiten imágenes (JPG, PNG, GIF, WEBP)'}

        data = file.read()
        if len(data) > MAX_IMAGE_BYTES:
            return {'ok': False, 'error': 'La imagen no puede superar 5MB'}
        if not data:
            return {'ok': False, 'error': 'La imagen está vacía'}

        path = generate_object_name(PRODUCT_IMAGES_PREFIX, file.filename)
        try:
            self.object_store.upload(PRODUCTS_BUCKET, path, data)
        except StorageError as e:
            logger.error('Error subiendo imagen de producto: %s', e)
            return {'ok': False, 'error': 'No se pudo subir la imagen'}

        return {
            'ok': True,
            'path': path,
            'url': self.object_store.get_public_url(PRODUCTS_BUCKET, path),
        }

    def _remove_image(self, image_url: str) -> Optional[str]:
        """
        Elimina una imagen del almacenamiento.

        Returns:
            None si se eliminó (o no era nuestra), o un mensaje de advertencia
        """
        path = self.object_store.path_from_public_url(PRODUCTS_BUCKET, image_url)
        if not path:
            return None
        try:
            self.object_store.remove(PRODUCTS_BUCKET, [path])
        except StorageError as e:
            logger.warning('No se pudo eliminar la imagen %s: %s', path, e)
            return 'No se pudo eliminar la imagen anterior del almacenamiento'
        return None
