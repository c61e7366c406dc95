# ==============================================================================
# SERVICIO DE TRABAJOS DE IMPRESIÓN
# ==============================================================================
# Envío de trabajos (subir archivo -> guardar registro) con progreso
# por pasos, y gestión desde el panel (listar, cambiar estado, eliminar).
# ==============================================================================

import logging
from typing import Any, Callable, Dict, Optional, Union

from app_tienda.models.entities import (
    CustomerInfo,
    MAX_ITEM_QUANTITY,
    PaperType,
    PrintJob,
    PrintJobStatus,
    PrintJobStep,
    PrintOptions,
    PrintSize,
)
from app_tienda.performance_logger import profile_function
from app_tienda.repositories.exceptions import DataStoreError, StorageError
from app_tienda.repositories.interfaces import IDataStore, IObjectStore
from app_tienda.services.pricing_service import compute_print_price
from app_tienda.services.status_transitions import PRINT_JOB_TRANSITIONS, check_transition
from app_tienda.services.storage_paths import PRINT_FILES_PREFIX, PRODUCTS_BUCKET, generate_object_name
from app_tienda.services.validators import (
    cap_limit,
    is_valid_email,
    is_valid_print_job_status,
    is_valid_uuid,
    matches_search,
    normalize_search_term,
    sanitize_file_name,
    sanitize_string,
)

logger = logging.getLogger(__name__)


MAX_NOTES_LENGTH = 1000
MAX_PRINT_FILE_BYTES = 20 * 1024 * 1024

ProgressCallback = Callable[[str], None]


class PrintJobService:
    """
    Servicio de trabajos de impresión.

    Uso:
        result = service.submit(file, {'paper_type': 'bond', 'copies': 10},
                                {'name': 'Ana', 'email': 'ana@mail.com'},
                                on_progress=lambda step: print(step))
    """

    TABLE = 'print_jobs'

    def __init__(self, data_store: IDataStore, object_store: IObjectStore, audit_service=None):
        self.data_store = data_store
        self.object_store = object_store
        self.audit_service = audit_service

    # =========================================================================
    # COTIZACIÓN
    # =========================================================================

    def quote(self, options: Union[PrintOptions, Dict[str, Any]]) -> Dict[str, Any]:
        """Precio para recalcular en vivo mientras el cliente cambia opciones."""
        if not isinstance(options, PrintOptions):
            options = PrintOptions.from_dict(options or {})
        options.copies = max(1, min(int(options.copies or 1), MAX_ITEM_QUANTITY))
        return {'ok': True, 'price': compute_print_price(options), 'options': options.to_dict()}

    @staticmethod
    def validate_options(options: PrintOptions) -> Optional[str]:
        """
        Valida opciones para un envío. A diferencia de la cotización, aquí
        papel y tamaño deben ser valores conocidos.

        Normaliza copies (1..MAX) y notes (recortadas).
        """
        if options.paper_type not in [p.value for p in PaperType]:
            return 'Tipo de papel inválido'
        if options.size not in [s.value for s in PrintSize]:
            return 'Tamaño de papel inválido'
        options.copies = max(1, min(int(options.copies or 1), MAX_ITEM_QUANTITY))
        notes = sanitize_string(options.notes)
        if len(notes) > MAX_NOTES_LENGTH:
            return f'Las notas no pueden superar {MAX_NOTES_LENGTH} caracteres'
        options.notes = notes or None
        return None

    # =========================================================================
    # ENVÍO
    # =========================================================================

    @profile_function(name='Enviar trabajo de impresión')
    def submit(
        self,
        file: Any,
        options: Union[PrintOptions, Dict[str, Any]],
        customer_info: Union[CustomerInfo, Dict[str, Any]],
        current_user: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> Dict[str, Any]:
        """
        Envía un trabajo de impresión.

        Pasos (reportados a on_progress): uploading -> saving -> success.

        Si la subida falla no se crea ningún registro. Si el registro falla,
        el archivo ya subido queda huérfano (se registra en el log).

        Args:
            file: FileStorage de werkzeug (filename + read)
            options: Opciones de impresión
            customer_info: {name, email, phone}
            current_user: {id, email} si hay sesión
            on_progress: Callback con el paso actual

        Returns:
            {'ok': True, 'id', 'order_number', 'file_name', 'url', 'price',
             'options', 'customer', 'status'} o {'ok': False, 'error', 'field'?, 'step'?}
        """
        def progress(step: PrintJobStep) -> None:
            if on_progress:
                on_progress(step.value)

        # 1. Validación
        if file is None or not getattr(file, 'filename', ''):
            return {'ok': False, 'error': 'Por favor, selecciona un archivo', 'field': 'file'}

        if not isinstance(customer_info, CustomerInfo):
            customer_info = CustomerInfo.from_dict(customer_info or {})
        if not sanitize_string(customer_info.name):
            return {'ok': False, 'error': 'Por favor, ingresa tu nombre', 'field': 'name'}
        if not sanitize_string(customer_info.email):
            return {'ok': False, 'error': 'Por favor, ingresa tu email', 'field': 'email'}
        if not is_valid_email(customer_info.email.strip()):
            return {'ok': False, 'error': 'Email inválido', 'field': 'email'}
        customer_info = CustomerInfo(
            name=sanitize_string(customer_info.name),
            email=customer_info.email.strip(),
            phone=sanitize_string(customer_info.phone) or None,
        )

        if not isinstance(options, PrintOptions):
            options = PrintOptions.from_dict(options or {})
        option_error = self.validate_options(options)
        if option_error:
            return {'ok': False, 'error': option_error, 'field': 'options'}

        data = file.read()
        if not data:
            return {'ok': False, 'error': 'El archivo está vacío', 'field': 'file'}
        if len(data) > MAX_PRINT_FILE_BYTES:
            return {'ok': False, 'error': 'El archivo no puede superar 20MB', 'field': 'file'}

        # 2. Subida
        progress(PrintJobStep.UPLOADING)
        path = generate_object_name(PRINT_FILES_PREFIX, file.filename)
        try:
            self.object_store.upload(PRODUCTS_BUCKET, path, data)
        except StorageError as e:
            logger.error('Error subiendo archivo de impresión: %s', e)
            return {'ok': False, 'error': 'No se pudo subir el archivo', 'step': PrintJobStep.UPLOADING.value}
        url = self.object_store.get_public_url(PRODUCTS_BUCKET, path)

        # 3. Registro
        progress(PrintJobStep.SAVING)
        price = compute_print_price(options)
        record = {
            'user_id': (current_user or {}).get('id'),
            'file_url': url,
            'price': price,
            'status': PrintJobStatus.PENDING.value,
            'customer_info': customer_info.to_dict(),
        }
        record.update(options.to_dict())
        try:
            row = self.data_store.insert(self.TABLE, record)
        except DataStoreError as e:
            logger.error('Error guardando trabajo de impresión; archivo huérfano %s/%s: %s', PRODUCTS_BUCKET, path, e)
            return {'ok': False, 'error': 'No se pudo registrar el trabajo de impresión', 'step': PrintJobStep.SAVING.value}

        job = PrintJob.from_dict(row)
        progress(PrintJobStep.SUCCESS)

        if self.audit_service:
            self.audit_service.log_print_job_created(customer_info.email, job.id, price)

        return {
            'ok': True,
            'step': PrintJobStep.SUCCESS.value,
            'id': job.id,
            'order_number': job.order_number,
            'file_name': sanitize_file_name(file.filename),
            'url': url,
            'price': price,
            'options': options.to_dict(),
            'customer': customer_info.to_dict(),
            'status': job.status,
        }

    # =========================================================================
    # PANEL DE ADMINISTRACIÓN
    # =========================================================================

    def list_jobs(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = None
    ) -> Dict[str, Any]:
        """
        Lista trabajos, más recientes primero.

        Args:
            status: Filtrar por estado (debe ser válido)
            search: Texto libre sobre ID, nombre y email del cliente
        """
        if status and not is_valid_print_job_status(status):
            return {'ok': False, 'error': 'Estado inválido'}
        term = normalize_search_term(search)
        if term is None:
            return {'ok': False, 'error': 'Búsqueda demasiado larga (máximo 100 caracteres)'}

        filters = {'status': status} if status else None
        rows = self.data_store.select(self.TABLE, filters, order_by='created_at', descending=True)

        jobs = []
        for row in rows:
            customer = row.get('customer_info') or {}
            if not matches_search(term, row.get('id'), customer.get('name'), customer.get('email')):
                continue
            job = PrintJob.from_dict(row)
            jobs.append(dict(job.to_dict(), order_number=job.order_number))
        return {'ok': True, 'jobs': jobs[:cap_limit(limit)]}

    def update_status(self, job_id: str, new_status: str, user: Optional[str] = None) -> Dict[str, Any]:
        if not is_valid_uuid(job_id):
            return {'ok': False, 'error': 'ID de trabajo inválido'}
        if not is_valid_print_job_status(new_status):
            return {'ok': False, 'error': 'Estado inválido'}

        current = self.data_store.get(self.TABLE, job_id)
        if not current:
            return {'ok': False, 'error': 'Trabajo no encontrado'}

        old_status = current.get('status', PrintJobStatus.PENDING.value)
        error = check_transition(PRINT_JOB_TRANSITIONS, old_status, new_status)
        if error:
            return {'ok': False, 'error': error}

        try:
            updated = self.data_store.update(self.TABLE, {'id': job_id}, {'status': new_status})
        except DataStoreError as e:
            logger.error('Error actualizando trabajo %s: %s', job_id, e)
            return {'ok': False, 'error': 'No se pudo actualizar el trabajo'}

        if self.audit_service:
            self.audit_service.log_print_job_status_change(user, job_id, old_status, new_status)
        return {'ok': True, 'job': PrintJob.from_dict(updated[0]).to_dict()}

    def delete_job(self, job_id: str, user: Optional[str] = None) -> Dict[str, Any]:
        """Elimina un trabajo y, best-effort, su archivo."""
        if not is_valid_uuid(job_id):
            return {'ok': False, 'error': 'ID de trabajo inválido'}

        current = self.data_store.get(self.TABLE, job_id)
        if not current:
            return {'ok': False, 'error': 'Trabajo no encontrado'}

        try:
            self.data_store.delete(self.TABLE, {'id': job_id})
        except DataStoreError as e:
            logger.error('Error eliminando trabajo %s: %s', job_id, e)
            return {'ok': False, 'error': 'No se pudo eliminar el trabajo'}

        warnings = []
        path = self.object_store.path_from_public_url(PRODUCTS_BUCKET, current.get('file_url'))
        if path:
            try:
                self.object_store.remove(PRODUCTS_BUCKET, [path])
            except StorageError as e:
                logger.warning('No se pudo eliminar el archivo %s: %s', path, e)
                warnings.append('El trabajo se eliminó pero no se pudo borrar el archivo')

        if self.audit_service:
            self.audit_service.log_print_job_deleted(user, job_id)
        return {'ok': True, 'warnings': warnings}

    def count_pending(self) -> int:
        return len(self.data_store.select(self.TABLE, {'status': PrintJobStatus.PENDING.value}))
