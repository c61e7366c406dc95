import io

import pytest
from werkzeug.datastructures import FileStorage

from app_tienda.repositories.exceptions import DataStoreError, StorageError

CUSTOMER = {'name': 'Luis Rojas', 'email': 'luis@correo.pe', 'phone': '999888777'}


def _file(name='tesis.pdf', data=b'%PDF-1.4 contenido'):
    return FileStorage(stream=io.BytesIO(data), filename=name, content_type='application/pdf')


@pytest.fixture
def jobs(container):
    return container.print_job_service


def test_quote_updates_with_options(jobs):
    assert jobs.quote({'copies': 10})['price'] == 5.0
    assert jobs.quote({'copies': 10, 'color': True})['price'] == 15.0
    assert jobs.quote({'copies': 5000})['options']['copies'] == 1000


def test_submit_uploads_then_saves(jobs, store, container):
    steps = []

    result = jobs.submit(_file(), {'paper_type': 'couche', 'copies': 4, 'notes': ' <b>urgente</b> '},
                         CUSTOMER, on_progress=steps.append)

    assert result['ok'], result
    assert steps == ['uploading', 'saving', 'success']
    assert result['price'] == 3.0
    assert result['status'] == 'pending'
    assert result['order_number'] == result['id'][:8].upper()
    assert result['url'].startswith('/storage/products/print-files/')
    assert result['url'].endswith('.pdf')
    assert result['options']['notes'] == 'burgente/b'

    row = store.get('print_jobs', result['id'])
    assert row['paper_type'] == 'couche'
    assert row['copies'] == 4
    assert row['customer_info'] == CUSTOMER
    assert row['file_url'] == result['url']

    path = container.object_store.path_from_public_url('products', result['url'])
    assert container.object_store.exists('products', path)


def test_submit_links_logged_in_user(jobs, store):
    result = jobs.submit(_file(), {}, CUSTOMER, current_user={'id': 'u-1', 'email': 'luis@correo.pe'})
    assert store.get('print_jobs', result['id'])['user_id'] == 'u-1'


@pytest.mark.parametrize('file, customer, field', [
    (None, CUSTOMER, 'file'),
    ('sin-nombre', CUSTOMER, 'file'),
    ('ok', dict(CUSTOMER, name='  '), 'name'),
    ('ok', dict(CUSTOMER, email=''), 'email'),
    ('ok', dict(CUSTOMER, email='luis.correo.pe'), 'email'),
])
def test_submit_validation(jobs, store, file, customer, field):
    if file == 'ok':
        file = _file()
    elif file == 'sin-nombre':
        file = _file(name='')

    result = jobs.submit(file, {}, customer)

    assert not result['ok']
    assert result['field'] == field
    assert store.select('print_jobs') == []


def test_submit_rejects_unknown_paper(jobs):
    result = jobs.submit(_file(), {'paper_type': 'papiro'}, CUSTOMER)
    assert result['field'] == 'options'


def test_submit_rejects_empty_file(jobs):
    result = jobs.submit(_file(data=b''), {}, CUSTOMER)
    assert result['error'] == 'El archivo está vacío'


def test_upload_failure_creates_no_record(jobs, store, container, monkeypatch):
    def broken_upload(bucket, path, data):
        raise StorageError('sin espacio', bucket=bucket, path=path)

    monkeypatch.setattr(container.object_store, 'upload', broken_upload)
    steps = []

    result = jobs.submit(_file(), {}, CUSTOMER, on_progress=steps.append)

    assert not result['ok']
    assert result['step'] == 'uploading'
    assert steps == ['uploading']
    assert store.select('print_jobs') == []


def test_record_failure_reports_saving_step(jobs, store, monkeypatch):
    def broken_insert(table, row):
        raise DataStoreError('sin conexión', table=table)

    monkeypatch.setattr(store, 'insert', broken_insert)

    result = jobs.submit(_file(), {}, CUSTOMER)

    assert not result['ok']
    assert result['step'] == 'saving'


def test_list_jobs_filters(jobs):
    a = jobs.submit(_file(), {}, CUSTOMER)
    jobs.submit(_file(), {}, dict(CUSTOMER, name='Carla Díaz', email='carla@correo.pe'))
    jobs.update_status(a['id'], 'processing')

    assert len(jobs.list_jobs()['jobs']) == 2
    assert [j['id'] for j in jobs.list_jobs(status='processing')['jobs']] == [a['id']]
    assert len(jobs.list_jobs(search='CARLA')['jobs']) == 1
    assert not jobs.list_jobs(status='enviado')['ok']
    assert not jobs.list_jobs(search='x' * 101)['ok']
    assert jobs.count_pending() == 1


def test_status_transitions(jobs, store):
    job = jobs.submit(_file(), {}, CUSTOMER)

    assert not jobs.update_status(job['id'], 'delivered')['ok']
    assert jobs.update_status(job['id'], 'processing')['ok']
    assert jobs.update_status(job['id'], 'printed')['ok']
    assert jobs.update_status(job['id'], 'delivered')['ok']
    assert not jobs.update_status(job['id'], 'cancelled')['ok']
    assert not jobs.update_status('no-es-uuid', 'processing')['ok']

    logs = store.select('audit_logs', {'type': 'IMPRESION'})
    assert len(logs) == 4


def test_delete_job_removes_file(jobs, store, container):
    job = jobs.submit(_file(), {}, CUSTOMER)
    path = container.object_store.path_from_public_url('products', job['url'])

    result = jobs.delete_job(job['id'], 'admin@tienda.pe')

    assert result == {'ok': True, 'warnings': []}
    assert store.get('print_jobs', job['id']) is None
    assert not container.object_store.exists('products', path)


def test_delete_job_file_failure_is_warning(jobs, store, container, monkeypatch):
    job = jobs.submit(_file(), {}, CUSTOMER)

    def broken_remove(bucket, paths):
        raise StorageError('permiso denegado', bucket=bucket)

    monkeypatch.setattr(container.object_store, 'remove', broken_remove)

    result = jobs.delete_job(job['id'])

    assert result['ok']
    assert result['warnings']
    assert store.get('print_jobs', job['id']) is None
