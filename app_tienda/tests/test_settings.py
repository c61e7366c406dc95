from app_tienda.repositories.exceptions import DataStoreError
from app_tienda.services.settings_service import DEFAULT_SETTINGS, SettingsService, validate_setting


def test_defaults_when_store_is_empty(container):
    settings = container.settings_service.get_all()
    assert settings == DEFAULT_SETTINGS
    assert container.settings_service.enabled_payment_methods() == ['yape', 'plin', 'transfer']


def test_stored_values_merge_over_defaults(container, store):
    store.insert('settings', {'key': 'shipping', 'value': {'shippingCost': 20}})
    shipping = container.settings_service.shipping_config()
    assert shipping['shippingCost'] == 20
    assert shipping['freeShippingThreshold'] == 100


def test_load_error_keeps_defaults(store, monkeypatch):
    def broken_select(*args, **kwargs):
        raise DataStoreError('sin conexión', table='settings')

    monkeypatch.setattr(store, 'select', broken_select)
    service = SettingsService(store)
    assert service.get('company')['name'] == DEFAULT_SETTINGS['company']['name']


def test_save_persists_and_notifies(container, store):
    service = container.settings_service
    received = []
    unsubscribe = service.subscribe(received.append)

    result = service.save('shipping', {'freeShippingThreshold': 150}, 'admin@tienda.pe')

    assert result['ok']
    assert result['value']['freeShippingThreshold'] == 150
    assert result['value']['shippingCost'] == 15
    assert received[-1]['shipping']['freeShippingThreshold'] == 150

    # Otra instancia lee lo guardado
    assert SettingsService(store).shipping_config()['freeShippingThreshold'] == 150

    unsubscribe()
    service.save('shipping', {'shippingCost': 5})
    assert len(received) == 1

    logs = store.select('audit_logs', {'type': 'SISTEMA'})
    assert logs and logs[0]['related_id'] == 'shipping'


def test_failing_subscriber_does_not_break_save(container):
    def boom(_):
        raise RuntimeError('suscriptor roto')

    container.settings_service.subscribe(boom)
    assert container.settings_service.save('receipt', {'receiptPrefix': 'F001'})['ok']


def test_payment_flags_drive_enabled_methods(container):
    service = container.settings_service
    service.save('payment', {'yapeEnabled': False, 'cardEnabled': True})
    assert service.enabled_payment_methods() == ['plin', 'transfer', 'card']
    assert service.public_settings()['payment']['enabledMethods'] == ['plin', 'transfer', 'card']


def test_disabled_method_blocks_checkout(container):
    container.settings_service.save('payment', {'plinEnabled': False})
    assert container.checkout_service.validate_payment_method('plin') is not None
    assert container.checkout_service.validate_payment_method('yape') is None


def test_validation_errors():
    assert validate_setting('tema', {}) == ['Clave de configuración desconocida: tema']
    assert validate_setting('shipping', 'gratis')
    assert validate_setting('shipping', {'shippingCost': -1})
    assert validate_setting('shipping', {'shippingCost': 'diez'})
    assert validate_setting('shipping', {'estimatedDays': 2.5})
    assert validate_setting('payment', {'yapeEnabled': 'si'})
    assert validate_setting('company', {'name': ''})
    assert validate_setting('company', {'color': 'azul'})
    assert validate_setting('shipping', {'shippingCost': 12.5}, partial=True) == []
    assert validate_setting('shipping', {'shippingCost': 12.5})


def test_save_all_validates_everything_first(container, store):
    result = container.settings_service.save_all({
        'shipping': {'shippingCost': 10},
        'payment': {'yapeEnabled': 'no'},
    })
    assert not result['ok']
    assert store.select('settings') == []

    result = container.settings_service.save_all({
        'shipping': {'shippingCost': 10},
        'company': {'name': 'Imprenta Sol'},
    })
    assert result['ok']
    assert result['settings']['company']['name'] == 'Imprenta Sol'
    assert len(store.select('settings')) == 2


def test_refresh_reloads_from_store(container, store):
    service = container.settings_service
    assert service.shipping_config()['shippingCost'] == 15
    store.upsert('settings', {'key': 'shipping', 'value': {'shippingCost': 30}}, conflict_key='key')
    assert service.shipping_config()['shippingCost'] == 15
    service.refresh()
    assert service.shipping_config()['shippingCost'] == 30
