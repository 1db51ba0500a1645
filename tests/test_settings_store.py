import pytest

from instance_registry import Provider
from settings_store import DEFAULTS


@pytest.fixture
def services(app_context):
    return app_context.extensions['relaytube']


@pytest.fixture
def settings(services):
    return services['settings']


def test_defaults_when_unset(settings):
    assert settings.all() == DEFAULTS
    assert settings.get('default_region') == 'US'


def test_set_and_get_typed_values(settings):
    settings.set('dark_mode', False)
    settings.set('playback_speed', 2)
    settings.set('default_region', 'JP')

    assert settings.get('dark_mode') is False
    assert settings.get('playback_speed') == 2.0
    assert isinstance(settings.get('playback_speed'), float)
    assert settings.get('default_region') == 'JP'


def test_overwrite_existing_value(settings):
    settings.set('download_quality', '1080p')
    settings.set('download_quality', '480p')
    assert settings.get('download_quality') == '480p'


@pytest.mark.parametrize('key, value', [
    ('dark_mode', 1),
    ('playback_speed', True),
    ('playback_speed', '1.5'),
    ('default_quality', 720),
])
def test_type_mismatch_rejected(settings, key, value):
    with pytest.raises(ValueError):
        settings.set(key, value)


def test_unknown_key_rejected(settings):
    with pytest.raises(KeyError):
        settings.get('volume')
    with pytest.raises(KeyError):
        settings.set('volume', 5)


def test_preferred_instance_updates_registry(settings, services):
    settings.set('piped_instance', 'https://my-piped.example/')

    registry = services['registry']
    assert registry.instances(Provider.PIPED)[0] == 'https://my-piped.example'
    assert registry.current_best(Provider.PIPED) == 'https://my-piped.example'


def test_apply_preferred_instance(settings, services):
    registry = services['registry']
    settings.set('piped_instance', 'https://stored.example')
    registry.replace_list(Provider.PIPED, ['https://discovered.example'])

    settings.apply_preferred_instance()

    assert registry.instances(Provider.PIPED) == ['https://stored.example', 'https://discovered.example']


def test_apply_preferred_instance_without_stored_value(settings, services):
    registry = services['registry']
    before = registry.instances(Provider.PIPED)

    settings.apply_preferred_instance()

    assert registry.instances(Provider.PIPED) == before
