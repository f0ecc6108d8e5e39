import pytest

from deploy_engine.settings import get_settings

pytest_plugins = [
    "tests.fixtures.aws_fixtures",
    "tests.fixtures.command_fixtures",
    "tests.fixtures.fake_provider",
]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
