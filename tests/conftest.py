import pytest

from webserver_auth.conf import WebserverAuthSettings, get_settings
from webserver_auth.reconciler import SessionReconciler
from webserver_auth.resolver import AccountResolver
from webserver_auth.sync import AttributeSynchronizer, parse_role_mapping

from .fakes import MemoryMappingStore, MemoryRoleStore, MemoryUserDirectory


@pytest.fixture(autouse=True)
def clear_caches():
    get_settings.cache_clear()
    parse_role_mapping.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def users():
    return MemoryUserDirectory()


@pytest.fixture
def mappings():
    return MemoryMappingStore()


@pytest.fixture
def roles():
    return MemoryRoleStore(roles={"engineer", "marketing", "admin"})


@pytest.fixture
def make_reconciler(users, mappings, roles):
    def factory(**options):
        conf = WebserverAuthSettings(**options)
        resolver = AccountResolver(
            users, mappings, skip_check=conf.skip_check, email_domain=conf.email_domain
        )
        return SessionReconciler(resolver, conf, AttributeSynchronizer(users, roles, conf))

    return factory
