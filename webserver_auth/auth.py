import logging

from django.contrib.auth.backends import ModelBackend

from .conf import get_settings
from .directory import DjangoMappingStore, DjangoUserDirectory
from .resolver import AccountResolver

logger = logging.getLogger(__name__)


class WebserverAuthBackend(ModelBackend):
    """
    Session backend for users logged in from a web server asserted identity.

    ``authenticate`` only returns already mapped, active accounts. Mapping
    and provisioning are the job of WebserverAuthMiddleware, which logs users
    in with this backend so later requests load them through ``get_user``.
    """

    def authenticate(self, request, authname=None, **kwargs):
        if not authname:
            return None
        conf = get_settings()
        directory = DjangoUserDirectory()
        resolver = AccountResolver(directory, DjangoMappingStore(), skip_check=conf.skip_check)
        resolution = resolver.resolve(authname)
        if not resolution.found:
            logger.debug(f"No active account for external name {authname}: {resolution.outcome.value}")
            return None
        user = directory.get_user(resolution.user.user_id)
        return user if self.user_can_authenticate(user) else None


BACKEND_PATH = f"{WebserverAuthBackend.__module__}.{WebserverAuthBackend.__qualname__}"
