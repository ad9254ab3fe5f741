"""
Per-request reconciliation of the Django session with the identity asserted
by the web server.

``SessionReconciler.reconcile`` is a decision procedure: it takes the current
``SessionState`` and the request's ``ExternalIdentity`` and returns a
``ReconcileResult`` holding the new state plus the ordered session effects
(``Logout``, ``Login``) the caller has to apply. Directory writes (mappings,
provisioning, email and role sync) happen inside through the stores.
"""
import enum
import logging
from dataclasses import dataclass, field

from .exceptions import ConfigurationConflict, PersistenceError
from .hooks import run_authname_alter
from .resolver import Outcome
from .signals import creation_disabled, mapping_conflict, persistence_failed, user_blocked

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    is_authenticated: bool = False
    local_user_id: object = None
    bound_authname: str = None

    @classmethod
    def anonymous(cls):
        return cls()

    @classmethod
    def authenticated(cls, user_id, authname):
        return cls(True, user_id, authname)


ANONYMOUS = SessionState.anonymous()


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class Login:
    user_id: object
    authname: str


class Event(enum.Enum):
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"
    MAPPED = "mapped"
    PROVISIONED = "provisioned"
    BLOCKED = "blocked"
    MAPPING_CONFLICT = "mapping_conflict"
    CREATION_DISABLED = "creation_disabled"
    PERSISTENCE_ERROR = "persistence_error"
    ERROR = "error"


@dataclass
class ReconcileResult:
    state: SessionState
    authname: str = ""
    effects: list = field(default_factory=list)
    events: list = field(default_factory=list)
    user: object = None
    sync: object = None

    @property
    def logged_in(self):
        return any(isinstance(effect, Login) for effect in self.effects)

    @property
    def logged_out(self):
        return any(isinstance(effect, Logout) for effect in self.effects)


class SessionReconciler:
    def __init__(self, resolver, conf, synchronizer=None):
        self.resolver = resolver
        self.conf = conf
        self.synchronizer = synchronizer

    def reconcile(self, state, identity, request=None):
        authname = identity.canonical_name
        if authname:
            try:
                authname = run_authname_alter(authname, request, self.conf.authname_alter)
            except Exception:
                # Without the altered name the bound session cannot be verified.
                logger.exception(f"Authname alter chain failed for external user {authname}")
                result = ReconcileResult(state=state, authname="")
                if state.is_authenticated:
                    self._logout(result)
                result.events.append(Event.ERROR)
                return result
        result = ReconcileResult(state=state, authname=authname)

        if not authname:
            if self.conf.logout_on_empty and state.is_authenticated:
                logger.info(f"No external identity, logging out user {state.local_user_id}")
                self._logout(result)
            return result

        if state.is_authenticated:
            if state.bound_authname == authname:
                return result
            logger.info(
                f"External identity changed from {state.bound_authname} to {authname}, "
                f"logging out user {state.local_user_id}"
            )
            self._logout(result)

        try:
            self._login(result, authname, request)
        except ConfigurationConflict as err:
            logger.warning(str(err))
            result.events.append(Event.MAPPING_CONFLICT)
            mapping_conflict.send(sender=self.__class__, request=request, authname=authname)
        except PersistenceError:
            logger.exception(f"Could not log in external user {authname}")
            result.events.append(Event.PERSISTENCE_ERROR)
            persistence_failed.send(sender=self.__class__, request=request, authname=authname)
        except Exception:
            logger.exception(f"Unexpected error while logging in external user {authname}")
            result.events.append(Event.ERROR)
        return result

    def _logout(self, result):
        result.state = ANONYMOUS
        result.effects.append(Logout())
        result.events.append(Event.LOGGED_OUT)

    def _login(self, result, authname, request):
        resolution = self.resolver.resolve(authname)
        if resolution.found:
            return self._complete_login(result, resolution.user, authname, request)
        if resolution.outcome is Outcome.BLOCKED:
            return self._blocked(result, authname, request)

        existing = self.resolver.find_unmapped_existing_account(authname)
        if existing is not None:
            if not self.conf.match_existing:
                raise ConfigurationConflict(
                    f"Local account {existing.username} exists but is not mapped to "
                    f"external name {authname}, a manual mapping is required"
                )
            try:
                self.resolver.create_mapping(existing.user_id, authname)
            except PersistenceError:
                logger.warning(f"Mapping {authname} failed, retrying lookup once", exc_info=True)
            else:
                result.events.append(Event.MAPPED)
            resolution = self.resolver.resolve(authname)
            if resolution.found:
                return self._complete_login(result, resolution.user, authname, request)
            return self._blocked(result, authname, request)

        if not self.conf.create_user:
            logger.info(f"Unknown external user {authname} and account creation is disabled")
            result.events.append(Event.CREATION_DISABLED)
            creation_disabled.send(sender=self.__class__, request=request, authname=authname)
            return None

        try:
            user = self.resolver.provision_account(authname)
        except PersistenceError:
            # Most likely a concurrent request provisioned the same account.
            logger.warning(f"Provisioning {authname} failed, retrying lookup once", exc_info=True)
            resolution = self.resolver.resolve(authname)
            if not resolution.found:
                raise
            return self._complete_login(result, resolution.user, authname, request)
        result.events.append(Event.PROVISIONED)
        return self._complete_login(result, user, authname, request)

    def _blocked(self, result, authname, request):
        logger.warning(f"Login denied for blocked or unavailable external user {authname}")
        result.events.append(Event.BLOCKED)
        user_blocked.send(sender=self.__class__, request=request, authname=authname)

    def _complete_login(self, result, user, authname, request):
        result.state = SessionState.authenticated(user.user_id, authname)
        result.effects.append(Login(user.user_id, authname))
        result.events.append(Event.LOGGED_IN)
        result.user = user
        logger.info(f"Logged in user {user.user_id} as external user {authname}")
        if self.synchronizer is not None:
            meta = request.META if request is not None else {}
            result.sync = self.synchronizer.synchronize(user, meta)
        return result
