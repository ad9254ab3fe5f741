import hashlib
import logging

from django.conf import settings
from django.contrib import auth
from django.core.cache import caches
from django.core.exceptions import ImproperlyConfigured, ObjectDoesNotExist
from django.http import HttpResponseRedirect
from django.utils.cache import add_never_cache_headers, get_cache_key

from .auth import BACKEND_PATH
from .conf import SESSION_KEY, get_settings
from .directory import DjangoMappingStore, DjangoRoleStore, DjangoUserDirectory
from .identity import get_external_identity
from .reconciler import Login, Logout, SessionReconciler, SessionState
from .resolver import AccountResolver
from .sync import AttributeSynchronizer

logger = logging.getLogger(__name__)


def build_reconciler(conf, users=None, mappings=None, roles=None):
    users = users or DjangoUserDirectory()
    resolver = AccountResolver(
        users,
        mappings or DjangoMappingStore(),
        skip_check=conf.skip_check,
        email_domain=conf.email_domain,
    )
    synchronizer = AttributeSynchronizer(users, roles or DjangoRoleStore(), conf)
    return SessionReconciler(resolver, conf, synchronizer)


def session_state(request):
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return SessionState.anonymous()
    return SessionState.authenticated(user.pk, request.session.get(SESSION_KEY))


def apply_effects(request, result):
    for effect in result.effects:
        if isinstance(effect, Logout):
            auth.logout(request)
        elif isinstance(effect, Login):
            try:
                user = DjangoUserDirectory().get_user(effect.user_id)
            except ObjectDoesNotExist:
                logger.error(f"User {effect.user_id} vanished before the session could be bound")
                break
            auth.login(request, user, backend=BACKEND_PATH)
            request.session[SESSION_KEY] = effect.authname


def reconcile_request(request, conf=None, reconciler=None):
    """
    Reconcile the session of ``request`` with its asserted identity, apply the
    resulting logout/login to the Django session and store the result on
    ``request.webserver_auth``. Runs at most once per request.
    """
    result = getattr(request, "webserver_auth", None)
    if result is not None:
        return result
    if not hasattr(request, "user") or not hasattr(request, "session"):
        raise ImproperlyConfigured(
            "The web server auth middleware requires the session and authentication "
            "middlewares to be installed before it."
        )
    conf = conf or get_settings()
    reconciler = reconciler or build_reconciler(conf)
    identity = get_external_identity(request, conf)
    result = reconciler.reconcile(session_state(request), identity, request)
    apply_effects(request, result)
    request.webserver_auth = result
    return result


class WebserverAuthMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        reconcile_request(request)
        return self.get_response(request)


class CacheBypassMiddleware:
    """
    Keeps Django's page cache from serving stored anonymous pages to a user
    the web server has just authenticated.

    Place it after AuthenticationMiddleware and before FetchFromCacheMiddleware.
    Responses to requests carrying an identity are never cached. When this
    request established a new session and the cache holds a page for it, the
    user is redirected to the same URL once; a short-lived signed cookie keyed
    by the authname prevents redirect loops.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.method not in ("GET", "HEAD"):
            return self.get_response(request)
        conf = get_settings()
        if not get_external_identity(request, conf):
            return self.get_response(request)

        result = reconcile_request(request, conf)
        if result.logged_in and not self.recently_bypassed(request, result.authname, conf):
            if self.has_cached_response(request):
                logger.debug(f"Cached page found for {result.authname}, forcing reload")
                response = HttpResponseRedirect(request.get_full_path())
                self.set_bypass_cookie(response, result.authname, conf)
                add_never_cache_headers(response)
                return response

        response = self.get_response(request)
        add_never_cache_headers(response)
        return response

    @staticmethod
    def cookie_salt(authname):
        digest = hashlib.sha256(authname.encode("utf-8")).hexdigest()
        return f"webserver_auth.bypass.{digest}"

    def recently_bypassed(self, request, authname, conf):
        value = request.get_signed_cookie(
            conf.bypass_cookie_name,
            default=None,
            salt=self.cookie_salt(authname),
            max_age=conf.bypass_cookie_max_age,
        )
        return value is not None

    def set_bypass_cookie(self, response, authname, conf):
        response.set_signed_cookie(
            conf.bypass_cookie_name,
            "1",
            salt=self.cookie_salt(authname),
            max_age=conf.bypass_cookie_max_age,
            httponly=True,
            samesite="Lax",
        )

    def has_cached_response(self, request):
        cache = caches[getattr(settings, "CACHE_MIDDLEWARE_ALIAS", "default")]
        key = get_cache_key(
            request,
            key_prefix=getattr(settings, "CACHE_MIDDLEWARE_KEY_PREFIX", ""),
            method="GET",
            cache=cache,
        )
        return key is not None and cache.get(key) is not None
