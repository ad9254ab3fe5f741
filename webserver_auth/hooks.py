import logging
from functools import lru_cache

from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

_authname_alter_hooks = []


def register_authname_alter(func):
    """
    Register a callback that rewrites the canonical authname before it is
    used to look up a local account. Callbacks run in registration order,
    each receiving the request and the current name and returning the new one.

    Usable as a decorator.
    """
    if func not in _authname_alter_hooks:
        _authname_alter_hooks.append(func)
    return func


def unregister_authname_alter(func):
    if func in _authname_alter_hooks:
        _authname_alter_hooks.remove(func)


@lru_cache(maxsize=None)
def load_hook(path):
    return import_string(path)


def authname_alter_chain(dotted_paths=()):
    chain = list(_authname_alter_hooks)
    for path in dotted_paths:
        chain.append(load_hook(path))
    return chain


def run_authname_alter(authname, request=None, dotted_paths=()):
    for hook in authname_alter_chain(dotted_paths):
        altered = hook(request, authname)
        if altered is None:
            logger.warning(f"Authname alter hook {hook!r} returned None, ignoring")
            continue
        authname = str(altered)
    return authname
