import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass, fields
from functools import lru_cache

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver

from .hooks import load_hook

logger = logging.getLogger(__name__)

SECTION = "webserver_auth"
PROVIDER = "webserver_auth"
SESSION_KEY = "webserver_auth_authname"


def _split(value):
    return tuple(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class WebserverAuthSettings:
    # request.META keys holding the principal name, first non-empty wins
    name_sources: tuple = ("REMOTE_USER", "REDIRECT_REMOTE_USER")
    strip_prefix: bool = True
    strip_domain: bool = True

    create_user: bool = True
    match_existing: bool = False
    skip_check: bool = False
    logout_on_empty: bool = True

    sync_email: bool = False
    email_attribute: str = "REMOTE_USER_EMAIL"
    email_domain: str = ""

    role_mapping: str = ""
    group_count_attribute: str = "REMOTE_USER_GROUP_N"
    group_attribute_prefix: str = "REMOTE_USER_GROUP_"
    protected_roles: tuple = ()

    authname_alter: tuple = ()

    bypass_cookie_name: str = "webserver_auth_bypass"
    bypass_cookie_max_age: int = 60

    @classmethod
    def from_config(cls, config, section=SECTION):
        """
        Build the settings from a ConfigParser section. Missing options fall
        back to the defaults above, malformed booleans and integers raise
        ImproperlyConfigured.
        """
        values = {}
        for f in fields(cls):
            if not config.has_option(section, f.name):
                continue
            try:
                if f.type is bool:
                    values[f.name] = config.getboolean(section, f.name)
                elif f.type is int:
                    values[f.name] = config.getint(section, f.name)
                elif f.type is tuple:
                    values[f.name] = _split(config.get(section, f.name))
                else:
                    values[f.name] = config.get(section, f.name).strip()
            except ValueError as err:
                raise ImproperlyConfigured(
                    f"Invalid value for {f.name} in [{section}]: {err}"
                ) from err
        if "name_sources" in values and not values["name_sources"]:
            raise ImproperlyConfigured(f"name_sources in [{section}] must not be empty")
        for path in values.get("authname_alter", ()):
            try:
                load_hook(path)
            except ImportError as err:
                raise ImproperlyConfigured(
                    f"Cannot import authname_alter hook {path} in [{section}]: {err}"
                ) from err
        return cls(**values)


def _as_option(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(value)
    return str(value)


def load_config():
    config = ConfigParser(interpolation=None)
    path = getattr(settings, "WEBSERVER_AUTH_CONFIG_FILE", None) or os.environ.get(
        "WEBSERVER_AUTH_CONFIG"
    )
    if path:
        if not config.read(path):
            logger.error(f"Could not read web server auth config file {path}")
    overrides = getattr(settings, "WEBSERVER_AUTH", None) or {}
    if overrides:
        config.read_dict({SECTION: {k: _as_option(v) for k, v in overrides.items()}})
    return config


@lru_cache(maxsize=None)
def get_settings():
    return WebserverAuthSettings.from_config(load_config())


@receiver(setting_changed)
def reset_settings(sender, setting, **kwargs):
    if setting in ("WEBSERVER_AUTH", "WEBSERVER_AUTH_CONFIG_FILE"):
        get_settings.cache_clear()
