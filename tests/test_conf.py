from configparser import ConfigParser

import pytest
from django.core.exceptions import ImproperlyConfigured

from webserver_auth.conf import WebserverAuthSettings, get_settings


def parse(text):
    config = ConfigParser(interpolation=None)
    config.read_string(text)
    return WebserverAuthSettings.from_config(config)


def test_defaults_without_section():
    conf = WebserverAuthSettings.from_config(ConfigParser())
    assert conf == WebserverAuthSettings()
    assert conf.name_sources == ("REMOTE_USER", "REDIRECT_REMOTE_USER")
    assert conf.create_user and conf.logout_on_empty
    assert not conf.match_existing and not conf.skip_check
    assert conf.bypass_cookie_max_age == 60


def test_reads_section():
    conf = parse(
        """
[webserver_auth]
name_sources = HTTP_X_REMOTE_USER, REMOTE_USER
strip_domain = no
match_existing = yes
email_domain = example.com
role_mapping = eng:engineer|mkt:marketing
protected_roles = staff,superusers
bypass_cookie_max_age = 30
"""
    )
    assert conf.name_sources == ("HTTP_X_REMOTE_USER", "REMOTE_USER")
    assert conf.strip_domain is False
    assert conf.match_existing is True
    assert conf.email_domain == "example.com"
    assert conf.role_mapping == "eng:engineer|mkt:marketing"
    assert conf.protected_roles == ("staff", "superusers")
    assert conf.bypass_cookie_max_age == 30


@pytest.mark.parametrize(
    "option", ["create_user = maybe", "bypass_cookie_max_age = soon", "name_sources = ,"]
)
def test_invalid_values(option):
    with pytest.raises(ImproperlyConfigured):
        parse(f"[webserver_auth]\n{option}\n")


def test_django_settings_override_file(settings, tmp_path):
    path = tmp_path / "webserver_auth.cfg"
    path.write_text("[webserver_auth]\ncreate_user = false\nemail_domain = file.example\n")
    settings.WEBSERVER_AUTH_CONFIG_FILE = str(path)
    settings.WEBSERVER_AUTH = {"email_domain": "example.com", "protected_roles": ["staff"]}

    conf = get_settings()
    assert conf.create_user is False
    assert conf.email_domain == "example.com"
    assert conf.protected_roles == ("staff",)


def test_settings_cache_is_reset(settings):
    settings.WEBSERVER_AUTH = {"skip_check": True}
    assert get_settings().skip_check is True
    settings.WEBSERVER_AUTH = {"skip_check": False}
    assert get_settings().skip_check is False


def test_authname_alter_paths_are_resolved_at_load():
    conf = parse("[webserver_auth]\nauthname_alter = tests.test_identity.upper\n")
    assert conf.authname_alter == ("tests.test_identity.upper",)
    with pytest.raises(ImproperlyConfigured):
        parse("[webserver_auth]\nauthname_alter = no.such.hook\n")
    with pytest.raises(ImproperlyConfigured):
        parse("[webserver_auth]\nauthname_alter = tests.test_identity.missing\n")
