from django.apps import AppConfig
from django.utils.translation import gettext_lazy


class WebserverAuthConfig(AppConfig):
    name = "webserver_auth"
    verbose_name = gettext_lazy("Web server authentication")
    default_auto_field = "django.db.models.AutoField"
