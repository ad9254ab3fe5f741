from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy

from .conf import PROVIDER


class AccountMapping(models.Model):
    """
    Persisted association between an external authname and a local user.

    One authname maps to at most one user per provider, a user may carry
    mappings from several providers. Rows go away with the user.
    """
    authname = models.CharField(
        max_length=255, verbose_name=gettext_lazy("External name")
    )
    provider = models.CharField(max_length=64, default=PROVIDER)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="webserver_auth_mappings",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["authname", "provider"], name="unique_authname_provider"
            )
        ]
        verbose_name = gettext_lazy("Account mapping")

    def __str__(self):
        return f"{self.provider}:{self.authname} -> {self.user_id}"
