"""
Storage seams used by the resolver and the synchronizer.

The abstract classes describe what the reconciliation engine needs from the
user store; the Django* implementations back them with django.contrib.auth
users, groups as roles, and the AccountMapping model.
"""
import abc
import logging
from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.db import DatabaseError, IntegrityError, transaction

from .conf import PROVIDER
from .exceptions import PersistenceError
from .models import AccountMapping

logger = logging.getLogger(__name__)

ACTIVE = "active"
BLOCKED = "blocked"


@dataclass
class UserRecord:
    user_id: int
    username: str
    email: str = ""
    status: str = ACTIVE

    @property
    def is_active(self):
        return self.status == ACTIVE


class UserDirectory(abc.ABC):
    @abc.abstractmethod
    def find_by_username(self, username):
        pass

    @abc.abstractmethod
    def find_by_id(self, user_id):
        pass

    @abc.abstractmethod
    def create(self, username, email=""):
        """Create an active user. Raises PersistenceError on storage failure."""

    @abc.abstractmethod
    def update_email(self, user_id, email):
        pass

    @abc.abstractmethod
    def set_status(self, user_id, status):
        pass


class MappingStore(abc.ABC):
    @abc.abstractmethod
    def find_mapping(self, authname, provider=PROVIDER):
        """Return the mapped user id or None."""

    @abc.abstractmethod
    def upsert_mapping(self, user_id, authname, provider=PROVIDER):
        pass

    @abc.abstractmethod
    def delete_mapping(self, authname, provider=PROVIDER):
        """Return True if a mapping was removed."""

    def atomic(self):
        """Context manager grouping account and mapping creation."""
        return transaction.atomic()


class RoleStore(abc.ABC):
    @abc.abstractmethod
    def list_role_names_for_user(self, user_id):
        pass

    @abc.abstractmethod
    def role_exists(self, role_name):
        pass

    @abc.abstractmethod
    def grant_role(self, user_id, role_name):
        pass

    @abc.abstractmethod
    def revoke_role(self, user_id, role_name):
        pass


def _record(user):
    return UserRecord(
        user_id=user.pk,
        username=user.get_username(),
        email=getattr(user, user.get_email_field_name(), "") or "",
        status=ACTIVE if user.is_active else BLOCKED,
    )


class DjangoUserDirectory(UserDirectory):
    def __init__(self, user_model=None):
        self.model = user_model or get_user_model()

    def find_by_username(self, username):
        try:
            user = self.model._default_manager.get_by_natural_key(username)
        except self.model.DoesNotExist:
            return None
        return _record(user)

    def find_by_id(self, user_id):
        try:
            user = self.model._default_manager.get(pk=user_id)
        except self.model.DoesNotExist:
            return None
        return _record(user)

    def get_user(self, user_id):
        return self.model._default_manager.get(pk=user_id)

    def create(self, username, email=""):
        try:
            with transaction.atomic():
                fields = {
                    self.model.USERNAME_FIELD: username,
                    self.model.get_email_field_name(): email,
                }
                user = self.model(**fields)
                user.set_unusable_password()
                user.save()
        except (IntegrityError, DatabaseError) as err:
            raise PersistenceError(f"Could not create user {username!r}: {err}") from err
        return _record(user)

    def update_email(self, user_id, email):
        self.model._default_manager.filter(pk=user_id).update(
            **{self.model.get_email_field_name(): email}
        )

    def set_status(self, user_id, status):
        self.model._default_manager.filter(pk=user_id).update(is_active=status == ACTIVE)


class DjangoMappingStore(MappingStore):
    def find_mapping(self, authname, provider=PROVIDER):
        return (
            AccountMapping.objects.filter(authname=authname, provider=provider)
            .values_list("user_id", flat=True)
            .first()
        )

    def upsert_mapping(self, user_id, authname, provider=PROVIDER):
        try:
            with transaction.atomic():
                AccountMapping.objects.update_or_create(
                    authname=authname, provider=provider, defaults={"user_id": user_id}
                )
        except (IntegrityError, DatabaseError) as err:
            raise PersistenceError(f"Could not map {authname!r} to user {user_id}: {err}") from err

    def delete_mapping(self, authname, provider=PROVIDER):
        deleted, _ = AccountMapping.objects.filter(authname=authname, provider=provider).delete()
        return deleted > 0


class DjangoRoleStore(RoleStore):
    """Django groups used as roles."""

    def __init__(self, user_model=None):
        self.user_model = user_model or get_user_model()

    def list_role_names_for_user(self, user_id):
        return set(Group.objects.filter(user__pk=user_id).values_list("name", flat=True))

    def role_exists(self, role_name):
        return Group.objects.filter(name=role_name).exists()

    def grant_role(self, user_id, role_name):
        user = self.user_model._default_manager.get(pk=user_id)
        user.groups.add(Group.objects.get(name=role_name))

    def revoke_role(self, user_id, role_name):
        user = self.user_model._default_manager.get(pk=user_id)
        user.groups.remove(Group.objects.get(name=role_name))
