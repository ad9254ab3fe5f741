import enum
import logging
from dataclasses import dataclass

from .conf import PROVIDER
from .signals import account_provisioned

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    FOUND = "found"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    user: object = None

    @property
    def found(self):
        return self.outcome is Outcome.FOUND


NOT_FOUND = Resolution(Outcome.NOT_FOUND)


class AccountResolver:
    """Maps a canonical authname to a local account."""

    def __init__(self, users, mappings, skip_check=False, email_domain=""):
        self.users = users
        self.mappings = mappings
        self.skip_check = skip_check
        self.email_domain = email_domain

    def resolve(self, authname):
        if not authname:
            return NOT_FOUND
        if self.skip_check:
            user = self.users.find_by_username(authname)
        else:
            user_id = self.mappings.find_mapping(authname, PROVIDER)
            if user_id is None:
                return NOT_FOUND
            user = self.users.find_by_id(user_id)
            if user is None:
                logger.warning(f"Mapping for {authname} points to missing user {user_id}")
        if user is None:
            return NOT_FOUND
        if not user.is_active:
            return Resolution(Outcome.BLOCKED, user)
        return Resolution(Outcome.FOUND, user)

    def find_unmapped_existing_account(self, authname):
        return self.users.find_by_username(authname)

    def create_mapping(self, user_id, authname):
        self.mappings.upsert_mapping(user_id, authname, PROVIDER)
        logger.info(f"Mapped external name {authname} to user {user_id}")

    def remove_mapping(self, authname):
        removed = self.mappings.delete_mapping(authname, PROVIDER)
        if removed:
            logger.info(f"Removed mapping for external name {authname}")
        return removed

    def synthesize_email(self, authname):
        if not self.email_domain:
            return ""
        return f"{authname}@{self.email_domain.lstrip('@')}"

    def provision_account(self, authname, email=""):
        """
        Create a local account named after the authname together with its
        mapping. Both writes share one transaction, so a PersistenceError from
        either leaves nothing behind.
        """
        email = email or self.synthesize_email(authname)
        with self.mappings.atomic():
            user = self.users.create(authname, email=email)
            self.mappings.upsert_mapping(user.user_id, authname, PROVIDER)
        logger.info(f"Provisioned user {user.user_id} for external name {authname}")
        account_provisioned.send(sender=self.__class__, user=user, authname=authname)
        return user
