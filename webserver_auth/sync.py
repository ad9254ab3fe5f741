import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache

from .exceptions import MalformedMappingEntry
from .signals import user_synchronized

logger = logging.getLogger(__name__)

_ENTRY_SEPARATORS = re.compile(r"[|,;\n]+")
MAX_EXTERNAL_GROUPS = 256


def _parse_entry(entry):
    if ":" not in entry:
        raise MalformedMappingEntry(entry)
    group, role = entry.split(":", 1)
    group, role = group.strip(), role.strip()
    if not group or not role:
        raise MalformedMappingEntry(entry)
    return group, role


@lru_cache(maxsize=32)
def parse_role_mapping(value):
    """
    Parse ``group:role`` pairs separated by ``|``, ``,``, ``;`` or newlines
    into a frozenset of (external_group, role_name) tuples.

    Malformed entries are skipped. The result is cached per configuration
    string, so each malformed entry is only logged once.
    """
    rules = set()
    for entry in _ENTRY_SEPARATORS.split(value or ""):
        entry = entry.strip()
        if not entry:
            continue
        try:
            rules.add(_parse_entry(entry))
        except MalformedMappingEntry as err:
            logger.warning(f"Skipping role mapping entry: {err}")
    return frozenset(rules)


def read_external_groups(meta, count_attribute, prefix):
    """Read the indexed group attributes (1-based) announced by the count attribute."""
    try:
        count = int(meta.get(count_attribute) or 0)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric group count {meta.get(count_attribute)!r}")
        return []
    if count > MAX_EXTERNAL_GROUPS:
        logger.warning(f"Group count {count} exceeds {MAX_EXTERNAL_GROUPS}, truncating")
        count = MAX_EXTERNAL_GROUPS
    groups = []
    for index in range(1, count + 1):
        value = meta.get(f"{prefix}{index}")
        if value and value.strip():
            groups.append(value.strip())
    return groups


@dataclass
class SyncReport:
    email_updated: bool = False
    granted: list = field(default_factory=list)
    revoked: list = field(default_factory=list)
    failed: list = field(default_factory=list)


class AttributeSynchronizer:
    """Updates email and reconciles roles right after a successful login."""

    def __init__(self, users, roles, conf):
        self.users = users
        self.roles = roles
        self.conf = conf

    def synchronize(self, user, meta):
        report = SyncReport()
        if self.conf.sync_email:
            report.email_updated = self.sync_email(user, meta)
        rules = parse_role_mapping(self.conf.role_mapping)
        if rules:
            groups = read_external_groups(
                meta, self.conf.group_count_attribute, self.conf.group_attribute_prefix
            )
            self.sync_roles(user, rules, groups, report)
        user_synchronized.send(
            sender=self.__class__, user=user, granted=report.granted, revoked=report.revoked
        )
        return report

    def sync_email(self, user, meta):
        email = (meta.get(self.conf.email_attribute) or "").strip()
        if not email or email == user.email:
            return False
        try:
            self.users.update_email(user.user_id, email)
        except Exception:
            logger.exception(f"Could not update email of user {user.user_id}")
            return False
        logger.info(f"Updated email of user {user.user_id}")
        user.email = email
        return True

    def desired_roles(self, rules, groups):
        groups = set(groups)
        desired = set()
        for group, role in rules:
            if group not in groups or role in desired:
                continue
            try:
                exists = self.roles.role_exists(role)
            except Exception:
                logger.exception(f"Could not look up role {role}")
                continue
            if exists:
                desired.add(role)
            else:
                logger.debug(f"Mapped role {role} does not exist, skipping")
        return desired

    def sync_roles(self, user, rules, groups, report):
        desired = self.desired_roles(rules, groups)
        try:
            current = set(self.roles.list_role_names_for_user(user.user_id))
        except Exception:
            logger.exception(f"Could not list roles of user {user.user_id}, skipping role sync")
            report.failed.append(("list", None))
            return
        protected = set(self.conf.protected_roles)
        current -= protected
        desired -= protected

        for role in sorted(current - desired):
            try:
                self.roles.revoke_role(user.user_id, role)
            except Exception:
                logger.exception(f"Could not revoke role {role} from user {user.user_id}")
                report.failed.append(("revoke", role))
            else:
                report.revoked.append(role)
        for role in sorted(desired - current):
            try:
                self.roles.grant_role(user.user_id, role)
            except Exception:
                logger.exception(f"Could not grant role {role} to user {user.user_id}")
                report.failed.append(("grant", role))
            else:
                report.granted.append(role)
        if report.granted or report.revoked:
            logger.info(
                f"Synchronized roles of user {user.user_id}: "
                f"granted={report.granted} revoked={report.revoked}"
            )
        return report
