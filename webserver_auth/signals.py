from django.dispatch import Signal

# Sent with sender=SessionReconciler and request, authname as keyword arguments.
user_blocked = Signal()
creation_disabled = Signal()
mapping_conflict = Signal()
persistence_failed = Signal()

# Sent after a new local account and its mapping were created. Receivers get
# the UserRecord as ``user`` plus ``authname`` and may seed further attributes.
account_provisioned = Signal()

# Sent after email and role synchronization ran for a freshly logged in user,
# with ``user``, ``granted`` and ``revoked``.
user_synchronized = Signal()
