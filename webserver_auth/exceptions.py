class WebserverAuthError(Exception):
    pass


class PersistenceError(WebserverAuthError):
    """
    Raised when the user directory rejects a write while creating an account
    or a mapping, usually because a concurrent request won a uniqueness race.
    """


class ConfigurationConflict(WebserverAuthError):
    """
    A local account with the asserted name exists but is not mapped, and
    matching existing accounts is disabled. An administrator has to create
    the mapping manually.
    """


class MalformedMappingEntry(WebserverAuthError):
    def __init__(self, entry):
        super().__init__(f"Role mapping entry {entry!r} is missing the ':' separator")
        self.entry = entry
