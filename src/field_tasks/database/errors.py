"""Exceptions raised by the data layer.

Repositories never catch and downgrade these; they reach the caller
unchanged.
"""


class NotFoundError(ValueError):
    """The targeted record does not exist."""


class ConflictError(ValueError):
    """A uniqueness or referential rule would be violated."""


class DuplicateKeyError(ConflictError):
    """A record with the same primary key is already stored."""


class ValidationError(ValueError):
    """A caller-supplied payload breaks a field constraint."""


class StorageError(RuntimeError):
    """The SQLite layer could not complete the operation."""


class AuditAppendError(RuntimeError):
    """The data change committed but its audit event was not written.

    ``entity`` holds the committed result so callers can carry on with
    it; the original storage failure is chained as ``__cause__``.
    """

    def __init__(self, entity_type: str, entity_id: str, action: str,
                 entity=None):
        super().__init__(
            f"Audit event {action} for {entity_type} {entity_id} "
            f"was not recorded; the change itself was committed"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.entity = entity
