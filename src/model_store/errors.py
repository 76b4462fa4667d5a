"""Error hierarchy for model-store.

All errors derive from ``ModelStoreError`` so callers can catch the whole
family in one place:

- ``ValidationError``: a record violates its definition's constraints
- ``MutationError``: a write or delete that the definition does not allow
- ``SchemaDefinitionError``: a malformed or unresolvable model definition
- ``PersistenceError``: a failed lookup or SQL execution
"""


class ModelStoreError(Exception):
    """Base class for all model-store errors."""

    pass


class ValidationError(ModelStoreError):
    """Raised when a record value violates a property constraint.

    Attributes:
        field: Id of the offending property.
        rule: Name of the violated rule (``required``, ``type``, ``model``,
            ``object``, ``pattern``, ``enumeration``, ``min``, ``max``).
    """

    def __init__(self, field: str, rule: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.rule = rule


class MutationError(ModelStoreError):
    """Raised when a record field is written or deleted against its definition."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class SchemaDefinitionError(ModelStoreError):
    """Raised for malformed property schemas and unresolved model references."""

    pass


class PersistenceError(ModelStoreError):
    """Raised when a referenced row cannot be found or SQL execution fails."""

    pass
