"""
Django-Datagrid Exceptions

Error kinds raised while turning a grid request into a query and back.

- SchemaError: a column path names an unknown association or field
- RequestShapeError: the inbound request is missing keys or malformed
- CallbackContractError: an integrator-supplied extension broke its contract
- ExecutionError: the query engine failed
"""


class DatagridError(Exception):
    """Base exception for all django-datagrid errors."""

    pass


class SchemaError(DatagridError):
    """
    Raised when a column path does not match the model schema.

    Args:
        message: Human readable description
        path: The full column path being resolved (e.g. "customer.location.city")
        hop: The segment that failed to resolve (e.g. "location")
    """

    def __init__(self, message, path=None, hop=None):
        self.path = path
        self.hop = hop
        super().__init__(message)


class RequestShapeError(DatagridError):
    """Raised when the grid request is missing required keys or has malformed values."""

    def __init__(self, message, missing=()):
        self.missing = list(missing)
        super().__init__(message)


class CallbackContractError(DatagridError):
    """Raised when a where-extension or value filter violates its contract."""

    pass


class ExecutionError(DatagridError):
    """Raised when the query engine fails to execute a plan."""

    pass
