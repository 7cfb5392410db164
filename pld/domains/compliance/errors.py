"""Error taxonomy for the compliance engine.

Catalog lookups and invariant violations are fatal to the calling operation.
Transition and concurrency errors are recoverable: the actor is told the
action was rejected, or the caller re-fetches and retries.
"""


class ComplianceEngineError(Exception):
    """Base class for every error raised by the compliance engine."""


class UnknownActivityError(ComplianceEngineError, LookupError):
    """Activity type has no threshold configuration or risk matrix."""

    def __init__(self, activity_type: str) -> None:
        self.activity_type = activity_type
        super().__init__(f"Unknown activity type: {activity_type!r}")


class FactorNotFoundError(ComplianceEngineError, LookupError):
    """Risk factor id is not present in the catalog."""

    def __init__(self, factor_id: str) -> None:
        self.factor_id = factor_id
        super().__init__(f"Unknown risk factor: {factor_id!r}")


class UnknownFiscalYearError(ComplianceEngineError, LookupError):
    """No UMA value is configured for the requested fiscal year."""

    def __init__(self, year: int) -> None:
        self.year = year
        super().__init__(f"No unit-of-account value configured for fiscal year {year}")


class TierConfigError(ComplianceEngineError):
    """A risk matrix tier table violates its invariants.

    Never swallowed: a broken tier table can hide reportable risk.
    """


class CatalogValidationError(TierConfigError):
    """Catalog content failed validation at load time."""


class InvalidTransitionError(ComplianceEngineError):
    """The requested status change is not legal from the current status."""

    def __init__(self, operation_id: str, current_status: str, action: str) -> None:
        self.operation_id = operation_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} operation {operation_id} from status {current_status}"
        )


class ConflictError(ComplianceEngineError):
    """Concurrent modification detected by the optimistic version check."""

    def __init__(self, operation_id: str, expected_version: int, actual_version: int | None) -> None:
        self.operation_id = operation_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Operation {operation_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class OperationNotFoundError(ComplianceEngineError, LookupError):
    """Operation id does not exist for the tenant."""

    def __init__(self, tenant_id: str, operation_id: str) -> None:
        self.tenant_id = tenant_id
        self.operation_id = operation_id
        super().__init__(f"Operation {operation_id} not found for tenant {tenant_id}")
