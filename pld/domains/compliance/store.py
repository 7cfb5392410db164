"""Collaborator interfaces consumed by the compliance engine.

The engine never performs I/O itself. Operation persistence, catalog
loading and the fiscal UMA value are reached through the protocols below.
In-memory implementations back the API singletons and the tests; the
SQL-backed operation store lives in ``pld.db.store``.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

import structlog
from pydantic import BaseModel

from .catalog import ComplianceCatalog, load_catalog
from .errors import ConflictError, OperationNotFoundError, UnknownFiscalYearError
from .models import Operation, OperationStatus, RiskMatrix, ThresholdConfig
from .thresholds import normalize_activity

logger = structlog.get_logger()


class OperationFilters(BaseModel):
    client_identity: str | None = None
    activity_type: str | None = None
    status: OperationStatus | None = None
    date_from: date | None = None
    date_to: date | None = None

    def matches(self, op: Operation) -> bool:
        if self.client_identity and (
            op.client_identity.strip().upper() != self.client_identity.strip().upper()
        ):
            return False
        if self.activity_type and (
            normalize_activity(op.activity_type) != normalize_activity(self.activity_type)
        ):
            return False
        if self.status and op.status != self.status:
            return False
        if self.date_from and op.operation_date < self.date_from:
            return False
        if self.date_to and op.operation_date > self.date_to:
            return False
        return True


class OperationStore(Protocol):
    async def list_operations(
        self, tenant_id: str, filters: OperationFilters | None = None
    ) -> list[Operation]: ...

    async def get_operation(self, tenant_id: str, operation_id: str) -> Operation: ...

    async def add_operation(self, operation: Operation) -> Operation: ...

    async def update_operation(
        self,
        tenant_id: str,
        operation_id: str,
        patch: Mapping[str, Any],
        expected_version: int,
    ) -> Operation: ...


class CatalogStore(Protocol):
    def current(self) -> ComplianceCatalog: ...

    def load_risk_matrix(self, activity_type: str) -> RiskMatrix: ...

    def load_threshold_config(self, activity_type: str) -> ThresholdConfig: ...


class UnitValueProvider(Protocol):
    def get_unit_value(self, year: int) -> Decimal: ...


def check_history_append_only(current: Operation, patch: Mapping[str, Any]) -> None:
    """Reject patches that rewrite or drop audit history."""
    if "history" not in patch:
        return
    new_history = list(patch["history"])
    old_len = len(current.history)
    if len(new_history) < old_len or [
        h if isinstance(h, Mapping) else h.model_dump() for h in new_history[:old_len]
    ] != [h.model_dump() for h in current.history]:
        raise ValueError(f"Operation {current.operation_id}: status history is append-only")


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryOperationStore:
    """Dict-backed operation store with optimistic concurrency.

    Each successful write bumps ``version``; an update whose
    ``expected_version`` does not match the stored one raises ConflictError.
    Operations are never deleted.
    """

    def __init__(self) -> None:
        # {(tenant_id, operation_id): Operation}
        self._operations: dict[tuple[str, str], Operation] = {}

    async def list_operations(
        self, tenant_id: str, filters: OperationFilters | None = None
    ) -> list[Operation]:
        ops = [op for (t, _), op in self._operations.items() if t == tenant_id]
        if filters:
            ops = [op for op in ops if filters.matches(op)]
        ops.sort(key=lambda op: (op.operation_date, op.operation_id))
        return ops

    async def get_operation(self, tenant_id: str, operation_id: str) -> Operation:
        try:
            return self._operations[(tenant_id, operation_id)]
        except KeyError:
            raise OperationNotFoundError(tenant_id, operation_id) from None

    async def add_operation(self, operation: Operation) -> Operation:
        key = (operation.tenant_id, operation.operation_id)
        if key in self._operations:
            existing = self._operations[key]
            raise ConflictError(operation.operation_id, 0, existing.version)
        stored = operation.model_copy(update={"version": 1})
        self._operations[key] = stored
        return stored

    async def update_operation(
        self,
        tenant_id: str,
        operation_id: str,
        patch: Mapping[str, Any],
        expected_version: int,
    ) -> Operation:
        current = await self.get_operation(tenant_id, operation_id)
        if current.version != expected_version:
            logger.warning(
                "operation_version_conflict",
                tenant_id=tenant_id,
                operation_id=operation_id,
                expected_version=expected_version,
                actual_version=current.version,
            )
            raise ConflictError(operation_id, expected_version, current.version)

        check_history_append_only(current, patch)
        data = current.model_dump()
        data.update({k: v for k, v in patch.items() if k not in ("version", "operation_id", "tenant_id")})
        data["version"] = current.version + 1
        stored = Operation.model_validate(data)
        self._operations[(tenant_id, operation_id)] = stored
        return stored


class StaticUnitValueProvider:
    """UMA values from configuration. Missing years are an error, never a default."""

    def __init__(self, unit_values: Mapping[int, Decimal]) -> None:
        self._values = {int(year): Decimal(str(value)) for year, value in unit_values.items()}

    def get_unit_value(self, year: int) -> Decimal:
        try:
            return self._values[year]
        except KeyError:
            raise UnknownFiscalYearError(year) from None

    def years(self) -> list[int]:
        return sorted(self._values)


class YamlCatalogStore:
    """Catalog store backed by a (cached) YAML catalog.

    Threshold configs are bound to ``fiscal_year``'s UMA value, or to the
    current year's when no fiscal year is pinned.
    """

    def __init__(
        self,
        unit_values: UnitValueProvider,
        fiscal_year: int | None = None,
        catalog: ComplianceCatalog | None = None,
        path: str | None = None,
    ) -> None:
        self.path = path
        self.catalog = catalog or load_catalog(path)
        self.fiscal_year = fiscal_year
        self._unit_values = unit_values

    def current(self) -> ComplianceCatalog:
        return self.catalog

    def reload(self) -> ComplianceCatalog:
        """Re-read the YAML file; in-flight callers keep the previous version."""
        self.catalog = load_catalog(self.path)
        return self.catalog

    def load_risk_matrix(self, activity_type: str) -> RiskMatrix:
        return self.catalog.risk.get_matrix(activity_type)

    def load_threshold_config(self, activity_type: str) -> ThresholdConfig:
        unit_value = self._unit_values.get_unit_value(self.fiscal_year or date.today().year)
        return self.catalog.thresholds(unit_value).get_config(activity_type)
