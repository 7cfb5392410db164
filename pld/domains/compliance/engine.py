"""Compliance engine service: wires the pure compliance functions to storage.

The pure modules (scoring, accumulation, pipeline, summary) never touch I/O.
This service fetches state through the collaborator protocols, applies a
pure transition and writes the result back with an optimistic version
check. A ConflictError from the store means another actor changed the
operation first; user-initiated actions surface it, system escalations
re-fetch and retry.
"""

from datetime import date, datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel

from . import pipeline
from .accumulation import compute_accumulation, compute_all_accumulations
from .catalog import ComplianceCatalog
from .config import ComplianceConfig, default_config
from .errors import ConflictError
from .models import (
    ClientAccumulation,
    MonitoringStatus,
    Operation,
    OperationStatus,
    OperationSummary,
    RiskScoreResult,
)
from .scoring import score, threshold_factors
from .store import CatalogStore, OperationFilters, OperationStore, UnitValueProvider
from .summary import summarize
from .thresholds import ThresholdCatalog

logger = structlog.get_logger()

_ESCALATABLE = (OperationStatus.PENDING, OperationStatus.PENDING_REVIEW)
_SYSTEM_RETRIES = 3


class IngestOutcome(BaseModel):
    operation: Operation
    score: RiskScoreResult
    accumulation: ClientAccumulation
    escalated_operation_ids: list[str] = []


def _patch(current: Operation, updated: Operation) -> dict:
    """Fields that differ between two versions of an operation."""
    return {
        name: getattr(updated, name)
        for name in Operation.model_fields
        if name != "version" and getattr(updated, name) != getattr(current, name)
    }


class ComplianceEngine:
    """Async facade over scoring, accumulation, the status pipeline and a store."""

    def __init__(
        self,
        store: OperationStore,
        catalog_store: CatalogStore,
        unit_values: UnitValueProvider,
        config: ComplianceConfig | None = None,
        fiscal_year: int | None = None,
    ) -> None:
        self.store = store
        self.catalog_store = catalog_store
        self.unit_values = unit_values
        self.config = config or default_config
        # None means the fiscal year of the evaluated date
        self.fiscal_year = fiscal_year

    @property
    def catalog(self) -> ComplianceCatalog:
        return self.catalog_store.current()

    def unit_value_for(self, as_of: date) -> Decimal:
        return self.unit_values.get_unit_value(self.fiscal_year or as_of.year)

    def thresholds_for(self, as_of: date) -> ThresholdCatalog:
        return self.catalog.thresholds(self.unit_value_for(as_of))

    # --- Scoring ---

    def score(self, triggered_factor_ids: list[str], activity_type: str) -> RiskScoreResult:
        return score(triggered_factor_ids, activity_type, self.catalog.risk)

    # --- Ingestion ---

    async def ingest(
        self,
        operation: Operation,
        triggered_factor_ids: list[str],
        actor_id: str | None = None,
        now: datetime | None = None,
    ) -> IngestOutcome:
        """Score a new operation, place it in its client's accumulation and store it.

        The amount adds its own threshold factors to the caller's. The new
        operation counts toward its own accumulation. When the client's group
        reaches CRITICO the other open operations of the window are escalated
        as well; an escalation that keeps conflicting is left to
        ``reevaluate`` and does not fail the ingest.
        """
        thresholds = self.thresholds_for(operation.operation_date)
        derived = threshold_factors(
            operation.amount, thresholds.get_config(operation.activity_type)
        )
        result = self.score([*triggered_factor_ids, *derived], operation.activity_type)

        existing = await self.store.list_operations(
            operation.tenant_id,
            OperationFilters(
                client_identity=operation.client_identity,
                activity_type=operation.activity_type,
            ),
        )
        accumulation = compute_accumulation(
            [*existing, operation],
            operation.client_identity,
            operation.activity_type,
            operation.operation_date,
            thresholds,
            self.config.breakpoints,
        )

        ingested = pipeline.ingest(
            operation, result, accumulation.monitoring_status, actor_id=actor_id, now=now
        )
        stored = await self.store.add_operation(ingested)

        escalated: list[str] = []
        if (
            accumulation.monitoring_status == MonitoringStatus.CRITICO
            and self.config.pipeline.escalate_on_critico
        ):
            try:
                escalated = await self._escalate_group(
                    operation.tenant_id,
                    [oid for oid in accumulation.operation_ids if oid != stored.operation_id],
                    accumulation,
                    now=now,
                )
            except ConflictError as exc:
                logger.error(
                    "accumulation_group_escalation_failed",
                    tenant_id=operation.tenant_id,
                    operation_id=stored.operation_id,
                    conflicting_operation_id=exc.operation_id,
                    client_identity=accumulation.client_identity,
                    activity_type=accumulation.activity_type,
                )

        return IngestOutcome(
            operation=stored,
            score=result,
            accumulation=accumulation,
            escalated_operation_ids=escalated,
        )

    # --- Status pipeline ---

    async def _apply(
        self,
        tenant_id: str,
        operation_id: str,
        expected_version: int | None,
        transition,
    ) -> Operation:
        current = await self.store.get_operation(tenant_id, operation_id)
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(operation_id, expected_version, current.version)
        updated = transition(current)
        return await self.store.update_operation(
            tenant_id, operation_id, _patch(current, updated), current.version
        )

    async def review(
        self,
        tenant_id: str,
        operation_id: str,
        actor_id: str,
        expected_version: int | None = None,
    ) -> Operation:
        return await self._apply(
            tenant_id,
            operation_id,
            expected_version,
            lambda op: pipeline.mark_reviewed(op, actor_id),
        )

    async def escalate(
        self,
        tenant_id: str,
        operation_id: str,
        actor_id: str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Operation:
        return await self._apply(
            tenant_id,
            operation_id,
            expected_version,
            lambda op: pipeline.escalate(op, actor_id, reason=reason),
        )

    async def report(
        self,
        tenant_id: str,
        operation_id: str,
        actor_id: str | None = None,
        zero_declaration: bool = False,
        expected_version: int | None = None,
    ) -> Operation:
        return await self._apply(
            tenant_id,
            operation_id,
            expected_version,
            lambda op: pipeline.mark_reported(op, actor_id, zero_declaration=zero_declaration),
        )

    async def _escalate_group(
        self,
        tenant_id: str,
        operation_ids: list[str],
        accumulation: ClientAccumulation,
        now: datetime | None = None,
    ) -> list[str]:
        actor = self.config.pipeline.system_actor_id
        reason = (
            f"accumulation {accumulation.monitoring_status.value} "
            f"{accumulation.accumulated_amount} >= {accumulation.reporting_threshold_currency}"
        )
        escalated: list[str] = []
        for operation_id in operation_ids:
            last_conflict: ConflictError | None = None
            for _ in range(_SYSTEM_RETRIES):
                current = await self.store.get_operation(tenant_id, operation_id)
                if current.status not in _ESCALATABLE:
                    break
                updated = pipeline.escalate(current, actor, reason=reason, now=now)
                try:
                    await self.store.update_operation(
                        tenant_id, operation_id, _patch(current, updated), current.version
                    )
                except ConflictError as exc:
                    last_conflict = exc
                    logger.warning(
                        "system_escalation_conflict_retry",
                        tenant_id=tenant_id,
                        operation_id=operation_id,
                    )
                    continue
                escalated.append(operation_id)
                last_conflict = None
                break
            if last_conflict is not None:
                raise last_conflict

        if escalated:
            logger.warning(
                "accumulation_group_escalated",
                tenant_id=tenant_id,
                client_identity=accumulation.client_identity,
                activity_type=accumulation.activity_type,
                operation_ids=escalated,
            )
        return escalated

    # --- Monitoring ---

    async def monitoring(self, tenant_id: str, as_of: date) -> list[ClientAccumulation]:
        operations = await self.store.list_operations(tenant_id)
        return compute_all_accumulations(
            operations, self.thresholds_for(as_of), as_of, self.config.breakpoints
        )

    async def client_accumulation(
        self, tenant_id: str, client_identity: str, activity_type: str, as_of: date
    ) -> ClientAccumulation:
        operations = await self.store.list_operations(
            tenant_id,
            OperationFilters(client_identity=client_identity, activity_type=activity_type),
        )
        return compute_accumulation(
            operations,
            client_identity,
            activity_type,
            as_of,
            self.thresholds_for(as_of),
            self.config.breakpoints,
        )

    async def reevaluate(self, tenant_id: str, as_of: date) -> list[str]:
        """Escalate open operations of every CRITICO (client, activity) group."""
        escalated: list[str] = []
        for accumulation in await self.monitoring(tenant_id, as_of):
            if accumulation.monitoring_status != MonitoringStatus.CRITICO:
                continue
            escalated.extend(
                await self._escalate_group(tenant_id, accumulation.operation_ids, accumulation)
            )
        logger.info(
            "accumulation_reevaluated",
            tenant_id=tenant_id,
            as_of=as_of.isoformat(),
            escalated_count=len(escalated),
        )
        return escalated

    # --- Read side ---

    async def list_operations(
        self, tenant_id: str, filters: OperationFilters | None = None
    ) -> list[Operation]:
        return await self.store.list_operations(tenant_id, filters)

    async def summary(
        self, tenant_id: str, filters: OperationFilters | None = None
    ) -> OperationSummary:
        return summarize(await self.store.list_operations(tenant_id, filters))
