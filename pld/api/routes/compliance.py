"""PLD compliance API endpoints.

Risk scoring, accumulation monitoring and the operation status pipeline
(LFPIORPI actividades vulnerables), scoped per tenant.
"""

import uuid
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from pld.config import settings
from pld.domains.compliance import pipeline
from pld.domains.compliance.accumulation import compute_accumulation
from pld.domains.compliance.config import ComplianceConfig
from pld.domains.compliance.engine import ComplianceEngine
from pld.domains.compliance.models import MonitoringStatus, Operation, OperationStatus
from pld.domains.compliance.store import (
    InMemoryOperationStore,
    OperationFilters,
    OperationStore,
    StaticUnitValueProvider,
    YamlCatalogStore,
)
from pld.domains.compliance.thresholds import units_to_currency

router = APIRouter(prefix="/api/v1/pld", tags=["pld"])

# Module-level singleton (swapped for the SQL store at startup when configured)
_engine: ComplianceEngine | None = None


def build_engine(store: OperationStore | None = None) -> ComplianceEngine:
    config = ComplianceConfig.from_env()
    fiscal_year = settings.fiscal_year or None
    unit_values = StaticUnitValueProvider(config.fiscal.unit_values)
    catalog_store = YamlCatalogStore(
        unit_values,
        fiscal_year=fiscal_year,
        path=settings.catalog_path or config.catalog_path,
    )
    return ComplianceEngine(
        store=store or InMemoryOperationStore(),
        catalog_store=catalog_store,
        unit_values=unit_values,
        config=config,
        fiscal_year=fiscal_year,
    )


def configure_engine(engine: ComplianceEngine | None) -> None:
    global _engine
    _engine = engine


def get_engine() -> ComplianceEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


# ---------------------------------------------------------------------------
# Request/Response models
# ---------------------------------------------------------------------------


class ScoreRequest(BaseModel):
    activity_type: str
    triggered_factors: list[str] = Field(default_factory=list)


class OperationInput(BaseModel):
    operation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    client_identity: str
    client_name: str | None = None
    activity_type: str
    amount: Decimal = Field(ge=0, decimal_places=2)
    operation_date: date


class AccumulationRequest(BaseModel):
    client_identity: str
    activity_type: str
    as_of: date
    operations: list[OperationInput] = Field(default_factory=list)


class IngestRequest(OperationInput):
    triggered_factors: list[str] = Field(default_factory=list)
    actor_id: str | None = None


class ReviewRequest(BaseModel):
    actor_id: str
    expected_version: int | None = None


class EscalateRequest(BaseModel):
    actor_id: str
    reason: str | None = None
    expected_version: int | None = None


class ReportRequest(BaseModel):
    actor_id: str | None = None
    zero_declaration: bool = False
    expected_version: int | None = None


class ReevaluateRequest(BaseModel):
    as_of: date | None = None


def _operation_view(op: Operation) -> dict:
    return {
        **op.model_dump(mode="json"),
        "allowed_actions": [a.value for a in pipeline.allowed_actions(op.status)],
    }


# ---------------------------------------------------------------------------
# Stateless endpoints
# ---------------------------------------------------------------------------


@router.post("/score")
async def score_operation(
    request: ScoreRequest, engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    """Score triggered risk factors against an activity's risk matrix."""
    return engine.score(request.triggered_factors, request.activity_type).model_dump(mode="json")


@router.post("/accumulation")
async def compute_client_accumulation(
    request: AccumulationRequest, engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    """Accumulate the supplied operations for one client and activity."""
    operations = [
        Operation(tenant_id="adhoc", **op.model_dump()) for op in request.operations
    ]
    result = compute_accumulation(
        operations,
        request.client_identity,
        request.activity_type,
        request.as_of,
        engine.thresholds_for(request.as_of),
        engine.config.breakpoints,
    )
    return result.model_dump(mode="json")


@router.get("/activities")
async def list_activities(
    year: int | None = None, engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    """Activity catalog with thresholds converted for a fiscal year."""
    as_of = date(year, 1, 1) if year else date.today()
    thresholds = engine.thresholds_for(as_of)
    items = []
    for activity in thresholds.activity_types():
        config = thresholds.get_config(activity)
        items.append(
            {
                "activity_type": activity,
                "fraction": config.fraction,
                "description": config.description,
                "identification_threshold_units": str(config.identification_threshold_units),
                "reporting_threshold_units": str(config.reporting_threshold_units),
                "identification_threshold_currency": str(
                    units_to_currency(config.identification_threshold_units, config.unit_value)
                ),
                "reporting_threshold_currency": str(
                    units_to_currency(config.reporting_threshold_units, config.unit_value)
                ),
                "window_months": config.window_months,
            }
        )
    return {
        "items": items,
        "total": len(items),
        "unit_value": str(thresholds.unit_value),
        "catalog_version": engine.catalog.version,
    }


@router.get("/activities/{activity_type}")
async def get_activity(activity_type: str, engine: ComplianceEngine = Depends(get_engine)) -> dict:
    """Risk matrix and threshold configuration for one activity."""
    matrix = engine.catalog_store.load_risk_matrix(activity_type)
    threshold = engine.catalog_store.load_threshold_config(activity_type)
    return {
        "risk_matrix": matrix.model_dump(mode="json"),
        "threshold": threshold.model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Operation endpoints
# ---------------------------------------------------------------------------


@router.post("/tenants/{tenant_id}/operations")
async def ingest_operation(
    tenant_id: str, request: IngestRequest, engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    """Score, accumulate and store a new operation."""
    operation = Operation(
        tenant_id=tenant_id,
        **request.model_dump(exclude={"triggered_factors", "actor_id"}),
    )
    outcome = await engine.ingest(operation, request.triggered_factors, actor_id=request.actor_id)
    return outcome.model_dump(mode="json")


@router.get("/tenants/{tenant_id}/operations")
async def list_operations(
    tenant_id: str,
    client_identity: str | None = None,
    activity_type: str | None = None,
    status: OperationStatus | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Operations of a tenant (filterable), newest first."""
    items = await engine.list_operations(
        tenant_id,
        OperationFilters(
            client_identity=client_identity,
            activity_type=activity_type,
            status=status,
            date_from=date_from,
            date_to=date_to,
        ),
    )
    items.sort(key=lambda op: (op.operation_date, op.operation_id), reverse=True)
    total = len(items)
    items = items[offset : offset + limit]
    return {
        "items": [_operation_view(op) for op in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/tenants/{tenant_id}/operations/{operation_id}")
async def get_operation(
    tenant_id: str, operation_id: str, engine: ComplianceEngine = Depends(get_engine)
) -> dict:
    op = await engine.store.get_operation(tenant_id, operation_id)
    return _operation_view(op)


@router.post("/tenants/{tenant_id}/operations/{operation_id}/review")
async def review_operation(
    tenant_id: str,
    operation_id: str,
    request: ReviewRequest,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Compliance officer clears an operation pending review."""
    op = await engine.review(
        tenant_id, operation_id, request.actor_id, expected_version=request.expected_version
    )
    return _operation_view(op)


@router.post("/tenants/{tenant_id}/operations/{operation_id}/escalate")
async def escalate_operation(
    tenant_id: str,
    operation_id: str,
    request: EscalateRequest,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Flag an operation for mandatory reporting."""
    op = await engine.escalate(
        tenant_id,
        operation_id,
        request.actor_id,
        reason=request.reason,
        expected_version=request.expected_version,
    )
    return _operation_view(op)


@router.post("/tenants/{tenant_id}/operations/{operation_id}/report")
async def report_operation(
    tenant_id: str,
    operation_id: str,
    request: ReportRequest,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Record that the aviso (or zero declaration) was filed."""
    op = await engine.report(
        tenant_id,
        operation_id,
        actor_id=request.actor_id,
        zero_declaration=request.zero_declaration,
        expected_version=request.expected_version,
    )
    return _operation_view(op)


# ---------------------------------------------------------------------------
# Dashboard and monitoring endpoints
# ---------------------------------------------------------------------------


@router.get("/tenants/{tenant_id}/summary")
async def get_summary(
    tenant_id: str,
    date_from: date | None = None,
    date_to: date | None = None,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Dashboard counts by risk tier, level, status and activity."""
    summary = await engine.summary(
        tenant_id, OperationFilters(date_from=date_from, date_to=date_to)
    )
    return summary.model_dump(mode="json")


@router.get("/tenants/{tenant_id}/monitoring")
async def get_monitoring(
    tenant_id: str,
    as_of: date | None = None,
    status: MonitoringStatus | None = None,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Accumulation position of every client and activity, highest first."""
    as_of = as_of or date.today()
    items = await engine.monitoring(tenant_id, as_of)
    if status:
        items = [a for a in items if a.monitoring_status == status]
    return {
        "as_of": as_of.isoformat(),
        "items": [a.model_dump(mode="json") for a in items],
        "total": len(items),
    }


@router.get("/tenants/{tenant_id}/monitoring/{client_identity}/{activity_type}")
async def get_client_monitoring(
    tenant_id: str,
    client_identity: str,
    activity_type: str,
    as_of: date | None = None,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    result = await engine.client_accumulation(
        tenant_id, client_identity, activity_type, as_of or date.today()
    )
    return result.model_dump(mode="json")


@router.post("/tenants/{tenant_id}/monitoring/reevaluate")
async def reevaluate_monitoring(
    tenant_id: str,
    request: ReevaluateRequest,
    engine: ComplianceEngine = Depends(get_engine),
) -> dict:
    """Escalate open operations of clients whose accumulation is CRITICO."""
    as_of = request.as_of or date.today()
    escalated = await engine.reevaluate(tenant_id, as_of)
    return {"as_of": as_of.isoformat(), "escalated_operation_ids": escalated, "total": len(escalated)}
