"""Compliance status pipeline for operations.

  PENDING ──escalate──────────────────────────────► PENDING_REPORT ──mark_reported──► REPORTED
     ▲                                                   ▲
     └──mark_reviewed── PENDING_REVIEW ──escalate────────┘

  PENDING ──mark_reported (zero-declaration only)──► REPORTED

Rules:
  - Escalation is irrevocable inside the engine: once an operation is
    flagged for mandatory reporting only the external reporting workflow
    closes it out (mark_reported). There is no de-escalation.
  - REPORTED is terminal.
  - Every transition appends a StatusChange (actor + timestamp) to the
    operation history. History is never rewritten.

Transitions never mutate their input: they return an updated copy that
the caller persists with an optimistic version check.
"""

from datetime import UTC, datetime

import structlog

from .errors import InvalidTransitionError
from .models import (
    MonitoringStatus,
    Operation,
    OperationStatus,
    PipelineAction,
    RiskLevel,
    RiskScoreResult,
    StatusChange,
)

logger = structlog.get_logger()

INGEST_ACTION = "ingest"

_LEGAL_ACTIONS: dict[OperationStatus, tuple[PipelineAction, ...]] = {
    OperationStatus.PENDING: (PipelineAction.ESCALATE,),
    OperationStatus.PENDING_REVIEW: (PipelineAction.MARK_REVIEWED, PipelineAction.ESCALATE),
    OperationStatus.PENDING_REPORT: (PipelineAction.MARK_REPORTED,),
    OperationStatus.REPORTED: (),
}


def allowed_actions(status: OperationStatus, zero_declaration: bool = False) -> list[PipelineAction]:
    """Actions that are legal from ``status``."""
    actions = list(_LEGAL_ACTIONS[status])
    if zero_declaration and status == OperationStatus.PENDING:
        actions.append(PipelineAction.MARK_REPORTED)
    return actions


def initial_status(
    result: RiskScoreResult,
    monitoring_status: MonitoringStatus | None = None,
) -> OperationStatus:
    """Status assigned on ingestion.

    Ambiguous signals resolve toward the more conservative status.
    """
    if (
        result.is_blocked
        or result.requires_escalation
        or result.is_top_tier
        or result.risk_level == RiskLevel.HIGH
        or monitoring_status == MonitoringStatus.CRITICO
    ):
        return OperationStatus.PENDING_REPORT
    if result.risk_level == RiskLevel.MEDIUM or monitoring_status == MonitoringStatus.ALERTA:
        return OperationStatus.PENDING_REVIEW
    return OperationStatus.PENDING


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _transition(
    operation: Operation,
    action: str,
    to_status: OperationStatus,
    actor_id: str | None,
    at: datetime,
    reason: str | None = None,
    **updates,
) -> Operation:
    change = StatusChange(
        from_status=operation.status,
        to_status=to_status,
        action=action,
        actor_id=actor_id,
        changed_at=at,
        reason=reason,
    )
    return operation.model_copy(
        update={
            **updates,
            "status": to_status,
            "history": [*operation.history, change],
        }
    )


def ingest(
    operation: Operation,
    result: RiskScoreResult,
    monitoring_status: MonitoringStatus | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Operation:
    """Attach a score to a newly ingested operation and set its initial status."""
    at = _now(now)
    status = initial_status(result, monitoring_status)
    reason = f"score={result.score} tier={result.tier}"
    if monitoring_status is not None:
        reason += f" monitoring={monitoring_status.value}"

    # The ingest record has no predecessor status
    change = StatusChange(
        from_status=None,
        to_status=status,
        action=INGEST_ACTION,
        actor_id=actor_id,
        changed_at=at,
        reason=reason,
    )
    updated = operation.model_copy(
        update={
            "status": status,
            "risk_score": result.score,
            "risk_level": result.risk_level,
            "risk_tier": result.tier,
            "triggered_factors": sorted(
                {f.factor_id for f in result.matched_factors} | set(result.unknown_factors)
            ),
            "catalog_version": result.catalog_version,
            "created_at": operation.created_at or at,
            "history": [*operation.history, change],
        }
    )

    logger.info(
        "operation_ingested",
        operation_id=operation.operation_id,
        activity_type=operation.activity_type,
        risk_score=result.score,
        status=status.value,
        is_blocked=result.is_blocked,
    )
    return updated


def _reject(operation: Operation, action: PipelineAction) -> InvalidTransitionError:
    logger.warning(
        "status_transition_rejected",
        operation_id=operation.operation_id,
        current_status=operation.status.value,
        action=action.value,
    )
    return InvalidTransitionError(operation.operation_id, operation.status.value, action.value)


def mark_reviewed(operation: Operation, actor_id: str, now: datetime | None = None) -> Operation:
    """Compliance officer cleared the operation: PENDING_REVIEW → PENDING."""
    if operation.status != OperationStatus.PENDING_REVIEW:
        raise _reject(operation, PipelineAction.MARK_REVIEWED)

    at = _now(now)
    updated = _transition(
        operation,
        PipelineAction.MARK_REVIEWED.value,
        OperationStatus.PENDING,
        actor_id,
        at,
        reviewed_at=at,
        reviewed_by=actor_id,
    )
    logger.info(
        "operation_reviewed",
        operation_id=operation.operation_id,
        reviewed_by=actor_id,
    )
    return updated


def escalate(
    operation: Operation,
    actor_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Operation:
    """Flag the operation for mandatory reporting. Irrevocable.

    Legal from PENDING and PENDING_REVIEW; forces risk level HIGH.
    """
    if operation.status not in (OperationStatus.PENDING, OperationStatus.PENDING_REVIEW):
        raise _reject(operation, PipelineAction.ESCALATE)

    at = _now(now)
    updated = _transition(
        operation,
        PipelineAction.ESCALATE.value,
        OperationStatus.PENDING_REPORT,
        actor_id,
        at,
        reason=reason,
        risk_level=RiskLevel.HIGH,
        escalated_at=at,
        escalated_by=actor_id,
    )
    logger.warning(
        "operation_escalated",
        operation_id=operation.operation_id,
        previous_status=operation.status.value,
        escalated_by=actor_id,
        reason=reason,
    )
    return updated


def mark_reported(
    operation: Operation,
    actor_id: str | None = None,
    zero_declaration: bool = False,
    now: datetime | None = None,
) -> Operation:
    """Regulatory filing confirmed by the external reporting workflow.

    Legal from PENDING_REPORT, or from PENDING for a zero-declaration
    ("informe en ceros") period filing.
    """
    legal = operation.status == OperationStatus.PENDING_REPORT or (
        zero_declaration and operation.status == OperationStatus.PENDING
    )
    if not legal:
        raise _reject(operation, PipelineAction.MARK_REPORTED)

    at = _now(now)
    updated = _transition(
        operation,
        PipelineAction.MARK_REPORTED.value,
        OperationStatus.REPORTED,
        actor_id,
        at,
        reason="zero_declaration" if zero_declaration else None,
        reported_at=at,
        reported_by=actor_id,
        zero_declaration=zero_declaration,
    )
    logger.info(
        "operation_reported",
        operation_id=operation.operation_id,
        reported_by=actor_id,
        zero_declaration=zero_declaration,
    )
    return updated
