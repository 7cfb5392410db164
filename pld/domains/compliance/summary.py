"""Read-only dashboard aggregation over a set of operations."""

from collections import Counter
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from .models import Operation, OperationStatus, OperationSummary, RiskLevel


class ComplianceStatus(StrEnum):
    SIN_DATOS = "SIN_DATOS"
    ALERTA_ALTA = "ALERTA_ALTA"
    COMPLETO = "COMPLETO"
    PARCIAL = "PARCIAL"
    PENDIENTE = "PENDIENTE"
    SIN_REPORTAR = "SIN_REPORTAR"


UNSCORED_TIER = "unscored"


def _compliance_status(
    total: int, high_risk: int, pending_report: int, reporting_rate: Decimal
) -> ComplianceStatus:
    if total == 0:
        return ComplianceStatus.SIN_DATOS
    if high_risk > 0 and pending_report > 0:
        return ComplianceStatus.ALERTA_ALTA
    if reporting_rate >= 100:
        return ComplianceStatus.COMPLETO
    if reporting_rate >= 80:
        return ComplianceStatus.PARCIAL
    if reporting_rate > 0:
        return ComplianceStatus.PENDIENTE
    return ComplianceStatus.SIN_REPORTAR


def summarize(operations: Iterable[Operation]) -> OperationSummary:
    """Counts by risk tier, risk level, status and activity."""
    ops = list(operations)

    by_tier = Counter(op.risk_tier or UNSCORED_TIER for op in ops)
    by_level = Counter(op.risk_level.value for op in ops)
    by_status = Counter(op.status.value for op in ops)

    by_activity: dict[str, dict[str, Decimal | int]] = {}
    for op in ops:
        entry = by_activity.setdefault(op.activity_type, {"count": 0, "amount": Decimal("0")})
        entry["count"] += 1
        entry["amount"] += op.amount

    total = len(ops)
    reported = by_status.get(OperationStatus.REPORTED.value, 0)
    pending_report = by_status.get(OperationStatus.PENDING_REPORT.value, 0)
    reporting_rate = (
        (Decimal(reported) * 100 / total).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        if total
        else Decimal("0")
    )

    return OperationSummary(
        total_operations=total,
        total_amount=sum((op.amount for op in ops), Decimal("0")),
        by_risk_tier=dict(by_tier),
        by_risk_level={level.value: by_level.get(level.value, 0) for level in RiskLevel},
        by_status={status.value: by_status.get(status.value, 0) for status in OperationStatus},
        by_activity=by_activity,
        pending_report_count=pending_report,
        reported_count=reported,
        reporting_rate=reporting_rate,
        unique_clients=len({op.client_identity.strip().upper() for op in ops}),
        compliance_status=_compliance_status(
            total, by_level.get(RiskLevel.HIGH.value, 0), pending_report, reporting_rate
        ).value,
    )
