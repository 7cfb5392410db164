"""Tests for the compliance dashboard summary."""

from datetime import date
from decimal import Decimal

from pld.domains.compliance.models import Operation, OperationStatus, RiskLevel
from pld.domains.compliance.summary import ComplianceStatus, summarize


def _make_op(**kwargs) -> Operation:
    defaults = {
        "operation_id": "op-001",
        "client_identity": "CLIENT-1",
        "activity_type": "INMUEBLES",
        "amount": Decimal("100000"),
        "operation_date": date(2026, 2, 1),
        "risk_tier": "low",
    }
    defaults.update(kwargs)
    return Operation(**defaults)


class TestSummarize:
    def test_empty(self):
        summary = summarize([])
        assert summary.total_operations == 0
        assert summary.compliance_status == ComplianceStatus.SIN_DATOS
        assert summary.by_status == {s.value: 0 for s in OperationStatus}

    def test_counts(self):
        ops = [
            _make_op(operation_id="1", risk_tier="low"),
            _make_op(
                operation_id="2",
                risk_tier="critical",
                risk_level=RiskLevel.HIGH,
                status=OperationStatus.PENDING_REPORT,
            ),
            _make_op(
                operation_id="3",
                client_identity="client-1 ",
                activity_type="VEHICULOS",
                amount=Decimal("50000"),
                risk_tier=None,
                status=OperationStatus.REPORTED,
            ),
        ]
        summary = summarize(ops)
        assert summary.total_operations == 3
        assert summary.total_amount == Decimal("250000")
        assert summary.by_risk_tier == {"low": 1, "critical": 1, "unscored": 1}
        assert summary.by_risk_level == {"LOW": 2, "MEDIUM": 0, "HIGH": 1}
        assert summary.by_status["PENDING_REPORT"] == 1
        assert summary.by_status["REPORTED"] == 1
        assert summary.pending_report_count == 1
        assert summary.reported_count == 1
        assert summary.unique_clients == 1
        assert summary.by_activity["INMUEBLES"] == {"count": 2, "amount": Decimal("200000")}
        assert summary.reporting_rate == Decimal("33.3")
        assert summary.compliance_status == ComplianceStatus.ALERTA_ALTA

    def test_all_reported_is_complete(self):
        ops = [
            _make_op(operation_id=str(i), status=OperationStatus.REPORTED) for i in range(3)
        ]
        summary = summarize(ops)
        assert summary.reporting_rate == Decimal("100.0")
        assert summary.compliance_status == ComplianceStatus.COMPLETO

    def test_partial_and_pending(self):
        ops = [_make_op(operation_id=str(i), status=OperationStatus.REPORTED) for i in range(4)]
        ops.append(_make_op(operation_id="x"))
        assert summarize(ops).compliance_status == ComplianceStatus.PARCIAL

        ops = [_make_op(operation_id="r", status=OperationStatus.REPORTED)]
        ops += [_make_op(operation_id=str(i)) for i in range(3)]
        assert summarize(ops).compliance_status == ComplianceStatus.PENDIENTE

    def test_nothing_reported(self):
        summary = summarize([_make_op()])
        assert summary.compliance_status == ComplianceStatus.SIN_REPORTAR
