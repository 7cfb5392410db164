"""Tests for the operation status pipeline."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from pld.domains.compliance import pipeline
from pld.domains.compliance.errors import InvalidTransitionError
from pld.domains.compliance.models import (
    MonitoringStatus,
    Operation,
    OperationStatus,
    PipelineAction,
    RiskLevel,
)
from pld.domains.compliance.scoring import score

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _make_op(**kwargs) -> Operation:
    defaults = {
        "operation_id": "op-001",
        "client_identity": "RFC-XAXX010101",
        "activity_type": "VEHICULOS",
        "amount": Decimal("250000"),
        "operation_date": date(2026, 3, 1),
    }
    defaults.update(kwargs)
    return Operation(**defaults)


class TestInitialStatus:
    def test_blacklisted_operation_goes_to_report(self, catalog):
        result = score(["blacklist_sat"], "VEHICULOS", catalog.risk)
        assert pipeline.initial_status(result) == OperationStatus.PENDING_REPORT

    def test_low_risk_is_pending(self, catalog):
        result = score(["first_operation"], "VEHICULOS", catalog.risk)
        assert pipeline.initial_status(result) == OperationStatus.PENDING

    def test_medium_risk_needs_review(self, catalog):
        result = score(["cash_payment", "border_zone"], "VEHICULOS", catalog.risk)
        assert result.risk_level == RiskLevel.MEDIUM
        assert pipeline.initial_status(result) == OperationStatus.PENDING_REVIEW

    def test_high_risk_below_top_tier_goes_to_report(self, catalog):
        result = score(["structured_transactions", "cash_payment"], "VEHICULOS", catalog.risk)
        assert result.tier == "high"
        assert result.is_top_tier is False
        assert result.risk_level == RiskLevel.HIGH
        assert pipeline.initial_status(result) == OperationStatus.PENDING_REPORT

    def test_escalation_factor_goes_to_report(self, catalog):
        result = score(["pep_match"], "VEHICULOS", catalog.risk)
        assert pipeline.initial_status(result) == OperationStatus.PENDING_REPORT

    def test_critico_accumulation_overrides_low_score(self, catalog):
        result = score([], "VEHICULOS", catalog.risk)
        status = pipeline.initial_status(result, MonitoringStatus.CRITICO)
        assert status == OperationStatus.PENDING_REPORT

    def test_alerta_accumulation_needs_review(self, catalog):
        result = score([], "VEHICULOS", catalog.risk)
        status = pipeline.initial_status(result, MonitoringStatus.ALERTA)
        assert status == OperationStatus.PENDING_REVIEW


class TestIngest:
    def test_sets_score_fields_and_history(self, catalog):
        result = score(["blacklist_sat", "cash_payment"], "VEHICULOS", catalog.risk)
        op = pipeline.ingest(_make_op(), result, actor_id="officer-1", now=NOW)
        assert op.status == OperationStatus.PENDING_REPORT
        assert op.risk_score == 100
        assert op.risk_tier == "critical"
        assert op.risk_level == RiskLevel.HIGH
        assert op.triggered_factors == ["blacklist_sat", "cash_payment"]
        assert op.catalog_version == "2026.2"
        assert op.created_at == NOW
        assert len(op.history) == 1
        assert op.history[0].from_status is None
        assert op.history[0].to_status == OperationStatus.PENDING_REPORT

    def test_input_not_mutated(self, catalog):
        original = _make_op()
        pipeline.ingest(original, score([], "VEHICULOS", catalog.risk), now=NOW)
        assert original.history == []
        assert original.risk_tier is None


class TestTransitions:
    def test_review_clears_pending_review(self):
        op = _make_op(status=OperationStatus.PENDING_REVIEW)
        reviewed = pipeline.mark_reviewed(op, "officer-1", now=NOW)
        assert reviewed.status == OperationStatus.PENDING
        assert reviewed.reviewed_by == "officer-1"
        assert reviewed.reviewed_at == NOW
        assert reviewed.history[-1].action == PipelineAction.MARK_REVIEWED.value
        assert op.status == OperationStatus.PENDING_REVIEW

    def test_escalate_forces_high(self):
        op = _make_op(status=OperationStatus.PENDING, risk_level=RiskLevel.LOW)
        escalated = pipeline.escalate(op, "officer-2", reason="structuring suspected", now=NOW)
        assert escalated.status == OperationStatus.PENDING_REPORT
        assert escalated.risk_level == RiskLevel.HIGH
        assert escalated.escalated_by == "officer-2"
        assert escalated.history[-1].reason == "structuring suspected"

    def test_escalate_from_review(self):
        op = _make_op(status=OperationStatus.PENDING_REVIEW)
        assert pipeline.escalate(op, "o").status == OperationStatus.PENDING_REPORT

    def test_report(self):
        op = _make_op(status=OperationStatus.PENDING_REPORT)
        reported = pipeline.mark_reported(op, "uif-filer", now=NOW)
        assert reported.status == OperationStatus.REPORTED
        assert reported.reported_at == NOW
        assert reported.zero_declaration is False

    def test_zero_declaration_from_pending(self):
        op = _make_op(status=OperationStatus.PENDING)
        reported = pipeline.mark_reported(op, "uif-filer", zero_declaration=True)
        assert reported.status == OperationStatus.REPORTED
        assert reported.zero_declaration is True

    def test_history_appends(self):
        op = _make_op(status=OperationStatus.PENDING_REVIEW)
        op = pipeline.escalate(op, "a", now=NOW)
        op = pipeline.mark_reported(op, "b", now=NOW)
        assert [h.to_status for h in op.history] == [
            OperationStatus.PENDING_REPORT,
            OperationStatus.REPORTED,
        ]
        assert [h.from_status for h in op.history] == [
            OperationStatus.PENDING_REVIEW,
            OperationStatus.PENDING_REPORT,
        ]


class TestLegalityTable:
    @pytest.mark.parametrize(
        "status,action",
        [
            (OperationStatus.PENDING, "review"),
            (OperationStatus.PENDING, "report"),
            (OperationStatus.PENDING_REVIEW, "report"),
            (OperationStatus.PENDING_REPORT, "review"),
            (OperationStatus.PENDING_REPORT, "escalate"),
            (OperationStatus.REPORTED, "review"),
            (OperationStatus.REPORTED, "escalate"),
            (OperationStatus.REPORTED, "report"),
        ],
    )
    def test_illegal_transitions_rejected(self, status, action):
        op = _make_op(status=status)
        calls = {
            "review": lambda: pipeline.mark_reviewed(op, "x"),
            "escalate": lambda: pipeline.escalate(op, "x"),
            "report": lambda: pipeline.mark_reported(op, "x"),
        }
        with pytest.raises(InvalidTransitionError) as exc_info:
            calls[action]()
        assert exc_info.value.current_status == status.value
        assert exc_info.value.operation_id == "op-001"

    def test_zero_declaration_not_allowed_from_review(self):
        op = _make_op(status=OperationStatus.PENDING_REVIEW)
        with pytest.raises(InvalidTransitionError):
            pipeline.mark_reported(op, "x", zero_declaration=True)

    def test_allowed_actions(self):
        assert pipeline.allowed_actions(OperationStatus.PENDING) == [PipelineAction.ESCALATE]
        assert pipeline.allowed_actions(OperationStatus.PENDING, zero_declaration=True) == [
            PipelineAction.ESCALATE,
            PipelineAction.MARK_REPORTED,
        ]
        assert pipeline.allowed_actions(OperationStatus.PENDING_REVIEW) == [
            PipelineAction.MARK_REVIEWED,
            PipelineAction.ESCALATE,
        ]
        assert pipeline.allowed_actions(OperationStatus.PENDING_REPORT) == [
            PipelineAction.MARK_REPORTED
        ]
        assert pipeline.allowed_actions(OperationStatus.REPORTED) == []
