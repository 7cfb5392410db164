"""Tests for the SQL operation store against a SQLite file database."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pld.db.models import Base
from pld.db.store import SqlOperationStore
from pld.domains.compliance import pipeline
from pld.domains.compliance.errors import ConflictError, OperationNotFoundError
from pld.domains.compliance.models import Operation, OperationStatus, RiskLevel
from pld.domains.compliance.store import OperationFilters

pytestmark = pytest.mark.integration

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _make_op(**kwargs) -> Operation:
    defaults = {
        "operation_id": "op-001",
        "tenant_id": "agencia-autos",
        "client_identity": "RFC-XAXX010101",
        "activity_type": "VEHICULOS",
        "amount": Decimal("450000.50"),
        "operation_date": date(2026, 2, 15),
        "status": OperationStatus.PENDING_REVIEW,
        "triggered_factors": ["cash_payment"],
    }
    defaults.update(kwargs)
    return Operation(**defaults)


async def _store(tmp_path) -> SqlOperationStore:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pld.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return SqlOperationStore(async_sessionmaker(engine, expire_on_commit=False))


class TestSqlOperationStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op())
        fetched = await store.get_operation("agencia-autos", "op-001")
        assert fetched.version == 1
        assert fetched.amount == Decimal("450000.50")
        assert fetched.status == OperationStatus.PENDING_REVIEW
        assert fetched.triggered_factors == ["cash_payment"]

    @pytest.mark.asyncio
    async def test_missing(self, tmp_path):
        store = await _store(tmp_path)
        with pytest.raises(OperationNotFoundError):
            await store.get_operation("agencia-autos", "nope")

    @pytest.mark.asyncio
    async def test_duplicate_add_conflicts(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op())
        with pytest.raises(ConflictError):
            await store.add_operation(_make_op())

    @pytest.mark.asyncio
    async def test_conditional_update(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op())
        current = await store.get_operation("agencia-autos", "op-001")
        escalated = pipeline.escalate(current, "officer-1", reason="manual", now=NOW)

        updated = await store.update_operation(
            "agencia-autos",
            "op-001",
            {
                "status": escalated.status,
                "risk_level": escalated.risk_level,
                "escalated_by": escalated.escalated_by,
                "history": escalated.history,
            },
            expected_version=1,
        )
        assert updated.version == 2

        fetched = await store.get_operation("agencia-autos", "op-001")
        assert fetched.version == 2
        assert fetched.status == OperationStatus.PENDING_REPORT
        assert fetched.risk_level == RiskLevel.HIGH
        assert fetched.history[-1].action == "escalate"

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op())
        await store.update_operation("agencia-autos", "op-001", {"client_name": "A"}, 1)
        with pytest.raises(ConflictError) as exc_info:
            await store.update_operation("agencia-autos", "op-001", {"client_name": "B"}, 1)
        assert exc_info.value.actual_version == 2

    @pytest.mark.asyncio
    async def test_racing_transitions_from_same_version_conflict(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op())
        seen_by_a = await store.get_operation("agencia-autos", "op-001")
        seen_by_b = await store.get_operation("agencia-autos", "op-001")

        reviewed = pipeline.mark_reviewed(seen_by_a, "officer-a", now=NOW)
        await store.update_operation(
            "agencia-autos",
            "op-001",
            {"status": reviewed.status, "reviewed_by": "officer-a", "history": reviewed.history},
            expected_version=1,
        )

        escalated = pipeline.escalate(seen_by_b, "officer-b", now=NOW)
        with pytest.raises(ConflictError) as exc_info:
            await store.update_operation(
                "agencia-autos",
                "op-001",
                {
                    "status": escalated.status,
                    "escalated_by": "officer-b",
                    "history": escalated.history,
                },
                expected_version=1,
            )
        assert exc_info.value.actual_version == 2

        fetched = await store.get_operation("agencia-autos", "op-001")
        assert fetched.status == OperationStatus.PENDING
        assert [h.actor_id for h in fetched.history] == ["officer-a"]

    def test_amount_beyond_centavos_rejected(self):
        # operations.amount is Numeric(18, 2)
        with pytest.raises(ValidationError):
            _make_op(amount=Decimal("100.005"))

    @pytest.mark.asyncio
    async def test_update_missing(self, tmp_path):
        store = await _store(tmp_path)
        with pytest.raises(OperationNotFoundError):
            await store.update_operation("agencia-autos", "nope", {}, 1)

    @pytest.mark.asyncio
    async def test_filters_normalize_client_and_activity(self, tmp_path):
        store = await _store(tmp_path)
        await store.add_operation(_make_op(operation_id="1"))
        await store.add_operation(_make_op(operation_id="2", client_identity="OTHER"))
        await store.add_operation(
            _make_op(operation_id="3", tenant_id="otra-agencia")
        )
        ops = await store.list_operations(
            "agencia-autos",
            OperationFilters(client_identity=" rfc-xaxx010101", activity_type="vehiculos"),
        )
        assert [op.operation_id for op in ops] == ["1"]

        pending = await store.list_operations(
            "agencia-autos", OperationFilters(status=OperationStatus.PENDING_REVIEW)
        )
        assert len(pending) == 2
