"""SQL-backed operation store with optimistic concurrency.

Writes are conditional on the stored version:

  UPDATE operations SET ..., version = :expected + 1
  WHERE tenant_id = :t AND operation_id = :id AND version = :expected

Zero affected rows means the operation is missing or another writer got
there first.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pld.db.models import OperationRecord
from pld.domains.compliance.accumulation import normalize_client
from pld.domains.compliance.errors import ConflictError, OperationNotFoundError
from pld.domains.compliance.models import Operation
from pld.domains.compliance.store import OperationFilters, check_history_append_only
from pld.domains.compliance.thresholds import normalize_activity

logger = structlog.get_logger()

_IMMUTABLE = ("tenant_id", "operation_id", "version")


def _to_values(op: Operation) -> dict[str, Any]:
    data = op.model_dump(mode="json", exclude={"history", "amount", "operation_date"})
    for key in ("created_at", "reviewed_at", "escalated_at", "reported_at"):
        data[key] = getattr(op, key)
    data["amount"] = op.amount
    data["operation_date"] = op.operation_date
    data["activity_type"] = normalize_activity(op.activity_type)
    data["client_key"] = normalize_client(op.client_identity)
    data["history"] = [h.model_dump(mode="json") for h in op.history]
    return data


def _to_operation(record: OperationRecord) -> Operation:
    return Operation(
        operation_id=record.operation_id,
        tenant_id=record.tenant_id,
        client_identity=record.client_identity,
        client_name=record.client_name,
        activity_type=record.activity_type,
        amount=record.amount,
        operation_date=record.operation_date,
        risk_level=record.risk_level,
        risk_score=record.risk_score,
        risk_tier=record.risk_tier,
        triggered_factors=list(record.triggered_factors or []),
        status=record.status,
        version=record.version,
        catalog_version=record.catalog_version,
        zero_declaration=record.zero_declaration,
        created_at=record.created_at,
        reviewed_at=record.reviewed_at,
        reviewed_by=record.reviewed_by,
        escalated_at=record.escalated_at,
        escalated_by=record.escalated_by,
        reported_at=record.reported_at,
        reported_by=record.reported_by,
        history=list(record.history or []),
    )


def _log_conflict(
    tenant_id: str, operation_id: str, expected_version: int, actual_version: int
) -> None:
    logger.warning(
        "operation_version_conflict",
        tenant_id=tenant_id,
        operation_id=operation_id,
        expected_version=expected_version,
        actual_version=actual_version,
    )


class SqlOperationStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_operations(
        self, tenant_id: str, filters: OperationFilters | None = None
    ) -> list[Operation]:
        stmt = select(OperationRecord).where(OperationRecord.tenant_id == tenant_id)
        if filters:
            if filters.client_identity:
                stmt = stmt.where(
                    OperationRecord.client_key == normalize_client(filters.client_identity)
                )
            if filters.activity_type:
                stmt = stmt.where(
                    OperationRecord.activity_type == normalize_activity(filters.activity_type)
                )
            if filters.status:
                stmt = stmt.where(OperationRecord.status == filters.status.value)
            if filters.date_from:
                stmt = stmt.where(OperationRecord.operation_date >= filters.date_from)
            if filters.date_to:
                stmt = stmt.where(OperationRecord.operation_date <= filters.date_to)
        stmt = stmt.order_by(OperationRecord.operation_date, OperationRecord.operation_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_operation(r) for r in result.scalars().all()]

    async def get_operation(self, tenant_id: str, operation_id: str) -> Operation:
        async with self._session_factory() as session:
            record = await session.get(OperationRecord, (tenant_id, operation_id))
            if record is None:
                raise OperationNotFoundError(tenant_id, operation_id)
            return _to_operation(record)

    async def add_operation(self, operation: Operation) -> Operation:
        stored = operation.model_copy(update={"version": 1})
        async with self._session_factory() as session:
            session.add(OperationRecord(**_to_values(stored)))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError(operation.operation_id, 0, None) from None
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
            _log_conflict(tenant_id, operation_id, expected_version, current.version)
            raise ConflictError(operation_id, expected_version, current.version)
        check_history_append_only(current, patch)

        data = current.model_dump()
        data.update({k: v for k, v in patch.items() if k not in _IMMUTABLE})
        data["version"] = expected_version + 1
        merged = Operation.model_validate(data)

        values = {k: v for k, v in _to_values(merged).items() if k not in _IMMUTABLE}
        stmt = (
            update(OperationRecord)
            .where(
                OperationRecord.tenant_id == tenant_id,
                OperationRecord.operation_id == operation_id,
                OperationRecord.version == expected_version,
            )
            .values(**values, version=expected_version + 1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                actual = await session.scalar(
                    select(OperationRecord.version).where(
                        OperationRecord.tenant_id == tenant_id,
                        OperationRecord.operation_id == operation_id,
                    )
                )
                if actual is None:
                    raise OperationNotFoundError(tenant_id, operation_id)
                _log_conflict(tenant_id, operation_id, expected_version, actual)
                raise ConflictError(operation_id, expected_version, actual)
            await session.commit()
        return merged

