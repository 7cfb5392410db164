"""Pydantic models for the PLD compliance domain."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class OperationStatus(StrEnum):
    PENDING = "PENDING"
    PENDING_REVIEW = "PENDING_REVIEW"
    PENDING_REPORT = "PENDING_REPORT"
    REPORTED = "REPORTED"


class MonitoringStatus(StrEnum):
    NORMAL = "NORMAL"
    EN_PROGRESO = "EN_PROGRESO"
    ALERTA = "ALERTA"
    CRITICO = "CRITICO"


class FactorCategory(StrEnum):
    CLIENT = "client"
    TRANSACTION = "transaction"
    GEOGRAPHIC = "geographic"
    SPECIFIC = "specific"


class PipelineAction(StrEnum):
    MARK_REVIEWED = "mark_reviewed"
    ESCALATE = "escalate"
    MARK_REPORTED = "mark_reported"


# --- Catalog Models ---


class RiskFactor(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor_id: str
    name: str = ""
    severity_weight: int = Field(ge=0, le=100)
    legal_reference: str = ""
    blocks_operation: bool = False
    requires_escalation: bool = False
    category: FactorCategory = FactorCategory.SPECIFIC
    alert_message: str = ""


class TierRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_score: int
    max_score: int
    label: str
    label_es: str = ""
    risk_level: RiskLevel
    recommended_action: str = ""

    def contains(self, score: int) -> bool:
        return self.min_score <= score <= self.max_score


class RiskMatrix(BaseModel):
    """Risk matrix for one activity type.

    Specific factors take precedence over general factors when ids collide.
    The tier table is sorted ascending and partitions [0, 100].
    """

    model_config = ConfigDict(frozen=True)

    activity_type: str
    name: str = ""
    specific_factors: dict[str, RiskFactor] = Field(default_factory=dict)
    general_factors: dict[str, RiskFactor] = Field(default_factory=dict)
    tier_table: tuple[TierRange, ...]

    def merged_factors(self) -> dict[str, RiskFactor]:
        return {**self.general_factors, **self.specific_factors}

    @property
    def top_tier(self) -> TierRange:
        return self.tier_table[-1]

    def tier_for(self, score: int) -> TierRange | None:
        matches = [t for t in self.tier_table if t.contains(score)]
        if len(matches) != 1:
            return None
        return matches[0]


class ThresholdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    activity_type: str
    fraction: str = ""
    description: str = ""
    identification_threshold_units: Decimal = Field(ge=0)
    reporting_threshold_units: Decimal = Field(ge=0)
    window_months: int = Field(default=6, ge=1)
    unit_value: Decimal = Field(gt=0)


# --- Operation Models ---


class StatusChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_status: OperationStatus | None = None
    to_status: OperationStatus
    action: str
    actor_id: str | None = None
    changed_at: datetime
    reason: str | None = None


class Operation(BaseModel):
    operation_id: str
    tenant_id: str = "default"
    client_identity: str
    client_name: str | None = None
    activity_type: str
    amount: Decimal = Field(ge=0, decimal_places=2)  # same scale as operations.amount
    operation_date: date
    risk_level: RiskLevel = RiskLevel.LOW
    risk_score: int = Field(default=0, ge=0, le=100)
    risk_tier: str | None = None
    triggered_factors: list[str] = Field(default_factory=list)
    status: OperationStatus = OperationStatus.PENDING
    version: int = 0
    catalog_version: str | None = None
    zero_declaration: bool = False
    created_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    escalated_at: datetime | None = None
    escalated_by: str | None = None
    reported_at: datetime | None = None
    reported_by: str | None = None
    history: list[StatusChange] = Field(default_factory=list)


# --- Engine Output Models ---


class MatchedFactor(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor_id: str
    name: str = ""
    severity_weight: int
    blocks_operation: bool = False
    requires_escalation: bool = False
    legal_reference: str = ""


class RiskScoreResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    activity_type: str
    score: int = Field(ge=0, le=100)
    tier: str
    risk_level: RiskLevel
    recommended_action: str = ""
    is_blocked: bool = False
    requires_escalation: bool = False
    is_top_tier: bool = False
    matched_factors: list[MatchedFactor] = Field(default_factory=list)
    unknown_factors: list[str] = Field(default_factory=list)
    catalog_version: str = ""


class ClientAccumulation(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_identity: str
    activity_type: str
    window_start: date
    window_end: date
    accumulated_amount: Decimal = Decimal("0")
    operation_count: int = 0
    operation_ids: list[str] = Field(default_factory=list)
    reporting_threshold_units: Decimal = Decimal("0")
    reporting_threshold_currency: Decimal = Decimal("0")
    identification_threshold_currency: Decimal = Decimal("0")
    percent_of_threshold: Decimal = Decimal("0")
    monitoring_status: MonitoringStatus = MonitoringStatus.NORMAL
    identification_required: bool = False
    amount_to_threshold: Decimal = Decimal("0")
    first_operation_date: date | None = None
    days_in_monitoring: int = 0
    monitoring_progress: Decimal = Decimal("0")
    monitoring_end_date: date | None = None
    days_until_window_close: int | None = None


class OperationSummary(BaseModel):
    total_operations: int = 0
    total_amount: Decimal = Decimal("0")
    by_risk_tier: dict[str, int] = Field(default_factory=dict)
    by_risk_level: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    by_activity: dict[str, dict[str, Decimal | int]] = Field(default_factory=dict)
    pending_report_count: int = 0
    reported_count: int = 0
    reporting_rate: Decimal = Decimal("0")
    unique_clients: int = 0
    compliance_status: str = "SIN_DATOS"
