"""PLD compliance domain: thresholds, risk scoring, accumulation and status pipeline."""

from .accumulation import classify_monitoring_status, compute_accumulation, compute_all_accumulations
from .catalog import ComplianceCatalog, RiskCatalog, load_catalog
from .config import ComplianceConfig, default_config
from .engine import ComplianceEngine, IngestOutcome
from .errors import (
    ComplianceEngineError,
    ConflictError,
    InvalidTransitionError,
    OperationNotFoundError,
    TierConfigError,
    UnknownActivityError,
    UnknownFiscalYearError,
)
from .models import (
    ClientAccumulation,
    MonitoringStatus,
    Operation,
    OperationStatus,
    OperationSummary,
    RiskLevel,
    RiskScoreResult,
)
from .pipeline import escalate, mark_reported, mark_reviewed
from .scoring import score
from .store import InMemoryOperationStore, StaticUnitValueProvider, YamlCatalogStore
from .summary import summarize
from .thresholds import ThresholdCatalog

__all__ = [
    "ClientAccumulation",
    "ComplianceCatalog",
    "ComplianceConfig",
    "ComplianceEngine",
    "ComplianceEngineError",
    "ConflictError",
    "InMemoryOperationStore",
    "IngestOutcome",
    "InvalidTransitionError",
    "MonitoringStatus",
    "Operation",
    "OperationNotFoundError",
    "OperationStatus",
    "OperationSummary",
    "RiskCatalog",
    "RiskLevel",
    "RiskScoreResult",
    "StaticUnitValueProvider",
    "ThresholdCatalog",
    "TierConfigError",
    "UnknownActivityError",
    "UnknownFiscalYearError",
    "YamlCatalogStore",
    "classify_monitoring_status",
    "compute_accumulation",
    "compute_all_accumulations",
    "default_config",
    "escalate",
    "load_catalog",
    "mark_reported",
    "mark_reviewed",
    "score",
    "summarize",
]
