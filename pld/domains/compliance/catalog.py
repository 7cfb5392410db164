"""Risk factor catalog and per-activity risk matrices (EBR).

Catalog content is configuration data, loaded from a versioned YAML
document and validated once at load time:

  - every severity weight lies in [0, 100];
  - factor ids are unique within a category set;
  - every tier table is sorted, starts at 0, ends at 100, and each range
    starts exactly one point above the previous one (scores are integers),
    so the ranges partition [0, 100] with no gaps or overlaps.

The scoring engine trusts a loaded catalog. Callers pin a catalog version
to re-score historical operations reproducibly.

Regulatory basis:
  ENR 2023 (UIF) — Evaluación Nacional de Riesgos, enfoque basado en riesgo
  LFPIORPI Art. 17 — actividades vulnerables
"""

from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .errors import CatalogValidationError, FactorNotFoundError, UnknownActivityError
from .models import FactorCategory, RiskFactor, RiskMatrix, TierRange
from .thresholds import ThresholdCatalog, normalize_activity

logger = structlog.get_logger()

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalogs" / "default_catalog.yaml"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_tier_table(tiers: list[TierRange], owner: str) -> tuple[TierRange, ...]:
    """Check that ``tiers`` partition [0, 100]; return them sorted."""
    if not tiers:
        raise CatalogValidationError(f"{owner}: tier table is empty")

    ordered = sorted(tiers, key=lambda t: t.min_score)
    if ordered[0].min_score != 0:
        raise CatalogValidationError(
            f"{owner}: tier table must start at 0, starts at {ordered[0].min_score}"
        )
    if ordered[-1].max_score != 100:
        raise CatalogValidationError(
            f"{owner}: tier table must end at 100, ends at {ordered[-1].max_score}"
        )

    previous: TierRange | None = None
    for tier in ordered:
        if tier.min_score > tier.max_score:
            raise CatalogValidationError(
                f"{owner}: tier {tier.label!r} has min {tier.min_score} > max {tier.max_score}"
            )
        if previous is not None and tier.min_score != previous.max_score + 1:
            kind = "overlap" if tier.min_score <= previous.max_score else "gap"
            raise CatalogValidationError(
                f"{owner}: {kind} between tiers {previous.label!r} "
                f"({previous.min_score}-{previous.max_score}) and {tier.label!r} "
                f"({tier.min_score}-{tier.max_score})"
            )
        previous = tier

    return tuple(ordered)


def _build_factors(
    raw_factors: list[Mapping[str, Any]] | None,
    category: FactorCategory,
    owner: str,
) -> dict[str, RiskFactor]:
    factors: dict[str, RiskFactor] = {}
    for raw in raw_factors or []:
        try:
            factor = RiskFactor(**{**raw, "category": category})
        except ValidationError as exc:
            raise CatalogValidationError(
                f"{owner}: invalid risk factor {raw.get('factor_id')!r}: {exc}"
            ) from exc
        if factor.factor_id in factors:
            raise CatalogValidationError(f"{owner}: duplicate factor id {factor.factor_id!r}")
        factors[factor.factor_id] = factor
    return factors


def _build_tiers(raw_tiers: list[Mapping[str, Any]] | None, owner: str) -> tuple[TierRange, ...]:
    try:
        tiers = [TierRange(**raw) for raw in raw_tiers or []]
    except ValidationError as exc:
        raise CatalogValidationError(f"{owner}: invalid tier table: {exc}") from exc
    return validate_tier_table(tiers, owner)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class RiskCatalog:
    """General risk factors plus one risk matrix per activity type."""

    def __init__(
        self,
        general_factors: Mapping[str, RiskFactor],
        matrices: Mapping[str, RiskMatrix],
        version: str = "unversioned",
    ) -> None:
        self.version = version
        self._general = dict(general_factors)
        self._matrices = {normalize_activity(k): v for k, v in matrices.items()}

    @property
    def general_factors(self) -> dict[str, RiskFactor]:
        return dict(self._general)

    def activity_types(self) -> list[str]:
        return sorted(self._matrices)

    def get_matrix(self, activity_type: str) -> RiskMatrix:
        try:
            return self._matrices[normalize_activity(activity_type)]
        except KeyError:
            raise UnknownActivityError(activity_type) from None

    def get_factor(self, factor_id: str, activity_type: str | None = None) -> RiskFactor:
        """Look up a factor; with ``activity_type`` the activity's specific set wins."""
        if activity_type is not None:
            factors = self.get_matrix(activity_type).merged_factors()
        else:
            factors = self._general
        try:
            return factors[factor_id]
        except KeyError:
            raise FactorNotFoundError(factor_id) from None


class ComplianceCatalog:
    """A versioned bundle of the risk catalog and the raw threshold table."""

    def __init__(
        self,
        risk: RiskCatalog,
        threshold_entries: Mapping[str, Mapping[str, Any]],
        version: str,
        default_window_months: int = 6,
    ) -> None:
        self.risk = risk
        self.version = version
        self.default_window_months = default_window_months
        self._threshold_entries = {
            normalize_activity(k): dict(v) for k, v in threshold_entries.items()
        }

    def thresholds(self, unit_value: Decimal) -> ThresholdCatalog:
        """Bind the threshold table to one fiscal year's UMA value."""
        return ThresholdCatalog(
            self._threshold_entries,
            unit_value=unit_value,
            default_window_months=self.default_window_months,
        )


def build_catalog(data: Mapping[str, Any], default_window_months: int = 6) -> ComplianceCatalog:
    """Validate a parsed catalog document and build the catalog objects."""
    if not isinstance(data, Mapping):
        raise CatalogValidationError("Catalog document must be a mapping")

    version = str(data.get("version", "unversioned"))

    general: dict[str, RiskFactor] = {}
    raw_general = data.get("general_factors") or {}
    for category_name, raw_factors in raw_general.items():
        try:
            category = FactorCategory(category_name)
        except ValueError:
            raise CatalogValidationError(
                f"Unknown general factor category {category_name!r}"
            ) from None
        for factor_id, factor in _build_factors(raw_factors, category, "general_factors").items():
            if factor_id in general:
                raise CatalogValidationError(f"general_factors: duplicate factor id {factor_id!r}")
            general[factor_id] = factor

    default_tiers_raw = data.get("default_tier_table")
    default_tiers = _build_tiers(default_tiers_raw, "default_tier_table") if default_tiers_raw else None

    activities = data.get("activities") or {}
    if not activities:
        raise CatalogValidationError("Catalog defines no activities")

    matrices: dict[str, RiskMatrix] = {}
    threshold_entries: dict[str, dict[str, Any]] = {}
    for raw_code, entry in activities.items():
        code = normalize_activity(raw_code)
        specific = _build_factors(entry.get("specific_factors"), FactorCategory.SPECIFIC, code)

        if entry.get("tier_table"):
            tiers = _build_tiers(entry["tier_table"], code)
        elif default_tiers is not None:
            tiers = default_tiers
        else:
            raise CatalogValidationError(
                f"{code}: no tier_table and no default_tier_table in catalog"
            )

        matrices[code] = RiskMatrix(
            activity_type=code,
            name=entry.get("name", ""),
            specific_factors=specific,
            general_factors=general,
            tier_table=tiers,
        )

        if "reporting_threshold_units" not in entry:
            raise CatalogValidationError(f"{code}: reporting_threshold_units is required")
        for key in ("identification_threshold_units", "reporting_threshold_units"):
            if Decimal(str(entry.get(key, 0))) < 0:
                raise CatalogValidationError(f"{code}: {key} must be >= 0")
        threshold_entries[code] = {
            "fraction": entry.get("fraction", ""),
            "description": entry.get("name", ""),
            "identification_threshold_units": entry.get("identification_threshold_units", 0),
            "reporting_threshold_units": entry["reporting_threshold_units"],
            "window_months": entry.get("window_months", default_window_months),
        }

    catalog = ComplianceCatalog(
        risk=RiskCatalog(general, matrices, version=version),
        threshold_entries=threshold_entries,
        version=version,
        default_window_months=default_window_months,
    )

    logger.info(
        "compliance_catalog_loaded",
        version=version,
        general_factor_count=len(general),
        activity_count=len(matrices),
    )
    return catalog


def load_catalog(path: str | Path | None = None, default_window_months: int = 6) -> ComplianceCatalog:
    """Load and validate a catalog YAML file (the packaged default if no path)."""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    with open(catalog_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        raise CatalogValidationError(f"Catalog file {catalog_path} is empty")
    return build_catalog(data, default_window_months=default_window_months)
