"""Risk scoring engine for individual operations (EBR).

score = min(100, sum of severity weights of the triggered factors), mapped
to a tier through the activity's tier table:

  low       (0–30)   Proceed normally
  medium    (31–60)  Enhanced due diligence
  high      (61–80)  Compliance officer authorization
  critical  (81–100) Reject or escalate to the compliance committee

(default table; each activity may carry its own.)

A single weight-100 factor, e.g. a SAT 69-B list match, already saturates
the score. Unknown factor ids are ignored and logged: catalogs evolve and
historical re-scoring must keep working.

The function is pure: same factors, same activity and same catalog version
always give the same result. Stored scores feed the audit trail.
"""

from collections.abc import Iterable
from decimal import Decimal

import structlog

from .catalog import RiskCatalog
from .errors import TierConfigError
from .models import MatchedFactor, RiskScoreResult, ThresholdConfig
from .thresholds import units_to_currency

logger = structlog.get_logger()

MAX_SCORE = 100

ABOVE_THRESHOLD_FACTOR = "above_threshold"
NEAR_THRESHOLD_FACTOR = "threshold_proximity"
NEAR_THRESHOLD_RATIO = Decimal("0.8")


def threshold_factors(amount: Decimal, config: ThresholdConfig) -> list[str]:
    """Factor ids implied by a single operation's amount.

    At or above the aviso threshold the operation carries ``above_threshold``;
    from 80% of the threshold up it carries ``threshold_proximity``.
    Always-report activities (0 UMA) derive nothing.
    """
    reporting = units_to_currency(config.reporting_threshold_units, config.unit_value)
    if reporting == 0:
        return []
    if amount >= reporting:
        return [ABOVE_THRESHOLD_FACTOR]
    if amount >= reporting * NEAR_THRESHOLD_RATIO:
        return [NEAR_THRESHOLD_FACTOR]
    return []


def score(
    triggered_factor_ids: Iterable[str],
    activity_type: str,
    catalog: RiskCatalog,
) -> RiskScoreResult:
    """Score an operation's triggered risk factors for ``activity_type``.

    Raises:
        UnknownActivityError: the activity has no risk matrix.
        TierConfigError: no single tier contains the score.
    """
    matrix = catalog.get_matrix(activity_type)
    factors = matrix.merged_factors()

    # A factor triggered twice is still one factor
    requested = sorted(set(triggered_factor_ids))
    matched = [factors[fid] for fid in requested if fid in factors]
    unknown = [fid for fid in requested if fid not in factors]

    if unknown:
        logger.warning(
            "unknown_risk_factors",
            activity_type=matrix.activity_type,
            unknown_factors=unknown,
            catalog_version=catalog.version,
        )

    raw_total = sum(f.severity_weight for f in matched)
    clamped = min(MAX_SCORE, max(0, raw_total))

    tier = matrix.tier_for(clamped)
    if tier is None:
        logger.error(
            "risk_tier_not_found",
            activity_type=matrix.activity_type,
            score=clamped,
            catalog_version=catalog.version,
        )
        raise TierConfigError(
            f"No single tier of {matrix.activity_type} contains score {clamped} "
            f"(catalog {catalog.version})"
        )

    is_top_tier = tier == matrix.top_tier
    is_blocked = any(f.blocks_operation for f in matched)
    requires_escalation = is_top_tier or any(f.requires_escalation for f in matched)

    result = RiskScoreResult(
        activity_type=matrix.activity_type,
        score=clamped,
        tier=tier.label,
        risk_level=tier.risk_level,
        recommended_action=tier.recommended_action,
        is_blocked=is_blocked,
        requires_escalation=requires_escalation,
        is_top_tier=is_top_tier,
        matched_factors=[
            MatchedFactor(
                factor_id=f.factor_id,
                name=f.name,
                severity_weight=f.severity_weight,
                blocks_operation=f.blocks_operation,
                requires_escalation=f.requires_escalation,
                legal_reference=f.legal_reference,
            )
            for f in matched
        ],
        unknown_factors=unknown,
        catalog_version=catalog.version,
    )

    logger.info(
        "operation_risk_scored",
        activity_type=matrix.activity_type,
        score=clamped,
        raw_total=raw_total,
        tier=tier.label,
        is_blocked=is_blocked,
        requires_escalation=requires_escalation,
        factor_count=len(matched),
    )

    return result
