"""Tests for the operation risk scoring engine.

Covers the regulatory scenarios:
  S-1: SAT 69-B list match saturates the score and blocks the operation
  S-2: Score is the clamped sum of triggered weights
  S-3: Unknown factor ids are ignored, not errors
  S-4: Adding a factor never lowers the score
  S-5: Single-operation amounts near or above the aviso threshold
"""

import itertools
from decimal import Decimal

import pytest

from pld.domains.compliance.catalog import RiskCatalog
from pld.domains.compliance.errors import TierConfigError, UnknownActivityError
from pld.domains.compliance.models import RiskFactor, RiskLevel, RiskMatrix, TierRange
from pld.domains.compliance.scoring import score, threshold_factors


class TestScenarioS1BlacklistMatch:
    def test_blacklist_sat_saturates(self, catalog):
        result = score(["blacklist_sat"], "VEHICULOS", catalog.risk)
        assert result.score == 100
        assert result.tier == "critical"
        assert result.is_top_tier is True
        assert result.is_blocked is True
        assert result.requires_escalation is True
        assert result.risk_level == RiskLevel.HIGH

    def test_blocking_factor_blocks_regardless_of_score(self, catalog):
        # cash_limit_exceeded alone is 35 points, tier medium, but still blocks
        result = score(["cash_limit_exceeded"], "INMUEBLES", catalog.risk)
        assert result.score == 35
        assert result.tier == "medium"
        assert result.is_blocked is True


class TestScenarioS2Sum:
    def test_no_factors_is_low(self, catalog):
        result = score([], "JUEGOS_APUESTAS", catalog.risk)
        assert result.score == 0
        assert result.tier == "low"
        assert result.risk_level == RiskLevel.LOW
        assert result.is_blocked is False
        assert result.requires_escalation is False

    def test_sum_of_weights(self, catalog):
        # 25 + 30 = 55 → medium
        result = score(["cash_payment", "high_risk_zone"], "VEHICULOS", catalog.risk)
        assert result.score == 55
        assert result.tier == "medium"
        assert result.risk_level == RiskLevel.MEDIUM

    def test_clamped_at_hundred(self, catalog):
        result = score(
            ["pep_match", "structured_transactions", "tax_haven", "rapid_turnover"],
            "OBRAS_ARTE",
            catalog.risk,
        )
        assert result.score == 100

    def test_specific_factor_counts(self, catalog):
        result = score(["cash_purchase", "third_party_payment"], "INMUEBLES", catalog.risk)
        assert result.score == 75
        assert result.tier == "high"
        assert result.is_top_tier is False

    def test_pep_requires_escalation_below_top_tier(self, catalog):
        result = score(["pep_match"], "ARRENDAMIENTO", catalog.risk)
        assert result.score == 40
        assert result.is_top_tier is False
        assert result.requires_escalation is True

    def test_duplicates_count_once(self, catalog):
        once = score(["cash_payment"], "VEHICULOS", catalog.risk)
        twice = score(["cash_payment", "cash_payment"], "VEHICULOS", catalog.risk)
        assert once.score == twice.score == 25

    def test_matched_factors_reported(self, catalog):
        result = score(["tax_haven", "pep_match"], "VEHICULOS", catalog.risk)
        assert [f.factor_id for f in result.matched_factors] == ["pep_match", "tax_haven"]
        assert result.catalog_version == "2026.2"

    def test_activity_specific_tier_table(self, catalog):
        result = score(["excessive_amount"], "mutuo_prestamo", catalog.risk)
        assert result.activity_type == "MUTUO_PRESTAMO"
        assert result.recommended_action == "Revisar con Comité de Crédito"


class TestScenarioS3UnknownFactors:
    def test_unknown_ids_ignored(self, catalog):
        result = score(["cash_payment", "moon_phase"], "VEHICULOS", catalog.risk)
        assert result.score == 25
        assert result.unknown_factors == ["moon_phase"]

    def test_specific_factor_of_other_activity_is_unknown(self, catalog):
        result = score(["mixer_tumbler"], "INMUEBLES", catalog.risk)
        assert result.score == 0
        assert result.unknown_factors == ["mixer_tumbler"]

    def test_unknown_activity_raises(self, catalog):
        with pytest.raises(UnknownActivityError):
            score(["cash_payment"], "PIRATERIA", catalog.risk)


class TestScenarioS4Monotonicity:
    FACTORS = ["cash_payment", "pep_match", "border_zone", "rapid_resale", "first_operation"]

    def test_adding_a_factor_never_lowers_score(self, catalog):
        for size in range(len(self.FACTORS)):
            for subset in itertools.combinations(self.FACTORS, size):
                base = score(list(subset), "INMUEBLES", catalog.risk).score
                for extra in self.FACTORS:
                    if extra in subset:
                        continue
                    grown = score([*subset, extra], "INMUEBLES", catalog.risk).score
                    assert grown >= base

    def test_score_always_in_range(self, catalog):
        all_factors = list(catalog.risk.get_matrix("ACTIVOS_VIRTUALES").merged_factors())
        result = score(all_factors, "ACTIVOS_VIRTUALES", catalog.risk)
        assert 0 <= result.score <= 100

    def test_deterministic(self, catalog):
        a = score(["pep_match", "cash_payment"], "VEHICULOS", catalog.risk)
        b = score(["cash_payment", "pep_match"], "VEHICULOS", catalog.risk)
        assert a == b


class TestScenarioS5AmountFactors:
    # JUEGOS_APUESTAS: 645 UMA x 117.31 = 75,664.95
    @pytest.mark.parametrize(
        "amount,expected",
        [
            (Decimal("60531.95"), []),
            (Decimal("60531.96"), ["threshold_proximity"]),
            (Decimal("75664.94"), ["threshold_proximity"]),
            (Decimal("75664.95"), ["above_threshold"]),
            (Decimal("1000000"), ["above_threshold"]),
        ],
    )
    def test_threshold_bands(self, thresholds, amount, expected):
        config = thresholds.get_config("JUEGOS_APUESTAS")
        assert threshold_factors(amount, config) == expected

    def test_always_report_activity(self, thresholds):
        config = thresholds.get_config("SERVICIOS_FE_PUBLICA")
        assert threshold_factors(Decimal("1000000"), config) == []

    def test_derived_factors_are_scored(self, catalog, thresholds):
        config = thresholds.get_config("JUEGOS_APUESTAS")
        result = score(threshold_factors(Decimal("70000"), config), "JUEGOS_APUESTAS", catalog.risk)
        assert result.score == 35
        assert [f.factor_id for f in result.matched_factors] == ["threshold_proximity"]


class TestBrokenTierTable:
    def test_score_outside_every_tier_raises(self):
        # Built in code, bypassing load-time validation
        matrix = RiskMatrix(
            activity_type="X",
            general_factors={"f": RiskFactor(factor_id="f", severity_weight=40)},
            tier_table=(
                TierRange(min_score=0, max_score=30, label="low", risk_level=RiskLevel.LOW),
                TierRange(min_score=50, max_score=100, label="high", risk_level=RiskLevel.HIGH),
            ),
        )
        risk = RiskCatalog({}, {"X": matrix}, version="broken")
        assert score([], "X", risk).tier == "low"
        with pytest.raises(TierConfigError):
            score(["f"], "X", risk)
