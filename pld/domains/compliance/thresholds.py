"""Threshold catalog: per-activity UMA thresholds and unit conversion.

Thresholds are expressed in UMA (Unidad de Medida y Actualización), a daily
reference value revised every year. The catalog is a pure lookup and
conversion utility: the UMA value for the active fiscal year is supplied by
the caller, the catalog never looks at the clock.

Regulatory basis:
  LFPIORPI Art. 17 — identification and aviso thresholds per activity
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from .errors import UnknownActivityError
from .models import ThresholdConfig


def normalize_activity(activity_type: str) -> str:
    return activity_type.strip().upper()


def units_to_currency(units: Decimal | int | str, unit_value: Decimal | int | str) -> Decimal:
    """Convert an amount in UMA to currency. No rounding is applied."""
    return Decimal(str(units)) * Decimal(str(unit_value))


class ThresholdCatalog:
    """Per-activity threshold table bound to one fiscal year's UMA value."""

    def __init__(
        self,
        entries: Mapping[str, Mapping[str, Any]],
        unit_value: Decimal,
        default_window_months: int = 6,
    ) -> None:
        self.unit_value = Decimal(str(unit_value))
        self._configs: dict[str, ThresholdConfig] = {}
        for activity_type, entry in entries.items():
            code = normalize_activity(activity_type)
            self._configs[code] = ThresholdConfig(
                activity_type=code,
                fraction=str(entry.get("fraction", "")),
                description=entry.get("description", ""),
                identification_threshold_units=Decimal(
                    str(entry.get("identification_threshold_units", 0))
                ),
                reporting_threshold_units=Decimal(
                    str(entry["reporting_threshold_units"])
                ),
                window_months=int(entry.get("window_months", default_window_months)),
                unit_value=self.unit_value,
            )

    @classmethod
    def from_configs(cls, configs: Iterable[ThresholdConfig]) -> "ThresholdCatalog":
        """Build a catalog from ready-made configs (all must share one unit value)."""
        configs = list(configs)
        unit_values = {c.unit_value for c in configs}
        if len(unit_values) > 1:
            raise ValueError("All threshold configs in a catalog must share one unit value")
        catalog = cls({}, unit_values.pop() if unit_values else Decimal("1"))
        for config in configs:
            catalog._configs[normalize_activity(config.activity_type)] = config
        return catalog

    def get_config(self, activity_type: str) -> ThresholdConfig:
        try:
            return self._configs[normalize_activity(activity_type)]
        except KeyError:
            raise UnknownActivityError(activity_type) from None

    def activity_types(self) -> list[str]:
        return sorted(self._configs)

    def reporting_threshold_currency(self, activity_type: str) -> Decimal:
        config = self.get_config(activity_type)
        return units_to_currency(config.reporting_threshold_units, config.unit_value)

    def identification_threshold_currency(self, activity_type: str) -> Decimal:
        config = self.get_config(activity_type)
        return units_to_currency(config.identification_threshold_units, config.unit_value)

    def __contains__(self, activity_type: str) -> bool:
        return normalize_activity(activity_type) in self._configs
