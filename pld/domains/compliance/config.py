"""Compliance engine configuration with regulatory citations.

Every window, breakpoint and unit value is configurable. Each default is
documented with the regulatory basis that justifies it.

References:
- LFPIORPI Art. 17 — Actividades vulnerables and their UMA thresholds
- LFPIORPI Art. 17, último párrafo — Acumulación de operaciones en 6 meses
- LFPIORPI Art. 18 — Identificación de clientes
- LFPIORPI Art. 23-24 — Presentación de avisos ante la UIF (vía SAT)
- INEGI — Unidad de Medida y Actualización (UMA), publicada anualmente en el DOF
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class AccumulationConfig:
    """Rolling-window accumulation defaults.

    Regulatory basis: LFPIORPI Art. 17 — operations by the same client in the
    same activity are added up over a period of six months; once the sum
    reaches the reporting threshold an aviso is mandatory.
    """

    # Default when an activity entry does not declare its own window
    default_window_months: int = 6


@dataclass
class MonitoringBreakpoints:
    """Percent-of-threshold breakpoints for the client monitoring status.

    Independent of the per-activity risk tier tables: these describe the
    accumulation trend of a client, not the severity of one operation.
    """

    critico_pct: Decimal = Decimal("100")
    alerta_pct: Decimal = Decimal("75")
    en_progreso_pct: Decimal = Decimal("25")

    def __post_init__(self) -> None:
        if not (0 <= self.en_progreso_pct <= self.alerta_pct <= self.critico_pct):
            raise ValueError(
                "Monitoring breakpoints must satisfy 0 <= en_progreso <= alerta <= critico"
            )


@dataclass
class FiscalUnitConfig:
    """Daily UMA value per fiscal year (MXN).

    Source: INEGI publication in the Diario Oficial de la Federación, in
    force from February 1st of each year.
    """

    unit_values: dict[int, Decimal] = field(
        default_factory=lambda: {
            2020: Decimal("86.88"),
            2021: Decimal("89.62"),
            2022: Decimal("96.22"),
            2023: Decimal("103.74"),
            2024: Decimal("108.57"),
            2025: Decimal("113.14"),
            2026: Decimal("117.31"),
        }
    )


@dataclass
class PipelineConfig:
    """Status pipeline defaults."""

    # Actor recorded when the accumulation monitor escalates operations
    system_actor_id: str = "system:accumulation-monitor"
    # Escalate PENDING operations of a client whose accumulation is CRITICO
    escalate_on_critico: bool = True


@dataclass
class ComplianceConfig:
    """Top-level compliance engine configuration."""

    accumulation: AccumulationConfig = field(default_factory=AccumulationConfig)
    breakpoints: MonitoringBreakpoints = field(default_factory=MonitoringBreakpoints)
    fiscal: FiscalUnitConfig = field(default_factory=FiscalUnitConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    # Catalog YAML; None means the packaged default catalog
    catalog_path: str | None = None

    @classmethod
    def from_env(cls) -> "ComplianceConfig":
        """Load config with env var overrides (PLD_ prefix)."""
        config = cls()

        if v := os.getenv("PLD_DEFAULT_WINDOW_MONTHS"):
            config.accumulation.default_window_months = int(v)

        if v := os.getenv("PLD_BREAKPOINT_CRITICO"):
            config.breakpoints.critico_pct = Decimal(v)
        if v := os.getenv("PLD_BREAKPOINT_ALERTA"):
            config.breakpoints.alerta_pct = Decimal(v)
        if v := os.getenv("PLD_BREAKPOINT_EN_PROGRESO"):
            config.breakpoints.en_progreso_pct = Decimal(v)
        # Re-run the ordering check after overrides
        config.breakpoints.__post_init__()

        # e.g. PLD_UMA_2027=121.50
        for key, value in os.environ.items():
            if key.startswith("PLD_UMA_") and key[len("PLD_UMA_"):].isdigit():
                config.fiscal.unit_values[int(key[len("PLD_UMA_"):])] = Decimal(value)

        if v := os.getenv("PLD_SYSTEM_ACTOR_ID"):
            config.pipeline.system_actor_id = v
        if v := os.getenv("PLD_ESCALATE_ON_CRITICO"):
            config.pipeline.escalate_on_critico = v.lower() in ("true", "1", "yes")

        if v := os.getenv("PLD_CATALOG_PATH"):
            config.catalog_path = v

        return config


# Module-level default instance
default_config = ComplianceConfig()
