"""Rolling-window accumulation monitor.

Adds up a client's operations in one activity over the last N calendar
months and compares the sum against the activity's aviso threshold. The
client's position is classified as:

  CRITICO      >= 100% of the threshold (aviso mandatory)
  ALERTA       >= 75%
  EN_PROGRESO  >= 25%
  NORMAL       below 25%

(default breakpoints, see MonitoringBreakpoints.)

Activities whose threshold is 0 UMA ("siempre", e.g. fe pública) are at
100% as soon as any operation exists in the window.

Regulatory basis:
  LFPIORPI Art. 17 — acumulación de operaciones en un periodo de 6 meses
  LFPIORPI Art. 18 — identificación de clientes
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

import structlog
from dateutil.relativedelta import relativedelta

from .config import MonitoringBreakpoints
from .errors import UnknownActivityError
from .models import ClientAccumulation, MonitoringStatus, Operation
from .thresholds import ThresholdCatalog, normalize_activity, units_to_currency

logger = structlog.get_logger()

HUNDRED = Decimal("100")


def normalize_client(client_identity: str) -> str:
    return client_identity.strip().upper()


def classify_monitoring_status(
    percent_of_threshold: Decimal,
    breakpoints: MonitoringBreakpoints | None = None,
) -> MonitoringStatus:
    bp = breakpoints or MonitoringBreakpoints()
    if percent_of_threshold >= bp.critico_pct:
        return MonitoringStatus.CRITICO
    if percent_of_threshold >= bp.alerta_pct:
        return MonitoringStatus.ALERTA
    if percent_of_threshold >= bp.en_progreso_pct:
        return MonitoringStatus.EN_PROGRESO
    return MonitoringStatus.NORMAL


def window_start_for(as_of: date, window_months: int) -> date:
    """Calendar-month subtraction ("6 meses"), not a fixed day count."""
    return as_of - relativedelta(months=window_months)


def compute_accumulation(
    operations: Iterable[Operation],
    client_identity: str,
    activity_type: str,
    as_of: date,
    thresholds: ThresholdCatalog,
    breakpoints: MonitoringBreakpoints | None = None,
) -> ClientAccumulation:
    """Accumulate one client's operations in one activity as of ``as_of``.

    An empty group yields a zero-accumulation result: a client that is not
    yet monitored is a valid state, not an error.

    Raises:
        UnknownActivityError: the activity has no threshold configuration.
    """
    config = thresholds.get_config(activity_type)
    client = normalize_client(client_identity)
    activity = config.activity_type

    window_start = window_start_for(as_of, config.window_months)
    window_length_days = (as_of - window_start).days

    group = sorted(
        (
            op
            for op in operations
            if normalize_client(op.client_identity) == client
            and normalize_activity(op.activity_type) == activity
            and op.operation_date <= as_of
        ),
        key=lambda op: (op.operation_date, op.operation_id),
    )
    in_window = [op for op in group if op.operation_date >= window_start]

    accumulated = sum((op.amount for op in in_window), Decimal("0"))
    reporting_currency = units_to_currency(config.reporting_threshold_units, config.unit_value)
    identification_currency = units_to_currency(
        config.identification_threshold_units, config.unit_value
    )

    if reporting_currency == 0:
        # Always-report activity
        percent = HUNDRED if in_window else Decimal("0")
        amount_to_threshold = Decimal("0")
    else:
        percent = min(HUNDRED, accumulated / reporting_currency * HUNDRED)
        amount_to_threshold = max(Decimal("0"), reporting_currency - accumulated)

    status = classify_monitoring_status(percent, breakpoints)

    identification_required = bool(in_window) and (
        config.identification_threshold_units == 0 or accumulated >= identification_currency
    )

    first_date: date | None = None
    days_in_monitoring = 0
    progress = Decimal("0")
    end_date: date | None = None
    days_until_close: int | None = None
    if group:
        # First operation of the whole group, including ones outside the window
        first_date = group[0].operation_date
        days_in_monitoring = min((as_of - first_date).days, window_length_days)
        if window_length_days > 0:
            progress = min(HUNDRED, Decimal(days_in_monitoring) * HUNDRED / window_length_days)
        end_date = first_date + relativedelta(months=config.window_months)
        days_until_close = max(0, (end_date - as_of).days)

    result = ClientAccumulation(
        client_identity=client,
        activity_type=activity,
        window_start=window_start,
        window_end=as_of,
        accumulated_amount=accumulated,
        operation_count=len(in_window),
        operation_ids=[op.operation_id for op in in_window],
        reporting_threshold_units=config.reporting_threshold_units,
        reporting_threshold_currency=reporting_currency,
        identification_threshold_currency=identification_currency,
        percent_of_threshold=percent,
        monitoring_status=status,
        identification_required=identification_required,
        amount_to_threshold=amount_to_threshold,
        first_operation_date=first_date,
        days_in_monitoring=days_in_monitoring,
        monitoring_progress=progress,
        monitoring_end_date=end_date,
        days_until_window_close=days_until_close,
    )

    if status == MonitoringStatus.CRITICO:
        logger.warning(
            "reporting_threshold_reached",
            client_identity=client,
            activity_type=activity,
            accumulated_amount=str(accumulated),
            reporting_threshold=str(reporting_currency),
            operation_count=len(in_window),
        )

    return result


def group_operations(operations: Iterable[Operation]) -> dict[tuple[str, str], list[Operation]]:
    """Group operations by (client identity, activity type)."""
    groups: dict[tuple[str, str], list[Operation]] = defaultdict(list)
    for op in operations:
        key = (normalize_client(op.client_identity), normalize_activity(op.activity_type))
        groups[key].append(op)
    return dict(groups)


def compute_all_accumulations(
    operations: Iterable[Operation],
    thresholds: ThresholdCatalog,
    as_of: date,
    breakpoints: MonitoringBreakpoints | None = None,
) -> list[ClientAccumulation]:
    """Accumulate every (client, activity) group, highest percent first.

    Groups are independent of each other. Groups whose activity has no
    threshold configuration are skipped and logged.
    """
    results: list[ClientAccumulation] = []
    skipped: list[str] = []

    for (client, activity), group in group_operations(operations).items():
        try:
            results.append(
                compute_accumulation(group, client, activity, as_of, thresholds, breakpoints)
            )
        except UnknownActivityError:
            skipped.append(activity)

    if skipped:
        logger.warning(
            "accumulation_groups_skipped",
            reason="unknown_activity",
            activities=sorted(set(skipped)),
            group_count=len(skipped),
        )

    results.sort(key=lambda r: (-r.percent_of_threshold, r.client_identity, r.activity_type))

    logger.info(
        "accumulation_batch_computed",
        as_of=as_of.isoformat(),
        group_count=len(results),
        critico=sum(1 for r in results if r.monitoring_status == MonitoringStatus.CRITICO),
        alerta=sum(1 for r in results if r.monitoring_status == MonitoringStatus.ALERTA),
    )
    return results
