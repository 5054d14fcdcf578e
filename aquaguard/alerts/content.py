"""Human-readable alert messages and recommended actions."""

from dataclasses import dataclass

PARAMETER_NAMES: dict[str, str] = {
    "tds": "TDS (Total Dissolved Solids)",
    "ph": "pH Level",
    "turbidity": "Turbidity",
}

PARAMETER_UNITS: dict[str, str] = {
    "tds": "ppm",
    "ph": "",
    "turbidity": "NTU",
}

SHORT_PARAMETER_NAMES: dict[str, str] = {
    "tds": "TDS",
    "ph": "pH",
    "turbidity": "Turbidity",
}

_THRESHOLD_ACTIONS: dict[str, str] = {
    "Critical": (
        "Immediate action required{at}. Investigate water source and "
        "treatment system. Consider temporary shutdown if necessary."
    ),
    "Warning": (
        "Monitor closely{at} and prepare corrective actions. "
        "Schedule system inspection within 24 hours."
    ),
    "Advisory": "Continue monitoring{at}. Note for regular maintenance schedule.",
}


@dataclass(frozen=True)
class AlertContent:
    message: str
    recommended_action: str


def parameter_name(parameter: str) -> str:
    return PARAMETER_NAMES.get(parameter, parameter)


def parameter_unit(parameter: str) -> str:
    return PARAMETER_UNITS.get(parameter, "")


def format_value(parameter: str, value: float) -> str:
    """``"7.20"``, ``"650.00 ppm"``..."""
    unit = parameter_unit(parameter)
    return f"{value:.2f} {unit}" if unit else f"{value:.2f}"


def generate_alert_content(
    parameter: str,
    value: float,
    severity: str,
    alert_type: str,
    trend_direction: str | None = None,
    building: str | None = None,
    floor: str | None = None,
) -> AlertContent:
    """Build the message and recommended action for an alert.

    Example:
        >>> generate_alert_content("ph", 9.2, "Critical", "threshold",
        ...                        building="Main Lab", floor="Floor 2").message
        '[Main Lab, Floor 2] pH Level has reached critical level: 9.20'
    """
    if building and floor:
        prefix = f"[{building}, {floor}] "
        at = f" at {building}, {floor}"
    elif building:
        prefix = f"[{building}] "
        at = f" at {building}"
    else:
        prefix = ""
        at = ""

    name = parameter_name(parameter)
    value_str = format_value(parameter, value)

    if alert_type == "trend":
        direction = "increasing" if trend_direction == "increasing" else "decreasing"
        return AlertContent(
            message=f"{prefix}{name} is {direction} abnormally: {value_str}",
            recommended_action=(
                f"Investigate cause of {direction} trend{at}. Check system "
                "calibration and recent changes to water source or treatment."
            ),
        )

    return AlertContent(
        message=f"{prefix}{name} has reached {severity.lower()} level: {value_str}",
        recommended_action=_THRESHOLD_ACTIONS.get(
            severity, _THRESHOLD_ACTIONS["Advisory"]
        ).format(at=at),
    )
