"""
Color scale and summary statistics helpers shared by the map and the charts.
"""
import math
import unicodedata
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

import config

PALETTES = ("default", "red")


@dataclass(frozen=True)
class Statistics:
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None
    median: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


# --- STATISTICS ---
def compute_statistics(values: Iterable[float]) -> Statistics:
    """
    Min, max, mean and median of the given values.
    Even-length sets use the mean of the two central values as median.
    Returns all-None statistics for an empty set.
    """
    ordered = sorted(values)
    if not ordered:
        return Statistics()

    count = len(ordered)
    middle = count // 2
    if count % 2 == 0:
        median = (ordered[middle - 1] + ordered[middle]) / 2
    else:
        median = ordered[middle]

    return Statistics(
        min=ordered[0],
        max=ordered[-1],
        avg=min(max(sum(ordered) / count, ordered[0]), ordered[-1]),
        median=median,
    )


# --- COLORS ---
def color_for_value(value: float, min_value: float, max_value: float, palette: str = "default") -> str:
    """
    Map a value within [min_value, max_value] to a fill color.

    "default" buckets into the discrete blue scale, "red" returns a continuous
    light pink to red gradient. Values outside the range are clamped.
    """
    if palette not in PALETTES:
        raise ValueError(f"Unknown palette: {palette}")

    if min_value == max_value:
        if palette == "red":
            return config.RED_GRADIENT_FLAT
        return config.BLUE_PALETTE[len(config.BLUE_PALETTE) // 2]

    ratio = (value - min_value) / (max_value - min_value)
    clamped = max(0.0, min(1.0, ratio))

    if palette == "red":
        channel = int(math.floor(200 - 150 * clamped + 0.5))
        return f"rgba(255, {channel}, {channel}, 1)"

    index = math.floor(clamped * (len(config.BLUE_PALETTE) - 1))
    return config.BLUE_PALETTE[index]


# --- FORMATTING ---
def format_number(value: Optional[float]) -> str:
    """Slovenian number format: '.' groups thousands, ',' marks decimals, at most 2 decimals."""
    if value is None:
        return "-"
    text = f"{value:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text.replace(",", " ").replace(".", ",").replace(" ", ".")


def format_value(value: Optional[float], unit: str = "") -> str:
    text = format_number(value)
    if text == "-" or not unit:
        return text
    if unit == "€":
        return f"{text} €"
    return f"{text} {unit}"


def value_position(value: Optional[float], stats: Optional[Statistics]) -> float:
    """Position of value on the min..max bar, in percent."""
    if value is None or stats is None or stats.min is None or stats.max is None:
        return 0.0
    if stats.max == stats.min:
        return 50.0
    return (value - stats.min) / (stats.max - stats.min) * 100


def legend_labels(stats: Optional[Statistics], unit: str = "") -> List[str]:
    """Labels under the legend bar: min, midpoint and max."""
    if stats is None or stats.min is None or stats.max is None:
        return ["-", "", "-"]
    middle = (stats.min + stats.max) / 2
    return [format_value(stats.min, unit), format_value(middle, unit), format_value(stats.max, unit)]
