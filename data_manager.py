import copy
import difflib
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger

import config
from errors import DataLoadError
from map_utils import compute_statistics, strip_diacritics

Cell = Union[int, float, str]

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class RawRow:
    """One (entity, year) record. `values` holds the known parameter columns, `extra` the rest."""
    entity: str
    year: int
    values: Mapping[str, Cell] = field(default_factory=dict)
    extra: Mapping[str, Cell] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityValue:
    entity_name: str
    value: Optional[float]

    def to_dict(self) -> dict:
        return {"entityName": self.entity_name, "value": self.value}


@dataclass(frozen=True)
class HistoryPoint:
    year: int
    value: Optional[float]

    def to_dict(self) -> dict:
        return {"year": self.year, "value": self.value}


def parameter_fields(parameter_groups: Sequence[dict]) -> List[str]:
    return [param["field"] for group in parameter_groups for param in group["parameters"]]


# --- CSV PARSING ---
def coerce_cell(text: Optional[str]) -> Cell:
    """A cell that is fully a numeric literal becomes a number, anything else stays text."""
    # short records are padded with NaN by pandas
    if not isinstance(text, str):
        return ""
    text = text.strip()
    if _INTEGER_RE.match(text):
        return int(text)
    if _NUMBER_RE.match(text):
        number = float(text)
        return number if math.isfinite(number) else text
    return text


def to_value(cell: Optional[Cell]) -> Optional[float]:
    """Numeric value of a cell; empty, suppressed ('z') and non-numeric cells are missing."""
    if cell is None or isinstance(cell, bool):
        return None
    if isinstance(cell, (int, float)):
        return float(cell)
    text = cell.strip()
    if not text or text.lower() == config.MISSING_SENTINEL:
        return None
    coerced = coerce_cell(text)
    if isinstance(coerced, str):
        return None
    return float(coerced)


def read_rows(file_path: Union[str, Path], entity_column: str, known_fields: Sequence[str]) -> List[RawRow]:
    """
    Parses the CSV into RawRow records in file order.
    Raises DataLoadError if the file is unreadable, malformed or lacks the key columns.
    """
    try:
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except FileNotFoundError as e:
        raise DataLoadError(f"File not found: {file_path}") from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as e:
        raise DataLoadError(f"Could not parse {file_path}: {e}") from e

    df.columns = [str(col).strip() for col in df.columns]
    required = {entity_column, config.YEAR_COLUMN}
    missing = required - set(df.columns)
    if missing:
        raise DataLoadError(f"{file_path} missing columns: {sorted(missing)}")

    absent_fields = [f for f in known_fields if f not in df.columns]
    if absent_fields:
        logger.warning(f"{file_path}: {len(absent_fields)} parameter columns not present: {absent_fields}")

    known = set(known_fields)
    rows = []
    for lineno, record in enumerate(df.to_dict(orient="records"), start=2):
        raw_entity = record[entity_column]
        entity = raw_entity.strip() if isinstance(raw_entity, str) else ""
        year = coerce_cell(record[config.YEAR_COLUMN])
        if not entity or isinstance(year, str) or (isinstance(year, float) and not year.is_integer()):
            logger.warning(f"{file_path}: skipping record {lineno} (entity={entity!r}, year={record[config.YEAR_COLUMN]!r})")
            continue
        values = {}
        extra = {}
        for column, text in record.items():
            if column in required:
                continue
            target = values if column in known else extra
            target[column] = coerce_cell(text)
        rows.append(RawRow(entity=entity, year=int(year), values=values, extra=extra))
    return rows


# --- AGGREGATOR ---
class DataAggregator:
    """
    Read-only view over one dataset (municipalities or regions).
    Build it with load_aggregator(); it is never mutated afterwards.
    """

    def __init__(self, rows: Sequence[RawRow], parameter_groups: Sequence[dict] = config.PARAMETER_GROUPS):
        self._rows = tuple(rows)
        self._parameter_groups = parameter_groups
        self._fields = parameter_fields(parameter_groups)

        self._rows_by_year: Dict[int, List[RawRow]] = {}
        self._rows_by_key: Dict[tuple, RawRow] = {}
        for row in self._rows:
            self._rows_by_year.setdefault(row.year, []).append(row)
            self._rows_by_key.setdefault((row.entity, row.year), row)

        self._available_years = self._calculate_available_years()
        self._entities = sorted({row.entity for row in self._rows})

    def _calculate_available_years(self) -> Dict[str, List[int]]:
        years = {param: set() for param in self._fields}
        for row in self._rows:
            for param in self._fields:
                if to_value(row.values.get(param)) is not None:
                    years[param].add(row.year)
        return {param: sorted(found) for param, found in years.items()}

    @property
    def record_count(self) -> int:
        return len(self._rows)

    @property
    def parameter_groups(self) -> Sequence[dict]:
        return self._parameter_groups

    def list_parameters_and_years(self) -> dict:
        return {
            "parameterGroups": copy.deepcopy(self._parameter_groups),
            "availableYears": {param: list(years) for param, years in self._available_years.items()},
        }

    def get_available_years(self, field_name: str) -> List[int]:
        return list(self._available_years.get(field_name, []))

    def get_entity_data(self, field_name: str, year: int) -> dict:
        """
        Values of one parameter for every entity in the given year, in file order,
        plus statistics over the non-missing values.
        """
        data = [
            EntityValue(row.entity, self._value(row, field_name))
            for row in self._rows_by_year.get(int(year), [])
        ]
        stats = compute_statistics(item.value for item in data if item.value is not None)
        return {"data": data, "stats": stats}

    def get_all_entity_names(self) -> List[str]:
        return list(self._entities)

    def find_entity_by_name(self, query: str) -> Optional[str]:
        """
        Case-insensitive exact match first, then word-subset matching.
        Several word-subset matches are ranked by similarity to the query, then alphabetically.
        """
        normalized = " ".join(query.lower().split())
        if not normalized:
            return None

        for name in self._entities:
            if " ".join(name.lower().split()) == normalized:
                return name

        folded_query = strip_diacritics(normalized)
        query_words = folded_query.split()
        candidates = []
        for name in self._entities:
            folded_name = strip_diacritics(" ".join(name.lower().split()))
            name_words = folded_name.split()
            if all(any(word in part or part in word for part in name_words) for word in query_words):
                candidates.append((name, folded_name))

        if not candidates:
            logger.debug(f"No entity matches {query!r}")
            return None
        if len(candidates) > 1:
            logger.debug(f"{query!r} matches {len(candidates)} entities: {[name for name, _ in candidates]}")

        best, _ = max(
            candidates,
            key=lambda candidate: difflib.SequenceMatcher(None, folded_query, candidate[1]).ratio(),
        )
        return best

    def find_parameter_by_name(self, query: str) -> Optional[str]:
        wanted = query.strip().lower()
        if not wanted:
            return None
        for param in self._fields:
            if param.lower() == wanted:
                return param
        for param in self._fields:
            if wanted in param.lower() or param.lower() in wanted:
                return param
        return None

    def get_parameter_history(self, entity_name: str, field_name: str) -> List[HistoryPoint]:
        """One point per available year of the parameter; years without a row are None."""
        history = []
        for year in self._available_years.get(field_name, []):
            row = self._rows_by_key.get((entity_name, year))
            value = self._value(row, field_name) if row is not None else None
            history.append(HistoryPoint(year, value))
        return history

    def get_entity_profile(self, entity_name: str) -> Dict[str, List[HistoryPoint]]:
        return {param: self.get_parameter_history(entity_name, param) for param in self._fields}

    @staticmethod
    def _value(row: RawRow, field_name: str) -> Optional[float]:
        cell = row.values.get(field_name)
        if cell is None:
            cell = row.extra.get(field_name)
        return to_value(cell)


def load_aggregator(
    file_path: Union[str, Path],
    entity_column: str,
    parameter_groups: Sequence[dict] = config.PARAMETER_GROUPS,
) -> DataAggregator:
    """Reads a dataset CSV and returns a ready aggregator. Raises DataLoadError."""
    rows = read_rows(file_path, entity_column, parameter_fields(parameter_groups))
    aggregator = DataAggregator(rows, parameter_groups)
    logger.info(
        f"Loaded {aggregator.record_count} records, "
        f"{len(aggregator.get_all_entity_names())} unique {entity_column} from {file_path}"
    )
    return aggregator


# --- TREND ---
def estimate_trend(history: Sequence[HistoryPoint]) -> Optional[dict]:
    """
    Linear least-squares trend over the non-missing history points.
    Returns the fit and a projection for the year after the last point.
    """
    points = [(point.year, point.value) for point in history if point.value is not None]
    if len(points) < 2:
        return None

    x = np.array([year for year, _ in points], dtype=float)
    y = np.array([value for _, value in points], dtype=float)
    if np.all(x == x[0]):
        return None

    slope, intercept = np.polyfit(x, y, 1)
    next_year = int(x.max()) + 1
    return {
        "slope": float(slope),
        "intercept": float(intercept),
        "next_year": next_year,
        "projected": float(slope * next_year + intercept),
    }
