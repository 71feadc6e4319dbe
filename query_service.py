"""
Query surface over the municipality and region datasets.

Responses are JSON-shaped dicts:
    data()       -> {"data": [{"entityName", "value"}], "stats": {"min", "max", "avg", "median"}}
    history()    -> {"entityName", "requestedName", "parameter", "data": [{"year", "value"}], "totalRecords"}
    parameters() -> {"parameterGroups", "availableYears"}
"""
from typing import Optional, Union

from loguru import logger

import config
from data_manager import DataAggregator, load_aggregator
from errors import EntityNotFoundError, InvalidQueryError

MUNICIPALITIES = "municipalities"
REGIONS = "regions"
LEVELS = (MUNICIPALITIES, REGIONS)


def parse_year(year: Union[int, float, str, None]) -> int:
    try:
        value = float(year)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"Invalid year: {year!r}") from None
    if not value.is_integer():
        raise InvalidQueryError(f"Invalid year: {year!r}")
    return int(value)


def _require(text: Optional[str], what: str) -> str:
    if text is None or not str(text).strip():
        raise InvalidQueryError(f"{what} is required")
    return str(text).strip()


class StatisticsService:
    def __init__(self, municipalities: DataAggregator, regions: DataAggregator):
        self._datasets = {MUNICIPALITIES: municipalities, REGIONS: regions}

    def dataset(self, level: str) -> DataAggregator:
        if level not in self._datasets:
            raise InvalidQueryError(f"Unknown level: {level!r}")
        return self._datasets[level]

    def parameters(self, level: str = MUNICIPALITIES) -> dict:
        return self.dataset(level).list_parameters_and_years()

    def data(self, parameter: str, year, level: str = MUNICIPALITIES) -> dict:
        parameter = _require(parameter, "Parameter")
        result = self.dataset(level).get_entity_data(parameter, parse_year(year))
        return {
            "data": [item.to_dict() for item in result["data"]],
            "stats": result["stats"].to_dict(),
        }

    def history(self, name: str, parameter: str, level: str = MUNICIPALITIES) -> dict:
        """All years of one parameter for the entity best matching `name`."""
        requested = _require(name, "Entity name")
        parameter = _require(parameter, "Parameter")
        dataset = self.dataset(level)

        entity = dataset.find_entity_by_name(requested)
        if entity is None:
            raise EntityNotFoundError(requested, level)

        if level == REGIONS:
            parameter = dataset.find_parameter_by_name(parameter) or parameter

        points = dataset.get_parameter_history(entity, parameter)
        logger.debug(f"History {entity!r} / {parameter!r}: {len(points)} records")
        return {
            "entityName": entity,
            "requestedName": requested,
            "parameter": parameter,
            "data": [point.to_dict() for point in points],
            "totalRecords": len(points),
        }

    def profile(self, name: str, level: str = MUNICIPALITIES) -> dict:
        requested = _require(name, "Entity name")
        dataset = self.dataset(level)
        entity = dataset.find_entity_by_name(requested)
        if entity is None:
            raise EntityNotFoundError(requested, level)
        return {
            "entityName": entity,
            "parameters": {
                param: [point.to_dict() for point in points]
                for param, points in dataset.get_entity_profile(entity).items()
            },
        }


def create_service(
    municipality_csv=config.MUNICIPALITY_CSV,
    region_csv=config.REGION_CSV,
) -> StatisticsService:
    """Loads both datasets. Raises DataLoadError if either cannot be read."""
    municipalities = load_aggregator(municipality_csv, config.MUNICIPALITY_COLUMN)
    regions = load_aggregator(region_csv, config.REGION_COLUMN)
    return StatisticsService(municipalities, regions)
