"""
Zoom dependent map layers: which boundaries are shown, how they are loaded and
how each polygon is colored.

Municipalities are shown from config.LAYER_ZOOM_THRESHOLD upwards, statistical
regions below it. Geometry for a layer is fetched the first time the layer is
needed and kept for the rest of the session.
"""
import json
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import folium
import requests
from loguru import logger

import config
from data_manager import EntityValue
from errors import GeometryLoadError
from map_utils import Statistics, color_for_value, format_value, legend_labels, strip_diacritics

_DROPPED_WORDS = {"regija", "obcina"}


class Layer(str, Enum):
    ENTITIES = "entities"
    REGIONS = "regions"


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class MapState(str, Enum):
    UNLOADED = "Unloaded"
    SHOWING_ENTITIES = "ShowingEntities"
    SHOWING_REGIONS = "ShowingRegions"


NAME_PROPERTIES = {
    Layer.ENTITIES: config.MUNICIPALITY_NAME_PROPERTIES,
    Layer.REGIONS: config.REGION_NAME_PROPERTIES,
}

FALLBACK_FILL = {
    Layer.ENTITIES: config.ENTITY_FALLBACK_FILL,
    Layer.REGIONS: config.REGION_FALLBACK_FILL,
}

FILL_OPACITY = {
    Layer.ENTITIES: 0.7,
    Layer.REGIONS: 0.6,
}


@dataclass(frozen=True)
class SearchResult:
    name: str
    row: Optional[EntityValue]
    bounds: Optional[List[List[float]]]


# --- NAMES ---
def normalize_name(name: str) -> str:
    """
    Comparable form of a municipality or region name: lowercase, no diacritics,
    without the words "regija" / "občina", single spaces.
    """
    folded = strip_diacritics(name.lower())
    return " ".join(word for word in folded.split() if word not in _DROPPED_WORDS)


def feature_name(feature: Optional[dict], layer: Layer) -> str:
    if not feature:
        return ""
    properties = feature.get("properties") or {}
    for key in NAME_PROPERTIES[layer]:
        if properties.get(key):
            return str(properties[key])
    return ""


def lookup_entity(name: str, dataset: Iterable[EntityValue]) -> Optional[EntityValue]:
    wanted = normalize_name(name)
    if not wanted:
        return None
    for item in dataset:
        if normalize_name(item.entity_name) == wanted:
            return item
    return None


def layer_for_zoom(zoom: float, threshold: float = config.LAYER_ZOOM_THRESHOLD) -> Layer:
    return Layer.ENTITIES if zoom >= threshold else Layer.REGIONS


# --- GEOMETRY ---
def load_geometry(source: str, timeout: float = config.GEOMETRY_TIMEOUT) -> dict:
    """Reads a GeoJSON FeatureCollection from a local path or an http(s) URL."""
    try:
        if source.startswith(("http://", "https://")):
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
            document = response.json()
        else:
            with Path(source).open(encoding="utf-8") as fh:
                document = json.load(fh)
    except (requests.RequestException, OSError, ValueError) as e:
        raise GeometryLoadError(f"Could not load geometry from {source}: {e}") from e

    if not isinstance(document, dict) or document.get("type") != "FeatureCollection":
        raise GeometryLoadError(f"{source} is not a GeoJSON FeatureCollection")
    logger.info(f"Loaded {len(document.get('features', []))} features from {source}")
    return document


def _positions(coordinates) -> Iterable[Sequence[float]]:
    if not coordinates:
        return
    if isinstance(coordinates[0], (int, float)):
        yield coordinates
        return
    for part in coordinates:
        yield from _positions(part)


def feature_bounds(feature: dict) -> Optional[List[List[float]]]:
    """[[south, west], [north, east]] of a feature, for fitting the map view."""
    geometry = feature.get("geometry") or {}
    positions = list(_positions(geometry.get("coordinates")))
    if not positions:
        return None
    lons = [pos[0] for pos in positions]
    lats = [pos[1] for pos in positions]
    return [[min(lats), min(lons)], [max(lats), max(lons)]]


# --- STYLE ---
def style_for(
    feature: dict,
    dataset: Sequence[EntityValue],
    stats: Optional[Statistics],
    selection: Optional[str],
    layer: Layer,
    palette: str = "default",
) -> dict:
    """Leaflet path style of one polygon for the current data, statistics and selection."""
    name = normalize_name(feature_name(feature, layer))
    item = lookup_entity(name, dataset) if name else None
    value = item.value if item is not None else None

    if value is None:
        fill_color = FALLBACK_FILL[layer]
    else:
        min_value = stats.min if stats is not None and stats.min is not None else 0
        max_value = stats.max if stats is not None and stats.max is not None else 100
        fill_color = color_for_value(value, min_value, max_value, palette)

    selected = bool(name) and selection is not None and name == normalize_name(selection)
    return {
        "fillColor": fill_color,
        "weight": 2 if selected else 1,
        "opacity": 1,
        "color": config.SELECTED_BORDER if selected else config.DEFAULT_BORDER,
        "fillOpacity": FILL_OPACITY[layer],
    }


# --- CONTROLLER ---
class LayerController:
    """
    Tracks the active layer, per-layer geometry and the selected polygon.

    `loader(layer)` returns the layer's FeatureCollection or raises. With an
    executor the load runs in the background and its result is applied when
    it completes, possibly on a worker thread; status and geometry updates are
    serialized by a lock. Each load carries a generation number and results
    from a superseded load are dropped. At most one load per layer is in flight.
    """

    def __init__(
        self,
        loader: Callable[[Layer], dict],
        initial_zoom: float = config.DEFAULT_ZOOM,
        threshold: float = config.LAYER_ZOOM_THRESHOLD,
        executor: Optional[Executor] = None,
    ):
        self._loader = loader
        self._threshold = threshold
        self._executor = executor
        self._lock = threading.Lock()
        self._geometry: Dict[Layer, dict] = {}
        self._status = {layer: LoadStatus.IDLE for layer in Layer}
        self._generation = {layer: 0 for layer in Layer}
        self._fetches = {layer: 0 for layer in Layer}
        self._errors: Dict[Layer, str] = {}

        self.zoom = initial_zoom
        self.center = [config.DEFAULT_LAT, config.DEFAULT_LON]
        self.selection: Optional[str] = None
        self.focus_bounds: Optional[List[List[float]]] = None
        self.active_layer = layer_for_zoom(initial_zoom, threshold)
        self._ensure_loaded(self.active_layer)

    # state
    @property
    def state(self) -> MapState:
        if self._status[self.active_layer] != LoadStatus.LOADED:
            return MapState.UNLOADED
        if self.active_layer == Layer.ENTITIES:
            return MapState.SHOWING_ENTITIES
        return MapState.SHOWING_REGIONS

    @property
    def is_loading(self) -> bool:
        return self._status[self.active_layer] == LoadStatus.LOADING

    @property
    def has_failed(self) -> bool:
        return self._status[self.active_layer] == LoadStatus.FAILED

    def status(self, layer: Layer) -> LoadStatus:
        return self._status[layer]

    def error(self, layer: Layer) -> Optional[str]:
        return self._errors.get(layer)

    def fetch_count(self, layer: Layer) -> int:
        return self._fetches[layer]

    def geometry(self, layer: Optional[Layer] = None) -> Optional[dict]:
        return self._geometry.get(layer or self.active_layer)

    # transitions
    def on_zoom(self, zoom: float) -> Layer:
        self.zoom = zoom
        layer = layer_for_zoom(zoom, self._threshold)
        if layer != self.active_layer:
            logger.debug(f"Zoom {zoom}: switching to {layer.value}")
            self.active_layer = layer
        self._ensure_loaded(layer)
        return layer

    def reset_view(self) -> Layer:
        self.center = [config.DEFAULT_LAT, config.DEFAULT_LON]
        self.selection = None
        self.focus_bounds = None
        return self.on_zoom(config.DEFAULT_ZOOM)

    def retry(self, layer: Optional[Layer] = None) -> None:
        """Reloads a layer whose last load failed. Does nothing in any other status."""
        self._start_fetch(layer or self.active_layer, LoadStatus.FAILED)

    # loading
    def _ensure_loaded(self, layer: Layer) -> None:
        self._start_fetch(layer, LoadStatus.IDLE)

    def _start_fetch(self, layer: Layer, expected: LoadStatus) -> None:
        with self._lock:
            if self._status[layer] != expected:
                return
            self._generation[layer] += 1
            generation = self._generation[layer]
            self._status[layer] = LoadStatus.LOADING
            self._errors.pop(layer, None)
            self._fetches[layer] += 1

        if self._executor is None:
            try:
                geometry = self._loader(layer)
            except Exception as e:
                self._fail(layer, generation, e)
                return
            self._complete(layer, generation, geometry)
            return

        future = self._executor.submit(self._loader, layer)
        future.add_done_callback(lambda done: self._on_done(layer, generation, done))

    def _on_done(self, layer: Layer, generation: int, future: Future) -> None:
        error = future.exception()
        if error is not None:
            self._fail(layer, generation, error)
        else:
            self._complete(layer, generation, future.result())

    def _complete(self, layer: Layer, generation: int, geometry: dict) -> None:
        with self._lock:
            if generation != self._generation[layer] or self._status[layer] != LoadStatus.LOADING:
                logger.debug(f"Dropping superseded {layer.value} geometry (load {generation})")
                return
            self._geometry[layer] = geometry
            self._status[layer] = LoadStatus.LOADED

    def _fail(self, layer: Layer, generation: int, error: BaseException) -> None:
        with self._lock:
            if generation != self._generation[layer] or self._status[layer] != LoadStatus.LOADING:
                return
            self._status[layer] = LoadStatus.FAILED
            self._errors[layer] = str(error)
        logger.error(f"Loading {layer.value} geometry failed: {error}")

    # interaction
    def click(self, feature: dict, dataset: Sequence[EntityValue]) -> Optional[EntityValue]:
        """Selects the clicked polygon and returns its data row."""
        name = feature_name(feature, self.active_layer)
        self.selection = name or None
        if not name:
            return None
        return lookup_entity(name, dataset)

    def clear_selection(self) -> None:
        self.selection = None
        self.focus_bounds = None

    def search(self, query: str, dataset: Sequence[EntityValue]) -> Optional[SearchResult]:
        """Selects and focuses the first polygon of the active layer whose name contains the query."""
        wanted = normalize_name(query)
        geometry = self.geometry()
        if not wanted or geometry is None:
            return None

        for feature in geometry.get("features", []):
            name = feature_name(feature, self.active_layer)
            if name and wanted in normalize_name(name):
                self.selection = name
                self.focus_bounds = feature_bounds(feature)
                return SearchResult(name, lookup_entity(name, dataset), self.focus_bounds)

        logger.info(f"Search {query!r}: no {self.active_layer.value} match")
        return None


# --- RENDERING ---
def _tooltip(name: str, item: Optional[EntityValue], parameter_name: str, unit: str) -> str:
    if item is None or item.value is None:
        return f"<div><strong>{name}</strong><br/>Ni podatka</div>"
    return f"<div><strong>{name}</strong><br/>{parameter_name}: {format_value(item.value, unit)}</div>"


def _add_legend(m: folium.Map, stats: Optional[Statistics], parameter_name: str, unit: str, palette: str) -> None:
    if palette == "red":
        gradient = "rgba(255, 200, 200, 1), rgba(255, 50, 50, 1)"
    else:
        gradient = ", ".join(config.BLUE_PALETTE)
    low, middle, high = legend_labels(stats, unit)
    html = f"""
    <div style="
        position: fixed; bottom: 30px; left: 30px; z-index: 9999;
        background: white; padding: 8px 12px; border-radius: 6px;
        box-shadow: 0 2px 6px rgba(0,0,0,.35); font-size: 12px; width: 220px;
    ">
        <b>{parameter_name}</b>
        <div style="height: 12px; margin: 6px 0 2px; background: linear-gradient(to right, {gradient});"></div>
        <div style="display: flex; justify-content: space-between;">
            <span>{low}</span><span>{middle}</span><span>{high}</span>
        </div>
    </div>
    """
    m.get_root().html.add_child(folium.Element(html))


def build_map(
    controller: LayerController,
    dataset: Sequence[EntityValue],
    stats: Optional[Statistics],
    parameter_name: str = "",
    unit: str = "",
    palette: str = "default",
) -> folium.Map:
    """Folium map with the controller's active layer colored by the dataset."""
    m = folium.Map(location=controller.center, zoom_start=controller.zoom, tiles="OpenStreetMap")

    geometry = controller.geometry()
    if geometry is not None:
        layer = controller.active_layer
        features = []
        for feature in geometry.get("features", []):
            name = feature_name(feature, layer)
            properties = dict(feature.get("properties") or {})
            properties["_label"] = _tooltip(name, lookup_entity(name, dataset), parameter_name, unit)
            features.append({**feature, "properties": properties})

        folium.GeoJson(
            data={"type": "FeatureCollection", "features": features},
            name=layer.value,
            style_function=lambda feature: style_for(feature, dataset, stats, controller.selection, layer, palette),
            highlight_function=lambda feature: {"weight": 2, "color": config.SELECTED_BORDER},
            tooltip=folium.GeoJsonTooltip(fields=["_label"], labels=False),
        ).add_to(m)

    if controller.focus_bounds:
        m.fit_bounds(controller.focus_bounds)

    _add_legend(m, stats, parameter_name, unit, palette)
    return m
