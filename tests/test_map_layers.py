import json
from concurrent.futures import Future, ThreadPoolExecutor

import folium
import pytest

import config
from data_manager import EntityValue
from errors import GeometryLoadError
from map_layers import (
    Layer,
    LayerController,
    LoadStatus,
    MapState,
    build_map,
    feature_bounds,
    feature_name,
    layer_for_zoom,
    load_geometry,
    normalize_name,
    style_for,
)
from map_utils import Statistics


def polygon(name_key, name, x0=14.0, y0=46.0):
    return {
        "type": "Feature",
        "properties": {name_key: name},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[x0, y0], [x0 + 0.2, y0], [x0 + 0.2, y0 + 0.1], [x0, y0 + 0.1], [x0, y0]]],
        },
    }


MUNICIPALITIES = {
    "type": "FeatureCollection",
    "features": [
        polygon("OB_UIME", "Ljubljana", 14.5, 46.05),
        polygon("OB_UIME", "Maribor", 15.6, 46.55),
        polygon("OB_UIME", "Črnomelj", 15.1, 45.55),
    ],
}

REGIONS = {
    "type": "FeatureCollection",
    "features": [
        polygon("SR_UIME", "Osrednjeslovenska regija"),
        polygon("NAME_1", "Podravska", 15.5, 46.4),
    ],
}

DATASET = [
    EntityValue("Ljubljana", 1500.0),
    EntityValue("Maribor", None),
    EntityValue("Črnomelj", 900.0),
]

STATS = Statistics(min=900, max=1500, avg=1200, median=1200)


class CountingLoader:
    def __init__(self, fail=()):
        self.calls = []
        self.fail = set(fail)

    def __call__(self, layer):
        self.calls.append(layer)
        if layer in self.fail:
            raise GeometryLoadError(f"{layer.value} unavailable")
        return MUNICIPALITIES if layer == Layer.ENTITIES else REGIONS


class ManualExecutor:
    """Holds submitted loads until the test completes them."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args):
        future = Future()
        self.pending.append((args[0], future))
        return future

    def finish(self, layer, result=None, error=None, index=0):
        matches = [item for item in self.pending if item[0] == layer]
        _, future = matches[index]
        self.pending.remove(matches[index])
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)


@pytest.mark.parametrize(
    "name",
    ["Občina Črnomelj", "Osrednjeslovenska regija", "  ŠKOFJA   Loka ", "regija", "Žalec"],
)
def test_normalize_name_is_idempotent(name):
    once = normalize_name(name)
    assert normalize_name(once) == once


def test_normalize_name_drops_layer_words():
    assert normalize_name("Občina Črnomelj") == "crnomelj"
    assert normalize_name("Osrednjeslovenska regija") == "osrednjeslovenska"
    assert normalize_name("  Škofja   Loka ") == "skofja loka"


def test_layer_for_zoom_threshold():
    assert layer_for_zoom(8.9) == Layer.REGIONS
    assert layer_for_zoom(9) == Layer.ENTITIES
    assert layer_for_zoom(14) == Layer.ENTITIES


def test_feature_name_per_layer():
    assert feature_name(MUNICIPALITIES["features"][0], Layer.ENTITIES) == "Ljubljana"
    assert feature_name(REGIONS["features"][1], Layer.REGIONS) == "Podravska"
    assert feature_name(MUNICIPALITIES["features"][0], Layer.REGIONS) == ""
    assert feature_name(None, Layer.ENTITIES) == ""


def test_zoom_sequence_switches_layers_and_fetches_once():
    loader = CountingLoader()
    controller = LayerController(loader, initial_zoom=8)

    layers = [controller.on_zoom(zoom) for zoom in [8, 9, 12, 7]]

    assert layers == [Layer.REGIONS, Layer.ENTITIES, Layer.ENTITIES, Layer.REGIONS]
    assert controller.fetch_count(Layer.REGIONS) == 1
    assert controller.fetch_count(Layer.ENTITIES) == 1
    assert sorted(loader.calls) == sorted([Layer.REGIONS, Layer.ENTITIES])
    assert controller.state == MapState.SHOWING_REGIONS


def test_initial_state_follows_initial_zoom():
    controller = LayerController(CountingLoader(), initial_zoom=11)
    assert controller.active_layer == Layer.ENTITIES
    assert controller.state == MapState.SHOWING_ENTITIES
    assert controller.status(Layer.REGIONS) == LoadStatus.IDLE


def test_failed_load_stays_unloaded_until_retry():
    loader = CountingLoader(fail={Layer.ENTITIES})
    controller = LayerController(loader, initial_zoom=10)

    assert controller.state == MapState.UNLOADED
    assert controller.has_failed
    assert "unavailable" in controller.error(Layer.ENTITIES)

    controller.on_zoom(7)
    controller.on_zoom(10)
    assert controller.fetch_count(Layer.ENTITIES) == 1

    loader.fail.clear()
    controller.retry()
    assert controller.state == MapState.SHOWING_ENTITIES
    assert controller.fetch_count(Layer.ENTITIES) == 2
    assert controller.error(Layer.ENTITIES) is None


def test_reset_view_returns_to_regions_and_clears_selection():
    controller = LayerController(CountingLoader(), initial_zoom=12)
    controller.click(MUNICIPALITIES["features"][0], DATASET)

    assert controller.reset_view() == Layer.REGIONS
    assert controller.zoom == config.DEFAULT_ZOOM
    assert controller.selection is None
    assert controller.fetch_count(Layer.ENTITIES) == 1


def test_async_load_is_not_duplicated_while_in_flight():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)

    assert controller.is_loading
    assert controller.state == MapState.UNLOADED
    controller.on_zoom(10)
    controller.on_zoom(7)
    controller.on_zoom(10)

    assert controller.fetch_count(Layer.REGIONS) == 1
    assert controller.fetch_count(Layer.ENTITIES) == 1
    assert len(executor.pending) == 2


def test_late_region_load_does_not_replace_active_layer():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)
    controller.on_zoom(10)

    executor.finish(Layer.ENTITIES, MUNICIPALITIES)
    assert controller.state == MapState.SHOWING_ENTITIES

    executor.finish(Layer.REGIONS, REGIONS)
    assert controller.active_layer == Layer.ENTITIES
    assert controller.state == MapState.SHOWING_ENTITIES
    assert controller.geometry() is MUNICIPALITIES
    assert controller.geometry(Layer.REGIONS) is REGIONS


def test_retry_while_loading_does_not_start_another_load():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)

    controller.retry()
    controller.retry(Layer.REGIONS)

    assert controller.fetch_count(Layer.REGIONS) == 1
    assert [layer for layer, _ in executor.pending] == [Layer.REGIONS]


def test_retry_after_async_failure_keeps_one_load_in_flight():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)
    executor.finish(Layer.REGIONS, error=GeometryLoadError("timeout"))

    controller.retry()
    controller.retry()

    assert len([layer for layer, _ in executor.pending if layer == Layer.REGIONS]) == 1
    executor.finish(Layer.REGIONS, REGIONS)
    assert controller.state == MapState.SHOWING_REGIONS
    assert controller.fetch_count(Layer.REGIONS) == 2


def test_superseded_load_result_is_dropped():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)
    executor.finish(Layer.REGIONS, error=GeometryLoadError("timeout"))
    controller.retry()

    # a completion carrying the first load's generation arrives after the retry
    stale = Future()
    stale.set_result({"type": "FeatureCollection", "features": []})
    controller._on_done(Layer.REGIONS, 1, stale)
    assert controller.status(Layer.REGIONS) == LoadStatus.LOADING
    assert controller.geometry() is None

    executor.finish(Layer.REGIONS, REGIONS)
    assert controller.geometry() is REGIONS


def test_completion_on_worker_thread():
    with ThreadPoolExecutor(max_workers=2) as executor:
        controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)
        controller.on_zoom(10)
    # leaving the block waits for both loads and their callbacks

    assert controller.status(Layer.REGIONS) == LoadStatus.LOADED
    assert controller.status(Layer.ENTITIES) == LoadStatus.LOADED
    assert controller.fetch_count(Layer.ENTITIES) == 1


def test_async_failure_is_recorded():
    executor = ManualExecutor()
    controller = LayerController(CountingLoader(), initial_zoom=8, executor=executor)
    executor.finish(Layer.REGIONS, error=GeometryLoadError("timeout"))

    assert controller.status(Layer.REGIONS) == LoadStatus.FAILED
    assert controller.state == MapState.UNLOADED


def test_style_colors_by_value():
    style = style_for(MUNICIPALITIES["features"][0], DATASET, STATS, None, Layer.ENTITIES)
    assert style["fillColor"] == config.BLUE_PALETTE[-1]
    assert style["weight"] == 1
    assert style["color"] == config.DEFAULT_BORDER
    assert style["fillOpacity"] == 0.7

    low = style_for(MUNICIPALITIES["features"][2], DATASET, STATS, None, Layer.ENTITIES, palette="red")
    assert low["fillColor"] == "rgba(255, 200, 200, 1)"


def test_style_fallbacks_for_missing_values():
    missing = style_for(MUNICIPALITIES["features"][1], DATASET, STATS, None, Layer.ENTITIES)
    assert missing["fillColor"] == config.ENTITY_FALLBACK_FILL

    region = style_for(REGIONS["features"][1], DATASET, STATS, None, Layer.REGIONS)
    assert region["fillColor"] == config.REGION_FALLBACK_FILL
    assert region["fillOpacity"] == 0.6


def test_style_matches_region_names_across_forms():
    dataset = [EntityValue("Osrednjeslovenska", 10.0)]
    style = style_for(REGIONS["features"][0], dataset, None, "osrednjeslovenska regija", Layer.REGIONS)
    # no statistics: domain falls back to 0..100
    assert style["fillColor"] == config.BLUE_PALETTE[0]
    assert style["weight"] == 2
    assert style["color"] == config.SELECTED_BORDER


def test_click_selects_and_returns_row():
    controller = LayerController(CountingLoader(), initial_zoom=10)
    row = controller.click(MUNICIPALITIES["features"][2], DATASET)

    assert row == EntityValue("Črnomelj", 900.0)
    assert controller.selection == "Črnomelj"
    assert controller.click(MUNICIPALITIES["features"][1], DATASET) == EntityValue("Maribor", None)


def test_search_selects_first_match_and_focuses_it():
    controller = LayerController(CountingLoader(), initial_zoom=10)
    result = controller.search("crno", DATASET)

    assert result.name == "Črnomelj"
    assert result.row == EntityValue("Črnomelj", 900.0)
    assert result.bounds == [[45.55, 15.1], [pytest.approx(45.65), pytest.approx(15.3)]]
    assert controller.selection == "Črnomelj"
    assert controller.focus_bounds == result.bounds


def test_search_without_match_keeps_selection():
    controller = LayerController(CountingLoader(), initial_zoom=10)
    controller.search("Maribor", DATASET)

    assert controller.search("Koper", DATASET) is None
    assert controller.selection == "Maribor"


def test_search_before_geometry_is_loaded():
    controller = LayerController(CountingLoader(fail={Layer.REGIONS}), initial_zoom=8)
    assert controller.search("Podravska", DATASET) is None


def test_feature_bounds_of_multipolygon():
    feature = {
        "geometry": {
            "type": "MultiPolygon",
            "coordinates": [
                [[[14.0, 46.0], [14.5, 46.0], [14.5, 46.2], [14.0, 46.0]]],
                [[[13.5, 45.5], [13.6, 45.5], [13.6, 45.6], [13.5, 45.5]]],
            ],
        }
    }
    assert feature_bounds(feature) == [[45.5, 13.5], [46.2, 14.5]]
    assert feature_bounds({"geometry": None}) is None


def test_load_geometry_from_file(tmp_path):
    path = tmp_path / "obcine.geojson"
    path.write_text(json.dumps(MUNICIPALITIES), encoding="utf-8")
    assert len(load_geometry(str(path))["features"]) == 3


def test_load_geometry_errors(tmp_path):
    with pytest.raises(GeometryLoadError):
        load_geometry(str(tmp_path / "missing.geojson"))

    broken = tmp_path / "broken.geojson"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(GeometryLoadError):
        load_geometry(str(broken))

    wrong = tmp_path / "wrong.geojson"
    wrong.write_text(json.dumps({"type": "Feature"}), encoding="utf-8")
    with pytest.raises(GeometryLoadError):
        load_geometry(str(wrong))


def test_build_map_renders_active_layer():
    controller = LayerController(CountingLoader(), initial_zoom=10)
    controller.search("Ljubljana", DATASET)

    m = build_map(controller, DATASET, STATS, "Bruto dohodek", "€")
    html = m.get_root().render()

    assert isinstance(m, folium.Map)
    assert "_label" in html
    assert "Ni podatka" in html
