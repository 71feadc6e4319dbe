import sys

import streamlit as st
from loguru import logger
from streamlit_folium import st_folium

import charts
import config
import data_manager
from errors import DataLoadError, EntityNotFoundError
from map_layers import Layer, LayerController, build_map, load_geometry, lookup_entity
from map_utils import format_value, value_position
from query_service import MUNICIPALITIES, REGIONS, create_service

logger.remove()
logger.add(sys.stderr, level=config.LOG_LEVEL)

# --- APP CONFIG ---
st.set_page_config(layout="wide")
st.title("Statistični podatki slovenskih občin in regij")
st.caption("Dohodki, izobrazba, delovne migracije in zaposlenost po občinah in statističnih regijah.")
st.caption("Pod povečavo 9 so prikazane regije, od povečave 9 naprej občine.")

GEOMETRY_SOURCES = {
    Layer.ENTITIES: config.MUNICIPALITY_GEOJSON,
    Layer.REGIONS: config.REGION_GEOJSON,
}
RANKING_LABELS = {"Najvišji": "top", "Najnižji": "bottom", "Okoli mediane": "around-median"}


# --- DATA LOADING ---
@st.cache_resource
def get_service():
    return create_service()


@st.cache_data(show_spinner=False)
def fetch_geometry(source: str) -> dict:
    return load_geometry(source)


try:
    service = get_service()
except DataLoadError as e:
    st.error(f"Napaka pri nalaganju podatkov: {e}")
    st.stop()

if "layers" not in st.session_state:
    st.session_state["layers"] = LayerController(lambda layer: fetch_geometry(GEOMETRY_SOURCES[layer]))
controller = st.session_state["layers"]

level = MUNICIPALITIES if controller.active_layer == Layer.ENTITIES else REGIONS
dataset = service.dataset(level)
listing = service.parameters(level)

# --- SIDEBAR ---
st.sidebar.header("📊 Parametri")

groups = listing["parameterGroups"]
group_names = [group["name"] for group in groups]
selected_group_name = st.sidebar.selectbox("Skupina", group_names, index=0)
group = groups[group_names.index(selected_group_name)]

param_names = [param["name"] for param in group["parameters"]]
selected_param_name = st.sidebar.selectbox("Parameter", param_names, index=0)
parameter = group["parameters"][param_names.index(selected_param_name)]
field = parameter["field"]
unit = parameter.get("unit", "")

years = listing["availableYears"].get(field, [])
if not years:
    st.warning(f"Za parameter '{selected_param_name}' ni podatkov.")
    st.stop()
selected_year = st.sidebar.select_slider("Leto", options=years, value=years[-1])

palette = st.sidebar.radio("Barvna lestvica", ["default", "red"], format_func=lambda p: {"default": "Modra", "red": "Rdeča"}[p])

search_term = st.sidebar.text_input("Išči občino ali regijo:")

if st.sidebar.button("↺ Ponastavi pogled"):
    controller.reset_view()
    st.session_state["last_search"] = ""
    st.rerun()

# --- PREPARE DATA FOR DISPLAY ---
result = dataset.get_entity_data(field, selected_year)
data, stats = result["data"], result["stats"]

if search_term and search_term != st.session_state.get("last_search"):
    st.session_state["last_search"] = search_term
    if controller.search(search_term, data) is None:
        st.sidebar.warning("Ni zadetka. Poskusite z drugačnim zapisom.")

# --- SUMMARY ---
st.markdown(f"### {selected_param_name} ({selected_year})")
col_m1, col_m2, col_m3, col_m4 = st.columns(4)
col_m1.metric("Povprečje", format_value(stats.avg, unit))
col_m2.metric("Mediana", format_value(stats.median, unit))
col_m3.metric("Minimum", format_value(stats.min, unit))
col_m4.metric("Maksimum", format_value(stats.max, unit))

tab1, tab2 = st.tabs(["🗺️ Zemljevid", "📊 Razvrstitev"])

with tab1:
    if controller.is_loading:
        st.info("Nalaganje meja ...")
    elif controller.has_failed:
        st.error(f"Napaka pri nalaganju meja: {controller.error(controller.active_layer)}")
        if st.button("Poskusi znova"):
            controller.retry()
            st.rerun()

    m = build_map(controller, data, stats, selected_param_name, unit, palette)
    map_data = st_folium(
        m,
        key="main_map",
        height=600,
        use_container_width=True,
        returned_objects=["zoom", "center", "last_active_drawing"],
    )

    if map_data:
        zoom = map_data.get("zoom")
        if zoom is not None and zoom != controller.zoom:
            center = map_data.get("center")
            if center:
                controller.center = [center["lat"], center["lng"]]
            previous = controller.active_layer
            controller.focus_bounds = None
            if controller.on_zoom(zoom) != previous:
                st.rerun()

        clicked = map_data.get("last_active_drawing")
        if clicked and clicked != st.session_state.get("last_clicked"):
            st.session_state["last_clicked"] = clicked
            controller.click(clicked, data)
            st.rerun()

    # --- DETAIL PANEL ---
    if controller.selection:
        row = lookup_entity(controller.selection, data)
        with st.expander(f"Podrobnosti: {controller.selection}", expanded=True):
            c1, c2 = st.columns(2)
            with c1:
                value = row.value if row is not None else None
                st.write(f"**{selected_param_name} ({selected_year}):** {format_value(value, unit)}")
                st.progress(int(value_position(value, stats)) / 100)
                st.caption(f"{format_value(stats.min, unit)} – {format_value(stats.max, unit)}")
                description = config.PARAMETER_DESCRIPTIONS.get(field)
                if description:
                    st.caption(description)
            with c2:
                if st.button("Počisti izbiro"):
                    controller.clear_selection()
                    st.rerun()

            try:
                history = service.history(controller.selection, field, level)
            except EntityNotFoundError:
                st.info("Zgodovina za to enoto ni na voljo.")
            else:
                points = [data_manager.HistoryPoint(**point) for point in history["data"]]
                trend = data_manager.estimate_trend(points)
                st.plotly_chart(
                    charts.create_history_chart(points, history["entityName"], selected_param_name, trend, stats),
                    use_container_width=True,
                )
                if trend is not None:
                    st.caption(
                        f"Linearni trend: {format_value(trend['slope'], unit)} na leto, "
                        f"ocena za {trend['next_year']}: {format_value(trend['projected'], unit)}"
                    )

with tab2:
    # --- RANKINGS ---
    mode_label = st.radio("Prikaz", list(RANKING_LABELS), horizontal=True)
    count = st.slider("Število enot", 5, 30, config.DEFAULT_RANKING_COUNT)
    ranked = charts.rank_entities(data, RANKING_LABELS[mode_label], count, stats.median)

    if not ranked:
        st.info("Ni podatkov za prikaz.")
    else:
        bar_tab, pie_tab, table_tab = st.tabs(["Stolpični", "Tortni", "Tabela"])
        with bar_tab:
            st.plotly_chart(charts.create_ranking_chart(ranked, selected_param_name, selected_year), use_container_width=True)
        with pie_tab:
            st.plotly_chart(charts.create_share_pie(ranked, selected_param_name), use_container_width=True)
        with table_tab:
            st.dataframe(charts.to_frame(ranked), use_container_width=True)

    # Download Button
    csv = charts.to_frame(data).to_csv(index=False).encode("utf-8")
    st.download_button(
        label="📥 Prenesi podatke (CSV)",
        data=csv,
        file_name=f"{level}_{selected_year}.csv",
        mime="text/csv",
    )
