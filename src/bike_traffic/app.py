import streamlit as st
import plotly.graph_objects as go

from bike_traffic.aggregate import metrics_frame
from bike_traffic.config import (
    DEFAULT_HALF_WIDTH,
    MAP_CENTER,
    MAP_ZOOM,
    MARKER_OPACITY,
    MINUTES_PER_DAY,
    UNFILTERED_VALUE,
    get_data_dir,
)
from bike_traffic.data_sources import load_bike_lanes, station_source, trip_source
from bike_traffic.domain_types import RatioClass, TimeFilter, WindowMode
from bike_traffic.encode import RATIO_CLASSES, ratio_color
from bike_traffic.state import TrafficState, load_sources
from bike_traffic.stations import read_stations
from bike_traffic.trips import read_trips


DATA_DIR = get_data_dir()

st.set_page_config(page_title="Bike Traffic by Time of Day", layout="wide")
st.title("Bike Traffic by Time of Day", text_alignment="center")
st.caption(
    "Circle size is total trips at a station; colour is the share of departures vs. arrivals.",
    text_alignment="center")

# ---------------------- Data loaders ----------------------


@st.cache_resource(show_spinner="Loading stations...")
def load_registry(source: str):
    return read_stations(source)


@st.cache_resource(show_spinner="Loading trips and building the minute index...")
def load_store(source: str):
    return read_trips(source)


@st.cache_data(show_spinner=False)
def cached_bike_lanes():
    return load_bike_lanes()


def _new_state(half_width: int, mode: WindowMode) -> TrafficState:
    state = TrafficState(half_width=half_width, mode=mode)
    stations_src = str(station_source(DATA_DIR))
    trips_src = str(trip_source(DATA_DIR))
    return load_sources(
        state,
        lambda: load_registry(stations_src),
        lambda: load_store(trips_src),
    )


# ---------------------- Sidebar ----------------------
with st.sidebar.expander("Advanced", expanded=False):
    half_width = st.slider(
        "Window half-width (minutes)",
        min_value=5,
        max_value=720,
        value=DEFAULT_HALF_WIDTH,
        step=5,
        help="Minutes on each side of the selected time",
    )
    mode_label = st.radio(
        "Count trips",
        ["Departures/arrivals in window", "Either end in window"],
        index=0,
        help="Independent windows count a departure and an arrival separately; "
             "'either end' counts a trip at both stations if it starts or ends in the window",
    )
    show_lanes = st.checkbox("Show bike lanes", value=True)

mode = WindowMode.INDEPENDENT if mode_label.startswith("Departures") else WindowMode.EITHER_ENDPOINT

# one state container per session; rebuilt when the window settings change
settings = (half_width, mode)
if st.session_state.get("traffic_settings") != settings:
    st.session_state.traffic_state = _new_state(half_width, mode)
    st.session_state.traffic_settings = settings
state: TrafficState = st.session_state.traffic_state

for diag in state.diagnostics:
    st.error(f"Could not load {diag.source}: {diag.message}")
if state.store is not None and state.store.report.dropped:
    st.sidebar.info(f"{state.store.report.dropped:,} trips skipped (unusable timestamps or stations).")

# ---------------------- Time control ----------------------
left, right = st.columns([3, 1])
with left:
    control = st.slider(
        "Filter by time",
        min_value=UNFILTERED_VALUE,
        max_value=MINUTES_PER_DAY - 1,
        value=state.time_filter.to_control(),
        help="-1 shows all trips",
    )
time_filter = TimeFilter.from_control(control)
with right:
    st.metric("Time", time_filter.label() if time_filter.is_filtered else "(any time)")

if time_filter != state.time_filter or state.metrics is None:
    state.set_filter(time_filter)

# ---------------------- Map ----------------------


def _lane_layers(lanes):
    return [
        dict(
            sourcetype="geojson",
            source=lane["geojson"],
            type="line",
            color=lane["color"],
            line=dict(width=lane["width"]),
            opacity=lane["opacity"],
            below="traces",
        )
        for lane in lanes
    ]


def make_station_map(markers, lanes):
    fig = go.Figure()

    if markers:
        fig.add_trace(go.Scattermap(
            lon=[m.x for m in markers],
            lat=[m.y for m in markers],
            mode="markers",
            marker=dict(
                # plotly sizes are diameters
                size=[2 * m.radius for m in markers],
                sizemode="diameter",
                color=[ratio_color(m.ratio_class) for m in markers],
                opacity=MARKER_OPACITY,
            ),
            hoverinfo="text",
            text=[m.tooltip for m in markers],
            showlegend=False,
        ))

    # legend entries only
    legend_names = {
        RatioClass.HIGH: "More departures",
        RatioClass.BALANCED: "Balanced",
        RatioClass.LOW: "More arrivals",
    }
    for rc in reversed(RATIO_CLASSES):
        fig.add_trace(go.Scattermap(
            lon=[None], lat=[None],
            mode="markers",
            marker=dict(size=12, color=ratio_color(rc)),
            name=legend_names[rc],
        ))

    fig.update_layout(
        map=dict(
            style="open-street-map",
            center=dict(lon=MAP_CENTER[0], lat=MAP_CENTER[1]),
            zoom=MAP_ZOOM,
            layers=_lane_layers(lanes),
        ),
        legend=dict(orientation="h", yanchor="bottom", y=0.01, xanchor="left", x=0.01),
        margin=dict(l=10, r=10, t=10, b=10),
        height=640,
    )
    return fig


lanes = []
if show_lanes:
    lanes, lane_errors = cached_bike_lanes()
    for err in lane_errors:
        st.warning(f"Bike lanes unavailable: {err}")

# plotly projects lon/lat in the browser, so positions pass through unchanged
markers = state.markers(lambda lon, lat: (lon, lat))
if not markers:
    st.info("No stations to show.")
st.plotly_chart(
    make_station_map(markers, lanes),
    width="stretch",
    config={"scrollZoom": True},
)
st.caption(f"Window: ±{state.half_width} min, mode: {state.mode.value}.")

# ---------------------- Table ----------------------
if state.registry is not None and state.metrics is not None:
    table = metrics_frame(state.registry, state.metrics)
    st.subheader("Busiest stations")
    st.dataframe(
        table.drop(columns=["longitude", "latitude"]).head(25),
        width="stretch",
        hide_index=True,
    )
    st.caption(
        f"{int(table['departures'].sum()):,} departures and "
        f"{int(table['arrivals'].sum()):,} arrivals at {len(table):,} stations."
    )
