"""Streamlit dashboard for seat occupancy analytics.

Provides detection file upload with an optional start-time filter, a
visit summary with the hourly arrival trend, occupancy over time at a
selectable granularity and the overall group size distribution, latest
seat occupancy with a seat usage timeline and reconstructed per-seat
occupancy, and operating suggestions from a language model.
"""

import pandas as pd
import plotly.express as px
import streamlit as st

from src.analytics.timeseries import GRANULARITIES
from src.insights.suggestions import SuggestionError, build_prompt, create_provider
from src.pipeline.processor import process_request
from src.utils.config import AppConfig

GROUP_COLORS = {
    "1 person": "#3b82f6",
    "2 people": "#22c55e",
    "3-4 people": "#f97316",
    "5+ people": "#ef4444",
}


def main() -> None:
    """Entry point for the Streamlit dashboard."""
    st.set_page_config(page_title="Seat Occupancy Analytics", layout="wide")

    if "results" not in st.session_state:
        st.session_state.results = None
    if "file_name" not in st.session_state:
        st.session_state.file_name = None
    if "suggestions" not in st.session_state:
        st.session_state.suggestions = None

    st.title("Restaurant Occupancy Dashboard")

    with st.sidebar:
        st.header("Configuration")
        start_time = st.text_input("Start time filter (ISO-8601)", value="")
        granularity = st.radio("Granularity", GRANULARITIES, index=2)

    tab1, tab2, tab3, tab4 = st.tabs(
        ["Upload & Process", "Visit Summary", "Seat Usage", "Suggestions"]
    )

    with tab1:
        _upload_and_process_tab(start_time or None)
    with tab2:
        _visit_summary_tab(granularity)
    with tab3:
        _seat_usage_tab()
    with tab4:
        _suggestions_tab(granularity)


def _upload_and_process_tab(start_time: str | None) -> None:
    """Render the upload tab and run the engine on a new file.

    Args:
        start_time: Optional ISO-8601 start time filter from the sidebar.
    """
    st.header("Upload & Process Detections")
    data_file = st.file_uploader("Upload detections (JSON)", type=["json"])

    if data_file is not None and st.button("Process File"):
        with st.spinner("Processing data..."):
            payload = data_file.read().decode("utf-8")
            response = process_request(payload, start_time, AppConfig().engine)

        if response["status"] != "success":
            st.session_state.results = None
            st.error(response["message"])
            return

        st.session_state.results = response
        st.session_state.file_name = data_file.name
        st.session_state.suggestions = None
        if response["summaryMetrics"] is None:
            st.warning("No data in the selected range")
        else:
            st.success(
                f"Processed {data_file.name}: "
                f"{len(response['seatUsageTimeline'])} seat sessions"
            )


def _has_data() -> bool:
    results = st.session_state.results
    if results is None or results["summaryMetrics"] is None:
        st.info("Upload and process a detections file first")
        return False
    return True


def _visit_summary_tab(granularity: str) -> None:
    """Render visit metrics, the arrival trend and occupancy over time.

    Args:
        granularity: Series granularity chosen in the sidebar.
    """
    st.header("Visit Summary & Trends")
    if not _has_data():
        return

    results = st.session_state.results
    summary = results["summaryMetrics"]
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Unique Groups", summary["totalUniqueGroups"])
    col2.metric("Total Unique Visitors", summary["totalUniqueVisitors"])
    col3.metric("Avg. Stay Time (per person)", f"{summary['averageStayTime']} min")
    col4.metric(
        "Peak Concurrent Visitors",
        summary["peakOccupancyCount"],
        help=f"at {summary['peakOccupancyTime']}",
    )

    col5, col6, col7 = st.columns(3)
    col5.metric("Current Customers", summary["currentTotalCustomers"])
    col6.metric("Occupied Tables (Now)", summary["currentOccupiedTables"])
    col7.metric("Avg. Group Size (Overall)", summary["averageGroupSizeOverall"])

    arrivals = pd.DataFrame(results["arrivalTrendData"])
    if not arrivals.empty:
        fig = px.line(
            arrivals,
            x="time",
            y=["newVisitors", "newGroups"],
            title="New Visitors and Groups per Hour",
        )
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No arrival trend data available")

    series = pd.DataFrame(results["aggregatedTimeSeries"][granularity])
    if not series.empty:
        fig = px.line(series, x="time", y="totalPersons", title="Total Customers Over Time")
        st.plotly_chart(fig, use_container_width=True)

    groups = group_size_frame(results.get("groupSizeDistribution", []))
    if not groups.empty:
        fig = px.bar(
            groups,
            x="frequency",
            y="groupSize",
            orientation="h",
            labels={"frequency": "Number of Groups", "groupSize": "Group Size"},
            title="Group Size Distribution (Overall)",
        )
        st.plotly_chart(fig, use_container_width=True)


def _seat_usage_tab() -> None:
    """Render the seat usage timeline and reconstructed occupancy."""
    st.header("Seat Usage")
    if not _has_data():
        return

    results = st.session_state.results
    latest_time, seats = latest_seat_frame(results["processedFrames"])
    if not seats.empty:
        fig = px.bar(
            seats,
            x="seatId",
            y="persons",
            labels={"seatId": "Seat", "persons": "Customers"},
            title=f"Seat Occupancy (Latest Frame at {latest_time})",
        )
        st.plotly_chart(fig, use_container_width=True)

    timeline = timeline_frame(results["seatUsageTimeline"])
    if not timeline.empty:
        fig = px.timeline(
            timeline,
            x_start="startTime",
            x_end="endTime",
            y="seatId",
            color="groupSize",
            color_discrete_map=GROUP_COLORS,
            hover_data=["duration", "personCount", "personIds"],
            title="Seat Usage Timeline",
        )
        fig.update_yaxes(categoryorder="category ascending")
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No seat sessions of a minute or longer were found")

    occupancy = occupancy_frame(results["interpolatedOccupancyData"])
    if not occupancy.empty:
        fig = px.area(
            occupancy,
            x="time",
            y=[c for c in occupancy.columns if c != "time"],
            title="Reconstructed Occupancy by Seat",
        )
        st.plotly_chart(fig, use_container_width=True)


def _suggestions_tab(granularity: str) -> None:
    """Render the suggestions tab.

    Args:
        granularity: Series granularity summarized in the prompt.
    """
    st.header("AI-Powered Suggestions")
    if not _has_data():
        return

    result = create_provider(AppConfig().insights)
    if not result.available:
        st.warning(result.error)
        return

    if st.button(f"Generate Suggestions ({result.provider.name})"):
        results = st.session_state.results
        prompt = build_prompt(
            results["summaryMetrics"],
            results["aggregatedTimeSeries"][granularity],
            results.get("groupSizeDistribution", []),
            source_name=st.session_state.file_name or "uploaded data",
        )
        with st.spinner("Generating suggestions..."):
            try:
                st.session_state.suggestions = result.provider.generate(prompt)
            except SuggestionError as e:
                st.error(f"Failed to get suggestions from AI: {e}")

    if st.session_state.suggestions:
        st.markdown(st.session_state.suggestions)


def group_label(person_count: int) -> str:
    """Legend bucket for a group size."""
    if person_count <= 1:
        return "1 person"
    if person_count == 2:
        return "2 people"
    if person_count <= 4:
        return "3-4 people"
    return "5+ people"


def timeline_frame(blocks: list[dict]) -> pd.DataFrame:
    """Turn serialized seat usage blocks into a Gantt chart frame.

    Args:
        blocks: ``seatUsageTimeline`` entries.

    Returns:
        DataFrame with parsed times, a ``groupSize`` legend column and
        comma-joined person ids.
    """
    if not blocks:
        return pd.DataFrame()
    df = pd.DataFrame(blocks)
    df["startTime"] = pd.to_datetime(df["startTime"])
    df["endTime"] = pd.to_datetime(df["endTime"])
    df["groupSize"] = df["personCount"].map(group_label)
    df["personIds"] = df["personIds"].map(", ".join)
    return df


def latest_seat_frame(frames: list[dict]) -> tuple[str, pd.DataFrame]:
    """Seat headcounts of the latest processed frame.

    Args:
        frames: ``processedFrames`` entries in time order.

    Returns:
        The frame's display time and a ``seatId``/``persons`` frame; an
        empty time and frame when there are no frames.
    """
    if not frames:
        return "", pd.DataFrame()
    latest = frames[-1]
    return latest["time"], pd.DataFrame(latest["seatOccupancy"], columns=["seatId", "persons"])


def group_size_frame(distribution: list[dict]) -> pd.DataFrame:
    """Group size frequencies with readable size labels, smallest first."""
    if not distribution:
        return pd.DataFrame()
    df = pd.DataFrame(distribution).sort_values("groupSize")
    df["groupSize"] = df["groupSize"].map(
        lambda size: f"{size} person" if size == 1 else f"{size} people"
    )
    return df.reset_index(drop=True)


def occupancy_frame(rows: list[dict]) -> pd.DataFrame:
    """Flatten interpolated occupancy rows into one column per seat.

    Args:
        rows: ``interpolatedOccupancyData`` entries.

    Returns:
        DataFrame with a ``time`` column followed by sorted seat columns.
    """
    if not rows:
        return pd.DataFrame()
    df = pd.DataFrame([{"time": r["time"], **r["seats"]} for r in rows])
    seats = sorted(c for c in df.columns if c != "time")
    return df[["time", *seats]].fillna(0)


if __name__ == "__main__":
    main()
