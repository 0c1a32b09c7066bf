"""
Network endpoints.

Stateless queries over the aggregation cache: the visible selection for any
filter combination, the top-start table, a station's route drill-down, the
ingest report and the route popularity histogram of the current view.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query

from app.api.v1.shared.dependencies import get_network_state
from app.api.v1.shared.errors import derivation_failed, station_not_found
from app.models.network import (
    HistogramBucket,
    HistogramResponse,
    IngestFileSummary,
    IngestReportResponse,
    RouteEdge,
    SelectionResponse,
    StationActivity,
    StationRoutesResponse,
    TopStationsResponse,
)
from app.services.network_dto import MemberFilter, MonthFilter
from app.services.network_errors import NetworkDerivationError, StationNotFoundError
from app.services.network_service import NO_DATA_MESSAGE, NetworkState, route_destinations
from app.services.route_ranking import select, select_labels, top_start_stations

logger = logging.getLogger(__name__)

router = APIRouter()

MemberQuery = Annotated[
    MemberFilter, Query(description="Membership filter: All, Annual or Casual.")
]
MonthQuery = Annotated[
    MonthFilter, Query(description="Month filter: All or a two-digit month 01..12.")
]


@router.get(
    "/selection",
    response_model=SelectionResponse,
    summary="Visible stations and routes for a filter combination",
)
async def get_selection(
    member: MemberQuery = MemberFilter.ALL,
    month: MonthQuery = MonthFilter.ALL,
    percentile: Annotated[
        float, Query(ge=0, le=100, description="Route percentile threshold.")
    ] = 0,
    hide_isolated: Annotated[
        bool, Query(description="Drop stations without visible routes.")
    ] = False,
    station: Annotated[
        str | None,
        Query(min_length=1, description="Selected station for the detail view."),
    ] = None,
    cap: Annotated[
        int | None, Query(ge=1, le=1000, description="Maximum number of stations.")
    ] = None,
    top_k: Annotated[
        int | None, Query(ge=1, le=50, description="Routes kept per station.")
    ] = None,
    state: NetworkState = Depends(get_network_state),
) -> SelectionResponse:
    """Run the selection pipeline without touching the shared view state."""
    settings = state.settings
    try:
        selection = select(
            state.cache,
            member,
            month,
            cap=cap or settings.node_cap,
            top_k_per_node=top_k or settings.top_links_per_node,
            percentile=percentile,
            hide_isolated=hide_isolated,
            detail_station=station,
        )
    except StationNotFoundError as exc:
        raise station_not_found(exc) from exc
    except NetworkDerivationError as exc:
        logger.exception("Selection failed for %s/%s", member.value, month.value)
        raise derivation_failed("selection") from exc

    return SelectionResponse(
        member=member,
        month=month,
        percentile=percentile,
        threshold_count=selection.threshold_count,
        candidate_count=len(selection.candidate_weights),
        detail_station=selection.detail_station,
        nodes=[
            StationActivity(
                name=node.name,
                start_count=node.start_count,
                end_count=node.end_count,
                total=node.total,
            )
            for node in selection.nodes
        ],
        edges=[
            RouteEdge(source=edge.source, target=edge.target, weight=edge.weight)
            for edge in selection.edges
        ],
        labels=list(select_labels(selection)),
    )


@router.get(
    "/stations/top",
    response_model=TopStationsResponse,
    summary="Stations with the most departures",
)
async def get_top_stations(
    member: MemberQuery = MemberFilter.ALL,
    month: MonthQuery = MonthFilter.ALL,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    state: NetworkState = Depends(get_network_state),
) -> TopStationsResponse:
    stations = top_start_stations(
        state.cache, member, month, limit=limit or state.settings.top_start_rows
    )
    return TopStationsResponse(
        member=member,
        month=month,
        stations=[
            StationActivity(
                name=stat.name,
                start_count=stat.start_count,
                end_count=stat.end_count,
                total=stat.total,
            )
            for stat in stations
        ],
        message=None if stations else NO_DATA_MESSAGE,
    )


@router.get(
    "/stations/{name}/routes",
    response_model=StationRoutesResponse,
    summary="Most frequent destinations of a station",
)
async def get_station_routes(
    name: Annotated[str, Path(min_length=1, description="Start station name.")],
    member: MemberQuery = MemberFilter.ALL,
    month: MonthQuery = MonthFilter.ALL,
    limit: Annotated[int | None, Query(ge=1, le=50)] = None,
    state: NetworkState = Depends(get_network_state),
) -> StationRoutesResponse:
    try:
        return route_destinations(
            state.cache,
            state.resolver,
            member,
            month,
            name,
            limit or state.settings.detail_top_routes,
        )
    except StationNotFoundError as exc:
        raise station_not_found(exc) from exc


@router.get(
    "/ingest",
    response_model=IngestReportResponse,
    summary="Per-file ingest and cleaning report",
)
async def get_ingest_report(
    state: NetworkState = Depends(get_network_state),
) -> IngestReportResponse:
    report = state.ingest_report
    return IngestReportResponse(
        files=[
            IngestFileSummary(
                file=item.file,
                month_key=item.month_key,
                raw_rows=item.raw_rows,
                cleaned_rows=item.cleaned_rows,
                columns=list(item.columns),
                expected_present=item.expected_present,
                expected_total=item.expected_total,
                missing=list(item.missing),
            )
            for item in report.files
        ],
        total_raw_rows=report.total_raw_rows,
        total_cleaned_rows=report.total_cleaned_rows,
        synthetic=report.synthetic,
    )


@router.get(
    "/histogram",
    response_model=HistogramResponse,
    summary="Route popularity histogram for the current view",
)
async def get_histogram(
    state: NetworkState = Depends(get_network_state),
) -> HistogramResponse:
    try:
        histogram = state.histogram()
    except NetworkDerivationError as exc:
        logger.exception("Histogram derivation failed")
        raise derivation_failed("histogram") from exc
    return HistogramResponse(
        percentile=state.view.percentile,
        cutoff=histogram.cutoff,
        p50=histogram.p50,
        bins=[
            HistogramBucket(
                lower=item.lower, upper=item.upper, count=item.count, active=item.active
            )
            for item in histogram.bins
        ],
    )
