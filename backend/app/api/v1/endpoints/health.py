from fastapi import APIRouter, Request, Response, status

router = APIRouter()


@router.get("/health")
async def healthcheck(request: Request, response: Response) -> dict[str, str | int]:
    """Readiness probe; reports loading until the trip network is built."""
    state = getattr(request.app.state, "network", None)
    if state is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "loading"}
    return {
        "status": "ok",
        "trips": state.cache.total_trips(),
        "synthetic": int(state.ingest_report.synthetic),
    }
