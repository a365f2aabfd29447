from fastapi import FastAPI, HTTPException, Query, Depends, status
from fastapi.responses import Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel
from datetime import date
import json
import logging
import bcrypt

from sqlalchemy.orm import Session
from db import get_db, init_db
from queries import get_user, create_user
from config import settings
from errors import ConfirmationMismatchError, DashboardError, ExportError, UnknownChartKindError
from feed import RequestFeed
from history import (
    HistoryController,
    Scheduler,
    SubscriptionState,
    blocking_scheduler,
    build_history,
    check_confirmation,
)
from analytics import AnalyticsFilters, build_analytics_view
from charts import ChartKind, build_figure
from export import export_rows
from storage import ensure_root_folder
from dotenv import load_dotenv; load_dotenv()

logger = logging.getLogger(__name__)

security = HTTPBasic(auto_error=False)

app = FastAPI(title="Orchard Detection Dashboard")
init_db()
ensure_root_folder()

feed = RequestFeed()


def get_feed() -> RequestFeed:
    return feed


def get_history_scheduler() -> Scheduler:
    return blocking_scheduler


def get_current_username(
    credentials: HTTPBasicCredentials | None = Depends(security),
    db: Session = Depends(get_db)
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please sign in to view your AI history.",
            headers={"WWW-Authenticate": "Basic"},
        )

    username = credentials.username
    password = credentials.password.encode()

    user = get_user(db, username)

    if user is None:
        # Register new user
        hashed_pw = bcrypt.hashpw(password, bcrypt.gensalt()).decode()
        create_user(db, username, hashed_pw)
        return username

    if not bcrypt.checkpw(password, user.password.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return username


def get_analytics_filters(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    compare: bool = Query(default=False),
    comparison_start: date | None = Query(default=None),
    comparison_end: date | None = Query(default=None),
    page: int = Query(default=1),
    page_size: int = Query(default=settings.page_size),
    chart: str = Query(default=ChartKind.BAR.value, description="One of the 11 chart type names"),
) -> AnalyticsFilters:
    try:
        chart_kind = ChartKind.parse(chart)
    except UnknownChartKindError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return AnalyticsFilters(
        start=start,
        end=end,
        compare=compare,
        comparison_start=comparison_start,
        comparison_end=comparison_end,
        page=page,
        page_size=page_size,
        chart_kind=chart_kind,
    )


class DeleteAllPayload(BaseModel):
    confirmation: str
    start: date | None = None
    end: date | None = None


@app.get("/health")
def health():
    """
    Health check endpoint
    """
    return {"status": "ok"}


@app.get("/history")
def get_history(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    session: str | None = Query(default=None, description="Only render this session"),
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed),
    scheduler: Scheduler = Depends(get_history_scheduler)
):
    """
    Detection history of the authenticated user, filtered by date and grouped
    by calendar day and by session, with total apples / trees.

    The live query is retried with backoff; once the retries are used up the
    response is a 503 carrying the failed state and its error message.
    """
    controller = HistoryController(feed, username, settings, scheduler=scheduler)
    controller.set_date_range(start, end)
    controller.select_session(session)
    try:
        controller.start()
        view = controller.view()
    finally:
        controller.stop()

    if view["state"] == SubscriptionState.FAILED.value:
        raise HTTPException(status_code=503, detail=view)
    return view


@app.delete("/history/{request_id}")
def delete_history_request(
    request_id: str,
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed)
):
    """
    Delete a single detection request owned by the authenticated user.
    """
    try:
        deleted = feed.delete_one(username, request_id)
    except Exception as e:
        logger.error(f"Error deleting request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete {request_id}. Please try again.")

    if not deleted:
        raise HTTPException(status_code=404, detail="Request not found")

    return {"status": "deleted", "id": request_id}


@app.post("/history/delete-all")
def delete_all_history(
    payload: DeleteAllPayload,
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed)
):
    """
    Delete every request in the (optionally date-filtered) history in one batch.
    The body must carry the exact confirmation phrase.
    """
    try:
        check_confirmation(payload.confirmation)
    except ConfirmationMismatchError as e:
        raise HTTPException(status_code=400, detail=e.message)

    snapshot = build_history(feed.fetch(username), payload.start, payload.end, settings.zone)
    ids = [request.id for request in snapshot.requests]
    try:
        deleted = feed.delete_many(username, ids)
    except Exception as e:
        logger.error(f"Error deleting all requests: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete all requests. Please try again.")

    return {"status": "deleted", "count": deleted}


def _analytics_view(username: str, feed: RequestFeed, filters: AnalyticsFilters):
    try:
        return build_analytics_view(feed.fetch(username), filters, settings.zone)
    except DashboardError as e:
        raise HTTPException(status_code=400, detail=e.message)


@app.get("/analytics")
def get_analytics(
    filters: AnalyticsFilters = Depends(get_analytics_filters),
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed)
):
    """
    Paginated per-file apple / tree counts for the primary time frame, merged
    with the comparison time frame when ``compare`` is on.
    """
    return _analytics_view(username, feed, filters).as_dict()


@app.get("/analytics/chart")
def get_analytics_chart(
    filters: AnalyticsFilters = Depends(get_analytics_filters),
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed)
):
    """
    Plotly figure JSON for the selected chart type over the current page.
    """
    view = _analytics_view(username, feed, filters)
    fig = build_figure(view.chart_kind, view.rows, view.compare, view.title)
    return json.loads(fig.to_json())


@app.get("/analytics/export/{fmt}")
def export_analytics(
    fmt: str,
    filename: str = Query(default="analytics"),
    filters: AnalyticsFilters = Depends(get_analytics_filters),
    username: str = Depends(get_current_username),
    feed: RequestFeed = Depends(get_feed)
):
    """
    Download the rows of the current page as csv, xlsx or pdf.
    """
    view = _analytics_view(username, feed, filters)
    try:
        payload, media_type, download_name = export_rows(fmt, view.rows, view.compare, filename)
    except ExportError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return Response(
        content=payload,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{download_name}"'},
    )


if __name__ == "__main__":  # pragma: no cover
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
