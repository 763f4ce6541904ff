# src/fitchallenge/main.py
import os
import asyncio
import time
import uvicorn
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request # type: ignore
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .utils.logging import setup_logger
from .metrics import start_metrics_server, http_requests_total, http_request_duration
from .models.database import check_db_connection, get_session
from .scoring.rollup import PeriodTotals, PERIODS
from .scoring.types import ScoringResult
from .services.checkins import (
    CheckinConflict,
    CheckinRejected,
    CheckinSubmission,
    NotFound,
    set_coach_score,
    submit_checkin,
)
from .services.leaderboard import ChallengeLeaderboard, challenge_leaderboard, enrolment_rollup

logger = setup_logger(__name__)

# FastAPI app
app = FastAPI(title="fitchallenge")


class CheckinResponse(BaseModel):
    checkin_id: str
    date: str
    result: ScoringResult


class CoachScoreRequest(BaseModel):
    coach_score: int = Field(ge=0)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    http_request_duration.labels(method=request.method, endpoint=endpoint).observe(time.time() - start_time)
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/challenges/{challenge_id}/enrolments/{enrolment_id}/checkins", status_code=201, response_model=CheckinResponse)
async def create_checkin(
    challenge_id: str,
    enrolment_id: str,
    submission: CheckinSubmission,
    db: AsyncSession = Depends(get_session),
):
    try:
        row, result = await submit_checkin(db, challenge_id, enrolment_id, submission)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CheckinConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CheckinRejected as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "detections": [d.model_dump(mode="json") for d in e.result.cheat_detections],
            },
        )
    return CheckinResponse(checkin_id=row.id, date=row.date, result=result)


@app.put("/checkins/{checkin_id}/coach-score", response_model=CheckinResponse)
async def update_coach_score(
    checkin_id: str,
    body: CoachScoreRequest,
    db: AsyncSession = Depends(get_session),
):
    try:
        row, result = await set_coach_score(db, checkin_id, body.coach_score)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if result is None:
        raise HTTPException(status_code=409, detail=f"Check-in {checkin_id} has not been scored")
    return CheckinResponse(checkin_id=row.id, date=row.date, result=result)


@app.get("/challenges/{challenge_id}/leaderboard", response_model=ChallengeLeaderboard)
async def get_leaderboard(challenge_id: str, db: AsyncSession = Depends(get_session)):
    try:
        return await challenge_leaderboard(db, challenge_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/enrolments/{enrolment_id}/rollup", response_model=List[PeriodTotals])
async def get_rollup(enrolment_id: str, period: str = "week", db: AsyncSession = Depends(get_session)):
    if period not in PERIODS:
        raise HTTPException(status_code=422, detail=f"period must be one of {', '.join(PERIODS)}")
    try:
        return await enrolment_rollup(db, enrolment_id, period)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


async def wait_for_db(max_retries: int = 5, retry_interval: int = 5):
    """Wait for database to be ready."""
    from .models.database import engine
    for i in range(max_retries):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                logger.info("Database is ready")
                return
        except Exception as e:
            if i == max_retries - 1:
                raise
            logger.warning(f"Database not ready, retrying in {retry_interval} seconds: {e}")
            await asyncio.sleep(retry_interval)


@app.on_event("startup")
async def on_startup():
    """Initialize services on startup."""
    try:
        # 1) Wait for database
        await wait_for_db()

        # 2) Create tables
        from .models.database import init_db
        await init_db()

        # 3) Start metrics server
        start_metrics_server()

        # 4) Check database connection
        if not await check_db_connection():
            logger.error("Database connection failed")
            raise RuntimeError("Database connection failed")

        logger.info(f"Fallback timezone = {settings.default_timezone!r}")
        logger.info("Application startup completed successfully")
    except Exception as e:
        logger.error(f"Error during startup: {e}")
        raise


@app.on_event("shutdown")
async def on_shutdown():
    """Cleanup on shutdown."""
    from .models.database import engine
    await engine.dispose()
    logger.info("Application shutdown complete")


if __name__ == "__main__":
    uvicorn.run("fitchallenge.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
