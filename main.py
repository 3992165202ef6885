import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.config import LOG_LEVEL
from app.database import init_db, SessionLocal
from app.exceptions import (
    StudyPlannerException,
    ValidationError,
    NotFoundError,
    ConflictError,
    AuthenticationError,
)
from app.routers import api, cycles, revisions
from app.services.timer import sweep_empty_sessions

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Study Planner", description="Study time tracking and cycle planning")


@app.exception_handler(StudyPlannerException)
async def study_planner_exception_handler(request: Request, exc: StudyPlannerException):
    """Translate domain exceptions into JSON error responses."""
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, AuthenticationError):
        status_code = status.HTTP_401_UNAUTHORIZED
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.warning(
        "Application exception on %s %s: %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


# Include routers
app.include_router(api.router)
app.include_router(cycles.router)
app.include_router(revisions.router)


@app.on_event("startup")
def startup_event():
    init_db()
    db = SessionLocal()
    try:
        sweep_empty_sessions(db)
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn
    from app.config import HOST, PORT

    uvicorn.run("main:app", host=HOST, port=PORT, reload=True)
