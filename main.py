import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import AsyncExitStack

from examprep.connections import mongo_lifespan, redis_lifespan
from examprep.api.user import router as user_router
from examprep.api.test import router as test_router
from examprep.api.attempt import router as attempt_router
from examprep.api.leaderboard import router as leaderboard_router
from examprep.services.attempts import reconcile_in_progress_attempts
from examprep.utils.base import ServiceError
from examprep.utils.logging_config import configure_logging


logger = configure_logging()


async def combined_lifespan(app: FastAPI):
    async with AsyncExitStack() as stack:
        await stack.enter_async_context(mongo_lifespan(app))
        await stack.enter_async_context(redis_lifespan(app))

        submitted = reconcile_in_progress_attempts()
        if submitted:
            logger.info("Submitted %s overdue attempts at startup", submitted)

        yield


app = FastAPI(title="Exam Prep (Mongo)", version="0.1.0", lifespan=combined_lifespan)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    log = logging.getLogger("examprep.api")
    log.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(user_router, prefix="/api/users")
app.include_router(test_router, prefix="/api/tests")
app.include_router(attempt_router, prefix="/api/attempts")
app.include_router(leaderboard_router, prefix="/api/leaderboard")
