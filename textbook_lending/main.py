import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from textbook_lending.routes.router import *
from textbook_lending.config.db import Base, engine
from textbook_lending.config.settings import LOG_LEVEL, SWEEP_ENABLED, SWEEP_INTERVAL_SECONDS
from textbook_lending.scheduler import sweep_loop
from textbook_lending.services.errors import LendingError

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = None
    if SWEEP_ENABLED:
        task = asyncio.create_task(sweep_loop(SWEEP_INTERVAL_SECONDS))
    else:
        logger.info("Overdue sweep disabled")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


app = FastAPI(title="Textbook Lending", lifespan=lifespan)
app.include_router(router)


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


if __name__ == "__main__":
    import uvicorn

    from textbook_lending.config.settings import HOST, PORT

    uvicorn.run("textbook_lending.main:app", host=HOST, port=PORT)
