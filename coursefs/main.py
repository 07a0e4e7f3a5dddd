from contextlib import asynccontextmanager
import uvicorn

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from coursefs.config import get_config
from coursefs.errors import ResourceError, ResourceNotFoundError, ResourceValidationError
from coursefs.service.logging import logger, setup_logging
from coursefs.routes import api_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(config.model_dump())

    from coursefs.dependencies import db_pool
    if config.resource_backend == "postgres":
        await db_pool.open()
        logger.info("Database pool opened")

    yield

    logger.info("Application shutting down via lifespan exit")
    if config.resource_backend == "postgres":
        await db_pool.close()


app = FastAPI(title="coursefs", lifespan=lifespan)

# Include API routes
app.include_router(api_router)


@app.exception_handler(ResourceValidationError)
async def validation_error_handler(request: Request, exc: ResourceValidationError):
    return JSONResponse(status_code=HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(ResourceNotFoundError)
async def not_found_handler(request: Request, exc: ResourceNotFoundError):
    return JSONResponse(status_code=HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ResourceError)
async def resource_error_handler(request: Request, exc: ResourceError):
    logger.error(f"Resource operation failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


if __name__ == "__main__":
    # Configure uvicorn to use our logging
    uvicorn.run(app, host="0.0.0.0", port=8000)
