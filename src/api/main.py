"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from api.dependencies import build_services
from api.routers import health, preferences, rpc, tabs
from core.config import get_settings
from core.tabs import NoActiveWindowError
from core.urls import InvalidUrlError
from db.session import async_session_factory, create_schema, engine
from services.exceptions import ListNotFoundError, OperationArgumentError, UnknownOperationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()
    logging.basicConfig(
        level=app_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup: create missing tables and wire the services
    await create_schema(engine)
    app.state.services = build_services(async_session_factory, app_settings)
    logger.info("Document store ready at %s", app_settings.database_url)

    yield

    # Shutdown: release pooled connections
    await engine.dispose()


app_settings = get_settings()

app = FastAPI(
    title="Pagekeeper API",
    description="Pages, annotations, tags and lists kept consistent in a local document store.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ListNotFoundError)
async def list_not_found_handler(_request: Request, exc: ListNotFoundError) -> JSONResponse:
    """A referenced list does not exist."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(UnknownOperationError)
async def unknown_operation_handler(_request: Request, exc: UnknownOperationError) -> JSONResponse:
    """A storage module was asked for an operation it does not declare."""
    return JSONResponse(status_code=404, content={"detail": exc.args[0]})


@app.exception_handler(InvalidUrlError)
@app.exception_handler(OperationArgumentError)
async def invalid_argument_handler(_request: Request, exc: ValueError) -> JSONResponse:
    """An argument could not be used (bad URL, missing or mistyped operation argument)."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    """Arguments did not match the operation's signature."""
    return JSONResponse(
        status_code=422,
        content={
            "detail": jsonable_encoder(
                exc.errors(include_url=False, include_context=False, include_input=False),
            ),
        },
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    """A write conflicted with a stored record."""
    logger.info("Write conflict: %s", exc.orig)
    return JSONResponse(
        status_code=409,
        content={"detail": "A record with the same identity already exists"},
    )


@app.exception_handler(NoActiveWindowError)
async def no_active_window_handler(_request: Request, exc: NoActiveWindowError) -> JSONResponse:
    """The current window was needed but none is focused."""
    return JSONResponse(status_code=409, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(rpc.router)
app.include_router(tabs.router)
app.include_router(preferences.router)
