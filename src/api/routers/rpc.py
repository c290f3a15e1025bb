"""
Remote-call endpoint exposing every service operation by name.

The request body is a JSON object of keyword arguments; they are validated
against the operation's signature before it runs.
"""
import logging
from functools import lru_cache, partial
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import validate_call

from api.dependencies import RemoteFunction, Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rpc", tags=["rpc"])


@lru_cache(maxsize=None)
def _validator(func: RemoteFunction) -> RemoteFunction:
    return validate_call(func)


def _validated(method: RemoteFunction) -> RemoteFunction:
    """Wrap a bound service method so its arguments are validated and coerced."""
    return partial(_validator(method.__func__), method.__self__)


@router.get("", response_model=list[str])
async def list_operations(
    services: Services = Depends(get_services),
) -> list[str]:
    """Names of every callable operation."""
    return sorted(services.remote_functions)


@router.post("/{operation}")
async def call_operation(
    operation: str,
    args: Annotated[dict[str, Any] | None, Body()] = None,
    services: Services = Depends(get_services),
) -> Any:
    """
    Run a named operation with keyword arguments taken from the body.

    Errors raised by the operation are mapped to status codes by the application's
    exception handlers.
    """
    func = services.remote_functions.get(operation)
    if func is None:
        raise HTTPException(status_code=404, detail=f"Unknown operation: {operation}")

    logger.debug("rpc %s(%s)", operation, ", ".join(args or {}))
    result = await _validated(func)(**(args or {}))
    return jsonable_encoder(result)
