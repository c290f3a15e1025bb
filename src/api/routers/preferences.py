"""Key-value preference endpoints."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import Services, get_services
from services import preference_service

router = APIRouter(prefix="/preferences", tags=["preferences"])


class PreferenceValue(BaseModel):
    """A preference value. Any JSON value is accepted."""

    value: Any


@router.get("/{key}", response_model=PreferenceValue)
async def get_preference(
    key: str,
    services: Services = Depends(get_services),
) -> PreferenceValue:
    """Get a preference value."""
    sentinel = object()
    value = await preference_service.get_preference(services.storage, key, sentinel)
    if value is sentinel:
        raise HTTPException(status_code=404, detail="Preference not set")
    return PreferenceValue(value=value)


@router.put("/{key}", response_model=PreferenceValue)
async def set_preference(
    key: str,
    data: PreferenceValue,
    services: Services = Depends(get_services),
) -> PreferenceValue:
    """Set a preference value, replacing any previous one."""
    await preference_service.set_preference(services.storage, key, data.value)
    return data
