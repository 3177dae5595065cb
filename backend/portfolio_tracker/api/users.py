from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container
from portfolio_tracker.core.exceptions import NotFoundError

router = APIRouter()


# Schemas

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    settings: dict[str, Any] = {}


class UserUpdate(BaseModel):
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    settings: Optional[dict[str, Any]] = None


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    portfolio_id: Optional[str]
    created_at: datetime
    settings: dict[str, Any]

    class Config:
        from_attributes = True


# Endpoints


@router.get("", response_model=list[UserResponse])
async def list_users(container: Container = Depends(get_container)):
    return await container.user_service.list_users()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, container: Container = Depends(get_container)):
    user = await container.user_service.get_user(user_id)
    if user is None:
        raise NotFoundError.for_resource("User", user_id)
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, container: Container = Depends(get_container)):
    """Create a user together with an empty portfolio."""
    return await container.user_service.create_user(
        username=payload.username,
        email=payload.email,
        settings=payload.settings,
    )


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    container: Container = Depends(get_container),
):
    return await container.user_service.update_user(
        user_id, email=payload.email, settings=payload.settings
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, container: Container = Depends(get_container)):
    """Delete the user and its portfolio."""
    await container.user_service.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
