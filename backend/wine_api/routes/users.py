from __future__ import annotations

from fastapi import APIRouter, Depends

from wine_api.dependencies.auth import get_current_user
from wine_api.models.user import User
from wine_api.schemas.user import UserMeOut

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserMeOut)
def get_me(user: User = Depends(get_current_user)) -> User:
    return user
