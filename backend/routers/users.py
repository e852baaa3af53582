from typing import List

from fastapi import APIRouter, Depends, status

from routers.deps import get_user_service
from schemas.users import UserCreate, UserRead
from services.users import UserService

router = APIRouter()


@router.get("/", response_model=List[UserRead])
async def list_users(service: UserService = Depends(get_user_service)):
    return [UserRead.model_validate(u) for u in await service.list_users()]


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: int, service: UserService = Depends(get_user_service)):
    return UserRead.model_validate(await service.get_user(user_id))


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, service: UserService = Depends(get_user_service)):
    return UserRead.model_validate(await service.create_user(payload.username))
