from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis
from typing import List

from app.core.database import get_db, get_redis
from app.core.dependencies import get_current_active_user, require_admin, oauth2_scheme
from app.modules.users.models import User
from app.modules.users import schemas
from app.modules.users.services import UserService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/login", response_model=schemas.TokenResponse)
async def login(
    login_data: schemas.UserLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with username (or email) and password"""
    user = await UserService.authenticate_user(db, login_data.username, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password"
        )
    return UserService.create_token(user.id)


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_active_user),
    redis: aioredis.Redis = Depends(get_redis)
):
    """Logout current user by revoking the bearer token"""
    await UserService.logout_user(redis, token)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=schemas.UserResponse)
async def read_me(current_user: User = Depends(get_current_active_user)):
    return current_user


@router.post("", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: schemas.UserCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a staff account"""
    try:
        return await UserService.create_user(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=List[schemas.UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    return await UserService.list_users(db)


@router.put("/{user_id}", response_model=schemas.UserResponse)
async def update_user(
    user_id: int,
    data: schemas.UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update a staff account's profile, role or active flag"""
    user = await UserService.update_user(db, user_id, data)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
