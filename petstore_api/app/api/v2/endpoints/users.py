"""
User endpoints for API v2.

Registration, replacement, deletion, listing and lookup by username,
plus login and logout.  Passwords are hashed before storage and never
returned.  Login accepts the configured administrator account as well
as any stored user.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from petstore_api.app.api.v2.errors import store_errors
from petstore_api.app.core.security import create_access_token
from petstore_api.app.schemas.user import LoginResult, User, UserLogin
from petstore_api.app.services.user_service import UserService

router = APIRouter()


@router.post("", response_model=User, response_model_exclude_none=True, status_code=status.HTTP_201_CREATED)
async def create_user(user: User) -> Dict[str, Any]:
    """Зарегистрировать пользователя.

    Требуются поля ``id`` и ``username``.  Пароль хранится в виде хеша.
    """
    with store_errors():
        return await UserService.create_user(user)


@router.post(
    "/createWithList",
    response_model=List[User],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_users_with_list(users: List[User]) -> List[Dict[str, Any]]:
    """Create several users; users before a failing one stay created."""
    with store_errors():
        return await UserService.create_users(users)


@router.put("", response_model=User, response_model_exclude_none=True)
async def update_user(user: User) -> Dict[str, Any]:
    """Replace an existing user identified by the body's ``id``."""
    with store_errors():
        updated = await UserService.update_user(user)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return updated


@router.get("", response_model=List[User], response_model_exclude_none=True)
async def list_users() -> List[Dict[str, Any]]:
    """Получить список всех пользователей."""
    with store_errors():
        return await UserService.list_users()


@router.post("/login", response_model=LoginResult)
async def login_user(credentials: UserLogin) -> LoginResult:
    """Authenticate and return a signed session token.

    The token is informational: no route requires or verifies it.
    """
    with store_errors():
        valid = await UserService.authenticate(credentials.username, credentials.password)
    if not valid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    return LoginResult(access_token=create_access_token({"sub": credentials.username}))


@router.post("/logout")
async def logout_user(username: Optional[str] = Query(None)) -> Dict[str, str]:
    """Log a user out.  Sessions are stateless, so nothing is revoked."""
    if not username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to logout user")
    return {"message": "User logged out successfully"}


@router.get("/{username}", response_model=List[User], response_model_exclude_none=True)
async def get_users_by_username(username: str) -> List[Dict[str, Any]]:
    """Look users up through the username index.

    Usernames are not unique in the store, so every match is returned,
    lowest id first.  No match gives an empty list.
    """
    with store_errors():
        return await UserService.find_by_username(username)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str) -> None:
    """Удалить пользователя по ID."""
    with store_errors():
        deleted = await UserService.delete_user(user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return None
