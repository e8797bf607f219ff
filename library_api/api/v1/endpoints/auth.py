# library_api/api/v1/endpoints/auth.py
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger

from library_api.core.config import ACCESS_TOKEN_EXPIRE_MINUTES
from library_api.core.errors import ValidationError
from library_api.core.security import (
    create_access_token,
    get_current_active_user,
    get_password_hash,
    verify_password,
)
from library_api.models.user import Token, User

router = APIRouter(tags=["Authentication"])


def validate_user_response(user: User) -> User.Response:
    data = user.model_dump(exclude={"id", "revision_id", "hashed_password"})
    return User.Response.model_validate({**data, "id": str(user.id)})


async def create_user(user_in: User.Create) -> User:
    if await User.find_one(User.username == user_in.username):
        raise ValidationError("Username already registered")
    if user_in.email and await User.find_one(User.email == user_in.email):
        raise ValidationError("Email already registered")

    user = User(
        username=user_in.username,
        email=user_in.email,
        full_name=user_in.full_name,
        hashed_password=get_password_hash(user_in.password),
        company=user_in.company.strip(),
        disabled=False,
    )
    await user.insert()
    logger.info(f"User '{user.username}' registered for company '{user.company}'.")
    return user


@router.post("/token", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = await User.find_one(User.username == form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.disabled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    access_token = create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=User.Response, status_code=status.HTTP_201_CREATED)
async def register_user(user_in: User.Create):
    return validate_user_response(await create_user(user_in))


@router.get("/me")
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return {"id": str(current_user.id), "username": current_user.username, "company": current_user.company}
