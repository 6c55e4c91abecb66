from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr
from jose import JWTError

from examprep.models.user import User
from examprep.models.batch import Batch
from examprep.services.auth import (
    TokenPair,
    verify_password,
    get_current_user,
    create_tokens,
    hash_password,
    decode_token,
    load_user,
)


router = APIRouter()


class SignupBody(BaseModel):
    name: str
    email: EmailStr
    password: str
    batch_name: str | None = None

@router.post("/signup", response_model=TokenPair)
def signup(body: SignupBody) -> TokenPair:
    # Reject duplicate email signups early
    if User.objects(email=body.email).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    batch: Batch | None = None
    if body.batch_name:
        batch = Batch.objects(name=body.batch_name).first()
        if not batch:
            raise HTTPException(status_code=404, detail="Batch not found")

    # Hash password before storing; return tokens so client is logged in
    user = User(name=body.name, email=body.email, password=hash_password(body.password), batch=batch)
    user.save()
    return create_tokens(user)


@router.post("/login", response_model=TokenPair)
def login(form_data: OAuth2PasswordRequestForm = Depends()) -> TokenPair:
    # Find user by email (username field of OAuth2PasswordRequestForm)
    user = User.objects(email=form_data.username).first()
    # Validate password; avoid leaking whether email exists
    if not user or not verify_password(form_data.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return create_tokens(user)


class RefreshBody(BaseModel):
    refresh_token: str

@router.post("/refresh", response_model=TokenPair)
def refresh_token(body: RefreshBody) -> TokenPair:
    try:
        user_id, token_version = decode_token(body.refresh_token, "refresh")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    # Ensure the user exists and token version matches (not logged out)
    user = load_user(user_id, token_version)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return create_tokens(user)


@router.post("/logout")
def logout(current_user: User = Depends(get_current_user)) -> dict:
    # Bump token_version so existing tokens become invalid immediately
    current_user.token_version = str(int(current_user.token_version) + 1)
    current_user.save()
    return {"status": True}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return current_user.to_dict()


class PreferencesBody(BaseModel):
    show_on_leaderboard: bool

@router.patch("/me/preferences")
def update_preferences(
    body: PreferencesBody,
    current_user: User = Depends(get_current_user),
) -> dict:
    """PROTECTED: Opt in or out of the global and batch leaderboards."""
    current_user.show_on_leaderboard = body.show_on_leaderboard
    current_user.save()
    return current_user.to_dict()
