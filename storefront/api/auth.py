from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import client_ip
from storefront.models.user import User
from storefront.services import auth_service
from storefront.services.errors import DuplicateError

router = APIRouter(prefix="/auth", tags=["Auth"])

TOKEN_MAX_AGE = 3600 * 24


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str = ""
    phone: str = ""


class ProfileUpdate(BaseModel):
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class UserOut(BaseModel):
    id: str
    email: str
    full_name: str
    role: str
    phone: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    active: bool = True

    model_config = {"from_attributes": True}


def _extract_token(authorization: str | None, x_auth_token: str | None, cookie_token: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return x_auth_token or cookie_token


def get_current_user(
    authorization: str | None = Header(default=None),
    x_auth_token: str | None = Header(default=None),
    token: str | None = Cookie(default=None, alias="token"),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: resolve the user from a bearer header, x-auth-token header or cookie."""
    raw = _extract_token(authorization, x_auth_token, token)
    if not raw:
        raise HTTPException(401, "Not authenticated")
    payload = auth_service.decode_token(raw)
    if not payload:
        raise HTTPException(401, "Invalid or expired token")
    user = auth_service.get_user_by_id(db, payload["sub"])
    if not user or not user.active:
        raise HTTPException(401, "User not found or disabled")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(403, "Admin only")
    return user


def _issue(user: User, response: Response) -> dict:
    token = auth_service.create_access_token(user.id, user.email, user.role)
    response.set_cookie("token", token, httponly=True, samesite="lax", max_age=TOKEN_MAX_AGE)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.post("/register", status_code=201)
def register(data: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = auth_service.register(db, data.email, data.password, data.full_name, phone=data.phone)
    except DuplicateError as e:
        raise HTTPException(409, str(e))
    return _issue(user, response)


@router.post("/login")
def login(data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.email, data.password)
    if not user:
        raise HTTPException(401, "Invalid email or password")
    auth_service.log_activity(db, user.id, user.email, "login", ip=client_ip(request))
    return _issue(user, response)


@router.post("/admin-login")
def admin_login(data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.email, data.password)
    if not user:
        raise HTTPException(401, "Invalid email or password")
    if user.role != "admin":
        raise HTTPException(403, "Admin only")
    auth_service.log_activity(db, user.id, user.email, "admin_login", ip=client_ip(request))
    return _issue(user, response)


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("token")
    return {"ok": True}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/profile", response_model=UserOut)
def update_profile(data: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return auth_service.update_profile(db, user, data.model_dump(exclude_unset=True))
    except DuplicateError as e:
        raise HTTPException(409, str(e))


@router.post("/change-password")
def change_own_password(data: ChangePasswordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        auth_service.change_password(db, user, data.current_password, data.new_password)
    except ValueError as e:
        raise HTTPException(400, str(e))
    auth_service.log_activity(db, user.id, user.email, "change_password")
    return {"ok": True}
