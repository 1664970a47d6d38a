# cediman/routes/auth.py

from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import ExpiredSignatureError, InvalidTokenError

from cediman.schemas.user import UserCreate, UserResponse
from cediman.services.users import create_user_service, read_user_by_email_service, read_users_service
from cediman.utils.security import create_access_token, decode_access_token, verify_password

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)):
    """
    Проверяет JWT токен и возвращает пользователя.

    **Статусы:**
    - 401 Unauthorized – токен истёк, неверный или пользователь не найден
    """
    log = request.app.state.log
    secret_key = request.app.state.settings.AUTH_SECRET_KEY
    try:
        payload = decode_access_token(token, secret_key)
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError:
        await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid")

    email = payload.get("sub")
    if not email:
        await log.log_error("auth", "Токен не содержит email")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await read_user_by_email_service(email, request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def admin_required(user=Depends(get_current_user)):
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied: administrator required")
    return user


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    summary="Получение JWT токена",
    responses={
        200: {
            "description": "Токен выдан",
            "content": {
                "application/json": {
                    "example": {
                        "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                        "token_type": "bearer",
                        "user": {"id": 1, "name": "Administrator", "email": "admin@cediman.com", "is_admin": True},
                    }
                }
            },
        },
        401: {"description": "Неверный email или пароль"},
        422: {"description": "Ошибка валидации входных данных"},
    },
)
async def login_for_access_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    """
    Вход по email (поле `username` формы) и паролю.
    """
    log = request.app.state.log
    settings = request.app.state.settings

    user = await read_user_by_email_service(form_data.username, request)
    if not user or not verify_password(form_data.password, user.password):
        await log.log_warning("auth", "Неудачная попытка входа", {"email": form_data.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": user.email},
        secret_key=settings.AUTH_SECRET_KEY,
        expires_delta=timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES),
    )
    await log.log_info("auth", "Пользователь авторизован", {"id": user.id})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": {"id": user.id, "name": user.name, "email": user.email, "is_admin": user.is_admin},
    }


# ────────────── Регистрация покупателя ──────────────
@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Регистрация покупателя",
    responses={
        201: {"description": "Пользователь зарегистрирован"},
        400: {"description": "Не указан email или пароль"},
        409: {"description": "Email уже занят"},
    },
)
async def register_user(user: UserCreate, request: Request):
    """Новые пользователи всегда обычные (`is_admin=False`)."""
    user.is_admin = False
    return await create_user_service(user, request)


@router.get("/me", response_model=UserResponse, summary="Текущий пользователь")
async def read_me(current_user=Depends(get_current_user)):
    return current_user


# ────────────── Пользователи (админ) ──────────────
@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Создание пользователя (только администратор)",
    responses={
        401: {"description": "Токен невалиден"},
        403: {"description": "Требуется администратор"},
        409: {"description": "Email уже занят"},
    },
)
async def create_user(user: UserCreate, request: Request, _=Depends(admin_required)):
    return await create_user_service(user, request)


@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="Список пользователей (только администратор)",
)
async def get_users(request: Request, skip: int = 0, limit: int = 100, _=Depends(admin_required)):
    return await read_users_service(request, skip, limit)
