# cediman/schemas/user.py

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class UserBase(BaseModel):
    """
    Базовая схема пользователя (покупатель или администратор).
    """
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    is_admin: Optional[bool] = False

class UserCreate(UserBase):
    """
    Регистрация / создание пользователя. email и password обязательны на уровне сервиса.
    """
    pass

class UserResponse(BaseModel):
    """
    Ответ API: пользователь без хэша пароля.
    """
    id: int
    name: Optional[str] = None
    email: str
    is_admin: bool = False
    timestamp: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
