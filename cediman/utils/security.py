# cediman/utils/security.py

"""
Пароли (passlib, sha256_crypt) и JWT-токены (PyJWT) для покупателей и администраторов.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jwt import encode, decode
from passlib.context import CryptContext

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Проверяет пароль против хэша из базы.
    Пользователь без пароля в базе войти не может.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, secret_key: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Создаёт JWT токен.
    Вход: dict (например {"sub": "user@mail.com"}), секрет, время жизни
    Выход: JWT строка
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> dict:
    """Декодирует токен; ExpiredSignatureError / InvalidTokenError пробрасываются вызывающему."""
    return decode(token, secret_key, algorithms=[ALGORITHM])
