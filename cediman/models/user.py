# cediman/models/user.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from cediman.utils.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент
    name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=False, index=True)  # логин, хранится в нижнем регистре
    password = Column(String, nullable=True)                         # хэш пароля
    is_admin = Column(Boolean, default=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
