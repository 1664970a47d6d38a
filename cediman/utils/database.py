# cediman/utils/database.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.future import select
from cediman.config import settings
from cediman.utils.security import hash_password

# ────────────── Base для моделей ──────────────
Base = declarative_base()

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False  # True можно включить для отладки SQL
)

# ────────────── Асинхронная сессия ──────────────
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # объекты остаются читаемыми после commit
)

# ────────────── Инициализация базы данных ──────────────
async def init_db(log=None):
    """
    Создаёт таблицы (orders, users, notifications), если их ещё нет,
    и заводит первого администратора из AUTH_LOGIN / AUTH_PASSWORD,
    если администратора в базе нет.
    """
    # импорт моделей регистрирует таблицы в Base.metadata
    from cediman.models import order, notification  # noqa: F401
    from cediman.models.user import User

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.is_admin.is_(True)).limit(1))
        if result.scalar_one_or_none() is not None:
            return

        existing = await session.execute(select(User).where(User.email == settings.AUTH_LOGIN.lower()))
        admin_user = existing.scalar_one_or_none()
        if admin_user is None:
            admin_user = User(
                name="Administrator",
                email=settings.AUTH_LOGIN.lower(),
                password=hash_password(settings.AUTH_PASSWORD),
            )
            session.add(admin_user)
        admin_user.is_admin = True
        await session.commit()

        if log:
            log.log_info_sync(target="startup", message="Создан первый администратор", data={"email": admin_user.email})


async def dispose_db():
    """Закрывает пул соединений при остановке приложения."""
    await engine.dispose()
