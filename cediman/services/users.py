# cediman/services/users.py

from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from fastapi import HTTPException, Request

from cediman.errors import BadRequest
from cediman.models.user import User as UserModel
from cediman.schemas.user import UserCreate
from cediman.services.store import SqlOrderStore
from cediman.utils.security import hash_password


async def read_users_service(request: Request, skip: int = 0, limit: int = 100) -> list[UserModel]:
    """
    Список пользователей.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(UserModel).offset(skip).limit(limit))
    users = result.scalars().all()

    await log.log_info("user", f"{len(users)} пользователей загружено")
    return users


async def read_user_by_email_service(email: str, request: Request) -> UserModel | None:
    db = request.state.db
    result = await db.execute(select(UserModel).where(UserModel.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def create_user_service(user: UserCreate, request: Request) -> UserModel:
    """
    Создание пользователя. Пароль хэшируется здесь, email приводится к нижнему регистру.
    Занятый email -> 409.
    """
    db = request.state.db
    log = request.app.state.log

    if not user.email or not user.password:
        raise BadRequest("Email and password are required")

    db_user = UserModel(
        name=user.name,
        email=user.email.strip().lower(),
        password=hash_password(user.password),
        is_admin=bool(user.is_admin),
    )
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        await log.log_warning("user", "Email уже занят", {"email": db_user.email})
        raise HTTPException(status_code=409, detail=f"User with email '{db_user.email}' already exists")
    await db.refresh(db_user)

    await log.log_info("user", "Пользователь создан", {"id": db_user.id})
    return db_user


async def backfill_order_owners_service(request: Request) -> dict:
    """
    Привязывает гостевые заказы (без user_id) к пользователям с тем же email.
    Email заказа: guestEmail, затем shipping.email; сравнение без учёта регистра.
    """
    db = request.state.db
    log = request.app.state.log
    store = SqlOrderStore(db, log)

    orders = await store.list_unowned()
    stats = {"total": len(orders), "matched": 0, "notMatched": 0, "updated": 0}
    if not orders:
        return {"stats": stats, "updates": []}

    result = await db.execute(select(UserModel))
    users_by_email = {u.email.lower(): u for u in result.scalars().all() if u.email}

    updates = []
    for order in orders:
        email = order.contact_email
        user = users_by_email.get(email.strip().lower()) if email else None
        if user is None:
            stats["notMatched"] += 1
            continue
        stats["matched"] += 1
        updates.append({"orderId": order.id, "userId": str(user.id), "email": email})

    for update in updates:
        await store.assign_user(update["orderId"], update["userId"])
        stats["updated"] += 1

    await log.log_info("admin", "Бэкфилл владельцев заказов завершён", stats)
    return {"stats": stats, "updates": updates}
