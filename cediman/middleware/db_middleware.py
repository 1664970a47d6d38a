# cediman/middleware/db_middleware.py

from starlette.types import ASGIApp, Receive, Scope, Send
from cediman.utils.database import AsyncSessionLocal

class DBSessionMiddleware:
    """Открывает AsyncSession на время HTTP-запроса и кладёт её в request.state.db."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        session = AsyncSessionLocal()
        state["db"] = session
        try:
            await self.app(scope, receive, send)
        except Exception:
            # незавершённая транзакция не должна пережить упавший запрос
            await session.rollback()
            raise
        finally:
            await session.close()
