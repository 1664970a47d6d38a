# cediman/routes/deps.py

"""
Сборка сервисов на запрос: хранилище и outbox живут на сессии запроса,
шлюз, провайдеры уведомлений и лог берутся из app.state (созданы при старте).
"""

from fastapi import Request

from cediman.services.checkout import Checkout
from cediman.services.lifecycle import OrderLifecycle
from cediman.services.notifications import NotificationDispatcher, SqlOutbox
from cediman.services.store import SqlOrderStore


def get_store(request: Request) -> SqlOrderStore:
    return SqlOrderStore(request.state.db, request.app.state.log)


def get_notifier(request: Request) -> NotificationDispatcher:
    state = request.app.state
    return NotificationDispatcher(
        state.email_provider,
        state.sms_provider,
        outbox=SqlOutbox(request.state.db),
        log=state.log,
        max_attempts=state.settings.NOTIFY_MAX_ATTEMPTS,
    )


def get_lifecycle(request: Request) -> OrderLifecycle:
    state = request.app.state
    return OrderLifecycle(
        get_store(request),
        state.gateway,
        get_notifier(request),
        state.log,
        app_url=state.settings.APP_URL,
        currency=state.settings.PAYSTACK_CURRENCY,
    )


def get_checkout(request: Request) -> Checkout:
    state = request.app.state
    return Checkout(
        get_store(request),
        get_notifier(request),
        state.log,
        app_url=state.settings.APP_URL,
        currency=state.settings.PAYSTACK_CURRENCY,
    )
