# cediman/services/messages.py

"""Тексты уведомлений: HTML-письма (Jinja2) и SMS."""

import os
import re
from datetime import datetime, timezone

from jinja2 import Environment, FileSystemLoader, select_autoescape

from cediman.schemas.order import Order

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)

STATUS_TITLES = {
    "confirmed": "Order Confirmed",
    "submitted": "Payment Received",
    "processing": "Order is Being Processed",
    "in_transit": "Order is On the Way",
    "out_for_delivery": "Order Out for Delivery",
    "delivered": "Order Delivered",
    "cancelled": "Order Cancelled",
}

STATUS_MESSAGES = {
    "confirmed": "We have received your order.",
    "submitted": "Your payment has been confirmed and your order is queued for processing.",
    "processing": "We're carefully preparing your items for shipment.",
    "in_transit": "Your order is on its way to you!",
    "out_for_delivery": "Your order is out for delivery and will arrive today.",
    "delivered": "Your order has been successfully delivered. Thank you for shopping with us!",
    "cancelled": "Your order has been cancelled. Contact us if you have any questions.",
}

SMS_STATUS_MESSAGES = {
    "processing": "Your order is being processed",
    "in_transit": "Your order is on the way",
    "out_for_delivery": "Your order is out for delivery today",
    "delivered": "Your order has been delivered. Thank you!",
    "cancelled": "Your order has been cancelled",
}


def strip_html(html: str) -> str:
    """Текстовая версия письма: без тегов и лишних пустых строк."""
    text = re.sub(r"<(style|title)[^>]*>.*?</\1>", "", html, flags=re.S | re.I)
    text = re.sub(r"<[^>]*>", "", text)
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def format_date(value: datetime | None = None) -> str:
    value = value or datetime.now(timezone.utc)
    return f"{value:%B} {value.day}, {value.year}"


def order_confirmation_email(order: Order, order_link: str, currency: str = "GHS") -> tuple[str, str]:
    """(тема, html) письма о подтверждении заказа."""
    html = env.get_template("order_confirmation.html").render(
        customer_name=order.display_name,
        order_id=order.id,
        order_date=format_date(order.order_date),
        items=order.items,
        subtotal=order.subtotal,
        shipping_cost=order.shipping_cost,
        total=order.total,
        currency=currency,
        order_link=order_link,
    )
    return f"Order Confirmation - {order.id}", html


def order_status_email(customer_name: str, order_id: str, status: str, tracking_link: str) -> tuple[str, str]:
    html = env.get_template("order_status.html").render(
        customer_name=customer_name or "Customer",
        order_id=order_id,
        title=STATUS_TITLES.get(status, "Order Update"),
        message=STATUS_MESSAGES.get(status, "Your order status has been updated."),
        updated_on=format_date(),
        tracking_link=tracking_link,
    )
    return f"Order Update - {order_id}", html


def order_confirmation_sms(order_id: str, tracking_link: str) -> str:
    return f"Thank you for your order! Order #{order_id} confirmed. Track your order: {tracking_link}"


def order_status_sms(order_id: str, status: str, tracking_link: str) -> str:
    message = SMS_STATUS_MESSAGES.get(status, "Order status updated")
    return f"Order #{order_id}: {message}. Track: {tracking_link}"
