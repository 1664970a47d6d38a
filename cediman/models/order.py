# cediman/models/order.py

from sqlalchemy import Column, String, Float, JSON, DateTime
from sqlalchemy.sql import func
from cediman.utils.database import Base

class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, index=True)        # ID заказа (строка, задаётся витриной)

    status         = Column(String, nullable=False, default="confirmed")
    user_id        = Column(String, nullable=True, index=True)  # пусто для гостевых заказов
    guest_email    = Column(String, nullable=True)
    guest_phone    = Column(String, nullable=True)
    customer_name  = Column(String, nullable=True)

    items          = Column(JSON, nullable=False, default=list)  # [{productId, name, quantity, unitPrice}]
    shipping       = Column(JSON, nullable=False, default=dict)  # снимок адреса на момент оформления
    payment        = Column(JSON, nullable=True)                 # снимок способа оплаты

    subtotal       = Column(Float, nullable=False, default=0.0)
    shipping_cost  = Column(Float, nullable=False, default=0.0)
    total          = Column(Float, nullable=False, default=0.0)

    payment_reference = Column(String, nullable=True, unique=True, index=True)

    status_history  = Column(JSON, nullable=False, default=list)  # [{status, timestamp, note}]
    delivery_person = Column(JSON, nullable=True)                 # курьер для out_for_delivery

    order_date = Column(DateTime(timezone=True), server_default=func.now(), index=True)
