# cediman/models/notification.py

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from cediman.utils.database import Base

class Notification(Base):
    """Исходящее уведомление (outbox): пишется после изменения заказа, доставляется отдельно."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    channel   = Column(String, nullable=False)            # email | sms
    recipient = Column(String, nullable=False)
    subject   = Column(String, nullable=True)
    body      = Column(Text, nullable=False)              # HTML письма или текст SMS
    text_body = Column(Text, nullable=True)
    category  = Column(String, nullable=True)             # метка письма у провайдера
    order_id  = Column(String, nullable=True, index=True)

    state      = Column(String, nullable=False, default="pending", index=True)  # pending | sent | failed | skipped
    attempts   = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
