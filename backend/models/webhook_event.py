# backend/models/webhook_event.py
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, func
from database import Base

# Fingerprint of an inbound webhook delivery, used to drop exact replays
class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(32), nullable=False)  # "cashfree" | "shiprocket"
    digest = Column(String(64), nullable=False)  # sha256 of the raw body
    reference = Column(String, nullable=True)  # order reference carried by the payload
    received_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("source", "digest", name="uq_webhook_source_digest"),
    )
