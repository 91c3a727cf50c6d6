"""
Webhook audit log

Write-once record of every payment webhook delivery and its outcome.
Diagnostic only; dedupe is done by conditional order updates.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from app.core.database import Base
from app.core.utils import utcnow

WEBHOOK_STATUS_PROCESSED = "processed"
WEBHOOK_STATUS_FAILED = "failed"


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_webhook_logs_status_created', 'status', 'created_at'),
    )
