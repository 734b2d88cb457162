"""
Integration Models - inbound supplier webhook log
"""
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, Uuid
from clinic_orders.core.database import Base
from .base import JSONType, utcnow


class WebhookLog(Base):
    """
    Log incoming supplier webhook payloads for debugging and replay
    """
    __tablename__ = "webhook_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source = Column(String(30), nullable=False, default="supplier")
    event_type = Column(String(50))  # supplier_confirmed, order_split, return_completed
    tenant_id = Column(String(100), index=True)
    reference = Column(String(100), index=True)  # order_no / return_no

    # Request data
    payload = Column(JSONType)
    ip_address = Column(String(50))

    # Processing status
    processed = Column(Boolean, default=False)
    processed_at = Column(DateTime)
    process_result = Column(String(50))  # SUCCESS, NOT_FOUND, IGNORED, FAILED
    process_error = Column(Text)

    received_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<WebhookLog {self.event_type} {self.reference} {self.received_at}>"

    def mark_processed(self, result: str, error: str = None):
        self.processed = True
        self.processed_at = utcnow()
        self.process_result = result
        self.process_error = error
