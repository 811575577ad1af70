"""
Sync health model - one row per import run
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, func
from alitools.database import Base


class SyncHealth(Base):
    __tablename__ = "sync_health"

    id = Column(Integer, primary_key=True, index=True)
    sync_type = Column(String(30), nullable=False, index=True)  # manual_import, api_upload, stage:<name>
    status = Column(String(20), nullable=False, index=True)  # success, partial_success, failed
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    duration_seconds = Column(Float, nullable=False)
    source = Column(String(512), nullable=False)  # feed path
    request_size_bytes = Column(Integer, nullable=True)
    items_processed = Column(JSON, nullable=False, default=dict)  # {"products": 120, ...}
    error_count = Column(Integer, nullable=False, default=0)
    error_details = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
