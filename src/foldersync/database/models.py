"""Database models for the tracking store."""

import time

from sqlalchemy import Boolean, Column, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


class TrackedFileModel(Base):
    """Last confirmed synchronized state of one relative path."""

    __tablename__ = "sync_files"

    relative_path = Column(String(1024), primary_key=True)
    name = Column(String(500), nullable=True)
    is_directory = Column(Boolean, default=False, nullable=False)
    size = Column(Integer, default=0, nullable=False)
    mime_type = Column(String(255), nullable=True)

    # Local side
    local_modified_time = Column(Float, default=0.0, nullable=False)
    local_hash = Column(String(128), nullable=True)

    # Remote side
    remote_id = Column(String(255), nullable=True, index=True)
    remote_modified_time = Column(Float, nullable=True)
    remote_hash = Column(String(128), nullable=True)

    # Sync tracking
    status = Column(String(30), nullable=False, index=True)
    last_sync_time = Column(Float, nullable=True)
    updated_at = Column(Float, default=time.time, onupdate=time.time, nullable=False)


class SyncHistoryModel(Base):
    """Append-only audit log of sync actions."""

    __tablename__ = "sync_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(Float, default=time.time, nullable=False, index=True)
    action = Column(String(30), nullable=False)
    relative_path = Column(String(1024), nullable=False)
    name = Column(String(500), nullable=True)
    success = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)
    bytes_transferred = Column(Integer, default=0, nullable=False)
    duration_ms = Column(Integer, default=0, nullable=False)
