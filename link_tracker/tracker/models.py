import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Enum
from datetime import datetime, timezone

from tracker.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LinkMode(str, enum.Enum):
    REUSABLE = "reusable"
    SINGLE_USE = "single_use"


class LinkStatus(str, enum.Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    DELETED = "deleted"


class VisitOutcome(str, enum.Enum):
    ADMITTED = "admitted"
    ALREADY_CONSUMED = "already_consumed"
    CONFLICT = "conflict"
    REVOKED = "revoked"


class AdminCredential(Base):
    __tablename__ = "admin_credentials"

    id = Column(Integer, primary_key=True)
    password_hash = Column(String(100), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class Link(Base):
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    target_url = Column(Text, nullable=False)
    mode = Column(Enum(LinkMode, native_enum=False, length=20), nullable=False, default=LinkMode.REUSABLE)
    status = Column(Enum(LinkStatus, native_enum=False, length=20), nullable=False, default=LinkStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    consumed_at = Column(DateTime(timezone=True), nullable=True)

class Visit(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, index=True)
    # Без внешнего ключа: визиты хранятся и после удаления ссылки
    link_token = Column(String(128), index=True, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referer = Column(Text, nullable=True)
    admitted = Column(Boolean, nullable=False, default=False)
    outcome = Column(Enum(VisitOutcome, native_enum=False, length=20), nullable=False)
