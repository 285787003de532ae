"""Журнал визитов: только добавление, строки никогда не меняются и не удаляются."""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, List, Optional
import redis
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tracker import cache
from tracker.json_utils import parse_datetime
from tracker.models import Visit, VisitOutcome, utcnow

logger = logging.getLogger(__name__)


@dataclass
class VisitEvent:
    link_token: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    referer: Optional[str]
    timestamp: datetime
    outcome: VisitOutcome

    @property
    def admitted(self) -> bool:
        return self.outcome == VisitOutcome.ADMITTED

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["outcome"] = self.outcome.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "VisitEvent":
        return cls(
            link_token=payload["link_token"],
            ip_address=payload.get("ip_address"),
            user_agent=payload.get("user_agent"),
            referer=payload.get("referer"),
            timestamp=parse_datetime(payload.get("timestamp")) or utcnow(),
            outcome=VisitOutcome(payload.get("outcome", VisitOutcome.ADMITTED.value)),
        )


class VisitLog:
    def __init__(self, db: Session):
        self.db = db

    def _build(self, event: VisitEvent) -> Visit:
        return Visit(
            link_token=event.link_token,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            referer=event.referer,
            timestamp=event.timestamp,
            admitted=event.admitted,
            outcome=event.outcome
        )

    def append(self, event: VisitEvent) -> int:
        visit = self._build(event)
        self.db.add(visit)
        self.db.commit()
        return visit.id

    def append_many(self, events: List[VisitEvent]) -> int:
        self.db.add_all([self._build(event) for event in events])
        self.db.commit()
        return len(events)

    def list_for(self, token: str, limit: Optional[int] = None) -> List[Visit]:
        """Визиты по токену, новые первыми"""
        query = (
            select(Visit)
            .where(Visit.link_token == token)
            .order_by(Visit.timestamp.desc(), Visit.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def list_recent(self, limit: int = 100) -> List[Visit]:
        query = select(Visit).order_by(Visit.timestamp.desc(), Visit.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars())


class SyncVisitRecorder:
    """Пишет визит в БД до ответа клиенту. Ошибки записи логируются и не влияют на редирект."""

    def __init__(self, visit_log: VisitLog):
        self.visit_log = visit_log

    def record(self, event: VisitEvent) -> None:
        try:
            self.visit_log.append(event)
        except SQLAlchemyError:
            self.visit_log.db.rollback()
            logger.exception("Не удалось записать визит для %s", event.link_token)


class BufferedVisitRecorder:
    """Откладывает запись визита: событие уходит в очередь Redis, в БД его переносит flush_buffered_visits"""

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def record(self, event: VisitEvent) -> None:
        try:
            cache.buffer_visit(self.redis_client, event.to_payload())
        except redis.RedisError as e:
            logger.warning("Визит для %s потерян, очередь недоступна: %s", event.link_token, e)


def flush_buffered_visits(
    session_factory: Callable[[], Session],
    redis_client: redis.Redis,
    batch_size: int = 100
) -> int:
    """Переносит отложенные визиты из Redis в БД, возвращает число записанных"""
    total = 0
    while True:
        payloads = cache.pop_buffered_visits(redis_client, batch_size)
        if not payloads:
            break

        events = []
        for payload in payloads:
            try:
                events.append(VisitEvent.from_payload(payload))
            except (KeyError, ValueError) as e:
                logger.warning("Пропущен некорректный визит %r: %s", payload, e)

        db = session_factory()
        try:
            total += VisitLog(db).append_many(events)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Ошибка при записи %d отложенных визитов", len(events))
            break
        finally:
            db.close()

        if len(payloads) < batch_size:
            break

    if total:
        logger.info("Записано отложенных визитов: %d", total)
    return total
