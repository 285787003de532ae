"""Механизм погашения токенов.

Решает, пропускать ли обращение по токену, и выполняет соответствующий
переход статуса. Для одноразовой ссылки чтение, проверка и изменение сводятся
к одному условному обновлению в реестре, поэтому из N одновременных
обращений редирект получает ровно одно. Блокировок на уровне приложения нет:
порядок конкурирующих попыток задает база данных.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Union
import redis

from tracker import cache
from tracker.errors import AlreadyConsumed, LinkError, LinkNotFound, LinkRevoked, TransitionConflict
from tracker.models import Link, LinkMode, LinkStatus, VisitOutcome, utcnow
from tracker.registry import LinkRegistry
from tracker.visits import VisitEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Redirect:
    target_url: str

    admitted = True


@dataclass(frozen=True)
class NotAdmitted:
    # Только для логов и аудита, клиенту не раскрывается
    reason: str

    admitted = False


Decision = Union[Redirect, NotAdmitted]


class VisitRecorder(Protocol):
    def record(self, event: VisitEvent) -> None: ...


_OUTCOMES = {
    AlreadyConsumed.reason: VisitOutcome.ALREADY_CONSUMED,
    LinkRevoked.reason: VisitOutcome.REVOKED,
    TransitionConflict.reason: VisitOutcome.CONFLICT,
}


class ConsumptionEngine:
    def __init__(
        self,
        registry: LinkRegistry,
        recorder: VisitRecorder,
        *,
        log_failed_attempts: bool = True,
        hard_delete: bool = False,
        cache_client: Optional[redis.Redis] = None,
        cache_expiry: int = 3600,
    ):
        self.registry = registry
        self.recorder = recorder
        self.log_failed_attempts = log_failed_attempts
        self.hard_delete = hard_delete
        self.cache_client = cache_client
        self.cache_expiry = cache_expiry

    @property
    def use_cache(self) -> bool:
        return self.cache_client is not None

    def consume(
        self,
        token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referer: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Оценивает обращение по токену и возвращает Redirect или NotAdmitted"""
        now = now or utcnow()

        def visit(outcome: VisitOutcome) -> VisitEvent:
            return VisitEvent(
                link_token=token,
                ip_address=ip_address,
                user_agent=user_agent,
                referer=referer,
                timestamp=now,
                outcome=outcome
            )

        if self.use_cache:
            cached = cache.get_cached_target(self.cache_client, token)
            if cached:
                self.recorder.record(visit(VisitOutcome.ADMITTED))
                logger.debug("Токен %s пропущен из кеша", token)
                return Redirect(cached)

        try:
            link = self.registry.get(token)
            target_url = link.target_url
            self._admit(link, now)
        except LinkNotFound as e:
            logger.info("Отказ по токену %s: %s", token, e.reason)
            return NotAdmitted(e.reason)
        except LinkError as e:
            if self.log_failed_attempts:
                self.recorder.record(visit(_OUTCOMES[e.reason]))
            logger.info("Отказ по токену %s: %s", token, e.reason)
            return NotAdmitted(e.reason)

        self.recorder.record(visit(VisitOutcome.ADMITTED))
        logger.debug("Токен %s пропущен -> %s", token, target_url)
        return Redirect(target_url)

    def _admit(self, link: Link, now: datetime) -> None:
        """Бросает LinkError, если обращение не пропускается; для одноразовой ссылки гасит ее"""
        if link.mode == LinkMode.REUSABLE:
            if link.status != LinkStatus.ACTIVE:
                raise LinkRevoked(link.token)
            if self.use_cache:
                cache.cache_target(self.cache_client, link.token, link.target_url, self.cache_expiry)
            return

        if link.status != LinkStatus.ACTIVE:
            raise AlreadyConsumed(link.token)

        new_status = LinkStatus.DELETED if self.hard_delete else LinkStatus.CONSUMED
        # TransitionConflict: гонку выиграл другой запрос между чтением и обновлением
        self.registry.transition(
            link.token, LinkStatus.ACTIVE, new_status, at=now, hard_delete=self.hard_delete
        )
