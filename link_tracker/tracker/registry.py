"""Реестр ссылок: единственный владелец строк таблицы links.

Погашение одноразового токена держится на ``LinkRegistry.transition``:
это один условный UPDATE (или DELETE) с проверкой ожидаемого статуса в WHERE,
поэтому из конкурирующих запросов строку меняет ровно один.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tracker.errors import LinkNotFound, TokenCollision, TransitionConflict
from tracker.models import Link, LinkMode, LinkStatus, utcnow
from tracker.utils import generate_token

logger = logging.getLogger(__name__)


class LinkRegistry:
    def __init__(self, db: Session, token_factory: Callable[[], str] = generate_token):
        self.db = db
        self.token_factory = token_factory

    def create(self, target_url: str, mode: LinkMode = LinkMode.REUSABLE) -> Link:
        """Создает активную ссылку со свежим токеном"""
        link = Link(
            token=self.token_factory(),
            target_url=target_url,
            mode=mode,
            status=LinkStatus.ACTIVE,
            created_at=utcnow()
        )
        self.db.add(link)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise TokenCollision(link.token)
        self.db.refresh(link)
        return link

    def get(self, token: str) -> Link:
        link = self.db.execute(select(Link).where(Link.token == token)).scalar_one_or_none()
        if link is None:
            raise LinkNotFound(token)
        return link

    def list_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Link]:
        """Ссылки для админки, новые первыми"""
        query = select(Link).order_by(Link.created_at.desc(), Link.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def transition(
        self,
        token: str,
        expected: LinkStatus,
        new: LinkStatus,
        at: Optional[datetime] = None,
        hard_delete: bool = False,
    ) -> None:
        """Атомарно меняет статус, только если текущий равен expected.

        При hard_delete=True и new=DELETED строка удаляется физически.
        Если ни одна строка не подошла, бросает TransitionConflict и ничего не меняет.
        """
        if hard_delete and new == LinkStatus.DELETED:
            statement = delete(Link).where(Link.token == token, Link.status == expected)
        else:
            values = {"status": new}
            if new == LinkStatus.CONSUMED:
                values["consumed_at"] = at or utcnow()
            statement = (
                update(Link)
                .where(Link.token == token, Link.status == expected)
                .values(**values)
            )

        result = self.db.execute(statement.execution_options(synchronize_session=False))
        self.db.commit()

        if result.rowcount != 1:
            raise TransitionConflict(token)

        logger.debug("Ссылка %s: %s -> %s", token, expected.value, new.value)

    def revoke(self, token: str) -> None:
        """Отзывает ссылку (админ): CAS от наблюдаемого статуса к DELETED"""
        link = self.get(token)
        if link.status == LinkStatus.DELETED:
            return
        self.transition(token, link.status, LinkStatus.DELETED)


def issue_link(
    registry: LinkRegistry,
    target_url: str,
    mode: LinkMode = LinkMode.REUSABLE,
    attempts: int = 5,
) -> Link:
    """Создает ссылку, перегенерируя токен при коллизии"""
    for attempt in range(1, attempts + 1):
        try:
            return registry.create(target_url, mode)
        except TokenCollision as e:
            logger.warning("Коллизия токена %s (попытка %d из %d)", e.token, attempt, attempts)
    raise TokenCollision("", f"не удалось сгенерировать уникальный токен за {attempts} попыток")
