import logging
import redis
from fastapi import APIRouter, Depends, HTTPException, Query, status, Response

from tracker.cache import invalidate_link_cache
from tracker.config import Settings
from tracker.dependencies import get_current_admin, get_redis, get_registry, get_settings, get_visit_log
from tracker.errors import LinkNotFound, TokenCollision, TransitionConflict
from tracker.models import Link
from tracker.registry import LinkRegistry, issue_link
from tracker.schemas import (
    LinkCreate, LinkResponse, LinkDetailed, LinkListResponse, VisitInfo, VisitListResponse
)
from tracker.utils import build_redeem_url
from tracker.visits import VisitLog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_current_admin)])


def to_response(link: Link, settings: Settings) -> LinkResponse:
    return LinkResponse(
        token=link.token,
        target_url=link.target_url,
        mode=link.mode,
        status=link.status,
        redeem_url=build_redeem_url(link.token, settings.BASE_URL, settings.REDIRECT_PREFIX),
        created_at=link.created_at,
        consumed_at=link.consumed_at
    )


def get_link_or_404(registry: LinkRegistry, token: str) -> Link:
    try:
        return registry.get(token)
    except LinkNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ссылка не найдена"
        )


# Создание ссылки
@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_data: LinkCreate,
    registry: LinkRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings)
):
    """Выдает новый токен для целевого URL"""
    try:
        link = issue_link(
            registry, link_data.target_url, link_data.mode,
            attempts=settings.TOKEN_GENERATION_ATTEMPTS
        )
    except TokenCollision as e:
        logger.error("Не удалось выдать токен: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Не удалось сгенерировать токен, повторите попытку"
        )

    logger.info("Выдан токен %s (%s) -> %s", link.token, link.mode.value, link.target_url)
    return to_response(link, settings)

# Список ссылок
@router.get("/links", response_model=LinkListResponse)
async def list_links(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    registry: LinkRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings)
):
    links = [to_response(link, settings) for link in registry.list_all(limit=limit, offset=offset)]
    return LinkListResponse(links=links, count=len(links))

# Информация о ссылке с последними визитами
@router.get("/links/{token}", response_model=LinkDetailed)
async def get_link(
    token: str,
    registry: LinkRegistry = Depends(get_registry),
    visit_log: VisitLog = Depends(get_visit_log),
    settings: Settings = Depends(get_settings)
):
    link = get_link_or_404(registry, token)
    visits = visit_log.list_for(token)

    return LinkDetailed(
        **to_response(link, settings).model_dump(),
        visit_count=len(visits),
        recent_visits=[VisitInfo.model_validate(v) for v in visits[:10]]
    )

# Визиты по токену; доступны и после физического удаления ссылки
@router.get("/links/{token}/visits", response_model=VisitListResponse)
async def list_link_visits(
    token: str,
    limit: int = Query(100, ge=1, le=1000),
    visit_log: VisitLog = Depends(get_visit_log)
):
    visits = [VisitInfo.model_validate(v) for v in visit_log.list_for(token, limit=limit)]
    return VisitListResponse(visits=visits, count=len(visits))

# Отзыв ссылки
@router.delete("/links/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_link(
    token: str,
    registry: LinkRegistry = Depends(get_registry),
    redis_client: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings)
):
    """Переводит ссылку в статус DELETED и убирает ее из кеша редиректов"""
    try:
        registry.revoke(token)
    except TransitionConflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Статус ссылки изменился, повторите попытку"
        )
    except LinkNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ссылка не найдена"
        )

    # Пока запись в кеше жива, многоразовая ссылка продолжает открываться.
    # Повторный DELETE безопасен: отозванная ссылка не меняется, кеш чистится снова.
    if settings.CACHE_ENABLED:
        try:
            invalidate_link_cache(redis_client, token)
        except redis.RedisError as e:
            logger.error("Ссылка %s отозвана, но осталась в кеше: %s", token, e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Ссылка отозвана, но кеш недоступен, повторите запрос"
            )

    logger.info("Ссылка %s отозвана", token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Последние визиты по всем ссылкам
@router.get("/visits", response_model=VisitListResponse)
async def list_recent_visits(
    limit: int = Query(100, ge=1, le=1000),
    visit_log: VisitLog = Depends(get_visit_log)
):
    visits = [VisitInfo.model_validate(v) for v in visit_log.list_recent(limit)]
    return VisitListResponse(visits=visits, count=len(visits))
