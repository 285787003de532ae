import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse

from tracker.config import Settings
from tracker.consumption import ConsumptionEngine, Redirect
from tracker.dependencies import get_consumption_engine, get_client_info, get_settings
from tracker.utils import is_well_formed_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redirects"])

NOT_ADMITTED_DETAIL = "Ссылка не найдена"


def not_admitted(settings: Settings) -> HTTPException:
    # Один и тот же ответ для неизвестного, некорректного и погашенного токена
    return HTTPException(status_code=settings.NOT_ADMITTED_STATUS, detail=NOT_ADMITTED_DETAIL)


def redirect_without_token(settings: Settings = Depends(get_settings)):
    """Префикс без токена отвечает так же, как неизвестный токен"""
    raise not_admitted(settings)


# Синхронный обработчик: каждый запрос идет в пуле потоков со своей сессией БД.
# path-параметр забирает и пустой хвост, и хвост со слешами: их отсекает is_well_formed_token.
@router.get("/{token:path}", include_in_schema=False)
def redirect_by_token(
    token: str,
    settings: Settings = Depends(get_settings),
    client_info: dict = Depends(get_client_info),
    engine: ConsumptionEngine = Depends(get_consumption_engine)
):
    """Погашает токен и перенаправляет на целевой URL без промежуточной страницы"""
    if not is_well_formed_token(token):
        raise not_admitted(settings)

    decision = engine.consume(
        token,
        ip_address=client_info.get("ip_address"),
        user_agent=client_info.get("user_agent"),
        referer=client_info.get("referer"),
        now=client_info.get("timestamp")
    )

    if isinstance(decision, Redirect):
        return RedirectResponse(url=decision.target_url, status_code=status.HTTP_302_FOUND)

    raise not_admitted(settings)
