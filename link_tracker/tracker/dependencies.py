from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
import redis
from sqlalchemy.orm import Session

from tracker.config import Settings
from tracker.consumption import ConsumptionEngine
from tracker.database import get_db
from tracker.registry import LinkRegistry
from tracker.utils import ADMIN_SUBJECT, extract_client_info, generate_token
from tracker.visits import BufferedVisitRecorder, SyncVisitRecorder, VisitLog

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=False)

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_redis(request: Request) -> redis.Redis:
    """Клиент Redis, созданный в lifespan по REDIS_URL приложения"""
    return request.app.state.redis

def get_registry(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> LinkRegistry:
    return LinkRegistry(db, token_factory=lambda: generate_token(settings.TOKEN_BYTES))

def get_visit_log(db: Session = Depends(get_db)) -> VisitLog:
    return VisitLog(db)

def get_visit_recorder(
    visit_log: VisitLog = Depends(get_visit_log),
    settings: Settings = Depends(get_settings),
    redis_client: redis.Redis = Depends(get_redis)
):
    """Синхронная или отложенная запись визитов в зависимости от VISIT_LOGGING"""
    if settings.VISIT_LOGGING == "deferred":
        return BufferedVisitRecorder(redis_client)
    return SyncVisitRecorder(visit_log)

def get_consumption_engine(
    registry: LinkRegistry = Depends(get_registry),
    recorder = Depends(get_visit_recorder),
    settings: Settings = Depends(get_settings),
    redis_client: redis.Redis = Depends(get_redis)
) -> ConsumptionEngine:
    return ConsumptionEngine(
        registry,
        recorder,
        log_failed_attempts=settings.LOG_FAILED_ATTEMPTS,
        hard_delete=settings.SINGLE_USE_HARD_DELETE,
        cache_client=redis_client if settings.CACHE_ENABLED else None,
        cache_expiry=settings.CACHE_EXPIRY
    )

async def get_current_admin(
    request: Request,
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings)
) -> str:
    """Пропускает только запросы с действующим токеном администратора (заголовок или cookie)"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Требуется аутентификация",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        token = request.cookies.get(settings.ADMIN_COOKIE_NAME)
    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        raise credentials_exception

    if payload.get("sub") != ADMIN_SUBJECT:
        raise credentials_exception

    return ADMIN_SUBJECT

async def get_client_info(
    request: Request,
    settings: Settings = Depends(get_settings)
):
    """Получает информацию о клиенте из запроса"""
    return extract_client_info(request, trust_forwarded_for=settings.TRUST_FORWARDED_FOR)
