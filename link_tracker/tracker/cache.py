import logging
import redis
from typing import Optional
from tracker.json_utils import dumps, loads

logger = logging.getLogger(__name__)

LINK_CACHE_PREFIX = "link:"  # token -> target_url, только для многоразовых ссылок
PENDING_VISITS_KEY = "visits:pending"

def create_redis_client(url: str) -> redis.Redis:
    """Создает клиент Redis; соединение открывается при первой команде"""
    return redis.Redis.from_url(url, decode_responses=True)

def get_link_cache_key(token: str) -> str:
    """Формирует ключ кеша для токена"""
    return f"{LINK_CACHE_PREFIX}{token}"

def get_cached_target(client: redis.Redis, token: str) -> Optional[str]:
    """Получает целевой URL многоразовой ссылки из кеша; при недоступности Redis считает это промахом"""
    try:
        return client.get(get_link_cache_key(token))
    except redis.RedisError as e:
        logger.warning("Кеш недоступен при чтении %s: %s", token, e)
        return None

def cache_target(client: redis.Redis, token: str, target_url: str, expire: int) -> None:
    """Кеширует целевой URL многоразовой ссылки с TTL"""
    try:
        client.set(get_link_cache_key(token), target_url, ex=expire)
    except redis.RedisError as e:
        logger.warning("Не удалось закешировать %s: %s", token, e)

def invalidate_link_cache(client: redis.Redis, token: str) -> None:
    """Удаляет ссылку из кеша; ошибки Redis пробрасываются вызывающему"""
    client.delete(get_link_cache_key(token))

def buffer_visit(client: redis.Redis, payload: dict) -> None:
    """Кладет визит в очередь отложенной записи"""
    client.lpush(PENDING_VISITS_KEY, dumps(payload))

def pop_buffered_visits(client: redis.Redis, limit: int = 100) -> list:
    """Забирает из очереди до limit визитов в порядке поступления"""
    details = []

    for _ in range(limit):
        data = client.rpop(PENDING_VISITS_KEY)
        if not data:
            break
        try:
            details.append(loads(data))
        except ValueError:
            logger.warning("Пропущен поврежденный визит в очереди: %r", data)
            continue

    return details

def count_buffered_visits(client: redis.Redis) -> int:
    return client.llen(PENDING_VISITS_KEY)
