from contextlib import asynccontextmanager
from typing import Optional
import redis
from fastapi import FastAPI, Request
import uvicorn
import time
import asyncio
import logging

from tracker.cache import create_redis_client
from tracker.config import Settings, settings as default_settings
from tracker.database import Database
from tracker.logging_utils import setup_logging
from tracker.routers import admin, auth, redirects
from tracker.visits import flush_buffered_visits

logger = logging.getLogger(__name__)


async def periodically_flush_visits(database: Database, redis_client: redis.Redis, interval: int):
    """Периодически переносит отложенные визиты из Redis в БД"""
    while True:
        try:
            await asyncio.sleep(interval)
            await asyncio.to_thread(flush_buffered_visits, database.session, redis_client)
        except asyncio.CancelledError:
            logger.info("Задача записи отложенных визитов отменена")
            break
        except Exception:
            logger.exception("Ошибка при записи отложенных визитов")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управляет жизненным циклом приложения"""
    settings: Settings = app.state.settings
    logger.info("Запуск приложения...")

    database = Database(settings.DATABASE_URL).open()
    app.state.database = database

    # Клиент, переданный в create_app, принадлежит вызывающему и здесь не закрывается
    owns_redis = app.state.redis is None
    if owns_redis:
        app.state.redis = create_redis_client(settings.REDIS_URL)
    redis_client = app.state.redis

    with database.session() as db:
        auth.seed_admin_credential(db, settings.ADMIN_PASSWORD)

    app.state.background_tasks = {}
    if settings.VISIT_LOGGING == "deferred":
        app.state.background_tasks["visits"] = asyncio.create_task(
            periodically_flush_visits(database, redis_client, settings.VISIT_FLUSH_INTERVAL)
        )

    yield

    logger.info("Завершение работы приложения...")

    for name, task in app.state.background_tasks.items():
        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.info("Задача %s остановлена", name)

    if settings.VISIT_LOGGING == "deferred":
        try:
            flush_buffered_visits(database.session, redis_client)
        except Exception:
            logger.exception("Не удалось записать отложенные визиты при остановке")

    database.close()
    if owns_redis:
        redis_client.close()
        app.state.redis = None


async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    logger.info(
        "%s %s - %s - %.4fs",
        request.method, request.url.path, response.status_code, process_time
    )

    return response


async def root():
    return {
        "message": "Link Tracker API",
        "docs_url": "/docs",
        "version": "1.0.0"
    }


def create_app(settings: Optional[Settings] = None, redis_client: Optional[redis.Redis] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(level=settings.LOG_LEVEL, file_path=settings.LOG_FILE)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Сервис одноразовых и многоразовых ссылок с журналом переходов",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.redis = redis_client

    app.middleware("http")(log_requests)
    app.get("/", tags=["root"])(root)

    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(redirects.router, prefix=f"/{settings.REDIRECT_PREFIX}")
    app.add_api_route(
        f"/{settings.REDIRECT_PREFIX}", redirects.redirect_without_token,
        methods=["GET"], include_in_schema=False
    )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("tracker.main:app", host="0.0.0.0", port=8000, reload=True)
