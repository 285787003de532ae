import logging
from typing import Optional
from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Хранилище ссылок и визитов с явным жизненным циклом (open/close)"""

    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None

    def open(self) -> "Database":
        connect_args = {}
        if self.url.startswith("sqlite"):
            # Запросы обслуживаются из пула потоков Starlette
            connect_args = {"check_same_thread": False, "timeout": 30}

        self.engine = create_engine(self.url, connect_args=connect_args, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        # Регистрирует таблицы в метаданных до create_all
        from tracker import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("База данных открыта: %s", self.engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            logger.info("База данных закрыта")
        self.engine = None
        self.SessionLocal = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("База данных не открыта")
        return self.SessionLocal()


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
