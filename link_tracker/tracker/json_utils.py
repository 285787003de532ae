import orjson
from datetime import datetime, timezone
from typing import Any, Optional, Union

def dumps(obj: Any, **kwargs) -> str:
    """Сериализует объект в JSON-строку; dataclass, Enum и datetime поддерживаются orjson.

    Наивные datetime считаются UTC.
    """
    options = orjson.OPT_NAIVE_UTC
    if kwargs.get('indent'):
        options |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=options).decode('utf-8')

def loads(s: Union[str, bytes], **kwargs) -> Any:
    """Десериализует JSON-строку в объект Python."""
    if isinstance(s, str):
        s = s.encode('utf-8')
    return orjson.loads(s)

def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Разбирает ISO-строку в aware datetime (UTC, если зона не указана)."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
