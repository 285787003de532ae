"""Исключения реестра ссылок и механизма погашения токенов.

Клиенту все причины отказа показываются одинаково; различаются они только
в логах и в поле outcome визита.
"""


class LinkError(Exception):
    reason = "error"

    def __init__(self, token: str, message: str | None = None):
        self.token = token
        super().__init__(message or f"{self.reason}: {token}")


class LinkNotFound(LinkError):
    """Токен никогда не существовал или ссылка физически удалена."""

    reason = "not_found"


class AlreadyConsumed(LinkError):
    """Одноразовый токен уже погашен."""

    reason = "already_consumed"


class LinkRevoked(LinkError):
    """Ссылка отозвана администратором."""

    reason = "revoked"


class TransitionConflict(LinkError):
    """Условное обновление статуса не затронуло ни одной строки: гонку выиграл другой запрос."""

    reason = "conflict"


class TokenCollision(LinkError):
    """Сгенерированный токен уже занят; нужно сгенерировать новый."""

    reason = "token_collision"
