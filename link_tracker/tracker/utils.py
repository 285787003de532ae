import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,128}$")

ADMIN_SUBJECT = "admin"
DEFAULT_TOKEN_BYTES = 9
DEFAULT_TOKEN_EXPIRE = timedelta(minutes=60)

def generate_token(nbytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """Генерирует непрозрачный URL-safe токен из криптографически случайных байт"""
    return secrets.token_urlsafe(nbytes)

def is_well_formed_token(token: str) -> bool:
    """Проверяет, что строка похожа на выданный токен"""
    return bool(token) and TOKEN_PATTERN.fullmatch(token) is not None

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Проверяет соответствие пароля хешу"""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Хеширует пароль"""
    return pwd_context.hash(password)

def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    *,
    secret_key: str,
    algorithm: str = "HS256",
) -> str:
    """Создает JWT токен доступа"""
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_EXPIRE)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, secret_key, algorithm=algorithm)
    return encoded_jwt

def build_redeem_url(token: str, base_url: str, prefix: str) -> str:
    """Создает полный URL погашения токена"""
    return f"{base_url.rstrip('/')}/{prefix}/{token}"

def extract_client_info(request, trust_forwarded_for: bool = True) -> dict:
    """Извлекает информацию о клиенте из запроса"""
    ip_address = None
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip_address = forwarded.split(",")[0].strip() or None

    if ip_address is None and request.client:
        ip_address = request.client.host

    return {
        "ip_address": ip_address,
        "user_agent": request.headers.get("user-agent"),
        "referer": request.headers.get("referer"),
        "timestamp": datetime.now(timezone.utc)
    }
