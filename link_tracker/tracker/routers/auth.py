import logging
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from tracker.config import Settings
from tracker.database import get_db
from tracker.dependencies import get_current_admin, get_settings
from tracker.models import AdminCredential
from tracker.schemas import Token, PasswordChange
from tracker.utils import ADMIN_SUBJECT, create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ADMIN_CREDENTIAL_ID = 1


def seed_admin_credential(db: Session, password: str) -> AdminCredential:
    """Создает учетную запись администратора при первом запуске; существующий пароль не трогает"""
    credential = db.get(AdminCredential, ADMIN_CREDENTIAL_ID)
    if credential is None:
        credential = AdminCredential(id=ADMIN_CREDENTIAL_ID, password_hash=get_password_hash(password))
        db.add(credential)
        db.commit()
        logger.info("Создан пароль администратора по умолчанию")
    return credential


def authenticate_admin(db: Session, password: str) -> bool:
    credential = db.get(AdminCredential, ADMIN_CREDENTIAL_ID)
    return credential is not None and verify_password(password, credential.password_hash)


# Вход: имя пользователя в форме игнорируется, проверяется только общий пароль
@router.post("/token", response_model=Token)
async def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Выдает токен администратора и ставит его в httpOnly cookie"""
    if not authenticate_admin(db, form_data.password):
        logger.warning("Неудачная попытка входа в админку")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        {"sub": ADMIN_SUBJECT},
        expires_delta=expires,
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    response.set_cookie(
        settings.ADMIN_COOKIE_NAME,
        access_token,
        httponly=True,
        samesite="lax",
        max_age=int(expires.total_seconds())
    )
    return Token(access_token=access_token, token_type="bearer")


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(settings: Settings = Depends(get_settings)):
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.ADMIN_COOKIE_NAME)
    return response


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    admin: str = Depends(get_current_admin)
):
    """Меняет пароль администратора"""
    credential = db.get(AdminCredential, ADMIN_CREDENTIAL_ID)
    if credential is None or not verify_password(data.current_password, credential.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Текущий пароль указан неверно"
        )

    credential.password_hash = get_password_hash(data.new_password)
    db.commit()
    logger.info("Пароль администратора изменен")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
