import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import bcrypt
from jose import jwt, JWTError
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.token import TokenPayload

logger = logging.getLogger(__name__)

ALGORITHM = settings.ALGORITHM


# --- Contraseñas (bcrypt) ---
def get_password_hash(password: str) -> str:
    """Genera el hash bcrypt de una contraseña y lo devuelve como string para almacenamiento."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Compara una contraseña en texto plano con su hash bcrypt.
    Un hash mal formado se registra y se trata como contraseña incorrecta.
    """
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Hash de contraseña inválido: {e}")
        return False


# --- Tokens JWT ---
def create_access_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """
    Crea un token de acceso JWT cuyo `sub` es el ID del usuario.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decodifica un token de acceso y valida su estructura y expiración.
    """
    try:
        payload_dict = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(**payload_dict)
    except (JWTError, ValidationError, KeyError) as e:
        logger.warning(f"Token de acceso inválido: {e}")
        return None
