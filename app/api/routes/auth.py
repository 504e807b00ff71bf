import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.api import deps
from app.core import security
from app.models.usuario import Usuario as UsuarioModel
from app.schemas.common import Msg
from app.schemas.token import Token
from app.services.center_registry import CenterContextRegistry
from app.services.usuario import usuario_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login/access-token", response_model=Token)
def login_access_token(
    request: Request,
    db: Session = Depends(deps.get_db),
    form_data: OAuth2PasswordRequestForm = Depends()
) -> Any:
    """
    Endpoint de login. Acepta nombre de usuario o correo en el campo `username`.
    """
    ip_address = request.client.host if request.client else "N/A"
    identifier = form_data.username
    logger.info(f"Intento de login para '{identifier}' desde IP {ip_address}")

    user = usuario_service.authenticate(db, identifier=identifier, password=form_data.password)

    if not user or not usuario_service.is_active(user):
        if user:
            logger.warning(f"Login rechazado: usuario '{identifier}' inactivo.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenciales incorrectas o usuario inactivo.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        usuario_service.handle_successful_login(db, user=user)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error crítico al registrar el login de {user.nombre_usuario}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error interno del servidor al procesar el login.")

    logger.info(f"Login exitoso para usuario '{user.nombre_usuario}' (rol '{user.rol}').")
    return {
        "access_token": security.create_access_token(subject=user.id),
        "token_type": "bearer",
    }


@router.post("/logout", response_model=Msg, summary="Cierra la sesión y libera el contexto de centro")
def logout(
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
) -> Any:
    """
    Libera el contexto de centro del usuario. La selección persistida se
    conserva para la siguiente sesión.
    """
    registry.teardown(current_user.id)
    logger.info(f"Usuario '{current_user.nombre_usuario}' cerró sesión.")
    return Msg(msg="Sesión cerrada.")
