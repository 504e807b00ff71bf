import logging
import uuid
from typing import Generator, Optional, Union

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core import security
from app.core.exceptions import PermissionDeniedError
from app.core.permissions import PermissionLevel, Resource, has_permission, parse_level, parse_resource
from app.core.session import SessionState
from app.db.session import SessionLocal
from app.models.usuario import Usuario
from app.services.center_registry import CenterContextRegistry
from app.services.usuario import usuario_service

logger = logging.getLogger(__name__)


# --- Dependencia para la Sesión de Base de Datos ---
def get_db() -> Generator[Session, None, None]:
    """Dependency para obtener la sesión de base de datos."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# --- Dependencias para Autenticación ---
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login/access-token"
)
optional_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login/access-token", auto_error=False
)

credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="No se pudieron validar las credenciales",
    headers={"WWW-Authenticate": "Bearer"},
)


def _user_from_token(db: Session, token: str) -> Optional[Usuario]:
    token_data = security.decode_access_token(token)
    if not token_data or not token_data.sub:
        return None
    try:
        user_id = token_data.sub if isinstance(token_data.sub, uuid.UUID) else uuid.UUID(str(token_data.sub))
    except ValueError:
        logger.warning(f"Token con 'sub' no válido: {token_data.sub}")
        return None
    user = usuario_service.get(db, id=user_id)
    if not user:
        logger.warning(f"Usuario no encontrado para ID {user_id} en token válido.")
    return user


def get_current_user(
    db: Session = Depends(get_db), token: str = Depends(reusable_oauth2)
) -> Usuario:
    """Obtiene el usuario actual a partir del token JWT."""
    user = _user_from_token(db, token)
    if not user:
        raise credentials_exception
    logger.debug(f"get_current_user: Usuario '{user.nombre_usuario}' (ID: {user.id}) con rol '{user.rol}' cargado.")
    return user

def get_current_active_user(
    current_user: Usuario = Depends(get_current_user),
) -> Usuario:
    """Obtiene el usuario actual y verifica que esté activo."""
    if not usuario_service.is_active(current_user):
        logger.warning(f"Acceso denegado: Usuario inactivo {current_user.nombre_usuario} (ID: {current_user.id}).")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El usuario está inactivo.")
    return current_user

def get_optional_active_user(
    db: Session = Depends(get_db), token: Optional[str] = Depends(optional_oauth2)
) -> Optional[Usuario]:
    """Como `get_current_active_user`, pero devuelve None en lugar de lanzar 401."""
    if not token:
        return None
    user = _user_from_token(db, token)
    if not user or not usuario_service.is_active(user):
        return None
    return user


def get_session_state(
    current_user: Optional[Usuario] = Depends(get_optional_active_user),
) -> SessionState:
    """Estado de sesión resuelto para la petición actual."""
    if current_user is None:
        return SessionState.unauthenticated()
    return SessionState.authenticated(current_user.id, current_user.rol)


def get_center_registry(request: Request) -> CenterContextRegistry:
    """Registro de contextos de centro creado en el arranque de la aplicación."""
    return request.app.state.center_contexts


class PermissionChecker:
    """
    Clase para usar como dependencia de FastAPI para verificar permisos.
    Requiere que el rol del usuario alcance el nivel indicado sobre el recurso.
    """
    def __init__(self, resource: Union[Resource, str], level: Union[PermissionLevel, str]):
        parsed_resource = parse_resource(resource)
        parsed_level = parse_level(level)
        if parsed_resource is None or parsed_level is None:
            logger.error(f"PermissionChecker inicializado con recurso/nivel desconocido: {resource}/{level}.")
            raise ValueError(f"Recurso o nivel de permiso desconocido: {resource}/{level}")
        self.resource = parsed_resource
        self.level = parsed_level

    def __call__(self, request: Request, current_user: Usuario = Depends(get_current_active_user)) -> Usuario:
        """Verifica si el usuario actual tiene el permiso requerido."""
        logger.debug(
            f"PermissionChecker: Verificando '{self.resource.value}:{self.level.name}' para "
            f"'{current_user.nombre_usuario}' en '{request.url.path}'."
        )
        if not has_permission(current_user, self.resource, self.level):
            logger.warning(
                f"Acceso denegado a '{current_user.nombre_usuario}'. Rol: '{current_user.rol}'. "
                f"Requerido: '{self.resource.value}:{self.level.name}'."
            )
            raise PermissionDeniedError(self.resource.value, self.level.name, settings.DEFAULT_REDIRECT_PATH)
        return current_user
