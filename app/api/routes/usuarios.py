import logging
from typing import Any, List
from uuid import UUID as PyUUID

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.core.permissions import PermissionLevel, Resource
from app.schemas import Usuario, UsuarioCreate, AsignacionCentros, AsignacionCentrosResponse
from app.services.asignacion_centro import asignacion_centro_service
from app.services.center_registry import CenterContextRegistry
from app.services.usuario import usuario_service
from app.models import Usuario as UsuarioModel

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/",
    response_model=Usuario,
    status_code=status.HTTP_201_CREATED,
    summary="Crear un nuevo Usuario",
    response_description="El usuario creado."
)
def create_usuario(
    *,
    db: Session = Depends(deps.get_db),
    user_in: UsuarioCreate,
    current_user: UsuarioModel = Depends(deps.PermissionChecker(Resource.USERS, PermissionLevel.WRITE)),
) -> Any:
    """
    Crea un nuevo usuario en el sistema con su rol y centros asignados.
    Requiere: `users:WRITE`.
    """
    logger.info(f"Intento de creación de usuario '{user_in.nombre_usuario}' por '{current_user.nombre_usuario}'")
    try:
        user = usuario_service.create(db=db, obj_in=user_in)
        db.commit()
        db.refresh(user)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error inesperado creando usuario '{user_in.nombre_usuario}': {e}", exc_info=True)
        raise

    logger.info(f"Usuario '{user.nombre_usuario}' (ID: {user.id}) creado exitosamente por '{current_user.nombre_usuario}'.")
    return user


@router.get(
    "/me",
    response_model=Usuario,
    summary="Obtener perfil del usuario actual",
    response_description="Información del usuario autenticado."
)
def read_usuario_me(
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
) -> Any:
    """Obtiene la información del usuario que realiza la petición, con sus centros asignados."""
    return current_user


@router.get(
    "/",
    response_model=List[Usuario],
    summary="Listar todos los Usuarios",
    response_description="Una lista de usuarios."
)
def read_usuarios(
    db: Session = Depends(deps.get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    current_user: UsuarioModel = Depends(deps.PermissionChecker(Resource.USERS, PermissionLevel.READ)),
) -> Any:
    """
    Obtiene la lista de usuarios registrados.
    Requiere: `users:READ`.
    """
    logger.info(f"'{current_user.nombre_usuario}' listando usuarios.")
    return usuario_service.get_multi(db, skip=skip, limit=limit)


@router.get(
    "/{user_id}/centros",
    response_model=AsignacionCentrosResponse,
    summary="Centros asignados a un usuario",
)
def read_centros_usuario(
    user_id: PyUUID,
    db: Session = Depends(deps.get_db),
    current_user: UsuarioModel = Depends(deps.PermissionChecker(Resource.USERS, PermissionLevel.READ)),
) -> Any:
    """Requiere: `users:READ`."""
    usuario_service.get_or_404(db, id=user_id)
    centro_ids = asignacion_centro_service.get_assigned_centers(db, usuario_id=user_id)
    return AsignacionCentrosResponse(usuario_id=user_id, centro_ids=centro_ids)


@router.put(
    "/{user_id}/centros",
    response_model=AsignacionCentrosResponse,
    summary="Reemplazar los centros asignados a un usuario",
)
async def update_centros_usuario(
    user_id: PyUUID,
    asignacion_in: AsignacionCentros,
    db: Session = Depends(deps.get_db),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
    current_user: UsuarioModel = Depends(deps.PermissionChecker(Resource.CENTERS, PermissionLevel.ADMIN)),
) -> Any:
    """
    Reemplaza la lista de centros asignados y refresca el contexto vivo del
    usuario afectado: si su centro activo deja de estar asignado, se vuelve
    al centro por defecto o al primero.
    Requiere: `centers:ADMIN`.
    """
    logger.info(f"'{current_user.nombre_usuario}' asignando centros {asignacion_in.centro_ids} al usuario ID {user_id}")
    usuario = usuario_service.get_or_404(db, id=user_id)
    try:
        centro_ids = asignacion_centro_service.set_assigned_centers(
            db, usuario=usuario, centro_ids=asignacion_in.centro_ids
        )
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error inesperado asignando centros al usuario {user_id}: {e}", exc_info=True)
        raise

    await registry.refresh_user(user_id)
    return AsignacionCentrosResponse(usuario_id=user_id, centro_ids=centro_ids)
