import logging
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api import deps
from app.core.center_context import CenterContext
from app.core.exceptions import CenterNotFoundError, DuplicateSlugError
from app.core.navigation import RecordingNavigator
from app.core.permissions import PermissionLevel, Resource, is_superadmin
from app.core.session import SessionState
from app.models import Usuario as UsuarioModel
from app.schemas.centro import (
    Centro,
    CentroCreate,
    CentroUpdate,
    ReconciliacionRuta,
    SeleccionCentro,
    SeleccionCentroResponse,
    SeleccionCentroUpdate,
)
from app.services.asignacion_centro import asignacion_centro_service
from app.services.center_registry import CenterContextRegistry
from app.services.centro import centro_service

logger = logging.getLogger(__name__)
router = APIRouter()

require_centers_admin = deps.PermissionChecker(Resource.CENTERS, PermissionLevel.ADMIN)


async def _context_for(current_user: UsuarioModel, registry: CenterContextRegistry) -> CenterContext:
    session = SessionState.authenticated(current_user.id, current_user.rol)
    return await registry.ensure_initialized(session)


# --- Selección de centro de la sesión ---
@router.get(
    "/seleccion",
    response_model=SeleccionCentro,
    summary="Centro activo y centros disponibles de la sesión",
)
async def read_seleccion(
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
) -> Any:
    """Inicializa el contexto de centro en la primera consulta de la sesión."""
    context = await _context_for(current_user, registry)
    return context.selection


@router.put(
    "/seleccion",
    response_model=SeleccionCentroResponse,
    summary="Cambiar el centro activo",
)
async def update_seleccion(
    seleccion_in: SeleccionCentroUpdate,
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
) -> Any:
    """
    Cambia el centro activo. Si `location` es una ruta ligada a un centro,
    la respuesta incluye la navegación `push` a la ruta con el nuevo slug.
    """
    context = await _context_for(current_user, registry)
    target = context.find_by_id(seleccion_in.centro_id)
    if target is None:
        raise CenterNotFoundError(seleccion_in.centro_id)

    navigator = RecordingNavigator(seleccion_in.location or "/")
    async with context.lock:
        with context.bind_navigator(navigator):
            seleccion = await context.switch_center(target)
    return SeleccionCentroResponse(seleccion=seleccion, navegacion=navigator.last_action)


@router.post(
    "/seleccion/reconciliar",
    response_model=SeleccionCentroResponse,
    summary="Alinear el centro activo con la ruta del cliente",
)
async def reconciliar_seleccion(
    ruta_in: ReconciliacionRuta,
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
) -> Any:
    """
    Con un slug conocido el centro activo pasa a ser el de la ruta, sin navegación.
    Con un slug desconocido la respuesta incluye un `replace` al dashboard del primer centro.
    """
    context = await _context_for(current_user, registry)
    navigator = RecordingNavigator(ruta_in.location)
    async with context.lock:
        with context.bind_navigator(navigator):
            seleccion = await context.reconcile_route(ruta_in.location)
    return SeleccionCentroResponse(seleccion=seleccion, navegacion=navigator.last_action)


# --- Catálogo de centros ---
@router.get(
    "/",
    response_model=List[Centro],
    summary="Centros visibles para el usuario actual",
)
def read_centros(
    db: Session = Depends(deps.get_db),
    current_user: UsuarioModel = Depends(deps.get_current_active_user),
) -> Any:
    return centro_service.get_visible_for_user(db, usuario=current_user)


@router.get(
    "/todos",
    response_model=List[Centro],
    summary="Todos los centros, activos o no",
)
def read_todos_centros(
    db: Session = Depends(deps.get_db),
    current_user: UsuarioModel = Depends(require_centers_admin),
) -> Any:
    """Requiere: `centers:ADMIN`."""
    return centro_service.get_multi(db, limit=1000)


@router.post(
    "/",
    response_model=Centro,
    status_code=status.HTTP_201_CREATED,
    summary="Crear un nuevo Centro",
)
async def create_centro(
    centro_in: CentroCreate,
    db: Session = Depends(deps.get_db),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
    current_user: UsuarioModel = Depends(require_centers_admin),
) -> Any:
    """
    Crea un centro y lo agrega a la lista disponible del contexto del creador,
    sin seleccionarlo. El creador queda asignado al centro.
    Requiere: `centers:ADMIN`.
    """
    logger.info(f"'{current_user.nombre_usuario}' creando centro '{centro_in.nombre}'.")
    try:
        centro = centro_service.create(db, obj_in=centro_in)
        db.flush()
        if not is_superadmin(current_user.rol):
            asignacion_centro_service.set_assigned_centers(
                db, usuario=current_user, centro_ids=[*current_user.centro_ids, centro.id]
            )
        db.commit()
        db.refresh(centro)
    except (HTTPException, DuplicateSlugError):
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error inesperado creando centro '{centro_in.nombre}': {e}", exc_info=True)
        raise

    nuevo = Centro.model_validate(centro)
    context = registry.get(current_user.id)
    if context is not None and context.initialized and nuevo.activo:
        async with context.lock:
            context.add_center(nuevo)
    if nuevo.es_default:
        await registry.refresh_all()
    logger.info(f"Centro '{nuevo.slug}' (ID: {nuevo.id}) creado por '{current_user.nombre_usuario}'.")
    return nuevo


@router.patch(
    "/{centro_id}",
    response_model=Centro,
    summary="Actualizar un Centro",
)
async def update_centro(
    centro_id: int,
    centro_in: CentroUpdate,
    db: Session = Depends(deps.get_db),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
    current_user: UsuarioModel = Depends(require_centers_admin),
) -> Any:
    """
    Actualiza nombre, descripción o estado. Desactivar un centro lo retira de
    los contextos vivos. Requiere: `centers:ADMIN`.
    """
    centro = centro_service.get_or_404(db, id=centro_id)
    try:
        centro = centro_service.update(db, db_obj=centro, obj_in=centro_in)
        db.commit()
        db.refresh(centro)
    except Exception as e:
        db.rollback()
        logger.error(f"Error inesperado actualizando centro {centro_id}: {e}", exc_info=True)
        raise

    await registry.refresh_all()
    logger.info(f"Centro '{centro.slug}' actualizado por '{current_user.nombre_usuario}'.")
    return centro


@router.put(
    "/{centro_id}/predeterminado",
    response_model=Centro,
    summary="Marcar un Centro como predeterminado",
)
async def set_centro_predeterminado(
    centro_id: int,
    db: Session = Depends(deps.get_db),
    registry: CenterContextRegistry = Depends(deps.get_center_registry),
    current_user: UsuarioModel = Depends(require_centers_admin),
) -> Any:
    """Solo un centro puede ser el predeterminado. Requiere: `centers:ADMIN`."""
    centro = centro_service.get_or_404(db, id=centro_id)
    try:
        centro = centro_service.set_default(db, centro=centro)
        db.commit()
        db.refresh(centro)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error inesperado marcando centro {centro_id} como predeterminado: {e}", exc_info=True)
        raise

    await registry.refresh_all()
    logger.info(f"Centro '{centro.slug}' es ahora el predeterminado (por '{current_user.nombre_usuario}').")
    return centro
