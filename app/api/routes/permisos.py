import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from app.api import deps
from app.core.config import settings
from app.core.permissions import (
    PermissionLevel,
    Resource,
    Role,
    ROLE_LABELS,
    derived_permissions,
    effective_level,
    has_admin_access,
    is_superadmin,
    parse_role,
    permission_query,
)
from app.core.session import SessionState
from app.models import Usuario as UsuarioModel
from app.schemas.permiso import MatrizPermisos, PermisoDerivado, PermisosUsuario, VerificacionPermiso

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/verificar",
    response_model=VerificacionPermiso,
    summary="Verifica un permiso para la sesión actual",
)
def verificar_permiso(
    recurso: str = Query(..., description="Recurso protegido, p. ej. 'fichas'"),
    nivel: str = Query("READ", description="Nivel requerido: READ, WRITE/EDIT o ADMIN"),
    session: SessionState = Depends(deps.get_session_state),
) -> Any:
    """
    Nunca falla por un recurso o nivel desconocido: la respuesta es una denegación.
    Sin sesión válida el resultado también es una denegación.
    """
    query = permission_query(session, recurso, nivel)
    redirect_to = None
    if not query.has_permission and not query.is_loading:
        redirect_to = settings.DEFAULT_REDIRECT_PATH
    logger.debug(f"Verificación '{recurso}:{nivel}' para usuario {session.user_id}: {query.has_permission}")
    return VerificacionPermiso(
        recurso=recurso,
        nivel=nivel.upper(),
        has_permission=query.has_permission,
        is_loading=query.is_loading,
        redirect_to=redirect_to,
    )


@router.get(
    "/me",
    response_model=PermisosUsuario,
    summary="Permisos derivados del rol del usuario actual",
)
def read_permisos_me(
    session: SessionState = Depends(deps.get_session_state),
) -> Any:
    if not session.is_authenticated:
        return PermisosUsuario()
    role = parse_role(session.role)
    return PermisosUsuario(
        rol=session.role,
        etiqueta_rol=ROLE_LABELS.get(role) if role else None,
        es_admin=has_admin_access(session.role),
        es_superadmin=is_superadmin(session.role),
        permisos=[
            PermisoDerivado(recurso=p.resource, nivel=p.level.name)
            for p in derived_permissions(session.role)
        ],
    )


@router.get(
    "/matriz",
    response_model=MatrizPermisos,
    summary="Matriz efectiva de permisos por rol",
)
def read_matriz(
    current_user: UsuarioModel = Depends(deps.PermissionChecker(Resource.ROLES, PermissionLevel.READ)),
) -> Any:
    """Requiere: `roles:READ`."""
    logger.info(f"'{current_user.nombre_usuario}' consultando la matriz de permisos.")
    return MatrizPermisos(
        roles=[role.value for role in Role],
        recursos=[resource.value for resource in Resource],
        matriz={
            role.value: {resource.value: effective_level(role, resource).name for resource in Resource}
            for role in Role
        },
    )
