import logging
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Union

from app.core.session import SessionState

logger = logging.getLogger(__name__)


# =================================================================
# Roles del Sistema
# =================================================================
# Un rol por usuario. Ordenados de menor a mayor autoridad.
# =================================================================

class Role(str, Enum):
    CONSULTA = "consulta"
    USUARIO = "usuario"
    OPERACION = "operacion"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


# Nombres heredados del panel anterior
ROLE_ALIASES = {
    "guest": Role.CONSULTA,
    "viewer": Role.CONSULTA,
    "invitado": Role.CONSULTA,
}

ROLE_LABELS = {
    Role.CONSULTA: "Consulta",
    Role.USUARIO: "Usuario",
    Role.OPERACION: "Operación",
    Role.ADMIN: "Administrador",
    Role.SUPERADMIN: "Superadministrador",
}


# =================================================================
# Recursos protegidos
# =================================================================

class Resource(str, Enum):
    USERS = "users"
    ROLES = "roles"
    FICHAS = "fichas"
    DOCUMENTS = "documents"
    HISTORY = "history"
    PROJECTS = "projects"
    DASHBOARD = "dashboard"
    BUDGET = "budget"
    FINANCIAL_TRACKING = "financial-tracking"
    SETTINGS = "settings"
    REPORTS = "reports"
    EXCEL_IMPORT = "excel-import"
    CENTERS = "centers"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Resource"]:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            if normalized == "forms":
                return cls.FICHAS
            for member in cls:
                if member.value == normalized:
                    return member
        return None


WILDCARD_RESOURCE = "*"


# =================================================================
# Niveles de permiso
# =================================================================
# Orden total: un nivel superior implica todos los inferiores.
# =================================================================

class PermissionLevel(IntEnum):
    NONE = 0
    READ = 1
    WRITE = 2
    EDIT = 2
    ADMIN = 3


class Permission(NamedTuple):
    resource: str
    level: PermissionLevel


_R = Resource
_L = PermissionLevel

# El rol superadmin no aparece: es el techo implícito de cada columna.
PERMISSION_MATRIX: Mapping[Role, Mapping[Resource, PermissionLevel]] = MappingProxyType({
    Role.CONSULTA: MappingProxyType({
        _R.DASHBOARD: _L.READ,
        _R.FICHAS: _L.READ,
        _R.PROJECTS: _L.READ,
        _R.REPORTS: _L.READ,
    }),
    Role.USUARIO: MappingProxyType({
        _R.DASHBOARD: _L.READ,
        _R.FICHAS: _L.READ,
        _R.DOCUMENTS: _L.READ,
        _R.PROJECTS: _L.READ,
        _R.HISTORY: _L.READ,
        _R.REPORTS: _L.READ,
        _R.BUDGET: _L.READ,
    }),
    Role.OPERACION: MappingProxyType({
        _R.DASHBOARD: _L.READ,
        _R.USERS: _L.READ,
        _R.FICHAS: _L.WRITE,
        _R.DOCUMENTS: _L.WRITE,
        _R.PROJECTS: _L.WRITE,
        _R.HISTORY: _L.READ,
        _R.BUDGET: _L.READ,
        _R.FINANCIAL_TRACKING: _L.WRITE,
        _R.REPORTS: _L.WRITE,
        _R.EXCEL_IMPORT: _L.WRITE,
        _R.CENTERS: _L.READ,
    }),
    Role.ADMIN: MappingProxyType({
        _R.DASHBOARD: _L.ADMIN,
        _R.USERS: _L.ADMIN,
        _R.ROLES: _L.ADMIN,
        _R.FICHAS: _L.ADMIN,
        _R.DOCUMENTS: _L.ADMIN,
        _R.HISTORY: _L.ADMIN,
        _R.PROJECTS: _L.ADMIN,
        _R.BUDGET: _L.ADMIN,
        _R.FINANCIAL_TRACKING: _L.ADMIN,
        _R.SETTINGS: _L.ADMIN,
        _R.REPORTS: _L.ADMIN,
        _R.EXCEL_IMPORT: _L.ADMIN,
        _R.CENTERS: _L.WRITE,
    }),
})


# =================================================================
# Normalización de entradas
# =================================================================

def parse_role(value: Any) -> Optional[Role]:
    """
    Convierte un valor de rol a `Role`. Devuelve None si no se reconoce.
    Los valores desconocidos se registran y no obtienen ningún permiso.
    """
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        logger.warning(f"Rol con tipo inesperado '{type(value).__name__}'; se tratará sin permisos.")
        return None
    normalized = value.strip().lower()
    if normalized in ROLE_ALIASES:
        return ROLE_ALIASES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        logger.warning(f"Rol de usuario desconocido '{value}'; se tratará sin permisos.")
        return None


def parse_resource(value: Any) -> Optional[Resource]:
    if isinstance(value, Resource):
        return value
    try:
        return Resource(value)
    except ValueError:
        return None


def parse_level(value: Any) -> Optional[PermissionLevel]:
    if isinstance(value, PermissionLevel):
        return value
    if isinstance(value, str):
        return PermissionLevel.__members__.get(value.strip().upper())
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return PermissionLevel(value)
        except ValueError:
            return None
    return None


def _raw_role_of(subject: Any) -> Any:
    if subject is None or isinstance(subject, (str, Role)):
        return subject
    if isinstance(subject, Mapping):
        return subject.get("role", subject.get("rol"))
    for attr in ("role", "rol"):
        if hasattr(subject, attr):
            return getattr(subject, attr)
    return None


# =================================================================
# Resolución de permisos
# =================================================================

def effective_level(role: Union[Role, str, None], resource: Union[Resource, str]) -> PermissionLevel:
    """Nivel máximo concedido a `role` sobre `resource`. Nunca lanza excepciones."""
    parsed_role = parse_role(role) if role is not None else Role.CONSULTA
    if parsed_role is Role.SUPERADMIN:
        return PermissionLevel.ADMIN
    parsed_resource = parse_resource(resource)
    if parsed_role is None or parsed_resource is None:
        return PermissionLevel.NONE
    return PERMISSION_MATRIX.get(parsed_role, {}).get(parsed_resource, PermissionLevel.NONE)


def has_permission(subject: Any, resource: Union[Resource, str], required_level: Union[PermissionLevel, str, int]) -> bool:
    """
    Indica si el rol de `subject` alcanza `required_level` sobre `resource`.

    `subject` puede ser un rol, un texto, un mapeo o un objeto con atributo
    `role`/`rol`. Un rol ausente se trata como `consulta`; un rol desconocido,
    un recurso desconocido o un nivel desconocido resuelven a denegación.
    """
    level = parse_level(required_level)
    if level is None:
        return False
    return effective_level(_raw_role_of(subject), resource) >= level


def has_admin_access(role: Any) -> bool:
    return parse_role(role) in (Role.ADMIN, Role.SUPERADMIN)


def is_superadmin(role: Any) -> bool:
    return parse_role(role) is Role.SUPERADMIN


def derived_permissions(role: Any) -> List[Permission]:
    """Lista de (recurso, nivel máximo) que posee el rol, omitiendo los NONE."""
    permissions = []
    for resource in Resource:
        level = effective_level(role, resource)
        if level > PermissionLevel.NONE:
            permissions.append(Permission(resource.value, level))
    return permissions


def permission_list_allows(permissions: Iterable[Permission], required: Permission) -> bool:
    """
    Verifica un permiso contra una lista explícita de concesiones.
    Un comodín `*` cubre cualquier recurso y ADMIN sobre un recurso cubre todos sus niveles.
    """
    required_level = parse_level(required.level)
    if required_level is None:
        return False
    for granted in permissions:
        granted_level = parse_level(granted.level)
        if granted_level is None:
            continue
        if granted.resource == WILDCARD_RESOURCE and granted_level == PermissionLevel.ADMIN:
            return True
        if granted.resource in (required.resource, WILDCARD_RESOURCE) and granted_level >= required_level:
            return True
    return False


class PermissionQuery(NamedTuple):
    has_permission: bool
    is_loading: bool


def permission_query(session: SessionState, resource: Union[Resource, str], required_level: Union[PermissionLevel, str, int]) -> PermissionQuery:
    """Consulta ligada a la sesión. Mientras la sesión está pendiente, siempre deniega."""
    if session.is_pending:
        return PermissionQuery(has_permission=False, is_loading=True)
    if not session.is_authenticated:
        return PermissionQuery(has_permission=False, is_loading=False)
    return PermissionQuery(
        has_permission=has_permission({"role": session.role}, resource, required_level),
        is_loading=False,
    )
