from typing import Dict, List, Optional

from pydantic import BaseModel


class VerificacionPermiso(BaseModel):
    """Resultado de consultar un permiso con la sesión actual."""
    recurso: str
    nivel: str
    has_permission: bool
    is_loading: bool = False
    redirect_to: Optional[str] = None

class PermisoDerivado(BaseModel):
    recurso: str
    nivel: str

class PermisosUsuario(BaseModel):
    rol: Optional[str] = None
    etiqueta_rol: Optional[str] = None
    es_admin: bool = False
    es_superadmin: bool = False
    permisos: List[PermisoDerivado] = []

class MatrizPermisos(BaseModel):
    """Nivel efectivo por rol y recurso, incluyendo el techo de superadmin."""
    roles: List[str]
    recursos: List[str]
    matriz: Dict[str, Dict[str, str]]
