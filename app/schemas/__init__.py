from .common import Msg

# Token & Auth
from .token import Token, TokenPayload

# Usuario
from .usuario import Usuario, UsuarioCreate, AsignacionCentros, AsignacionCentrosResponse

# Centros y selección de sesión
from .centro import (
    Centro,
    CentroCreate,
    CentroUpdate,
    SeleccionCentro,
    SeleccionCentroUpdate,
    ReconciliacionRuta,
    SeleccionCentroResponse,
)

# Permisos
from .permiso import VerificacionPermiso, PermisoDerivado, PermisosUsuario, MatrizPermisos

__all__ = [
    "Msg", "Token", "TokenPayload",
    "Usuario", "UsuarioCreate", "AsignacionCentros", "AsignacionCentrosResponse",
    "Centro", "CentroCreate", "CentroUpdate", "SeleccionCentro", "SeleccionCentroUpdate",
    "ReconciliacionRuta", "SeleccionCentroResponse",
    "VerificacionPermiso", "PermisoDerivado", "PermisosUsuario", "MatrizPermisos",
]
