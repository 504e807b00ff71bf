from .centro import Centro
from .preferencia_usuario import PreferenciaUsuario
from .usuario import Usuario
from .usuario_centro import UsuarioCentro


__all__ = [
    "Centro",
    "PreferenciaUsuario",
    "Usuario",
    "UsuarioCentro",
]
