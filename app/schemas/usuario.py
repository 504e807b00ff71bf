import uuid
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from datetime import datetime
from typing import Optional, List

from app.core.permissions import Role


# ===============================================================
# Schemas para Usuario
# ===============================================================
class UsuarioBase(BaseModel):
    """Campos base que comparte un usuario."""
    nombre_usuario: str = Field(..., min_length=3, max_length=50, description="Nombre de usuario único")
    email: Optional[EmailStr] = Field(None, description="Correo electrónico del usuario")
    nombre_completo: Optional[str] = Field(None, max_length=200)

class UsuarioCreate(UsuarioBase):
    """Schema para crear un nuevo usuario. Requiere contraseña y rol."""
    password: str = Field(..., min_length=8, description="Contraseña para el nuevo usuario")
    rol: Role = Field(Role.CONSULTA, description="Rol del usuario")
    centro_ids: List[int] = Field(default_factory=list, description="Centros asignados al usuario")

class Usuario(UsuarioBase):
    """
    Schema para devolver al cliente. Excluye la contraseña e incluye
    los IDs de los centros asignados.
    """
    id: uuid.UUID
    rol: str
    activo: bool
    ultimo_login: Optional[datetime] = None
    created_at: datetime
    centro_ids: List[int] = []

    model_config = ConfigDict(from_attributes=True)


# ===============================================================
# Schemas para asignación de centros
# ===============================================================
class AsignacionCentros(BaseModel):
    centro_ids: List[int] = Field(..., description="Lista completa de centros asignados")

class AsignacionCentrosResponse(BaseModel):
    usuario_id: uuid.UUID
    centro_ids: List[int]
