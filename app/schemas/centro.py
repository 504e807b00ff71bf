from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.navigation import NavigationAction


# ===============================================================
# Schemas para Centro
# ===============================================================
class CentroBase(BaseModel):
    """Campos base que comparte un centro."""
    nombre: str = Field(..., min_length=2, max_length=150, description="Nombre visible del centro")
    descripcion: Optional[str] = Field(None, description="Descripción opcional del centro")

class CentroCreate(CentroBase):
    """Si no se indica `slug`, se genera a partir del nombre."""
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    es_default: bool = False
    activo: bool = True

class CentroUpdate(BaseModel):
    """Actualización parcial. El slug no se modifica para no romper rutas existentes."""
    nombre: Optional[str] = Field(None, min_length=2, max_length=150)
    descripcion: Optional[str] = None
    activo: Optional[bool] = None

class Centro(CentroBase):
    """Schema de respuesta y representación del centro dentro del contexto de sesión."""
    id: int
    slug: str
    es_default: bool = False
    activo: bool = True

    model_config = ConfigDict(from_attributes=True)


# ===============================================================
# Schemas para la selección de centro de la sesión
# ===============================================================
class SeleccionCentro(BaseModel):
    centro_actual: Optional[Centro] = None
    centros_disponibles: List[Centro] = []
    cargando: bool = True

class SeleccionCentroUpdate(BaseModel):
    centro_id: int = Field(..., description="ID del centro a seleccionar")
    location: Optional[str] = Field(None, description="Ruta actual del cliente")

class ReconciliacionRuta(BaseModel):
    location: str = Field(..., description="Ruta a la que navegó el cliente")

class SeleccionCentroResponse(BaseModel):
    seleccion: SeleccionCentro
    navegacion: Optional[NavigationAction] = None
