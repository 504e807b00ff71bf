from fastapi import APIRouter

# Importar los routers individuales de cada módulo
from . import auth, usuarios, permisos, centros

# Crear el router principal de la API
api_router = APIRouter()

# Incluir cada router individual con su prefijo y etiquetas
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(usuarios.router, prefix="/usuarios", tags=["Usuarios"])
api_router.include_router(permisos.router, prefix="/permisos", tags=["Permisos"])
api_router.include_router(centros.router, prefix="/centros", tags=["Centros"])
