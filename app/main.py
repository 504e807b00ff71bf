import logging
import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.core.config import settings
from app.api.routes import api_router
from app.core.logging_config import setup_logging
from app.core.error_handlers import register_error_handlers
from app.db.init_data import create_db_and_tables, inicializar_datos
from app.db.session import SessionLocal
from app.services.center_registry import CenterContextRegistry

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Código de inicio
    logger.info("*"*50)
    logger.info(f"Iniciando Aplicación: {settings.PROJECT_NAME}")
    logger.info("*"*50)

    create_db_and_tables()
    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            inicializar_datos(db)
            logger.info("Datos de demostración cargados.")
        finally:
            db.close()

    # Los tests pueden instalar su propio registro antes del arranque
    if getattr(app.state, "center_contexts", None) is None:
        app.state.center_contexts = CenterContextRegistry(SessionLocal)

    PORT = os.getenv("PORT", "8000")
    BASE_URL = f"http://127.0.0.1:{PORT}"
    logger.info(f"API Docs (Swagger UI): {BASE_URL}{settings.API_V1_STR}/docs")
    logger.info(f"API Docs (ReDoc):      {BASE_URL}{settings.API_V1_STR}/redoc")
    logger.info("*"*50)

    yield # La aplicación se ejecuta

    # Código de apagado
    app.state.center_contexts.teardown_all()
    logger.info("*"*50)
    logger.info(f"Deteniendo Aplicación: {settings.PROJECT_NAME}")
    logger.info("*"*50)

# --- Crear Instancia de FastAPI ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API de permisos por rol y selección de centro para el programa de extensión universitaria.",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan
)

# --- Configurar CORS ---
if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"Configurando CORS para los orígenes: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).strip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    logger.warning("CORS no configurado (BACKEND_CORS_ORIGINS no definido en .env)")

# --- Registrar Manejadores de Errores ---
register_error_handlers(app)

# --- Incluir Routers de la API ---
app.include_router(api_router, prefix=settings.API_V1_STR)
logger.info(f"Routers de API incluidos bajo el prefijo: {settings.API_V1_STR}")

# --- Endpoint Raíz Básico ---
@app.get("/", tags=["Root"], include_in_schema=False)
def read_root() -> dict:
    return {"status": "ok", "message": f"Bienvenido a {settings.PROJECT_NAME}"}
