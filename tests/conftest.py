import pytest
import pytest_asyncio
from typing import AsyncGenerator, Generator, Dict, List
import json
import logging

import httpx
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.models import Usuario, Centro  # noqa
from app.db.base import Base

from app.main import app as fastapi_app

from app.core.config import settings
from app.api.deps import get_db # Usado para override

from app.core.security import get_password_hash
from app.core.storage import MemoryKeyValueStore
from app.services.center_registry import CenterContextRegistry

# Configuración básica de logging para los tests
logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] [%(name)s] [%(funcName)s] %(message)s')
logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)

# Base de datos SQLite en memoria compartida por todas las sesiones del test
TEST_SQLALCHEMY_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="session")
def app() -> FastAPI:
    """
    Fixture que proporciona la instancia de la aplicación FastAPI para los tests.
    """
    return fastapi_app

@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """Motor nuevo por test, con las tablas creadas desde el metadata."""
    test_engine = create_engine(
        TEST_SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(test_engine)
        test_engine.dispose()

@pytest.fixture(scope="function")
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="function")
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Fixture para obtener una sesión de BD por cada test."""
    db_session = session_factory()
    logger.debug(f"DB Session {id(db_session)} iniciada para test.")
    try:
        yield db_session
    finally:
        db_session.close()
        logger.debug(f"DB Session {id(db_session)} cerrada.")

@pytest.fixture(scope="function")
def preference_stores() -> Dict[str, MemoryKeyValueStore]:
    """Almacenes de preferencias en memoria, uno por usuario (clave: ID en texto)."""
    return {}

@pytest.fixture(scope="function")
def center_registry(session_factory: sessionmaker, preference_stores: Dict[str, MemoryKeyValueStore]) -> Generator[CenterContextRegistry, None, None]:
    def store_factory(usuario_id) -> MemoryKeyValueStore:
        return preference_stores.setdefault(str(usuario_id), MemoryKeyValueStore())

    registry = CenterContextRegistry(session_factory, store_factory=store_factory)
    try:
        yield registry
    finally:
        registry.teardown_all()

@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI, db: Session, center_registry: CenterContextRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Fixture para obtener un cliente HTTP asíncrono para interactuar con la app."""
    def override_get_db_for_test():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db_for_test
    # ASGITransport no ejecuta el lifespan: el registro se instala aquí
    app.state.center_contexts = center_registry

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.state.center_contexts = None
        logger.debug("AsyncClient fixtures limpiados.")


async def get_auth_token(client: AsyncClient, username: str, password: str) -> str | None:
    """Función helper para obtener un token de autenticación."""
    login_data = {"username": username, "password": password}
    url = f"{settings.API_V1_STR}/auth/login/access-token"
    logger.info(f"Solicitando token para usuario '{username}' en {url}")
    try:
        response = await client.post(url, data=login_data)
        response.raise_for_status()
        access_token = response.json().get("access_token")
        if access_token:
            return access_token
        logger.error(f"No se encontró 'access_token' en la respuesta para '{username}'.")
        return None
    except httpx.HTTPStatusError as e:
        try:
            error_detail = e.response.json()
        except json.JSONDecodeError:
            error_detail = e.response.text
        logger.error(f"FALLO al obtener token para '{username}': Status={e.response.status_code}. Detail: {error_detail}")
        return None

# Contraseñas de prueba
TEST_SUPERADMIN_PASSWORD = "SuperAdminPass123!"
TEST_ADMIN_PASSWORD = "AdminPass123!"
TEST_OPERACION_PASSWORD = "OperacionPass123!"
TEST_USUARIO_PASSWORD = "UsuarioPass123!"
TEST_CONSULTA_PASSWORD = "ConsultaPass123!"
TEST_LEGACY_PASSWORD = "LegacyPass123!"


def _ensure_centro(db: Session, centro_id: int, slug: str, nombre: str, es_default: bool = False, activo: bool = True) -> Centro:
    centro = db.get(Centro, centro_id)
    if not centro:
        centro = Centro(id=centro_id, nombre=nombre, slug=slug, es_default=es_default, activo=activo)
        db.add(centro)
        db.commit()
        db.refresh(centro)
    return centro

def _ensure_user(db: Session, username: str, password: str, rol: str, centros: List[Centro], activo: bool = True) -> Usuario:
    logger.debug(f"Asegurando usuario '{username}' con rol '{rol}'")
    user = db.query(Usuario).filter(Usuario.nombre_usuario == username).first()
    if not user:
        user = Usuario(
            nombre_usuario=username,
            email=f"{username}@fixture.example.com",
            hashed_password=get_password_hash(password),
            rol=rol,
            activo=activo,
        )
        user.centros = list(centros)
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


@pytest.fixture(scope="function")
def centro_a(db: Session) -> Centro:
    return _ensure_centro(db, 1, "centro-a", "Centro A", es_default=True)

@pytest.fixture(scope="function")
def centro_b(db: Session) -> Centro:
    return _ensure_centro(db, 2, "centro-b", "Centro B")

@pytest.fixture(scope="function")
def centro_inactivo(db: Session) -> Centro:
    return _ensure_centro(db, 3, "centro-inactivo", "Centro Inactivo", activo=False)

@pytest.fixture(scope="function")
def test_superadmin_fixture(db: Session, centro_a: Centro, centro_b: Centro) -> Usuario:
    return _ensure_user(db, "test_superadmin", TEST_SUPERADMIN_PASSWORD, "superadmin", [])

@pytest.fixture(scope="function")
def test_admin_fixture(db: Session, centro_a: Centro, centro_b: Centro) -> Usuario:
    return _ensure_user(db, "test_admin", TEST_ADMIN_PASSWORD, "admin", [centro_a, centro_b])

@pytest.fixture(scope="function")
def test_operacion_fixture(db: Session, centro_a: Centro) -> Usuario:
    return _ensure_user(db, "test_operacion", TEST_OPERACION_PASSWORD, "operacion", [centro_a])

@pytest.fixture(scope="function")
def test_usuario_fixture(db: Session, centro_a: Centro, centro_b: Centro) -> Usuario:
    return _ensure_user(db, "test_usuario", TEST_USUARIO_PASSWORD, "usuario", [centro_a, centro_b])

@pytest.fixture(scope="function")
def test_consulta_fixture(db: Session, centro_a: Centro) -> Usuario:
    return _ensure_user(db, "test_consulta", TEST_CONSULTA_PASSWORD, "consulta", [centro_a])

@pytest.fixture(scope="function")
def test_rol_desconocido_fixture(db: Session, centro_a: Centro) -> Usuario:
    """Usuario con un rol heredado que no existe en la matriz."""
    return _ensure_user(db, "test_legacy", TEST_LEGACY_PASSWORD, "editor", [centro_a])


async def _token_or_fail(client: AsyncClient, user: Usuario, password: str) -> str:
    token = await get_auth_token(client, user.nombre_usuario, password)
    if not token:
        pytest.fail(f"No se pudo obtener token para '{user.nombre_usuario}'.")
    return token

@pytest_asyncio.fixture(scope="function")
async def auth_token_superadmin(client: AsyncClient, test_superadmin_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_superadmin_fixture, TEST_SUPERADMIN_PASSWORD)

@pytest_asyncio.fixture(scope="function")
async def auth_token_admin(client: AsyncClient, test_admin_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_admin_fixture, TEST_ADMIN_PASSWORD)

@pytest_asyncio.fixture(scope="function")
async def auth_token_operacion(client: AsyncClient, test_operacion_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_operacion_fixture, TEST_OPERACION_PASSWORD)

@pytest_asyncio.fixture(scope="function")
async def auth_token_usuario(client: AsyncClient, test_usuario_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_usuario_fixture, TEST_USUARIO_PASSWORD)

@pytest_asyncio.fixture(scope="function")
async def auth_token_consulta(client: AsyncClient, test_consulta_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_consulta_fixture, TEST_CONSULTA_PASSWORD)

@pytest_asyncio.fixture(scope="function")
async def auth_token_rol_desconocido(client: AsyncClient, test_rol_desconocido_fixture: Usuario) -> str:
    return await _token_or_fail(client, test_rol_desconocido_fixture, TEST_LEGACY_PASSWORD)
