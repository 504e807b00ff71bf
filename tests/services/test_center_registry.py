import asyncio
import threading
import uuid

import pytest
from sqlalchemy.orm import Session, sessionmaker

from app.core.session import SessionState
from app.core.storage import DatabaseKeyValueStore
from app.models import Centro, Usuario
from app.services.asignacion_centro import asignacion_centro_service
from app.services.center_registry import CenterContextRegistry
from app.services.centro import centro_service

pytestmark = pytest.mark.asyncio


def sesion_de(usuario: Usuario) -> SessionState:
    return SessionState.authenticated(usuario.id, usuario.rol)


async def test_visible_centers_are_active_assignments(
    db: Session, center_registry: CenterContextRegistry, test_operacion_fixture: Usuario,
    centro_b: Centro, centro_inactivo: Centro
):
    asignacion_centro_service.set_assigned_centers(
        db, usuario=test_operacion_fixture, centro_ids=[1, centro_inactivo.id]
    )
    db.commit()

    centros = await center_registry.load_visible_centers(str(test_operacion_fixture.id))
    assert [c.slug for c in centros] == ["centro-a"]


async def test_superadmin_sees_every_active_center(
    center_registry: CenterContextRegistry, test_superadmin_fixture: Usuario, centro_inactivo: Centro
):
    centros = await center_registry.load_visible_centers(str(test_superadmin_fixture.id))
    assert [c.slug for c in centros] == ["centro-a", "centro-b"]


async def test_unknown_or_inactive_user_sees_nothing(
    db: Session, center_registry: CenterContextRegistry, test_usuario_fixture: Usuario
):
    assert await center_registry.load_visible_centers(str(uuid.uuid4())) == []

    test_usuario_fixture.activo = False
    db.commit()
    assert await center_registry.load_visible_centers(str(test_usuario_fixture.id)) == []


async def test_ensure_initialized_creates_one_context_per_user(
    center_registry: CenterContextRegistry, test_usuario_fixture: Usuario
):
    context = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    again = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))

    assert context is again
    assert len(center_registry) == 1
    assert context.current_center.slug == "centro-a"


async def test_refresh_user_applies_new_assignments(
    db: Session, center_registry: CenterContextRegistry, test_usuario_fixture: Usuario
):
    context = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    await context.switch_center(context.find_by_slug("centro-b"))

    asignacion_centro_service.set_assigned_centers(db, usuario=test_usuario_fixture, centro_ids=[1])
    db.commit()
    seleccion = await center_registry.refresh_user(test_usuario_fixture.id)

    assert [c.slug for c in seleccion.centros_disponibles] == ["centro-a"]
    assert seleccion.centro_actual.slug == "centro-a"


async def test_refresh_all_picks_up_new_default(
    db: Session, center_registry: CenterContextRegistry, test_usuario_fixture: Usuario, centro_b: Centro
):
    context = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    centro_service.set_default(db, centro=centro_b)
    db.commit()

    await center_registry.refresh_all()

    assert next(c for c in context.available_centers if c.slug == "centro-b").es_default is True
    # El centro activo sigue siendo visible: no cambia
    assert context.current_center.slug == "centro-a"


async def test_refresh_user_without_live_context_is_noop(
    center_registry: CenterContextRegistry, test_usuario_fixture: Usuario
):
    assert await center_registry.refresh_user(test_usuario_fixture.id) is None


async def test_teardown_removes_context(center_registry: CenterContextRegistry, test_usuario_fixture: Usuario):
    context = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    center_registry.teardown(test_usuario_fixture.id)

    assert center_registry.get(test_usuario_fixture.id) is None
    assert context.initialized is False


async def test_default_store_persists_selection_in_database(
    session_factory: sessionmaker, test_usuario_fixture: Usuario
):
    registry = CenterContextRegistry(session_factory)
    context = await registry.ensure_initialized(sesion_de(test_usuario_fixture))
    await context.switch_center(context.find_by_slug("centro-b"))
    registry.teardown_all()

    store = DatabaseKeyValueStore(session_factory, test_usuario_fixture.id)
    assert '"slug":"centro-b"' in store.get(context.storage_key)

    nuevo = await CenterContextRegistry(session_factory).ensure_initialized(sesion_de(test_usuario_fixture))
    assert nuevo.current_center.slug == "centro-b"


async def test_ensure_initialized_retries_after_slow_center_load(
    session_factory: sessionmaker, test_usuario_fixture: Usuario
):
    registry = CenterContextRegistry(session_factory, timeout=0.05)
    cargar_desde_bd = registry.load_visible_centers
    llamadas = []

    async def cargar_lento_la_primera_vez(user_id: str):
        llamadas.append(user_id)
        if len(llamadas) == 1:
            await asyncio.sleep(10)
        return await cargar_desde_bd(user_id)

    registry.load_visible_centers = cargar_lento_la_primera_vez
    try:
        primero = await registry.ensure_initialized(sesion_de(test_usuario_fixture))
        assert primero.available_centers == []

        context = await registry.ensure_initialized(sesion_de(test_usuario_fixture))
        assert len(llamadas) == 2
        assert context.initialized is True
        assert context.current_center.slug == "centro-a"
    finally:
        registry.teardown_all()


async def test_database_store_sessions_are_opened_off_the_event_loop(
    session_factory: sessionmaker, test_usuario_fixture: Usuario
):
    hilo_del_bucle = threading.get_ident()
    hilos = []

    def fabrica_que_registra_hilo() -> Session:
        hilos.append(threading.get_ident())
        return session_factory()

    registry = CenterContextRegistry(fabrica_que_registra_hilo)
    try:
        context = await registry.ensure_initialized(sesion_de(test_usuario_fixture))
        hilos.clear()
        await context.switch_center(context.find_by_slug("centro-b"))

        assert hilos
        assert hilo_del_bucle not in hilos
    finally:
        registry.teardown_all()


async def test_sessions_of_the_same_user_share_one_context(
    center_registry: CenterContextRegistry, test_usuario_fixture: Usuario
):
    """Dos logins del mismo usuario ven el mismo centro activo; el logout cierra ambos."""
    escritorio = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    movil = await center_registry.ensure_initialized(sesion_de(test_usuario_fixture))
    await escritorio.switch_center(escritorio.find_by_slug("centro-b"))

    assert movil.current_center.slug == "centro-b"

    center_registry.teardown(test_usuario_fixture.id)
    assert movil.initialized is False
