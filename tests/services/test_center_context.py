import asyncio
import threading
from typing import List, Optional

import pytest

from app.core.center_context import CenterContext
from app.core.config import settings
from app.core.exceptions import CenterNotFoundError, DuplicateSlugError, StorageUnavailableError
from app.core.navigation import PUSH, REPLACE, RecordingNavigator
from app.core.session import SessionState
from app.core.storage import MemoryKeyValueStore
from app.schemas.centro import Centro, SeleccionCentro

pytestmark = pytest.mark.asyncio

KEY = settings.SELECTED_CENTER_STORAGE_KEY
CENTRO_A = Centro(id=1, nombre="Centro A", slug="a", es_default=True)
CENTRO_B = Centro(id=2, nombre="Centro B", slug="b")
CENTRO_C = Centro(id=3, nombre="Centro C", slug="c")
SESION = SessionState.authenticated("7a1c2c1e-0000-4000-8000-000000000001", "usuario")


def fuente(centros: List[Centro], demora: float = 0):
    async def cargar(user_id: str) -> List[Centro]:
        if demora:
            await asyncio.sleep(demora)
        return list(centros)
    return cargar


class AlmacenCaido:
    def get(self, key: str) -> Optional[str]:
        raise StorageUnavailableError("sin almacenamiento")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailableError("sin almacenamiento")


def persisted_id(store: MemoryKeyValueStore) -> Optional[int]:
    raw = store.data.get(KEY)
    return Centro.model_validate_json(raw).id if raw else None


async def contexto_iniciado(centros=(CENTRO_A, CENTRO_B), location="/center/a/dashboard", store=None):
    store = store if store is not None else MemoryKeyValueStore()
    navigator = RecordingNavigator(location)
    context = CenterContext(store, fuente(list(centros)), navigator, timeout=0.5)
    await context.initialize(SESION)
    return context, store, navigator


# ==============================================================================
# Inicialización
# ==============================================================================

async def test_initialize_selects_default_center_without_persisted_value():
    context, store, _ = await contexto_iniciado()

    assert context.current_center.id == 1
    assert context.loading is False
    assert context.initialized is True
    assert persisted_id(store) == 1


async def test_initialize_prefers_persisted_center():
    store = MemoryKeyValueStore({KEY: CENTRO_B.model_dump_json()})
    context, _, _ = await contexto_iniciado(store=store)
    assert context.current_center.slug == "b"


async def test_stale_persisted_center_falls_back_to_default():
    store = MemoryKeyValueStore({KEY: CENTRO_C.model_dump_json()})
    context, _, _ = await contexto_iniciado(store=store)

    assert context.current_center.id == CENTRO_A.id
    assert persisted_id(store) == CENTRO_A.id


async def test_stale_persisted_center_without_default_falls_back_to_first():
    sin_default = [CENTRO_B, CENTRO_C]
    store = MemoryKeyValueStore({KEY: CENTRO_A.model_dump_json()})
    context, _, _ = await contexto_iniciado(centros=sin_default, store=store)
    assert context.current_center.id == CENTRO_B.id


async def test_malformed_persisted_value_is_ignored():
    store = MemoryKeyValueStore({KEY: "{no-es-json"})
    context, _, _ = await contexto_iniciado(store=store)
    assert context.current_center.id == CENTRO_A.id


async def test_persisted_id_is_validated_against_available_list():
    """Se usa el centro de la lista disponible, no la copia persistida."""
    copia_vieja = CENTRO_B.model_copy(update={"nombre": "Nombre anterior"})
    store = MemoryKeyValueStore({KEY: copia_vieja.model_dump_json()})
    context, _, _ = await contexto_iniciado(store=store)
    assert context.current_center.nombre == "Centro B"


async def test_zero_centers_completes_with_no_current_center():
    context, store, _ = await contexto_iniciado(centros=[])

    assert context.current_center is None
    assert context.available_centers == []
    assert context.loading is False
    assert KEY not in store.data


async def test_unauthenticated_session_resolves_to_empty_state():
    context = CenterContext(MemoryKeyValueStore(), fuente([CENTRO_A]), timeout=0.5)
    seleccion = await context.initialize(SessionState.unauthenticated())

    assert seleccion == SeleccionCentro(centro_actual=None, centros_disponibles=[], cargando=False)


async def test_pending_session_defers_and_watchdog_clears_loading():
    context = CenterContext(MemoryKeyValueStore(), fuente([CENTRO_A]), timeout=0.05)
    recibidas: List[SeleccionCentro] = []
    context.subscribe(recibidas.append)

    seleccion = await context.initialize(SessionState.pending())
    assert seleccion.cargando is True
    assert context.current_center is None

    await asyncio.sleep(0.15)
    assert context.loading is False
    assert context.initialized is False
    assert recibidas and recibidas[-1].cargando is False


async def test_session_resolution_after_pending_cancels_watchdog():
    context = CenterContext(MemoryKeyValueStore(), fuente([CENTRO_A, CENTRO_B]), timeout=0.05)
    await context.initialize(SessionState.pending())
    await context.initialize(SESION)
    await asyncio.sleep(0.1)

    assert context.current_center.id == 1
    assert context._watchdog is None


async def test_slow_center_source_is_bounded_by_timeout():
    context = CenterContext(MemoryKeyValueStore(), fuente([CENTRO_A], demora=1), timeout=0.05)
    await context.initialize(SESION)

    assert context.loading is False
    assert context.current_center is None
    assert context.available_centers == []


async def test_center_source_failure_degrades_to_no_centers():
    async def cargar_con_fallo(user_id: str):
        raise StorageUnavailableError("base de datos caída")

    context = CenterContext(MemoryKeyValueStore(), cargar_con_fallo, timeout=0.5)
    await context.initialize(SESION)
    assert context.loading is False
    assert context.current_center is None


async def test_failed_center_load_is_retried_on_next_initialize():
    llamadas: List[int] = []

    async def cargar_lento_la_primera_vez(user_id: str) -> List[Centro]:
        llamadas.append(1)
        if len(llamadas) == 1:
            await asyncio.sleep(10)
        return [CENTRO_A, CENTRO_B]

    context = CenterContext(MemoryKeyValueStore(), cargar_lento_la_primera_vez, timeout=0.05)
    await context.initialize(SESION)
    assert context.initialized is False
    assert context.loading is False
    assert context.available_centers == []

    seleccion = await context.initialize(SESION)
    assert len(llamadas) == 2
    assert context.initialized is True
    assert seleccion.centro_actual.slug == "a"
    assert [c.slug for c in seleccion.centros_disponibles] == ["a", "b"]


async def test_unexpected_store_error_does_not_break_switch():
    class AlmacenConErrorDeDisco:
        def get(self, key: str) -> Optional[str]:
            raise OSError("disco lleno")

        def set(self, key: str, value: str) -> None:
            raise OSError("disco lleno")

    context, _, navigator = await contexto_iniciado(store=AlmacenConErrorDeDisco())
    assert context.current_center.id == 1

    seleccion = await context.switch_center(CENTRO_B)
    assert seleccion.centro_actual.id == 2
    assert navigator.last_action.ruta == "/center/b/dashboard"


async def test_store_is_never_called_on_event_loop_thread():
    hilo_del_bucle = threading.get_ident()
    hilos: List[int] = []

    class AlmacenQueRegistraHilo(MemoryKeyValueStore):
        def get(self, key: str) -> Optional[str]:
            hilos.append(threading.get_ident())
            return super().get(key)

        def set(self, key: str, value: str) -> None:
            hilos.append(threading.get_ident())
            super().set(key, value)

    store = AlmacenQueRegistraHilo()
    context, _, _ = await contexto_iniciado(store=store)
    await context.switch_center(CENTRO_B)
    await context.reconcile_route("/center/a/dashboard")

    assert persisted_id(store) == 1
    assert len(hilos) == 4
    assert hilo_del_bucle not in hilos


async def test_unavailable_store_keeps_working_in_memory():
    context, _, navigator = await contexto_iniciado(store=AlmacenCaido())
    assert context.current_center.id == 1

    await context.switch_center(CENTRO_B)
    assert context.current_center.id == 2
    assert navigator.last_action.ruta == "/center/b/dashboard"


# ==============================================================================
# Cambio de centro
# ==============================================================================

async def test_switch_to_active_center_is_a_noop():
    context, store, navigator = await contexto_iniciado()
    disponibles = context.available_centers
    escrituras = store.writes
    persistido = store.data[KEY]

    await context.switch_center(CENTRO_A)

    assert context.available_centers is disponibles
    assert store.writes == escrituras
    assert store.data[KEY] == persistido
    assert navigator.actions == []


async def test_switch_updates_memory_then_storage_then_navigation():
    store = MemoryKeyValueStore()
    orden: List[str] = []

    class NavegadorQueObserva(RecordingNavigator):
        def push(self, path: str) -> None:
            # Al navegar, memoria y almacenamiento ya reflejan el nuevo centro
            assert context.current_center.id == 2
            assert persisted_id(store) == 2
            orden.append("push")
            super().push(path)

    navigator = NavegadorQueObserva("/center/a/fichas/4?tab=docs")
    context = CenterContext(store, fuente([CENTRO_A, CENTRO_B]), navigator, timeout=0.5)
    await context.initialize(SESION)
    context.subscribe(lambda s: orden.append(f"memoria:{s.centro_actual.slug}"))

    await context.switch_center(CENTRO_B)

    assert orden == ["memoria:b", "push"]
    assert navigator.actions[-1].accion == PUSH
    assert navigator.current_location() == "/center/b/fichas/4?tab=docs"


async def test_switch_outside_center_route_does_not_navigate():
    context, store, navigator = await contexto_iniciado(location="/usuarios")
    await context.switch_center(CENTRO_B)

    assert context.current_center.id == 2
    assert persisted_id(store) == 2
    assert navigator.actions == []


async def test_switch_to_unavailable_center_raises():
    context, store, _ = await contexto_iniciado()
    with pytest.raises(CenterNotFoundError):
        await context.switch_center(CENTRO_C)
    assert context.current_center.id == 1
    assert persisted_id(store) == 1


async def test_consecutive_switches_last_one_wins():
    context, store, navigator = await contexto_iniciado()
    await context.switch_center(CENTRO_B)
    await context.switch_center(CENTRO_A)

    assert context.current_center.id == 1
    assert persisted_id(store) == 1
    assert navigator.current_location() == "/center/a/dashboard"


# ==============================================================================
# Alta de centros
# ==============================================================================

async def test_add_center_with_duplicate_slug_is_rejected():
    context, _, _ = await contexto_iniciado()
    duplicado = Centro(id=9, nombre="Otro A", slug="a")

    with pytest.raises(DuplicateSlugError) as exc_info:
        context.add_center(duplicado)

    assert exc_info.value.message == 'Ya existe un centro con el slug "a"'
    assert len(context.available_centers) == 2


async def test_add_center_appends_without_selecting():
    context, _, _ = await contexto_iniciado()
    anterior = context.available_centers

    context.add_center(CENTRO_C)

    assert [c.slug for c in context.available_centers] == ["a", "b", "c"]
    assert context.available_centers is not anterior
    assert context.current_center.id == 1


# ==============================================================================
# Reconciliación con la ruta
# ==============================================================================

async def test_route_with_known_slug_switches_without_redirect():
    context, store, navigator = await contexto_iniciado()

    await context.reconcile_route("/center/b/dashboard")

    assert context.current_center.slug == "b"
    assert persisted_id(store) == 2
    assert navigator.actions == []


async def test_route_with_unknown_slug_redirects_to_first_center():
    context, _, navigator = await contexto_iniciado(location="/center/unknown-slug/dashboard")

    await context.reconcile_route("/center/unknown-slug/dashboard")

    assert navigator.last_action.accion == REPLACE
    assert navigator.last_action.ruta == "/center/a/dashboard"
    assert context.current_center.slug == "a"


async def test_route_with_unknown_slug_and_no_centers_does_nothing():
    context, _, navigator = await contexto_iniciado(centros=[])
    await context.reconcile_route("/center/x/dashboard")
    assert navigator.actions == []
    assert context.current_center is None


async def test_unscoped_route_is_ignored():
    context, _, navigator = await contexto_iniciado()
    await context.reconcile_route("/permisos")
    assert context.current_center.slug == "a"
    assert navigator.actions == []


# ==============================================================================
# Refresco de la lista y suscriptores
# ==============================================================================

async def test_refresh_available_falls_back_when_current_center_disappears():
    context, store, _ = await contexto_iniciado()
    await context.switch_center(CENTRO_B)

    await context.refresh_available([CENTRO_A, CENTRO_C])

    assert context.current_center.id == 1
    assert persisted_id(store) == 1


async def test_refresh_available_keeps_current_center_when_still_visible():
    context, _, _ = await contexto_iniciado()
    renombrado = CENTRO_A.model_copy(update={"nombre": "Centro A renombrado"})

    await context.refresh_available([renombrado, CENTRO_B])

    assert context.current_center.nombre == "Centro A renombrado"


async def test_listener_errors_do_not_break_switch_and_unsubscribe_works():
    context, _, _ = await contexto_iniciado()
    recibidas: List[SeleccionCentro] = []

    def roto(seleccion: SeleccionCentro) -> None:
        raise RuntimeError("consumidor roto")

    context.subscribe(roto)
    baja = context.subscribe(recibidas.append)
    await context.switch_center(CENTRO_B)
    baja()
    await context.switch_center(CENTRO_A)

    assert len(recibidas) == 1
    assert recibidas[0].centro_actual.slug == "b"


async def test_teardown_releases_context():
    context = CenterContext(MemoryKeyValueStore(), fuente([CENTRO_A]), timeout=0.05)
    await context.initialize(SessionState.pending())
    context.teardown()
    await asyncio.sleep(0.1)

    assert context._watchdog is None
    assert context.loading is True
    assert context.initialized is False
