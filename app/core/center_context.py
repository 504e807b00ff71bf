"""
Contexto de centro de una sesión.

Mantiene el centro activo, los centros visibles para el usuario y la
coherencia entre el centro activo y la ruta del cliente. La selección en
memoria es la autoridad durante la sesión; el almacenamiento persistente solo
sirve como pista al inicializar.
"""
import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import CenterNotFoundError, DuplicateSlugError, StorageUnavailableError
from app.core.navigation import Navigator, center_dashboard_path, extract_center_slug, rewrite_center_slug
from app.core.session import SessionState
from app.core.storage import KeyValueStore
from app.schemas.centro import Centro, SeleccionCentro

logger = logging.getLogger(__name__)

CenterSource = Callable[[str], Awaitable[Sequence[Centro]]]
SelectionListener = Callable[[SeleccionCentro], None]


class CenterContext:
    def __init__(
        self,
        store: KeyValueStore,
        center_source: CenterSource,
        navigator: Optional[Navigator] = None,
        *,
        storage_key: Optional[str] = None,
        timeout: Optional[float] = None,
        route_segment: Optional[str] = None,
    ):
        self.store = store
        self.center_source = center_source
        self.storage_key = storage_key or settings.SELECTED_CENTER_STORAGE_KEY
        self.timeout = settings.CENTER_INIT_TIMEOUT_SECONDS if timeout is None else timeout
        self.route_segment = route_segment or settings.CENTER_ROUTE_SEGMENT

        self.current_center: Optional[Centro] = None
        self.available_centers: List[Centro] = []
        self.loading = True
        self.initialized = False
        self.user_id: Optional[str] = None

        # Serializa las operaciones que usan un navegador por petición
        self.lock = asyncio.Lock()

        self._navigator = navigator
        self._listeners: List[SelectionListener] = []
        self._watchdog: Optional[asyncio.TimerHandle] = None

    # -----------------------------------------------------------------
    # Estado
    # -----------------------------------------------------------------
    @property
    def selection(self) -> SeleccionCentro:
        return SeleccionCentro(
            centro_actual=self.current_center,
            centros_disponibles=list(self.available_centers),
            cargando=self.loading,
        )

    def find_by_id(self, center_id: int) -> Optional[Centro]:
        return next((c for c in self.available_centers if c.id == center_id), None)

    def find_by_slug(self, slug: str) -> Optional[Centro]:
        return next((c for c in self.available_centers if c.slug == slug), None)

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """Registra un consumidor que recibe la selección tras cada cambio. Devuelve la función para darse de baja."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextlib.contextmanager
    def bind_navigator(self, navigator: Navigator) -> Iterator[Navigator]:
        """Usa `navigator` durante el bloque y restaura el anterior al salir."""
        previous = self._navigator
        self._navigator = navigator
        try:
            yield navigator
        finally:
            self._navigator = previous

    # -----------------------------------------------------------------
    # Ciclo de vida
    # -----------------------------------------------------------------
    async def initialize(self, session: SessionState) -> SeleccionCentro:
        """
        Resuelve el centro inicial de la sesión.

        Con la sesión pendiente no se resuelve nada, pero se arranca un
        temporizador que fuerza `loading=False` pasado el tiempo máximo.
        Orden de resolución: selección persistida (si sigue visible), centro
        por defecto, primer centro disponible, ninguno. Si la carga de centros
        falla o se agota el tiempo, el contexto queda sin inicializar y se
        reintenta en la siguiente llamada.
        """
        if session.is_pending:
            logger.debug("Sesión pendiente: inicialización de centro diferida.")
            self._start_watchdog()
            return self.selection

        self._cancel_watchdog()

        if not session.is_authenticated:
            logger.info("Sesión no autenticada: sin centro activo.")
            self.current_center = None
            self.available_centers = []
            self.initialized = True
            self._finish_loading()
            self._notify()
            return self.selection

        self.user_id = session.user_id
        try:
            centers = await asyncio.wait_for(self.center_source(session.user_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tiempo de espera agotado ({self.timeout}s) cargando centros del usuario {session.user_id}.")
            return self._fail_loading()
        except StorageUnavailableError as e:
            logger.error(f"No se pudieron cargar los centros del usuario {session.user_id}: {e.message}")
            return self._fail_loading()

        self.available_centers = list(centers)
        self.current_center = self._resolve_fallback(await self._read_persisted())
        if self.current_center is not None:
            await self._persist(self.current_center)
            logger.info(f"Centro inicial para usuario {session.user_id}: '{self.current_center.slug}'.")
        else:
            logger.info(f"Usuario {session.user_id} sin centros disponibles.")

        self.initialized = True
        self._finish_loading()
        self._notify()
        return self.selection

    def teardown(self) -> None:
        """Libera el contexto al cerrar la sesión."""
        self._cancel_watchdog()
        self._listeners.clear()
        self.initialized = False
        logger.debug(f"Contexto de centro liberado para usuario {self.user_id}.")

    # -----------------------------------------------------------------
    # Operaciones
    # -----------------------------------------------------------------
    async def switch_center(self, target: Centro) -> SeleccionCentro:
        """
        Cambia el centro activo.
        Orden: memoria, persistencia y por último navegación (solo si la ruta
        actual está ligada a un centro). No hace nada si ya es el centro activo.
        """
        if self.current_center is not None and self.current_center.id == target.id:
            logger.debug(f"switch_center: el centro '{target.slug}' ya está activo.")
            return self.selection

        center = self.find_by_id(target.id)
        if center is None:
            logger.warning(f"switch_center: centro {target.id} no disponible para usuario {self.user_id}.")
            raise CenterNotFoundError(target.id)

        self.current_center = center
        self._notify()
        await self._persist(center)

        if self._navigator is not None:
            location = self._navigator.current_location()
            new_location = rewrite_center_slug(location, center.slug, self.route_segment)
            if new_location is not None and new_location != location:
                self._navigator.push(new_location)
        logger.info(f"Centro activo cambiado a '{center.slug}' para usuario {self.user_id}.")
        return self.selection

    def add_center(self, center: Centro) -> SeleccionCentro:
        """Agrega un centro a la lista disponible sin seleccionarlo."""
        if self.find_by_slug(center.slug) is not None:
            logger.warning(f"add_center: slug duplicado '{center.slug}'.")
            raise DuplicateSlugError(center.slug)
        self.available_centers = [*self.available_centers, center]
        self._notify()
        return self.selection

    async def reconcile_route(self, location: str) -> SeleccionCentro:
        """
        Alinea el centro activo con el slug de la ruta. La ruta manda cuando
        el slug es conocido; un slug desconocido redirige al dashboard del
        primer centro disponible.
        """
        slug = extract_center_slug(location, self.route_segment)
        if slug is None:
            return self.selection
        if self.current_center is not None and self.current_center.slug == slug:
            return self.selection

        center = self.find_by_slug(slug)
        if center is not None:
            self.current_center = center
            self._notify()
            await self._persist(center)
            logger.info(f"Centro activo '{slug}' tomado de la ruta para usuario {self.user_id}.")
            return self.selection

        if not self.available_centers:
            logger.info(f"Slug '{slug}' desconocido y sin centros disponibles; se mantiene la ruta.")
            return self.selection

        redirect = center_dashboard_path(self.available_centers[0].slug, self.route_segment)
        logger.warning(f"Slug '{slug}' desconocido; redirigiendo a '{redirect}'.")
        if self._navigator is not None:
            self._navigator.replace(redirect)
        return self.selection

    async def refresh_available(self, centers: Sequence[Centro]) -> SeleccionCentro:
        """
        Reemplaza la lista de centros visibles, por ejemplo tras cambiar las
        asignaciones del usuario. Si el centro activo deja de ser visible, se
        vuelve al centro por defecto o al primero.
        """
        self.available_centers = list(centers)
        current = self.find_by_id(self.current_center.id) if self.current_center else None
        if current is not None:
            self.current_center = current
        else:
            if self.current_center is not None:
                logger.info(f"El centro '{self.current_center.slug}' ya no está disponible para usuario {self.user_id}.")
            self.current_center = self._resolve_fallback(None)
            if self.current_center is not None:
                await self._persist(self.current_center)
        self._notify()
        return self.selection

    # -----------------------------------------------------------------
    # Internos
    # -----------------------------------------------------------------
    def _resolve_fallback(self, persisted: Optional[Centro]) -> Optional[Centro]:
        if persisted is not None:
            match = self.find_by_id(persisted.id)
            if match is not None:
                return match
            logger.info(f"Selección persistida obsoleta (centro {persisted.id}); se descarta.")
        default = next((c for c in self.available_centers if c.es_default), None)
        if default is not None:
            return default
        return self.available_centers[0] if self.available_centers else None

    async def _read_persisted(self) -> Optional[Centro]:
        try:
            raw = await run_in_threadpool(self.store.get, self.storage_key)
        except StorageUnavailableError as e:
            logger.warning(f"No se pudo leer la selección persistida: {e.message}")
            return None
        except Exception as e:
            logger.error(f"Error inesperado leyendo la selección persistida: {e}", exc_info=True)
            return None
        if not raw:
            return None
        try:
            return Centro.model_validate_json(raw)
        except ValidationError:
            logger.warning("Selección persistida con formato inválido; se descarta.")
            return None

    async def _persist(self, center: Centro) -> None:
        try:
            await run_in_threadpool(self.store.set, self.storage_key, center.model_dump_json())
        except StorageUnavailableError as e:
            logger.warning(f"No se pudo persistir la selección de centro '{center.slug}': {e.message}. Se continúa en memoria.")
        except Exception as e:
            logger.error(f"Error inesperado persistiendo el centro '{center.slug}': {e}. Se continúa en memoria.", exc_info=True)

    def _finish_loading(self) -> None:
        if self.loading:
            self.loading = False

    def _fail_loading(self) -> SeleccionCentro:
        # Sin marcar `initialized`: la próxima consulta vuelve a cargar los centros
        self.available_centers = []
        self.current_center = None
        self._finish_loading()
        self._notify()
        return self.selection

    def _start_watchdog(self) -> None:
        if self._watchdog is not None or not self.loading:
            return
        loop = asyncio.get_running_loop()
        self._watchdog = loop.call_later(self.timeout, self._on_watchdog)

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _on_watchdog(self) -> None:
        self._watchdog = None
        if self.loading:
            logger.warning(f"La sesión no se resolvió en {self.timeout}s; se fuerza el fin de la carga.")
            self._finish_loading()
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.selection
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Error en consumidor del contexto de centro: {e}", exc_info=True)
