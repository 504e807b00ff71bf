import logging
import uuid
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.center_context import CenterContext
from app.core.exceptions import StorageUnavailableError
from app.core.session import SessionState
from app.core.storage import DatabaseKeyValueStore, KeyValueStore
from app.schemas.centro import Centro, SeleccionCentro

from .centro import centro_service
from .usuario import usuario_service

logger = logging.getLogger(__name__)

StoreFactory = Callable[[uuid.UUID], KeyValueStore]


class CenterContextRegistry:
    """
    Contextos de centro vivos, uno por usuario autenticado. Todas las sesiones
    (tokens) de un mismo usuario comparten el contexto; el logout lo cierra para todas.
    Se crea en el arranque de la aplicación y se guarda en `app.state`.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store_factory: Optional[StoreFactory] = None,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.store_factory = store_factory or self._database_store
        self.timeout = timeout
        self._contexts: Dict[str, CenterContext] = {}

    def _database_store(self, usuario_id: uuid.UUID) -> KeyValueStore:
        return DatabaseKeyValueStore(self.session_factory, usuario_id)

    # --- Fuente de centros ---
    async def load_visible_centers(self, user_id: str) -> List[Centro]:
        return await run_in_threadpool(self._load_visible_centers, user_id)

    def _load_visible_centers(self, user_id: str) -> List[Centro]:
        db: Optional[Session] = None
        try:
            db = self.session_factory()
            usuario = usuario_service.get(db, id=uuid.UUID(user_id))
            if not usuario or not usuario_service.is_active(usuario):
                logger.warning(f"Usuario {user_id} no encontrado o inactivo al cargar centros.")
                return []
            centros = centro_service.get_visible_for_user(db, usuario=usuario)
            return [Centro.model_validate(c) for c in centros]
        except SQLAlchemyError as e:
            logger.error(f"Error de base de datos cargando centros del usuario {user_id}: {e}", exc_info=True)
            raise StorageUnavailableError("No se pudieron cargar los centros.") from e
        finally:
            if db:
                db.close()

    # --- Contextos ---
    def get(self, user_id) -> Optional[CenterContext]:
        return self._contexts.get(str(user_id))

    def get_or_create(self, user_id) -> CenterContext:
        key = str(user_id)
        context = self._contexts.get(key)
        if context is None:
            context = CenterContext(
                store=self.store_factory(uuid.UUID(key)),
                center_source=self.load_visible_centers,
                timeout=self.timeout,
            )
            self._contexts[key] = context
            logger.debug(f"Contexto de centro creado para usuario {key}.")
        return context

    async def ensure_initialized(self, session: SessionState) -> CenterContext:
        """Devuelve el contexto del usuario de la sesión, inicializándolo la primera vez."""
        context = self.get_or_create(session.user_id)
        async with context.lock:
            if not context.initialized:
                await context.initialize(session)
        return context

    async def refresh_user(self, user_id) -> Optional[SeleccionCentro]:
        """Recarga los centros visibles de un usuario con contexto vivo."""
        context = self.get(user_id)
        if context is None or not context.initialized:
            return None
        try:
            centers = await self.load_visible_centers(str(user_id))
        except StorageUnavailableError as e:
            logger.warning(f"No se pudo refrescar el contexto del usuario {user_id}: {e.message}")
            return None
        async with context.lock:
            return await context.refresh_available(centers)

    async def refresh_all(self) -> None:
        for user_id in list(self._contexts):
            await self.refresh_user(user_id)

    def teardown(self, user_id) -> None:
        context = self._contexts.pop(str(user_id), None)
        if context is not None:
            context.teardown()
            logger.info(f"Contexto de centro cerrado para usuario {user_id}.")

    def teardown_all(self) -> None:
        for user_id in list(self._contexts):
            self.teardown(user_id)

    def __len__(self) -> int:
        return len(self._contexts)
