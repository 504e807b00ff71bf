import logging
import uuid
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageUnavailableError
from app.models.preferencia_usuario import PreferenciaUsuario

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """
    Almacenamiento clave-valor persistente. Las implementaciones deben envolver
    sus fallos en `StorageUnavailableError`. Se llama desde un hilo del pool,
    nunca desde el bucle de eventos.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Implementación en memoria, útil para desarrollo y pruebas."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes += 1


class DatabaseKeyValueStore:
    """
    Preferencias por usuario guardadas en la tabla `preferencias_usuario`.
    Cada operación crea y cierra su propia sesión de base de datos para
    operar de forma independiente de la sesión de la petición.
    """

    def __init__(self, session_factory: Callable[[], Session], usuario_id: uuid.UUID):
        self.session_factory = session_factory
        self.usuario_id = usuario_id

    def get(self, key: str) -> Optional[str]:
        db: Optional[Session] = None
        try:
            db = self.session_factory()
            statement = select(PreferenciaUsuario.valor).where(
                PreferenciaUsuario.usuario_id == self.usuario_id,
                PreferenciaUsuario.clave == key,
            )
            return db.execute(statement).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error leyendo preferencia '{key}' del usuario {self.usuario_id}: {e}")
            raise StorageUnavailableError(f"No se pudo leer la preferencia '{key}'.") from e
        finally:
            if db:
                db.close()

    def set(self, key: str, value: str) -> None:
        db: Optional[Session] = None
        try:
            db = self.session_factory()
            preferencia = db.get(PreferenciaUsuario, (self.usuario_id, key))
            if preferencia:
                preferencia.valor = value
            else:
                db.add(PreferenciaUsuario(usuario_id=self.usuario_id, clave=key, valor=value))
            db.commit()
            logger.debug(f"Preferencia '{key}' guardada para usuario {self.usuario_id}.")
        except SQLAlchemyError as e:
            logger.error(f"Error guardando preferencia '{key}' del usuario {self.usuario_id}: {e}")
            if db:
                db.rollback()
            raise StorageUnavailableError(f"No se pudo guardar la preferencia '{key}'.") from e
        finally:
            if db:
                db.close()
