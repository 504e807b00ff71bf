import logging
from typing import List, Optional, Protocol, Tuple

from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)

PUSH = "push"
REPLACE = "replace"


class Navigator(Protocol):
    """Colaborador de navegación consumido por el contexto de centros."""

    def current_location(self) -> str: ...

    def replace(self, path: str) -> None: ...

    def push(self, path: str) -> None: ...


class NavigationAction(BaseModel):
    accion: str
    ruta: str


class RecordingNavigator:
    """
    Navegador en memoria para una petición.
    La ubicación inicial la envía el cliente; cada navegación queda registrada
    para devolverse en la respuesta.
    """

    def __init__(self, location: str = "/"):
        self.location = location or "/"
        self.actions: List[NavigationAction] = []

    def current_location(self) -> str:
        return self.location

    def replace(self, path: str) -> None:
        logger.debug(f"Navegación replace: '{self.location}' -> '{path}'")
        self.location = path
        self.actions.append(NavigationAction(accion=REPLACE, ruta=path))

    def push(self, path: str) -> None:
        logger.debug(f"Navegación push: '{self.location}' -> '{path}'")
        self.location = path
        self.actions.append(NavigationAction(accion=PUSH, ruta=path))

    @property
    def last_action(self) -> Optional[NavigationAction]:
        return self.actions[-1] if self.actions else None


def _split_location(location: str) -> Tuple[str, str]:
    """Separa la ruta de la cadena de consulta o fragmento."""
    for marker in ("?", "#"):
        index = location.find(marker)
        if index != -1:
            return location[:index], location[index:]
    return location, ""


def extract_center_slug(location: str, segment: Optional[str] = None) -> Optional[str]:
    """Slug embebido en una ruta `/center/<slug>/...`, o None si la ruta no está ligada a un centro."""
    segment = segment or settings.CENTER_ROUTE_SEGMENT
    path, _ = _split_location(location or "")
    parts = path.split("/")
    if len(parts) > 2 and parts[0] == "" and parts[1] == segment and parts[2]:
        return parts[2]
    return None


def is_center_scoped(location: str, segment: Optional[str] = None) -> bool:
    return extract_center_slug(location, segment) is not None


def center_dashboard_path(slug: str, segment: Optional[str] = None) -> str:
    segment = segment or settings.CENTER_ROUTE_SEGMENT
    return f"/{segment}/{slug}/dashboard"


def rewrite_center_slug(location: str, slug: str, segment: Optional[str] = None) -> Optional[str]:
    """
    Reemplaza el slug de una ruta ligada a un centro conservando el resto.
    Una ruta sin sub-página (`/center/<slug>`) se lleva al dashboard del centro.
    Devuelve None si la ruta no está ligada a un centro.
    """
    segment = segment or settings.CENTER_ROUTE_SEGMENT
    if not is_center_scoped(location, segment):
        return None
    path, suffix = _split_location(location)
    parts = path.split("/")
    if len([p for p in parts if p]) <= 2:
        return center_dashboard_path(slug, segment)
    parts[2] = slug
    return "/".join(parts) + suffix
