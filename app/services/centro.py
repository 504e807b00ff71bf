import logging
import re
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.core.exceptions import DuplicateSlugError
from app.core.permissions import is_superadmin
from app.models.centro import Centro
from app.models.usuario import Usuario
from app.models.usuario_centro import UsuarioCentro
from app.schemas.centro import CentroCreate, CentroUpdate

from .base_service import BaseService

logger = logging.getLogger(__name__)

_ACENTOS = str.maketrans("áéíóúüñ", "aeiouun")


def generar_slug(nombre: str) -> str:
    """
    Genera un slug a partir del nombre de un centro:
    minúsculas, sin acentos, solo alfanuméricos y guiones en lugar de espacios.
    """
    slug = nombre.strip().lower().translate(_ACENTOS)
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s-]+", "-", slug)
    return slug.strip("-")


class CentroService(BaseService[Centro, CentroCreate, CentroUpdate]):
    """
    Servicio para gestionar Centros. Los centros no se eliminan, solo se desactivan.
    """

    def get_by_slug(self, db: Session, *, slug: str) -> Optional[Centro]:
        statement = select(self.model).where(self.model.slug == slug)
        return db.execute(statement).scalar_one_or_none()

    def get_active(self, db: Session) -> List[Centro]:
        statement = select(self.model).where(self.model.activo.is_(True)).order_by(self.model.id)
        return list(db.execute(statement).scalars().all())

    def get_visible_for_user(self, db: Session, *, usuario: Usuario) -> List[Centro]:
        """
        Centros que el usuario puede seleccionar: los activos que tiene asignados.
        El superadmin ve todos los centros activos.
        """
        if is_superadmin(usuario.rol):
            return self.get_active(db)
        statement = (
            select(self.model)
            .join(UsuarioCentro, UsuarioCentro.centro_id == self.model.id)
            .where(UsuarioCentro.usuario_id == usuario.id, self.model.activo.is_(True))
            .order_by(self.model.id)
        )
        return list(db.execute(statement).scalars().all())

    def create(self, db: Session, *, obj_in: CentroCreate) -> Centro:
        """
        Crea un centro. Si no se envía slug se genera a partir del nombre.
        NO realiza db.commit().
        """
        slug = obj_in.slug or generar_slug(obj_in.nombre)
        if not slug:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="No se pudo generar un slug válido a partir del nombre del centro."
            )
        if self.get_by_slug(db, slug=slug):
            logger.warning(f"Intento de crear centro con slug duplicado: '{slug}'")
            raise DuplicateSlugError(slug)

        if obj_in.es_default:
            self._clear_default(db)

        db_obj = self.model(
            nombre=obj_in.nombre,
            slug=slug,
            descripcion=obj_in.descripcion,
            es_default=obj_in.es_default,
            activo=obj_in.activo,
        )
        db.add(db_obj)
        logger.info(f"Centro '{slug}' preparado para ser creado.")
        return db_obj

    def set_default(self, db: Session, *, centro: Centro) -> Centro:
        """Marca el centro como único centro por defecto. NO realiza db.commit()."""
        if not centro.activo:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="No se puede marcar como predeterminado un centro inactivo."
            )
        self._clear_default(db)
        centro.es_default = True
        db.add(centro)
        logger.info(f"Centro '{centro.slug}' marcado como predeterminado.")
        return centro

    def _clear_default(self, db: Session) -> None:
        db.execute(
            update(self.model)
            .where(self.model.es_default.is_(True))
            .values(es_default=False)
            .execution_options(synchronize_session="fetch")
        )


centro_service = CentroService(Centro, "Centro")
