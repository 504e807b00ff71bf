import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.centro import Centro
from app.models.usuario import Usuario
from app.models.usuario_centro import UsuarioCentro

from .centro import centro_service

logger = logging.getLogger(__name__)


class AsignacionCentroService:
    """
    Almacén de asignaciones usuario-centro.
    NO realiza db.commit().
    """

    def get_assigned_centers(self, db: Session, *, usuario_id: uuid.UUID) -> List[int]:
        statement = (
            select(UsuarioCentro.centro_id)
            .where(UsuarioCentro.usuario_id == usuario_id)
            .order_by(UsuarioCentro.centro_id)
        )
        return list(db.execute(statement).scalars().all())

    def set_assigned_centers(self, db: Session, *, usuario: Usuario, centro_ids: List[int]) -> List[int]:
        """Reemplaza la lista completa de centros asignados. Lanza 404 si algún centro no existe."""
        unique_ids = list(dict.fromkeys(centro_ids))
        centros: List[Centro] = [centro_service.get_or_404(db, id=centro_id) for centro_id in unique_ids]
        usuario.centros = centros
        db.add(usuario)
        logger.info(f"Asignaciones de centros del usuario '{usuario.nombre_usuario}' preparadas: {unique_ids}")
        return sorted(unique_ids)


asignacion_centro_service = AsignacionCentroService()
