import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy import or_, select
from fastapi import HTTPException, status

from app.models.usuario import Usuario
from app.schemas.usuario import UsuarioCreate
from app.core.security import verify_password, get_password_hash

from .base_service import BaseService
from .asignacion_centro import asignacion_centro_service

logger = logging.getLogger(__name__)

class UsuarioService(BaseService[Usuario, UsuarioCreate, UsuarioCreate]):
    """
    Servicio para gestionar Usuarios. Incluye la verificación de credenciales.
    """

    def get_by_username(self, db: Session, *, username: str) -> Optional[Usuario]:
        """Obtiene un usuario por su nombre de usuario."""
        statement = select(self.model).where(self.model.nombre_usuario == username)
        return db.execute(statement).scalar_one_or_none()

    def get_by_email(self, db: Session, *, email: str) -> Optional[Usuario]:
        """Obtiene un usuario por su correo electrónico."""
        statement = select(self.model).where(self.model.email == email)
        return db.execute(statement).scalar_one_or_none()

    def get_by_identifier(self, db: Session, *, identifier: str) -> Optional[Usuario]:
        """Busca por nombre de usuario o correo electrónico."""
        statement = select(self.model).where(
            or_(self.model.nombre_usuario == identifier, self.model.email == identifier)
        )
        return db.execute(statement).scalars().first()

    def create(self, db: Session, *, obj_in: UsuarioCreate) -> Usuario:
        """
        Crea un nuevo usuario con la contraseña hasheada y sus centros asignados.
        NO realiza db.commit().
        """
        logger.debug(f"Intentando crear usuario: {obj_in.nombre_usuario}")
        if self.get_by_username(db, username=obj_in.nombre_usuario):
            logger.warning(f"Intento de crear usuario con nombre de usuario duplicado: {obj_in.nombre_usuario}")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe un usuario con ese nombre de usuario.")

        if obj_in.email and self.get_by_email(db, email=obj_in.email):
            logger.warning(f"Intento de crear usuario con email duplicado: {obj_in.email}")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe un usuario con ese correo electrónico.")

        db_obj = self.model(
            nombre_usuario=obj_in.nombre_usuario,
            email=obj_in.email,
            nombre_completo=obj_in.nombre_completo,
            hashed_password=get_password_hash(obj_in.password),
            rol=obj_in.rol.value,
            activo=True,
        )
        db.add(db_obj)
        if obj_in.centro_ids:
            asignacion_centro_service.set_assigned_centers(db, usuario=db_obj, centro_ids=obj_in.centro_ids)
        logger.info(f"Usuario '{db_obj.nombre_usuario}' preparado para ser creado con rol '{db_obj.rol}'.")
        return db_obj

    def authenticate(self, db: Session, *, identifier: str, password: str) -> Optional[Usuario]:
        """
        Verifica credenciales con nombre de usuario o correo.
        Un usuario inactivo con la contraseña correcta se devuelve igualmente;
        la ruta decide con `is_active`.
        """
        user = self.get_by_identifier(db, identifier=identifier)
        if not user:
            logger.warning(f"Intento de login fallido: Usuario '{identifier}' no encontrado.")
            return None
        if not verify_password(password, user.hashed_password):
            logger.warning(f"Intento de login fallido: Contraseña incorrecta para usuario '{identifier}'.")
            return None
        logger.info(f"Usuario '{user.nombre_usuario}' autenticado (contraseña correcta).")
        return user

    def is_active(self, user: Usuario) -> bool:
        return bool(user.activo)

    def handle_successful_login(self, db: Session, *, user: Usuario) -> None:
        """Actualiza la fecha de último login. NO realiza db.commit()."""
        user.ultimo_login = datetime.now(timezone.utc)
        db.add(user)


usuario_service = UsuarioService(Usuario, "Usuario")
