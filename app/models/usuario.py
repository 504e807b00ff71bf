import datetime
import uuid
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from .usuario_centro import UsuarioCentro

if TYPE_CHECKING:
    from .centro import Centro


class Usuario(Base):
    """
    Modelo ORM para la tabla 'usuarios'.
    El rol se guarda como texto; su interpretación vive en `app.core.permissions`.
    """
    __tablename__ = "usuarios"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nombre_usuario: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True, index=True)
    nombre_completo: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    hashed_password: Mapped[str] = mapped_column("contrasena", String)
    rol: Mapped[str] = mapped_column(String(30), default="consulta")
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    ultimo_login: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    centros: Mapped[List["Centro"]] = relationship(
        "Centro",
        secondary=UsuarioCentro.__table__,
        back_populates="usuarios",
        lazy="selectin",
        order_by="Centro.id",
    )

    @property
    def centro_ids(self) -> List[int]:
        return [centro.id for centro in self.centros]

    def __repr__(self) -> str:
        return f"<Usuario(id={self.id}, nombre_usuario='{self.nombre_usuario}', rol='{self.rol}')>"
