import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, PrimaryKeyConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class UsuarioCentro(Base):
    """
    Modelo ORM para la tabla de asociación 'usuarios_centros'.
    """
    __tablename__ = "usuarios_centros"
    __table_args__ = (
        PrimaryKeyConstraint('usuario_id', 'centro_id', name='pk_usuarios_centros'),
    )

    usuario_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("usuarios.id", ondelete="CASCADE"),
        primary_key=True
    )
    centro_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("centros.id", ondelete="CASCADE"),
        primary_key=True
    )
    asignado_en: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<UsuarioCentro(usuario_id={self.usuario_id}, centro_id={self.centro_id})>"
