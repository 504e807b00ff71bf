import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, PrimaryKeyConstraint, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class PreferenciaUsuario(Base):
    """
    Modelo ORM para la tabla 'preferencias_usuario' (clave-valor por usuario).
    """
    __tablename__ = "preferencias_usuario"
    __table_args__ = (
        PrimaryKeyConstraint('usuario_id', 'clave', name='pk_preferencias_usuario'),
    )

    usuario_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("usuarios.id", ondelete="CASCADE"),
        primary_key=True
    )
    clave: Mapped[str] = mapped_column(String(100), primary_key=True)
    valor: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<PreferenciaUsuario(usuario_id={self.usuario_id}, clave='{self.clave}')>"
