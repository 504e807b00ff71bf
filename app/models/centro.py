from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship, Mapped, mapped_column

from app.db.base import Base
from .usuario_centro import UsuarioCentro

if TYPE_CHECKING:
    from .usuario import Usuario


class Centro(Base):
    """
    Modelo ORM para la tabla 'centros'.
    Los centros no se eliminan, solo se desactivan.
    """
    __tablename__ = "centros"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(150))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    descripcion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    es_default: Mapped[bool] = mapped_column(Boolean, default=False)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    usuarios: Mapped[List["Usuario"]] = relationship(
        "Usuario",
        secondary=UsuarioCentro.__table__,
        back_populates="centros",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Centro(id={self.id}, slug='{self.slug}')>"
