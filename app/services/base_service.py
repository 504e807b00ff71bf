import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from fastapi import HTTPException, status
from pydantic import BaseModel

from sqlalchemy.orm import Session
from sqlalchemy import select

from app.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)

logger = logging.getLogger(__name__)

class BaseService(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType], nombre_entidad: Optional[str] = None):
        """
        Servicio base con operaciones de lectura y escritura por defecto.
        Los métodos de escritura NO realizan commit; el commit lo maneja la ruta.

        **Parámetros**

        * `model`: Clase del modelo SQLAlchemy
        * `nombre_entidad`: Nombre legible usado en los mensajes de error
        """
        self.model = model
        self.nombre_entidad = nombre_entidad or model.__name__

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        """Obtiene un registro por ID."""
        return db.get(self.model, id)

    def get_or_404(self, db: Session, id: Any) -> ModelType:
        """Obtiene un registro por ID o lanza 404 si no existe."""
        db_obj = self.get(db, id=id)
        if not db_obj:
            logger.warning(f"Registro no encontrado en {self.model.__name__} con ID: {id}")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{self.nombre_entidad} con ID {id} no encontrado."
            )
        return db_obj

    def get_multi(
        self, db: Session, *, skip: int = 0, limit: int = 100
    ) -> List[ModelType]:
        """Obtiene múltiples registros con paginación, ordenados por ID."""
        statement = select(self.model).order_by(self.model.id).offset(skip).limit(limit)  # type: ignore[attr-defined]
        return list(db.execute(statement).scalars().all())

    def create(self, db: Session, *, obj_in: CreateSchemaType) -> ModelType:
        """
        Crea un nuevo registro.
        NO realiza db.commit(). El commit debe ser manejado por el llamador.
        """
        obj_in_data = obj_in.model_dump()
        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        logger.info(f"Nuevo registro preparado para creación en {self.model.__name__} con datos: {obj_in_data}")
        return db_obj

    def update(
        self,
        db: Session,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """
        Actualiza un objeto existente con los campos enviados.
        NO realiza db.commit(). El commit debe ser manejado por el llamador.
        """
        update_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        obj_id = getattr(db_obj, 'id', 'N/A')

        if not update_data:
            logger.info(f"No se proporcionaron datos para actualizar en {self.model.__name__} (ID: {obj_id})")
            return db_obj

        logger.debug(f"Actualizando {self.model.__name__} ID {obj_id} con datos: {update_data}")
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
            else:
                logger.warning(f"Intento de actualizar campo '{field}' inexistente en modelo {self.model.__name__}")

        db.add(db_obj)
        logger.info(f"Registro preparado para actualización en {self.model.__name__} (ID: {obj_id})")
        return db_obj
