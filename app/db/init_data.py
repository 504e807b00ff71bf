"""
Creación de tablas y datos de demostración.

Los datos reproducen los dos centros y los usuarios del panel original.
Solo se cargan si `SEED_DEMO_DATA` está activo; la operación es idempotente.
"""
import logging

from sqlalchemy.orm import Session

from app.db.base import Base
from app.db.session import engine
from app.core.security import get_password_hash
from app.models import Centro, Usuario  # noqa: F401  registra todos los modelos en el metadata
from app.services.centro import centro_service
from app.services.usuario import usuario_service

logger = logging.getLogger(__name__)

CENTROS_DEMO = [
    (1, {
        "nombre": "Centro de educación continua",
        "slug": "centro-educacion-continua",
        "descripcion": "Centro especializado en educación continua",
        "es_default": True,
    }),
    (2, {
        "nombre": "Centro de servicios",
        "slug": "centro-servicios",
        "descripcion": "Centro para la prestación de servicios universitarios",
        "es_default": False,
    }),
]

# (usuario, email, contraseña, nombre completo, rol, centros asignados por número en CENTROS_DEMO)
USUARIOS_DEMO = [
    ("admin_test", "admin_test@unicartagena.edu.co", "admin123", "Usuario Administrador", "admin", [1, 2]),
    ("layazo", "luis.ayazo@unicartagena.edu.co", "password123", "Luis Ayazo", "usuario", [1, 2]),
    ("operario", "operario@unicartagena.edu.co", "operario123", "Usuario Operario", "operacion", [1]),
    ("soporte", "soporte@unicartagena.edu.co", "soporte123", "Equipo Soporte", "operacion", [2]),
    ("invitado", "invitado@unicartagena.edu.co", "invitado123", "Usuario Invitado", "usuario", [1]),
]


def create_db_and_tables(bind=None) -> None:
    """Crea todas las tablas que aún no existan."""
    Base.metadata.create_all(bind or engine)
    logger.info("Tablas de base de datos verificadas/creadas.")


def inicializar_datos(db: Session) -> None:
    """Carga centros y usuarios de demostración. NO sobrescribe registros existentes."""
    centros = {}
    for numero, data in CENTROS_DEMO:
        centro = centro_service.get_by_slug(db, slug=data["slug"])
        if not centro:
            # El ID lo asigna la base de datos
            centro = Centro(**data, activo=True)
            db.add(centro)
            logger.info(f"Centro de demostración '{data['slug']}' creado.")
        centros[numero] = centro
    db.flush()

    for username, email, password, nombre, rol, centro_ids in USUARIOS_DEMO:
        if usuario_service.get_by_username(db, username=username):
            continue
        usuario = Usuario(
            nombre_usuario=username,
            email=email,
            nombre_completo=nombre,
            hashed_password=get_password_hash(password),
            rol=rol,
            activo=True,
        )
        usuario.centros = [centros[centro_id] for centro_id in centro_ids]
        db.add(usuario)
        logger.info(f"Usuario de demostración '{username}' ({rol}) creado.")

    db.commit()
