import sys
from os.path import abspath, dirname

root_dir = dirname(dirname(abspath(__file__)))
sys.path.append(root_dir)

from sqlalchemy.orm import Session
from app.db.session import SessionLocal
from app.db.init_data import create_db_and_tables
from app.services.usuario import usuario_service
from app.schemas.usuario import UsuarioCreate
from app.core.config import settings
from app.core.permissions import Role

def create_superuser():
    """
    Script síncrono para crear un usuario `superadmin` a partir de variables de entorno.
    El superadmin ve todos los centros activos, por lo que no necesita asignaciones.
    """
    create_db_and_tables()
    db: Session = SessionLocal()

    print("--- Iniciando script para crear superusuario ---")

    try:
        admin_email = settings.SUPERUSER_EMAIL
        admin_password = settings.SUPERUSER_PASSWORD

        if not all([admin_email, admin_password]):
            print("!!! ERROR: Define SUPERUSER_EMAIL y SUPERUSER_PASSWORD en tu archivo .env. Saliendo. !!!")
            return

        superuser = usuario_service.get_by_email(db, email=admin_email)
        if superuser:
            print(f"El superusuario con email '{admin_email}' ya existe (rol '{superuser.rol}').")
            return

        print(f"Creando superusuario con email: {admin_email}")
        superuser_in = UsuarioCreate(
            email=admin_email,
            password=admin_password,
            nombre_usuario="superadmin",
            nombre_completo="Superadministrador",
            rol=Role.SUPERADMIN,
        )
        usuario_service.create(db, obj_in=superuser_in)
        db.commit()
        print("¡Superusuario creado exitosamente!")
    except Exception as e:
        print(f"Ocurrió un error: {e}")
        db.rollback()
    finally:
        print("--- Script finalizado ---")
        db.close()

if __name__ == "__main__":
    create_superuser()
