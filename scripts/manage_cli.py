import sys
import argparse
from os.path import abspath, dirname
from getpass import getpass

root_dir = dirname(dirname(abspath(__file__)))
sys.path.append(root_dir)

from fastapi import HTTPException
from pydantic import ValidationError

from app.db.session import SessionLocal
from app.db.init_data import create_db_and_tables, inicializar_datos
from app.services import usuario_service, centro_service, asignacion_centro_service
from app.schemas.usuario import UsuarioCreate
from app.core.permissions import Role, ROLE_LABELS

ROLES_PERMITIDOS = [role.value for role in Role]


def _parse_ids(raw: str) -> list:
    return [int(value) for value in raw.split(",") if value.strip()]

# --- Funciones de Gestión ---

def create_user(db, nombre: str, email: str, rol: str, centros: str):
    """Crea un nuevo usuario con rol y centros asignados."""
    print(f"Iniciando creación de usuario para el email: {email}")
    password = getpass("Introduce la contraseña para el nuevo usuario: ")
    try:
        user_in = UsuarioCreate(
            nombre_usuario=nombre, email=email, password=password, rol=Role(rol), centro_ids=_parse_ids(centros)
        )
        usuario_service.create(db, obj_in=user_in)
        db.commit()
        print(f"✅ ¡Usuario '{nombre}' con rol '{rol}' creado exitosamente!")
    except ValidationError as e:
        print(f"❌ Error: Datos inválidos: {e.errors()[0]['msg']}")
    except HTTPException as e:
        db.rollback()
        print(f"❌ Error: {e.detail}")

def deactivate_user(db, email: str):
    """Desactiva un usuario por su email."""
    user = usuario_service.get_by_email(db, email=email)
    if not user:
        print(f"⚠️ No se encontró ningún usuario con el email '{email}'.")
        return
    usuario_service.update(db, db_obj=user, obj_in={"activo": False})
    db.commit()
    print(f"✅ Usuario con email '{email}' desactivado.")

def assign_centers(db, email: str, centros: str):
    """Reemplaza los centros asignados a un usuario."""
    user = usuario_service.get_by_email(db, email=email)
    if not user:
        print(f"⚠️ No se encontró ningún usuario con el email '{email}'.")
        return
    try:
        ids = asignacion_centro_service.set_assigned_centers(db, usuario=user, centro_ids=_parse_ids(centros))
        db.commit()
        print(f"✅ Centros asignados a '{user.nombre_usuario}': {ids}")
    except HTTPException as e:
        db.rollback()
        print(f"❌ Error: {e.detail}")

def list_users(db):
    """Muestra los usuarios con su rol y centros asignados."""
    print("\n--- LISTA DE USUARIOS ---")
    all_users = usuario_service.get_multi(db, skip=0, limit=1000)
    if not all_users:
        print("-> No se encontraron usuarios en la base de datos.")
        return
    print(f"{'ROL':<20} | {'NOMBRE DE USUARIO':<20} | {'CENTROS':<10} | {'EMAIL'}")
    print("-" * 80)
    for user in all_users:
        etiqueta = ROLE_LABELS.get(Role(user.rol), user.rol) if user.rol in ROLES_PERMITIDOS else f"{user.rol} (?)"
        centros = ",".join(str(i) for i in user.centro_ids) or "-"
        print(f"{etiqueta:<20} | {user.nombre_usuario:<20} | {centros:<10} | {user.email or 'No especificado'}")
    print("-" * 80)
    print(f"Total: {len(all_users)} usuarios.")

def list_centers(db):
    """Muestra todos los centros, activos o no."""
    print("\n--- LISTA DE CENTROS ---")
    centros = centro_service.get_multi(db, skip=0, limit=1000)
    print(f"{'ID':<4} | {'SLUG':<30} | {'ESTADO':<9} | {'NOMBRE'}")
    print("-" * 80)
    for centro in centros:
        estado = "activo" if centro.activo else "inactivo"
        marca = " (predeterminado)" if centro.es_default else ""
        print(f"{centro.id:<4} | {centro.slug:<30} | {estado:<9} | {centro.nombre}{marca}")
    print("-" * 80)
    print(f"Total: {len(centros)} centros.")

# --- Interfaz de Línea de Comandos Principal ---

def main():
    parser = argparse.ArgumentParser(description="Herramienta CLI para gestionar usuarios y centros.")
    subparsers = parser.add_subparsers(dest="command", help="Comandos disponibles", required=True)

    parser_create = subparsers.add_parser("create", help="Crear un nuevo usuario.")
    parser_create.add_argument("--nombre", type=str, required=True, help="Nombre de usuario único.")
    parser_create.add_argument("--email", type=str, required=True, help="Email del usuario.")
    parser_create.add_argument("--rol", type=str, required=True, choices=ROLES_PERMITIDOS, help="Rol del usuario.")
    parser_create.add_argument("--centros", type=str, default="", help="IDs de centros separados por coma.")

    parser_deactivate = subparsers.add_parser("deactivate", help="Desactivar un usuario existente.")
    parser_deactivate.add_argument("--email", type=str, required=True, help="Email del usuario.")

    parser_assign = subparsers.add_parser("assign", help="Reemplazar los centros asignados a un usuario.")
    parser_assign.add_argument("--email", type=str, required=True, help="Email del usuario.")
    parser_assign.add_argument("--centros", type=str, required=True, help="IDs de centros separados por coma.")

    subparsers.add_parser("list-users", help="Mostrar los usuarios con su rol y centros.")
    subparsers.add_parser("list-centers", help="Mostrar todos los centros.")
    subparsers.add_parser("seed", help="Crear tablas y cargar los datos de demostración.")

    args = parser.parse_args()
    if args.command == "seed":
        create_db_and_tables()
    db = SessionLocal()
    try:
        if args.command == "create":
            create_user(db, nombre=args.nombre, email=args.email, rol=args.rol, centros=args.centros)
        elif args.command == "deactivate":
            deactivate_user(db, email=args.email)
        elif args.command == "assign":
            assign_centers(db, email=args.email, centros=args.centros)
        elif args.command == "list-users":
            list_users(db)
        elif args.command == "list-centers":
            list_centers(db)
        elif args.command == "seed":
            inicializar_datos(db)
            print("✅ Datos de demostración cargados.")
    finally:
        db.close()

if __name__ == "__main__":
    main()
