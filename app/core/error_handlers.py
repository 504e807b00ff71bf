import logging
import traceback

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, NoResultFound

from app.core.exceptions import (
    AppError,
    CenterNotFoundError,
    DuplicateSlugError,
    PermissionDeniedError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

# Fragmentos del mensaje del driver (PostgreSQL o SQLite) -> mensaje para el usuario
UNIQUE_VIOLATION_MESSAGES = (
    (("uq_centros_slug", "ix_centros_slug", "centros.slug"), "Ya existe un centro con ese slug."),
    (("uq_usuarios_nombre_usuario", "ix_usuarios_nombre_usuario", "usuarios.nombre_usuario"), "Nombre de usuario ya registrado."),
    (("uq_usuarios_email", "ix_usuarios_email", "usuarios.email"), "Correo electrónico ya registrado."),
)


async def validation_exception_handler(request: Request, exc: Exception):
    """
    Manejador para errores de validación de Pydantic en las solicitudes.
    """
    if not isinstance(exc, RequestValidationError):
        return await generic_exception_handler(request, exc)

    error_details = []
    for error in exc.errors():
        field_loc = error.get("loc", ["body"])
        if field_loc and field_loc[0] == 'body' and len(field_loc) > 1:
            field = " -> ".join(map(str, field_loc[1:]))
        else:
            field = " -> ".join(map(str, field_loc))
        message = error.get("msg", "Error de validación")
        error_details.append({"field": field, "message": message})
    logger.warning(f"Error de Validación en Request: {request.method} {request.url} - Errores: {error_details}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Error de validación en los datos de entrada.", "errors": error_details},
    )

async def http_exception_handler(request: Request, exc: Exception):
    """
    Manejador para excepciones HTTP explícitas lanzadas en la aplicación.
    """
    if not isinstance(exc, HTTPException):
        return await generic_exception_handler(request, exc)

    log_message = f"HTTPException - Status: {exc.status_code}, Detail: {exc.detail}, Request: {request.method} {request.url}"
    if exc.status_code >= 500:
        logger.error(log_message)
    elif exc.status_code >= 400:
        logger.warning(log_message)
    else:
        logger.info(log_message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )

async def app_exception_handler(request: Request, exc: Exception):
    """
    Manejador para las excepciones de dominio (`AppError`).
    """
    if not isinstance(exc, AppError):
        return await generic_exception_handler(request, exc)

    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, DuplicateSlugError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, CenterNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionDeniedError):
        status_code = status.HTTP_403_FORBIDDEN
        content["redirect_to"] = exc.redirect_to
    elif isinstance(exc, StorageUnavailableError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    logger.warning(f"AppError - Code: {exc.code}, Status: {status_code}, Detail: {exc.message}, Request: {request.method} {request.url}")
    return JSONResponse(status_code=status_code, content=content)

async def database_exception_handler(request: Request, exc: Exception):
    """
    Manejador para errores relacionados con la base de datos.
    """
    if not isinstance(exc, SQLAlchemyError):
        return await generic_exception_handler(request, exc)

    original_exc = getattr(exc, 'orig', None)
    error_message_for_matching = str(original_exc if original_exc else exc).lower()

    logger.error(
        f"Database Error Handler - Type: {type(original_exc).__name__ if original_exc else type(exc).__name__}, "
        f"MatchMsg: '{error_message_for_matching}', Request: {request.method} {request.url}",
        exc_info=True
    )

    if isinstance(exc, IntegrityError):
        if "unique" in error_message_for_matching or "duplicate key" in error_message_for_matching:
            user_message = "Conflicto: Ya existe un registro con datos que deben ser únicos."
            for fragments, message in UNIQUE_VIOLATION_MESSAGES:
                if any(fragment in error_message_for_matching for fragment in fragments):
                    user_message = message
                    break
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_message_for_matching:
            user_message = "Error de referencia: El registro vinculado no existe."
            status_code = status.HTTP_404_NOT_FOUND
        elif "not null" in error_message_for_matching or "not-null" in error_message_for_matching:
            user_message = "Error de datos: Falta un campo obligatorio."
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        else:
            user_message = "Error de integridad en la base de datos. Verifique los datos."
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, NoResultFound):
        user_message = "El recurso solicitado no fue encontrado."
        status_code = status.HTTP_404_NOT_FOUND
    else:
        logger.error(f"DB Handler: Error DB no mapeado resultando en 500. Exception: {type(exc).__name__} - {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Ocurrió un error interno del servidor al procesar la solicitud de base de datos."},
        )

    logger.info(f"DB Handler: Mapeando error DB a -> Status={status_code}, Detail='{user_message}'")
    return JSONResponse(status_code=status_code, content={"detail": user_message})


async def generic_exception_handler(request: Request, exc: Exception):
    """
    Manejador genérico para cualquier excepción no capturada por otros manejadores.
    """
    logger.critical(
        f"Unhandled Python Exception: {type(exc).__name__} - {exc}, Request: {request.method} {request.url}\n{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Ocurrió un error interno inesperado en la aplicación."},
    )

def register_error_handlers(app: FastAPI):
    """Registra todos los manejadores de excepciones personalizados en la app FastAPI."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    logger.info("Manejadores de errores personalizados registrados.")
