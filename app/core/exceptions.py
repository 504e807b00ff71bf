"""
Excepciones de dominio del contexto de centros.

Solo los errores de validación sobre acciones explícitas del usuario
(p. ej. crear un centro con un slug repetido) llegan al llamador. Los fallos
de persistencia se capturan dentro del contexto y se degradan a memoria.
"""


class AppError(Exception):
    """Excepción base de la aplicación."""
    def __init__(self, message: str, code: str = "ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class DuplicateSlugError(AppError):
    """Ya existe un centro con el mismo slug."""
    def __init__(self, slug: str):
        super().__init__(f"Ya existe un centro con el slug \"{slug}\"", "DUPLICATE_SLUG")
        self.slug = slug


class CenterNotFoundError(AppError):
    """El centro no existe o no está visible para el usuario."""
    def __init__(self, center_id):
        super().__init__(f"Centro con ID {center_id} no encontrado.", "CENTER_NOT_FOUND")
        self.center_id = center_id


class StorageUnavailableError(AppError):
    """El almacenamiento clave-valor no está disponible."""
    def __init__(self, message: str = "Almacenamiento no disponible"):
        super().__init__(message, "STORAGE_UNAVAILABLE")


class PermissionDeniedError(AppError):
    """El rol del usuario no alcanza el nivel requerido sobre el recurso."""
    def __init__(self, resource: str, level: str, redirect_to: str = "/"):
        super().__init__("No tiene permiso para realizar esta acción.", "PERMISSION_DENIED")
        self.resource = resource
        self.level = level
        self.redirect_to = redirect_to
