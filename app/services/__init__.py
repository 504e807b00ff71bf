"""
Módulo de Servicios

Este paquete contiene la lógica de negocio y las interacciones
con la base de datos para usuarios, centros y sus asignaciones.

Cada módulo define un servicio (usualmente una instancia de una clase)
que encapsula las operaciones sobre un modelo ORM.
"""

# Importar instancias de servicio para facilitar el acceso
from .centro import centro_service
from .usuario import usuario_service
from .asignacion_centro import asignacion_centro_service
from .center_registry import CenterContextRegistry

__all__ = [
    "centro_service",
    "usuario_service",
    "asignacion_centro_service",
    "CenterContextRegistry",
]
