from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class SessionState:
    """
    Estado de la sesión tal como lo expone la fuente de autenticación.
    `role` se guarda como texto crudo; la normalización ocurre en el resolvedor de permisos.
    """
    status: SessionStatus
    user_id: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def pending(cls) -> "SessionState":
        return cls(status=SessionStatus.PENDING)

    @classmethod
    def unauthenticated(cls) -> "SessionState":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @classmethod
    def authenticated(cls, user_id, role: Optional[str]) -> "SessionState":
        return cls(status=SessionStatus.AUTHENTICATED, user_id=str(user_id), role=role)

    @property
    def is_pending(self) -> bool:
        return self.status == SessionStatus.PENDING

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED
