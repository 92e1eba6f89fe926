"""
Excepciones HTTP personalizadas para la API.

Los errores de negocio de la agenda llevan un `code` estable en el detail
para que el frontend distinga la acción a tomar (elegir otro horario,
no hacer nada, corregir datos).
"""

from datetime import datetime, timezone, tzinfo
from uuid import UUID

from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    """Error de credenciales inválidas (401)."""

    def __init__(self, detail: str = "Credenciales inválidas"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(HTTPException):
    """Error de permisos insuficientes (403)."""

    def __init__(self, detail: str = "No tiene permisos para realizar esta acción"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class NotFoundException(HTTPException):
    """
    Recurso no encontrado (404).
    También se usa cuando el recurso pertenece a otra clínica,
    para no revelar su existencia.
    """

    code = "not_found"

    def __init__(self, resource: str = "Recurso", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": self.code,
                "message": detail or f"{resource} no encontrado",
            },
        )


class ValidationException(HTTPException):
    """Error de validación de negocio (422)."""

    code = "validation_error"

    def __init__(self, detail: str = "Error de validación"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": self.code, "message": detail},
        )


class UnavailableTimeException(ValidationException):
    """Horario fuera de atención o bloqueado por una regla de indisponibilidad (422)."""

    code = "unavailable_time"


class InvalidTransitionException(HTTPException):
    """Transición de estado no permitida por la state machine (400)."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str, allowed: list[str]):
        self.current = current
        self.target = target
        self.allowed = allowed
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": self.code,
                "message": f"No se puede cambiar de '{current}' a '{target}'",
                "current_status": current,
                "target_status": target,
                "allowed": allowed,
            },
        )


class AlreadyCompletedException(HTTPException):
    """La cita ya fue completada (400)."""

    code = "already_completed"

    def __init__(self, detail: str = "La cita ya fue completada"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": self.code, "message": detail},
        )


class AlreadyPaidException(HTTPException):
    """La cita ya fue pagada (400)."""

    code = "already_paid"

    def __init__(self, detail: str = "La cita ya fue pagada"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": self.code, "message": detail},
        )


class ImmutableAppointmentException(HTTPException):
    """Edición de una cita en estado terminal (400)."""

    code = "immutable"

    def __init__(self, status_value: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": self.code,
                "message": f"No se puede editar una cita en estado '{status_value}'",
            },
        )


class SchedulingConflictException(HTTPException):
    """Solapamiento de horario con otra cita del profesional (409)."""

    code = "scheduling_conflict"

    def __init__(
        self,
        appointment_id: UUID,
        start_time: datetime,
        end_time: datetime,
        tz: tzinfo = timezone.utc,
    ):
        self.conflicting_id = appointment_id
        self.conflicting_start = start_time
        self.conflicting_end = end_time
        local_start = start_time.astimezone(tz)
        local_end = end_time.astimezone(tz)
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": self.code,
                "message": (
                    f"El profesional ya tiene una cita entre "
                    f"{local_start:%H:%M} y {local_end:%H:%M}"
                ),
                "conflict": {
                    "appointment_id": str(appointment_id),
                    "start_time": start_time.isoformat(),
                    "end_time": end_time.isoformat(),
                    "local_start_time": local_start.isoformat(),
                    "local_end_time": local_end.isoformat(),
                },
            },
        )
