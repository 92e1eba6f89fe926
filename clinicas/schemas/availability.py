"""
Schemas para el horario de atención y las reglas de indisponibilidad.
"""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class DayHours(BaseModel):
    is_open: bool = True
    start: time = time(9, 0)
    end: time = time(18, 0)

    @model_validator(mode="after")
    def check_range(self) -> "DayHours":
        if self.is_open and self.start >= self.end:
            raise ValueError("La hora de apertura debe ser menor que la de cierre")
        return self


class BusinessHours(BaseModel):
    """Un día ausente se considera cerrado."""
    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None


class BusinessHoursResponse(BaseModel):
    clinic_id: UUID
    timezone: str
    business_hours: BusinessHours | None = None


class UnavailabilityRuleCreate(BaseModel):
    description: str | None = Field(None, max_length=200)
    start_time: time
    end_time: time
    dates: list[date] = Field(..., min_length=1)
    professional_ids: list[UUID] = Field(
        default_factory=list, description="Vacío = afecta a todos"
    )

    @model_validator(mode="after")
    def check_range(self) -> "UnavailabilityRuleCreate":
        if self.start_time >= self.end_time:
            raise ValueError("La hora inicial debe ser menor que la final")
        return self


class UnavailabilityRuleResponse(BaseModel):
    id: UUID
    clinic_id: UUID
    description: str | None = None
    start_time: time
    end_time: time
    dates: list[date]
    professional_ids: list[UUID]
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
