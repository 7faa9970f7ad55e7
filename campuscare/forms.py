"""
Form schemas for every CampusCare form.

Forms are validated before any store or network call. `validate_form` turns a
pydantic `ValidationError` into a `Result` carrying one message per field so the
GUI can show the problem next to the input.
"""
# campuscare/forms.py

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from campuscare.errors import ErrorKind, Result
from campuscare.models import EMERGENCY_TYPES, MESSES, TIME_SLOTS, meals_for


class EmailSignInForm(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=6)


class PhoneSignInForm(BaseModel):
    phone_number: str = Field(min_length=10, max_length=10, pattern=r"^\d{10}$")
    password: str = Field(min_length=6)


class EmergencyForm(BaseModel):
    emergency_type: str
    location: str = Field(min_length=2, max_length=120)
    student_name: str = Field(min_length=2)
    enrollment_number: str = ""

    @field_validator("emergency_type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        if value not in EMERGENCY_TYPES:
            raise ValueError(f"Choose one of: {', '.join(EMERGENCY_TYPES)}.")
        return value


class HospitalFeedbackForm(BaseModel):
    case_type: Literal["normal", "emergency"]
    waiting_time: int = Field(ge=0)
    doctor_availability: Literal["available", "unavailable"]
    feedback: str = Field(min_length=10, max_length=500)


class AppointmentForm(BaseModel):
    student_name: str = Field(min_length=2)
    enrollment_number: str = Field(min_length=5)
    appointment_date: date
    appointment_time: str
    reason: str = Field(min_length=10, max_length=200)

    @field_validator("appointment_time")
    @classmethod
    def _known_slot(cls, value: str) -> str:
        if value not in TIME_SLOTS:
            raise ValueError("Please select a time slot.")
        return value


class MessRatingForm(BaseModel):
    mess_name: str
    meal_type: str
    rating: int = Field(ge=1, le=5)
    sick_after_meal: Literal["yes", "no"] = "no"

    @field_validator("mess_name")
    @classmethod
    def _known_mess(cls, value: str) -> str:
        if value not in MESSES:
            raise ValueError("Please select a mess.")
        return value

    @model_validator(mode="after")
    def _meal_served(self) -> "MessRatingForm":
        if self.meal_type not in meals_for(self.mess_name):
            raise ValueError(f"{self.mess_name} does not serve {self.meal_type or 'that meal'}.")
        return self


class ProfileForm(BaseModel):
    display_name: str = Field(min_length=2)
    enrollment_number: str = ""
    hostel: str = ""
    department: str = ""
    year: str = ""


class DoctorStatusForm(BaseModel):
    name: str = Field(min_length=2)
    specialty: str = Field(min_length=2)
    is_available: bool


class NutritionLogForm(BaseModel):
    calories: float = Field(ge=0)
    protein_grams: float = Field(ge=0)
    carbs_grams: float = Field(ge=0)
    fat_grams: float = Field(ge=0)
    meal_description: Optional[str] = None


_MESSAGES = {
    "string_too_short": "Must be at least {min_length} characters.",
    "string_too_long": "Must be at most {max_length} characters.",
    "greater_than_equal": "Must be at least {ge}.",
    "less_than_equal": "Must be at most {le}.",
    "missing": "This field is required.",
}


def _message(error: Dict[str, Any]) -> str:
    template = _MESSAGES.get(error["type"])
    if template:
        try:
            return template.format(**error.get("ctx", {}))
        except KeyError:
            pass
    message = error["msg"]
    return message.removeprefix("Value error, ")


def validate_form(form_class: Type[BaseModel], values: Dict[str, Any]) -> Result:
    """Validates `values` against `form_class`.

    Returns:
        Result: the parsed form on success, otherwise a VALIDATION failure whose
        `fields` maps each invalid field to its message ('form' for cross-field errors).
    """
    try:
        return Result.success(form_class(**values))
    except ValidationError as e:
        fields: Dict[str, str] = {}
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "form"
            fields.setdefault(field, _message(error))
        return Result.failure(ErrorKind.VALIDATION, "Please correct the highlighted fields.", fields)
