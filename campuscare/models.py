"""
This module defines the data models for the CampusCare portal.

Each record class mirrors one kind of document in the store. Records are built
from documents with `from_doc(doc_id, data)` and turned back into the wire shape
(camelCase field names) with `to_doc()`. Documents are schemaless, so missing
fields fall back to neutral defaults instead of failing.
"""
# campuscare/models.py

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

EMERGENCY_TYPES = ["Medical", "Safety", "Fire", "Hostel Issue"]
MESSES = ["Gargi hostel mess", "Southern mess", "Northern mess", "Veg mess", "Rnt mess", "Eastern mess"]
MEALS = ["Breakfast", "Lunch", "Dinner", "Snacks"]
SNACK_MESSES = {"Gargi hostel mess"}
APPOINTMENT_STATUSES = ["scheduled", "completed", "cancelled"]
TERMINAL_STATUSES = {"completed", "cancelled"}
TIME_SLOTS = [
    "09:00 AM", "09:30 AM", "10:00 AM", "10:30 AM", "11:00 AM", "11:30 AM",
    "12:00 PM", "12:30 PM", "01:00 PM", "01:30 PM",
    "02:00 PM", "02:30 PM", "03:00 PM", "03:30 PM", "04:00 PM", "04:30 PM",
]
DEFAULT_DOCTOR = {"name": "Dr. A. K. Singh", "specialty": "General Physician", "isAvailable": True}


def meals_for(mess_name: str) -> List[str]:
    """Returns the meals served by a mess; only some messes serve snacks."""
    if mess_name in SNACK_MESSES:
        return list(MEALS)
    return [meal for meal in MEALS if meal != "Snacks"]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parses a stored ISO timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class User:
    """An authenticated identity from the authentication service.

    Attributes:
        uid (str): The opaque user identifier used as the owner of every write.
        email (str): The account email (synthetic for phone accounts).
        display_name (str): The user's display name.
        photo_url (str): URL of the user's profile photo.
        phone_number (str): Phone number for phone-based accounts.
        provider (str): 'password', 'phone' or the federated provider name.
    """
    def __init__(self, uid, email=None, display_name=None, photo_url=None, phone_number=None, provider="password"):
        self.uid = uid
        self.email = email
        self.display_name = display_name
        self.photo_url = photo_url
        self.phone_number = phone_number
        self.provider = provider

    @classmethod
    def from_account(cls, account: Dict[str, Any]) -> "User":
        return cls(
            uid=account["uid"],
            email=account.get("email"),
            display_name=account.get("displayName"),
            photo_url=account.get("photoURL"),
            phone_number=account.get("phoneNumber"),
            provider=account.get("provider", "password"),
        )

    @property
    def label(self) -> str:
        return self.display_name or self.email or self.phone_number or self.uid

    def __repr__(self) -> str:
        return f"User(uid={self.uid!r}, email={self.email!r})"


class EmergencyReport:
    """An SOS alert raised by a student. Append-only."""
    def __init__(self, student_id, student_name, enrollment_number, location, emergency_type, timestamp=None, id=None):
        self.id = id
        self.student_id = student_id
        self.student_name = student_name
        self.enrollment_number = enrollment_number
        self.location = location
        self.emergency_type = emergency_type
        self.timestamp = timestamp

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "EmergencyReport":
        return cls(
            id=doc_id,
            student_id=data.get("studentId"),
            student_name=data.get("studentName", ""),
            enrollment_number=data.get("enrollmentNumber", ""),
            location=data.get("location", ""),
            emergency_type=data.get("emergencyType", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "enrollmentNumber": self.enrollment_number,
            "location": self.location,
            "emergencyType": self.emergency_type,
            "timestamp": self.timestamp,
        }


class HospitalFeedback:
    """Feedback left after a visit to the campus hospital. Append-only.

    Attributes:
        waiting_time (int): Minutes spent waiting before being seen.
        doctor_availability (str): 'available' or 'unavailable'.
        emergency_vs_normal (str): 'emergency' or 'normal'.
    """
    def __init__(self, student_id, waiting_time, doctor_availability, post_visit_feedback, emergency_vs_normal,
                 timestamp=None, id=None):
        self.id = id
        self.student_id = student_id
        self.waiting_time = waiting_time
        self.doctor_availability = doctor_availability
        self.post_visit_feedback = post_visit_feedback
        self.emergency_vs_normal = emergency_vs_normal
        self.timestamp = timestamp

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "HospitalFeedback":
        return cls(
            id=doc_id,
            student_id=data.get("studentId"),
            waiting_time=data.get("waitingTime", 0) or 0,
            doctor_availability=data.get("doctorAvailability", ""),
            post_visit_feedback=data.get("postVisitFeedback", ""),
            emergency_vs_normal=data.get("emergencyVsNormal", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "waitingTime": self.waiting_time,
            "doctorAvailability": self.doctor_availability,
            "postVisitFeedback": self.post_visit_feedback,
            "emergencyVsNormal": self.emergency_vs_normal,
            "timestamp": self.timestamp,
        }


class Appointment:
    """A booking with the campus hospital.

    `status` starts as 'scheduled' and moves once to 'completed' or 'cancelled'.
    """
    def __init__(self, student_id, student_name, enrollment_number, appointment_date, appointment_time, reason,
                 status="scheduled", booked_by=None, id=None):
        self.id = id
        self.student_id = student_id
        self.student_name = student_name
        self.enrollment_number = enrollment_number
        self.appointment_date = appointment_date
        self.appointment_time = appointment_time
        self.reason = reason
        self.status = status
        self.booked_by = booked_by

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "Appointment":
        return cls(
            id=doc_id,
            student_id=data.get("studentId"),
            student_name=data.get("studentName", ""),
            enrollment_number=data.get("enrollmentNumber", ""),
            appointment_date=parse_date(data.get("appointmentDate")),
            appointment_time=data.get("appointmentTime", ""),
            reason=data.get("reason", ""),
            status=data.get("status", "scheduled"),
            booked_by=data.get("bookedBy"),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "studentId": self.student_id,
            "studentName": self.student_name,
            "enrollmentNumber": self.enrollment_number,
            "appointmentDate": self.appointment_date,
            "appointmentTime": self.appointment_time,
            "reason": self.reason,
            "status": self.status,
            "bookedBy": self.booked_by,
        }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def sort_key(self):
        return (self.appointment_date or date.max, TIME_SLOTS.index(self.appointment_time)
                if self.appointment_time in TIME_SLOTS else len(TIME_SLOTS))


class MessFoodRating:
    """A student's rating of one meal at one mess. Append-only."""
    def __init__(self, student_id, mess_name, meal_type, food_quality_rating, sick_after_meal_report,
                 image_url=None, timestamp=None, id=None):
        self.id = id
        self.student_id = student_id
        self.mess_name = mess_name
        self.meal_type = meal_type
        self.food_quality_rating = food_quality_rating
        self.sick_after_meal_report = sick_after_meal_report
        self.image_url = image_url
        self.timestamp = timestamp

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "MessFoodRating":
        return cls(
            id=doc_id,
            student_id=data.get("studentId"),
            mess_name=data.get("messName"),
            meal_type=data.get("mealType"),
            food_quality_rating=data.get("foodQualityRating", 0) or 0,
            sick_after_meal_report=data.get("sickAfterMealReport", "no"),
            image_url=data.get("imageUrl"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = {
            "studentId": self.student_id,
            "messName": self.mess_name,
            "mealType": self.meal_type,
            "foodQualityRating": self.food_quality_rating,
            "sickAfterMealReport": self.sick_after_meal_report,
            "timestamp": self.timestamp,
        }
        if self.image_url:
            doc["imageUrl"] = self.image_url
        return doc


class UserProfile:
    """Campus details a user keeps about themselves, merged into `userProfile/{uid}`."""
    def __init__(self, uid, display_name="", photo_url=None, enrollment_number="", hostel="", department="",
                 year="", updated_at=None):
        self.uid = uid
        self.display_name = display_name
        self.photo_url = photo_url
        self.enrollment_number = enrollment_number
        self.hostel = hostel
        self.department = department
        self.year = year
        self.updated_at = updated_at

    @classmethod
    def from_doc(cls, doc_id: str, data: Optional[Dict[str, Any]]) -> "UserProfile":
        data = data or {}
        return cls(
            uid=data.get("uid", doc_id),
            display_name=data.get("displayName", ""),
            photo_url=data.get("photoURL"),
            enrollment_number=data.get("enrollmentNumber", ""),
            hostel=data.get("hostel", ""),
            department=data.get("department", ""),
            year=data.get("year", ""),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "enrollmentNumber": self.enrollment_number,
            "hostel": self.hostel,
            "department": self.department,
            "year": self.year,
            "updatedAt": self.updated_at,
        }


class DoctorStatus:
    """The on-duty doctor at the campus hospital, stored as a singleton document."""
    def __init__(self, name, specialty, is_available=True):
        self.name = name
        self.specialty = specialty
        self.is_available = is_available

    @classmethod
    def from_doc(cls, doc_id: Optional[str], data: Optional[Dict[str, Any]]) -> "DoctorStatus":
        data = data or DEFAULT_DOCTOR
        return cls(
            name=data.get("name", DEFAULT_DOCTOR["name"]),
            specialty=data.get("specialty", DEFAULT_DOCTOR["specialty"]),
            is_available=bool(data.get("isAvailable", True)),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {"name": self.name, "specialty": self.specialty, "isAvailable": self.is_available}


class DailyNutritionLog:
    """One meal logged in a user's nutrition diary."""
    def __init__(self, calories, protein_grams, carbs_grams, fat_grams, photo_url=None, meal_description=None,
                 timestamp=None, id=None):
        self.id = id
        self.calories = calories
        self.protein_grams = protein_grams
        self.carbs_grams = carbs_grams
        self.fat_grams = fat_grams
        self.photo_url = photo_url
        self.meal_description = meal_description
        self.timestamp = timestamp

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "DailyNutritionLog":
        return cls(
            id=doc_id,
            calories=data.get("calories", 0) or 0,
            protein_grams=data.get("proteinGrams", 0) or 0,
            carbs_grams=data.get("carbsGrams", 0) or 0,
            fat_grams=data.get("fatGrams", 0) or 0,
            photo_url=data.get("photoUrl"),
            meal_description=data.get("mealDescription"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = {
            "calories": self.calories,
            "proteinGrams": self.protein_grams,
            "carbsGrams": self.carbs_grams,
            "fatGrams": self.fat_grams,
            "timestamp": self.timestamp,
        }
        if self.photo_url:
            doc["photoUrl"] = self.photo_url
        if self.meal_description:
            doc["mealDescription"] = self.meal_description
        return doc


class HealthRisk:
    """One risk reported by the AI health analysis."""
    def __init__(self, risk_type, risk_level, affected_area, description, recommendations):
        self.risk_type = risk_type
        self.risk_level = risk_level
        self.affected_area = affected_area
        self.description = description
        self.recommendations = recommendations

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthRisk":
        return cls(
            risk_type=data.get("riskType", "Unknown"),
            risk_level=data.get("riskLevel", "Unknown"),
            affected_area=data.get("affectedArea", "Campus"),
            description=data.get("description", ""),
            recommendations=data.get("recommendations", ""),
        )


class NutritionEstimate:
    """Macronutrient estimate for a photographed meal."""
    def __init__(self, calories, protein_grams, carbs_grams, fat_grams, meal_description=None):
        self.calories = calories
        self.protein_grams = protein_grams
        self.carbs_grams = carbs_grams
        self.fat_grams = fat_grams
        self.meal_description = meal_description

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NutritionEstimate":
        return cls(
            calories=float(data.get("calories", 0) or 0),
            protein_grams=float(data.get("proteinGrams", 0) or 0),
            carbs_grams=float(data.get("carbsGrams", 0) or 0),
            fat_grams=float(data.get("fatGrams", 0) or 0),
            meal_description=data.get("mealDescription"),
        )
