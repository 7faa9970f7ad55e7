"""
This module provides the service layer behind every CampusCare page.

It defines the `CampusPortalService` class, which is responsible for:
- Signing users in and out through the authentication service.
- Validating form values and submitting them as single-document writes.
- Building the live bindings each page displays.
- Calling the Gemini client for health-risk analysis, first aid and nutrition.

Every operation returns a `Result`; nothing here raises for an expected failure.
"""
# campuscare/portal.py

import logging
import weakref
from datetime import datetime, time, timedelta, timezone

from campuscare import rules
from campuscare.errors import (
    PERMISSION_ERROR,
    ErrorKind,
    PermissionDeniedError,
    PermissionErrorEvent,
    Result,
    UpstreamServiceError,
)
from campuscare.forms import (
    AppointmentForm,
    DoctorStatusForm,
    EmailSignInForm,
    EmergencyForm,
    HospitalFeedbackForm,
    MessRatingForm,
    NutritionLogForm,
    PhoneSignInForm,
    ProfileForm,
    validate_form,
)
from campuscare.live import LiveQuery
from campuscare.models import (
    APPOINTMENT_STATUSES,
    Appointment,
    DailyNutritionLog,
    DoctorStatus,
    EmergencyReport,
    HospitalFeedback,
    MessFoodRating,
    UserProfile,
)
from campuscare.store import SERVER_TIMESTAMP, Query

logger = logging.getLogger(__name__)

DOCTOR_STATUS_PATH = f"{rules.CAMPUS_INFO}/hospital"
RECENT_PHOTO_WINDOW = 20
RECENT_PHOTO_COUNT = 6


def today_bounds(now=None):
    """Start and end (exclusive) of the current UTC calendar day."""
    now = now or datetime.now(timezone.utc)
    start = datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _with_images(ratings):
    return [r for r in ratings if r.image_url][:RECENT_PHOTO_COUNT]


def _mess_query(mess_name=None, meal_type=None):
    query = Query(rules.MESS_FOOD_RATINGS)
    if mess_name:
        query = query.where("messName", "==", mess_name)
    if meal_type:
        query = query.where("mealType", "==", meal_type)
    return query


def _sorted_appointments(appointments):
    return sorted(appointments, key=lambda a: a.sort_key())


class CampusPortalService:
    """Manages the signed-in user's interaction with CampusCare."""

    def __init__(self, context):
        """
        Args:
            context: The `CampusContext` holding the store, auth, storage and AI handles.
        """
        self.ctx = context
        self.current_user = None
        self._relays = []

    @property
    def uid(self):
        return self.current_user.uid if self.current_user else None

    # Authentication

    def _signed_in(self, result):
        if result.ok:
            self.current_user = result.value
            logger.info("User %s signed in via %s", self.uid, self.current_user.provider)
        return result

    def login_with_email(self, email, password):
        """Signs in with email and password, creating the account on first use."""
        form = validate_form(EmailSignInForm, {"email": email, "password": password})
        if not form.ok:
            return form
        return self._signed_in(self.ctx.auth.sign_in_with_email(form.value.email, form.value.password,
                                                                create_if_missing=True))

    def login_with_phone(self, phone_number, password):
        form = validate_form(PhoneSignInForm, {"phone_number": phone_number, "password": password})
        if not form.ok:
            return form
        return self._signed_in(self.ctx.auth.sign_in_with_phone_password(form.value.phone_number,
                                                                         form.value.password))

    def request_otp(self, phone_number):
        """Sends a one-time code to a 10-digit phone number."""
        phone_number = (phone_number or "").strip()
        if not (len(phone_number) == 10 and phone_number.isdigit()):
            return Result.failure(ErrorKind.VALIDATION, "Please correct the highlighted fields.",
                                  {"phone_number": "Enter a 10-digit phone number."})
        return self.ctx.auth.request_otp(phone_number)

    def verify_otp(self, phone_number, code):
        return self._signed_in(self.ctx.auth.verify_otp((phone_number or "").strip(), (code or "").strip()))

    def login_with_federated(self, provider, email, display_name=None, photo_url=None):
        """Signs in with an identity an external provider (such as Google) has already verified."""
        return self._signed_in(self.ctx.auth.sign_in_with_federated(provider, email, display_name, photo_url))

    def logout(self):
        logger.info("User %s signed out", self.uid)
        self.current_user = None
        while self._relays:
            self._relays.pop()()

    def is_admin(self):
        """True when the signed-in user holds the admin role."""
        if self.uid is None:
            return False
        try:
            return self.ctx.store.get(f"{rules.ROLES_ADMIN}/{self.uid}", self.uid).exists
        except PermissionDeniedError:
            return False

    def watch_permission_errors(self, callback):
        """Relays the signed-in user's permission denials to `callback`.

        The relay ends on logout, when the returned function is called, or when this
        service object is discarded with its session.
        """
        owner = weakref.ref(self)

        def relay(event):
            portal = owner()
            if portal is not None and portal.uid is not None and event.uid == portal.uid:
                callback(event)

        unsubscribe = self.ctx.errors.on(PERMISSION_ERROR, relay)
        weakref.finalize(self, unsubscribe)
        self._relays.append(unsubscribe)
        return unsubscribe

    # Uploads

    def _upload(self, folder, photo, name=None):
        """Uploads `photo`, a `(bytes, content_type)` pair. Returns a Result holding the URL or None."""
        if not photo:
            return Result.success(None)
        data, content_type = photo
        try:
            return Result.success(self.ctx.storage.upload(folder, data, content_type, name=name))
        except UpstreamServiceError as e:
            logger.error("Upload to %s failed: %s", folder, e)
            return Result.failure(ErrorKind.UPSTREAM, str(e))

    # Submissions

    def report_emergency(self, values):
        """Raises an SOS alert for the signed-in student."""
        form = validate_form(EmergencyForm, values)
        if not form.ok:
            return form
        f = form.value
        payload = {
            "studentId": self.uid,
            "studentName": f.student_name,
            "enrollmentNumber": f.enrollment_number,
            "location": f.location,
            "emergencyType": f.emergency_type,
            "timestamp": SERVER_TIMESTAMP,
        }
        return self.ctx.mutations.create(rules.EMERGENCY_REPORTS, payload, self.uid,
                                         "Could not send the SOS alert. Please call campus security.")

    def submit_hospital_feedback(self, values):
        form = validate_form(HospitalFeedbackForm, values)
        if not form.ok:
            return form
        f = form.value
        payload = {
            "studentId": self.uid,
            "waitingTime": f.waiting_time,
            "doctorAvailability": f.doctor_availability,
            "postVisitFeedback": f.feedback,
            "emergencyVsNormal": f.case_type,
            "timestamp": SERVER_TIMESTAMP,
        }
        return self.ctx.mutations.create(rules.HOSPITAL_FEEDBACKS, payload, self.uid,
                                         "You do not have permission to submit feedback.")

    def book_appointment(self, values):
        """Books a hospital appointment in the 'scheduled' state."""
        form = validate_form(AppointmentForm, values)
        if not form.ok:
            return form
        f = form.value
        payload = {
            "studentId": self.uid,
            "studentName": f.student_name,
            "enrollmentNumber": f.enrollment_number,
            "appointmentDate": f.appointment_date,
            "appointmentTime": f.appointment_time,
            "reason": f.reason,
            "status": "scheduled",
            "bookedBy": self.current_user.label if self.current_user else None,
        }
        return self.ctx.mutations.create(rules.APPOINTMENTS, payload, self.uid,
                                         "You do not have permission to book an appointment.")

    def set_appointment_status(self, appointment_id, status):
        """Moves an appointment to `status`; owners may only cancel."""
        if status not in APPOINTMENT_STATUSES:
            return Result.failure(ErrorKind.VALIDATION, f"Unknown appointment status: {status}",
                                  {"status": f"Choose one of: {', '.join(APPOINTMENT_STATUSES)}."})
        return self.ctx.mutations.patch(f"{rules.APPOINTMENTS}/{appointment_id}", {"status": status}, self.uid,
                                        "You do not have permission to change this appointment.")

    def cancel_appointment(self, appointment_id):
        return self.set_appointment_status(appointment_id, "cancelled")

    def submit_mess_rating(self, values, photo=None):
        """Rates a meal, optionally with a photo of it.

        Returns:
            Result: the created document snapshot on success.
        """
        form = validate_form(MessRatingForm, values)
        if not form.ok:
            return form
        upload = self._upload("mess-photos", photo)
        if not upload.ok:
            return upload
        f = form.value
        record = MessFoodRating(self.uid, f.mess_name, f.meal_type, f.rating, f.sick_after_meal,
                                image_url=upload.value, timestamp=SERVER_TIMESTAMP)
        return self.ctx.mutations.create(rules.MESS_FOOD_RATINGS, record.to_doc(), self.uid,
                                         "You do not have permission to submit a rating.")

    def load_profile(self):
        """Returns the stored `UserProfile`, or None when the user has not saved one."""
        if self.uid is None:
            return None
        try:
            snapshot = self.ctx.store.get(f"{rules.USER_PROFILE}/{self.uid}", self.uid)
        except PermissionDeniedError as e:
            self.ctx.errors.report_permission_error(PermissionErrorEvent.from_exception(e, uid=self.uid))
            return None
        return UserProfile.from_doc(snapshot.id, snapshot.data) if snapshot.exists else None

    def save_profile(self, values, photo=None):
        """Merge-upserts the user's profile and mirrors name and photo onto the account."""
        form = validate_form(ProfileForm, values)
        if not form.ok:
            return form
        upload = self._upload("profile-pictures", photo, name=self.uid)
        if not upload.ok:
            return upload
        f = form.value
        payload = {
            "uid": self.uid,
            "displayName": f.display_name,
            "enrollmentNumber": f.enrollment_number,
            "hostel": f.hostel,
            "department": f.department,
            "year": f.year,
            "updatedAt": SERVER_TIMESTAMP,
        }
        if upload.value:
            payload["photoURL"] = upload.value
        result = self.ctx.mutations.merge(f"{rules.USER_PROFILE}/{self.uid}", payload, self.uid,
                                          "You do not have permission to update this profile.")
        if not result.ok:
            return result
        account = self.ctx.auth.update_profile(self.uid, display_name=f.display_name, photo_url=upload.value)
        if account.ok:
            self.current_user = account.value
        return result

    def update_doctor_status(self, values):
        form = validate_form(DoctorStatusForm, values)
        if not form.ok:
            return form
        status = DoctorStatus(form.value.name, form.value.specialty, form.value.is_available)
        return self.ctx.mutations.merge(DOCTOR_STATUS_PATH, status.to_doc(), self.uid,
                                        "You do not have permission to change the doctor status.")

    def log_nutrition(self, values, photo=None):
        """Adds a meal to today's nutrition diary."""
        form = validate_form(NutritionLogForm, values)
        if not form.ok:
            return form
        upload = self._upload("meal-photos", photo)
        if not upload.ok:
            return upload
        f = form.value
        log = DailyNutritionLog(f.calories, f.protein_grams, f.carbs_grams, f.fat_grams, photo_url=upload.value,
                                meal_description=f.meal_description, timestamp=SERVER_TIMESTAMP)
        return self.ctx.mutations.create(self._nutrition_path(), log.to_doc(), self.uid,
                                         "You do not have permission to log meals here.")

    def _nutrition_path(self):
        return f"{rules.USER_PROFILE}/{self.uid}/{rules.NUTRITION_LOGS}"

    # Live bindings. Each returns an unstarted LiveQuery; start it or use it in a `with` block.

    def _live(self, record_type, query=None, doc_path=None, transform=None):
        return LiveQuery(self.ctx.store, self.uid, record_type, query=query, doc_path=doc_path,
                         emitter=self.ctx.errors, transform=transform)

    def watch_today_mess_ratings(self, now=None):
        start, end = today_bounds(now)
        query = Query(rules.MESS_FOOD_RATINGS).where("timestamp", ">=", start).where("timestamp", "<", end)
        return self._live(MessFoodRating, query)

    def watch_mess_ratings(self, mess_name=None, meal_type=None):
        """Ratings for one mess and meal; a filter left as None matches everything."""
        return self._live(MessFoodRating, _mess_query(mess_name, meal_type))

    def watch_recent_mess_photos(self, mess_name=None, meal_type=None):
        query = _mess_query(mess_name, meal_type).order_by("timestamp", descending=True).limit(RECENT_PHOTO_WINDOW)
        return self._live(MessFoodRating, query, transform=_with_images)

    def watch_hospital_feedbacks(self):
        return self._live(HospitalFeedback, Query(rules.HOSPITAL_FEEDBACKS).order_by("timestamp", descending=True))

    def watch_emergency_reports(self):
        return self._live(EmergencyReport, Query(rules.EMERGENCY_REPORTS).order_by("timestamp", descending=True))

    def watch_all_appointments(self):
        return self._live(Appointment, Query(rules.APPOINTMENTS).order_by("appointmentDate"),
                          transform=_sorted_appointments)

    def watch_my_appointments(self):
        # Sorted after fetch; the equality filter on studentId is what the rules require.
        query = Query(rules.APPOINTMENTS).where("studentId", "==", self.uid)
        return self._live(Appointment, query, transform=_sorted_appointments)

    def watch_doctor_status(self):
        return self._live(DoctorStatus, doc_path=DOCTOR_STATUS_PATH)

    def watch_today_nutrition_logs(self, now=None):
        start, end = today_bounds(now)
        query = (Query(self._nutrition_path())
                 .where("timestamp", ">=", start)
                 .where("timestamp", "<", end)
                 .order_by("timestamp", descending=True))
        return self._live(DailyNutritionLog, query)

    # AI

    def analyze_health_risks(self, emergency_reports, hospital_feedbacks, mess_food_ratings):
        """Runs the AI health-risk analysis over the records currently on screen."""
        try:
            return Result.success(self.ctx.ai.predict_health_risks(emergency_reports, hospital_feedbacks,
                                                                   mess_food_ratings))
        except UpstreamServiceError as e:
            return Result.failure(ErrorKind.UPSTREAM, f"Health analysis failed: {e}")

    def first_aid_reply(self, history):
        """Answers the last user message of a first-aid conversation."""
        try:
            return Result.success(self.ctx.ai.first_aid_chat(history))
        except ValueError as e:
            return Result.failure(ErrorKind.VALIDATION, str(e))
        except UpstreamServiceError as e:
            return Result.failure(ErrorKind.UPSTREAM, f"The assistant is unavailable: {e}")

    def estimate_meal_nutrition(self, image_bytes, mime_type):
        if not image_bytes:
            return Result.failure(ErrorKind.VALIDATION, "Upload a photo of your meal first.")
        try:
            return Result.success(self.ctx.ai.estimate_nutrition(image_bytes, mime_type))
        except UpstreamServiceError as e:
            return Result.failure(ErrorKind.UPSTREAM, f"Could not analyse the photo: {e}")
