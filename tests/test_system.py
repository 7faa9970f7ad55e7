"""
System-level tests for CampusCare.

These tests walk through complete workflows across several signed-in users and
check the state every participant observes afterwards.
"""
from datetime import date, timedelta

from campuscare import aggregates
from campuscare.config import Settings
from campuscare.context import create_context
from campuscare.errors import ErrorKind
from campuscare.models import APPOINTMENT_STATUSES
from campuscare.portal import CampusPortalService


def _booking(name="Asha Rao", slot="10:30 AM", days_ahead=1):
    return {
        "student_name": name,
        "enrollment_number": "E21001",
        "appointment_date": date.today() + timedelta(days=days_ahead),
        "appointment_time": slot,
        "reason": "Persistent headache for three days",
    }


def test_appointment_lifecycle_is_seen_by_student_and_admin(student, other_student, admin, permission_events):
    """
    A student books two appointments; the admin completes one and the student
    cancels the other. Both views reflect every status change, and forbidden
    transitions are denied without changing anything.
    """
    with student.watch_my_appointments() as mine, admin.watch_all_appointments() as everyone:
        first = student.book_appointment(_booking(slot="11:00 AM", days_ahead=2))
        second = student.book_appointment(_booking(slot="09:30 AM", days_ahead=2))
        other_student.book_appointment(_booking(name="Ravi Kumar", days_ahead=1))
        assert first.ok and second.ok

        assert [a.appointment_time for a in mine.records] == ["09:30 AM", "11:00 AM"]
        assert all(a.status == "scheduled" for a in mine.records)
        assert [a.student_name for a in everyone.records][0] == "Ravi Kumar"
        assert aggregates.status_counts(everyone.records) == {"scheduled": 3, "completed": 0, "cancelled": 0}

        denied = student.set_appointment_status(first.value.id, "completed")
        assert denied.error is ErrorKind.PERMISSION_DENIED
        assert len(permission_events) == 1
        assert permission_events[0].request_resource_data == {"status": "completed"}

        assert admin.set_appointment_status(first.value.id, "completed").ok
        assert student.cancel_appointment(second.value.id).ok

        statuses = {a.id: a.status for a in mine.records}
        assert statuses == {first.value.id: "completed", second.value.id: "cancelled"}
        assert all(a.status in APPOINTMENT_STATUSES for a in everyone.records)
        assert aggregates.status_counts(everyone.records) == {"scheduled": 1, "completed": 1, "cancelled": 1}

    cannot_touch = other_student.cancel_appointment(first.value.id)
    assert cannot_touch.error is ErrorKind.PERMISSION_DENIED
    unknown = admin.set_appointment_status(first.value.id, "postponed")
    assert unknown.error is ErrorKind.VALIDATION
    missing = admin.set_appointment_status("does-not-exist", "completed")
    assert missing.error is ErrorKind.NOT_FOUND


def test_doctor_status_updates_reach_every_viewer(student, admin):
    with student.watch_doctor_status() as doctor:
        assert doctor.records.name == "Dr. A. K. Singh"

        result = admin.update_doctor_status({"name": "Dr. N. Iyer", "specialty": "Paediatrics",
                                             "is_available": False})

        assert result.ok
        assert doctor.records.name == "Dr. N. Iyer"
        assert doctor.records.is_available is False

    admin.update_doctor_status({"name": "Dr. N. Iyer", "specialty": "Paediatrics", "is_available": True})
    assert doctor.records.is_available is False


def test_data_survives_a_restart_and_admin_role_is_checked(tmp_path, fernet, ai):
    settings = Settings(data_file=str(tmp_path / "records.json"), key_file=str(tmp_path / "secret.key"),
                        media_dir=str(tmp_path / "media"), live_refresh_seconds=0)

    with create_context(settings, encryptor=fernet, ai=ai) as ctx:
        portal = CampusPortalService(ctx)
        assert portal.login_with_phone("9876543210", "secret123").ok
        assert not portal.is_admin()
        ctx.store.grant_admin(portal.uid)
        assert portal.is_admin()
        assert portal.report_emergency({"emergency_type": "Hostel Issue", "location": "Northern block",
                                        "student_name": "Meera"}).ok
        uid = portal.uid

    with create_context(settings, encryptor=fernet, ai=ai) as ctx:
        portal = CampusPortalService(ctx)
        result = portal.login_with_phone("9876543210", "secret123")
        assert result.ok and result.value.uid == uid
        assert portal.is_admin()
        with portal.watch_emergency_reports() as reports:
            assert [r.emergency_type for r in reports.records] == ["Hostel Issue"]
        portal.logout()
        assert portal.uid is None
        assert not portal.is_admin()


def test_wrong_password_and_otp_login(context, sent_codes):
    portal = CampusPortalService(context)
    assert portal.login_with_email("asha@campus.edu", "secret123").ok
    portal.logout()

    assert portal.login_with_email("asha@campus.edu", "wrong-pass").error is ErrorKind.OTHER
    assert portal.login_with_email("not-an-email", "secret123").error is ErrorKind.VALIDATION
    assert portal.request_otp("12345").error is ErrorKind.VALIDATION

    assert portal.request_otp("9000000001").ok
    phone, code = sent_codes[-1]
    assert phone == "+919000000001"
    assert portal.verify_otp("9000000001", code).ok
    assert portal.current_user.phone_number == "+919000000001"


def test_google_sign_in_reuses_the_account_for_the_same_email(context):
    portal = CampusPortalService(context)

    first = portal.login_with_federated("google", "Asha.Rao@Campus.edu", "Asha Rao",
                                        "https://lh3.googleusercontent.com/a/asha.png")
    assert first.ok
    assert portal.current_user.provider == "google"
    assert portal.current_user.label == "Asha Rao"
    uid = portal.uid

    portal.logout()
    again = portal.login_with_federated("google", "asha.rao@campus.edu")
    assert again.ok and again.value.uid == uid
    assert portal.is_admin() is False

    no_email = CampusPortalService(context).login_with_federated("google", None)
    assert no_email.error is ErrorKind.OTHER
