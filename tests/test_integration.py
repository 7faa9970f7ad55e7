"""
Integration tests for CampusCare.

These tests exercise the portal service together with the document store, the
access rules, live bindings, photo storage and the (faked) Gemini models, checking
that a submission reaches the store and the bound views, and that denials are
reported exactly once.
"""
import gc
import os

from campuscare import aggregates, rules
from campuscare.errors import PERMISSION_ERROR, ErrorKind
from campuscare.portal import CampusPortalService
from campuscare.store import Query

from conftest import FakeModel

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_mess_rating_reaches_the_store_and_the_live_average(student, store):
    """A 5-star Veg mess lunch rating is stored once and updates the bound average."""
    with student.watch_mess_ratings("Veg mess", "Lunch") as live:
        assert live.records == []
        revision = live.revision

        result = student.submit_mess_rating({
            "mess_name": "Veg mess",
            "meal_type": "Lunch",
            "rating": 5,
            "sick_after_meal": "no",
        })

        assert result.ok
        assert live.revision == revision + 1
        assert len(live.records) == 1
        assert aggregates.average_rating(live.records) == 5
        assert aggregates.hygiene_score(live.records) == 100

    stored = store.admin_query(Query(rules.MESS_FOOD_RATINGS))
    assert len(stored) == 1
    doc = stored[0].data
    assert doc["foodQualityRating"] == 5
    assert doc["sickAfterMealReport"] == "no"
    assert doc["studentId"] == student.uid
    assert doc["messName"] == "Veg mess" and doc["mealType"] == "Lunch"
    assert "imageUrl" not in doc


def test_live_average_includes_other_students_ratings(student, other_student):
    with student.watch_today_mess_ratings() as today:
        for value in [2, 4, 1, 2, 3]:
            assert other_student.submit_mess_rating({"mess_name": "Southern mess", "meal_type": "Dinner",
                                                     "rating": value}).ok

        assert aggregates.average_rating(today.records) == 2.4
        assert aggregates.hygiene_score(today.records) == 48


def test_permission_denied_write_emits_exactly_one_event(student, store, permission_events):
    """A student changing the doctor status is denied once, with path, operation and payload."""
    result = student.update_doctor_status({"name": "Dr. Imposter", "specialty": "None at all",
                                           "is_available": False})

    assert result.error is ErrorKind.PERMISSION_DENIED
    assert result.detail == "You do not have permission to change the doctor status."
    assert len(permission_events) == 1
    event = permission_events[0]
    assert event.path == "campusInfo/hospital"
    assert event.operation == "update"
    assert event.request_resource_data == {"name": "Dr. Imposter", "specialty": "None at all", "isAvailable": False}
    assert not store.admin_get("campusInfo/hospital").exists


def test_signed_out_submission_is_denied_and_reported(context, permission_events):
    portal = CampusPortalService(context)

    result = portal.report_emergency({"emergency_type": "Fire", "location": "Library", "student_name": "Asha"})

    assert result.error is ErrorKind.PERMISSION_DENIED
    assert [e.operation for e in permission_events] == ["create"]
    assert permission_events[0].path == rules.EMERGENCY_REPORTS
    assert permission_events[0].request_resource_data["emergencyType"] == "Fire"


def test_validation_failure_never_reaches_the_store(student, store, permission_events):
    result = student.submit_hospital_feedback({"case_type": "normal", "waiting_time": -5,
                                               "doctor_availability": "available", "feedback": "ok"})

    assert result.error is ErrorKind.VALIDATION
    assert set(result.fields) == {"waiting_time", "feedback"}
    assert store.admin_query(Query(rules.HOSPITAL_FEEDBACKS)) == []
    assert permission_events == []


def test_student_cannot_watch_admin_collections(student, permission_events):
    live = student.watch_emergency_reports().start()

    assert live.error is not None
    assert live.records is None
    assert len(permission_events) == 1
    assert permission_events[0].operation == "list"
    live.close()


def test_admin_sees_reports_and_feedback_live(student, admin):
    with admin.watch_emergency_reports() as alerts, admin.watch_hospital_feedbacks() as feedbacks:
        assert student.report_emergency({"emergency_type": "Medical", "location": "Gargi hostel room 12",
                                         "student_name": "Asha Rao", "enrollment_number": "E21001"}).ok
        assert student.submit_hospital_feedback({"case_type": "emergency", "waiting_time": 25,
                                                 "doctor_availability": "unavailable",
                                                 "feedback": "Had to wait a long time."}).ok

        assert [r.location for r in alerts.records] == ["Gargi hostel room 12"]
        assert alerts.records[0].student_id == student.uid
        assert aggregates.average_waiting_time(feedbacks.records) == 25


def test_mess_rating_with_photo_shows_in_recent_photos(student, context):
    with student.watch_recent_mess_photos() as photos:
        student.submit_mess_rating({"mess_name": "Rnt mess", "meal_type": "Breakfast", "rating": 4})
        result = student.submit_mess_rating({"mess_name": "Rnt mess", "meal_type": "Breakfast", "rating": 2,
                                             "sick_after_meal": "yes"}, photo=(PNG_BYTES, "image/png"))

        assert result.ok
        assert len(photos.records) == 1
        url = photos.records[0].image_url
        assert url == result.value.data["imageUrl"]
        assert os.path.exists(context.storage.path_for(url))


def test_rejected_photo_is_an_upstream_failure(student, store):
    result = student.submit_mess_rating({"mess_name": "Rnt mess", "meal_type": "Lunch", "rating": 3},
                                        photo=(b"%PDF-1.4", "application/pdf"))

    assert result.error is ErrorKind.UPSTREAM
    assert store.admin_query(Query(rules.MESS_FOOD_RATINGS)) == []


def test_profile_merge_upsert_keeps_existing_fields(student):
    first = student.save_profile({"display_name": "Asha Rao", "enrollment_number": "E21001", "hostel": "Gargi"},
                                 photo=(PNG_BYTES, "image/png"))
    second = student.save_profile({"display_name": "Asha R.", "hostel": "Southern"})

    assert first.ok and second.ok
    profile = student.load_profile()
    assert profile.display_name == "Asha R."
    assert profile.hostel == "Southern"
    assert profile.photo_url == first.value.data["photoURL"]
    assert student.current_user.display_name == "Asha R."
    assert student.current_user.photo_url == profile.photo_url


def test_nutrition_diary_logs_today_and_totals(student, other_student):
    estimate = student.estimate_meal_nutrition(PNG_BYTES, "image/png")
    assert estimate.ok
    assert estimate.value.calories == 450

    with student.watch_today_nutrition_logs() as today:
        student.log_nutrition({"calories": estimate.value.calories, "protein_grams": estimate.value.protein_grams,
                               "carbs_grams": estimate.value.carbs_grams, "fat_grams": estimate.value.fat_grams})
        student.log_nutrition({"calories": 150, "protein_grams": 5, "carbs_grams": 20, "fat_grams": 5,
                               "meal_description": "Banana lassi"})
        other_student.log_nutrition({"calories": 999, "protein_grams": 1, "carbs_grams": 1, "fat_grams": 1})

        totals = aggregates.nutrition_totals(today.records)
        assert totals == {"calories": 600, "proteinGrams": 25, "carbsGrams": 75, "fatGrams": 17}
        assert today.records[0].meal_description == "Banana lassi"


def test_ai_failures_are_reported_as_upstream_results(student, context):
    context.ai.chat_model = FakeModel(error=RuntimeError("API key not valid"))

    reply = student.first_aid_reply([{"role": "user", "content": "I twisted my ankle."}])
    empty_photo = student.estimate_meal_nutrition(b"", "image/png")

    assert reply.error is ErrorKind.UPSTREAM
    assert "API key not valid" in reply.detail
    assert empty_photo.error is ErrorKind.VALIDATION


def test_health_analysis_runs_over_bound_records(admin, student, context):
    context.ai.model = FakeModel('{"healthRisks": [{"riskType": "Food-borne illness", "riskLevel": "Medium", '
                                 '"affectedArea": "Eastern mess", "description": "Sickness after dinner.", '
                                 '"recommendations": "Check food storage."}]}')
    student.submit_mess_rating({"mess_name": "Eastern mess", "meal_type": "Dinner", "rating": 1,
                                "sick_after_meal": "yes"})

    with admin.watch_emergency_reports() as reports, admin.watch_hospital_feedbacks() as feedbacks, \
            admin.watch_mess_ratings() as ratings:
        result = admin.analyze_health_risks(reports.records, feedbacks.records, ratings.records)

    assert result.ok
    assert result.value[0].affected_area == "Eastern mess"
    prompt, _ = context.ai.model.calls[0]
    assert student.uid not in prompt


def test_failed_save_is_reported_and_leaves_no_trace(student, store, monkeypatch, tmp_path):
    """A rating that cannot be written to disk is neither stored nor shown."""
    with student.watch_mess_ratings() as live:
        monkeypatch.setattr(store, "data_file", str(tmp_path / "missing" / "records.json"))

        result = student.submit_mess_rating({"mess_name": "Veg mess", "meal_type": "Lunch", "rating": 4})

        assert result.error is ErrorKind.OTHER
        assert live.records == []
    assert store.admin_query(Query(rules.MESS_FOOD_RATINGS)) == []


def test_scorecard_and_recent_photos_follow_mess_and_meal_filters(student):
    photo = (PNG_BYTES, "image/png")
    with student.watch_recent_mess_photos("Rnt mess", "Breakfast") as photos, \
            student.watch_mess_ratings(None, "Breakfast") as breakfasts:
        student.submit_mess_rating({"mess_name": "Rnt mess", "meal_type": "Breakfast", "rating": 4}, photo=photo)
        student.submit_mess_rating({"mess_name": "Veg mess", "meal_type": "Breakfast", "rating": 2}, photo=photo)
        student.submit_mess_rating({"mess_name": "Rnt mess", "meal_type": "Dinner", "rating": 5}, photo=photo)

        assert [(p.mess_name, p.meal_type) for p in photos.records] == [("Rnt mess", "Breakfast")]
        assert sorted(r.mess_name for r in breakfasts.records) == ["Rnt mess", "Veg mess"]


def test_permission_relay_is_per_user_and_ends_with_the_session(context, student, other_student):
    """Each session sees only its own denials, and its relay goes away on logout or when discarded."""
    baseline = context.errors.listener_count(PERMISSION_ERROR)
    mine, theirs = [], []
    student.watch_permission_errors(mine.append)
    other_student.watch_permission_errors(theirs.append)
    assert context.errors.listener_count(PERMISSION_ERROR) == baseline + 2

    student.update_doctor_status({"name": "Dr. Imposter", "specialty": "None at all", "is_available": False})

    assert [event.uid for event in mine] == [student.uid]
    assert theirs == []

    student.logout()
    assert context.errors.listener_count(PERMISSION_ERROR) == baseline + 1

    visitor = CampusPortalService(context)
    assert visitor.login_with_email("visitor@campus.edu", "secret123").ok
    visitor.watch_permission_errors(theirs.append)
    assert context.errors.listener_count(PERMISSION_ERROR) == baseline + 2
    del visitor
    gc.collect()
    assert context.errors.listener_count(PERMISSION_ERROR) == baseline + 1
