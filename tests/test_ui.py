"""
UI tests for CampusCare using Streamlit's AppTest framework.

These tests drive the real page functions: they fill in forms, click buttons and
check what the user sees, including that a failed submission produces exactly
one error message.
"""
from datetime import datetime, timezone

from streamlit.testing.v1 import AppTest

import gui
from campuscare import rules
from campuscare.errors import PERMISSION_ERROR
from campuscare.portal import CampusPortalService
from campuscare.store import Query


def _labels(app):
    return {btn.label: btn for btn in app.button}


def test_ui_login_validation_shows_one_error(context):
    """An invalid email is rejected with a single error naming the field."""
    portal = CampusPortalService(context)

    def render(p):
        import gui as gui_module

        gui_module.show_login_page(p)

    app = AppTest.from_function(render, args=(portal,), default_timeout=15)
    app.run()
    assert any("Welcome to CampusCare" in md.value for md in app.markdown)

    app.text_input[0].input("not-an-email")
    app.text_input[1].input("secret123")
    _labels(app)["Sign In"].click().run()

    assert len(app.error) == 1
    assert "Email" in app.error[0].value
    assert portal.current_user is None


def test_ui_email_login_signs_the_user_in(context):
    portal = CampusPortalService(context)

    def render(p):
        import gui as gui_module

        gui_module.show_login_page(p)

    app = AppTest.from_function(render, args=(portal,), default_timeout=15)
    app.run()
    app.text_input[0].input("newcomer@campus.edu")
    app.text_input[1].input("secret123")
    _labels(app)["Sign In"].click().run()

    assert not app.exception
    assert portal.current_user is not None
    assert app.session_state["current_user"].uid == portal.uid


def test_ui_student_menu_and_mess_rating(student, store):
    """A student sees no admin entry, opens the Mess page and submits a rating."""

    def render(p):
        import gui as gui_module

        gui_module.show_main_app(p)

    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()

    buttons = _labels(app)
    assert "🍽️ Mess" in buttons
    assert "📊 Admin Dashboard" not in buttons
    assert any("Doctor on Duty" in md.value for md in app.markdown)

    buttons["🍽️ Mess"].click().run()
    assert app.session_state["page"] == "mess"
    assert any(metric.label == "Hygiene Score" for metric in app.metric)

    _labels(app)["Submit Rating"].click().run()

    assert not app.exception
    assert len(app.error) == 0
    assert any("out of 5" in msg.value for msg in app.success)
    stored = store.admin_query(Query(rules.MESS_FOOD_RATINGS))
    assert len(stored) == 1
    assert stored[0].data["studentId"] == student.uid


def test_ui_sos_validation_failure_shows_one_error(student, store):
    def render(p):
        import gui as gui_module

        gui_module._ensure_session(p)
        gui_module._render_sos_page(p)

    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()
    _labels(app)["Send SOS Alert"].click().run()

    assert len(app.error) == 1
    assert store.admin_query(Query(rules.EMERGENCY_REPORTS)) == []


def test_ui_permission_denied_shows_one_error_and_one_event(student, permission_events):
    """A student submitting the doctor status form gets one error and one diagnostic event."""

    def render(p):
        import gui as gui_module

        gui_module._ensure_session(p)
        gui_module._render_doctor_status_updater(p)

    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()
    _labels(app)["Update Status"].click().run()

    assert len(app.error) == 1
    assert "doctor status" in app.error[0].value
    assert len(permission_events) == 1
    assert permission_events[0].path == "campusInfo/hospital"


def test_ui_admin_dashboard_renders(admin, student):
    student.report_emergency({"emergency_type": "Safety", "location": "Main gate", "student_name": "Asha Rao"})

    def render(p):
        import gui as gui_module

        gui_module.show_main_app(p)

    app = AppTest.from_function(render, args=(admin,), default_timeout=15)
    app.run()
    _labels(app)["📊 Admin Dashboard"].click().run()

    assert not app.exception
    assert any("Admin Dashboard" in md.value for md in app.markdown)
    assert any("Main gate" in md.value for md in app.markdown)
    assert len(app.error) == 0


def test_ui_logout_returns_to_signed_out_state(student):
    def render(p):
        import gui as gui_module

        if p.current_user:
            gui_module.show_main_app(p)
        else:
            gui_module.show_login_page(p)

    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()
    _labels(app)["Log Out"].click().run()

    assert student.current_user is None
    assert app.session_state["current_user"] is None
    assert any("Welcome to CampusCare" in md.value for md in app.markdown)


def test_ui_mess_filters_offer_all_messes_and_meals(student):
    def render(p):
        import gui as gui_module

        gui_module.show_main_app(p)

    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()
    _labels(app)["🍽️ Mess"].click().run()

    assert app.selectbox(key="score_mess").value == "All"
    assert app.selectbox(key="score_meal").options[0] == "All"
    assert "Snacks" in app.selectbox(key="score_meal").options

    app.selectbox(key="score_mess").select("Veg mess").run()

    assert not app.exception
    assert "Snacks" not in app.selectbox(key="score_meal").options
    assert any(metric.label == "Hygiene Score" for metric in app.metric)


def test_ui_logout_drops_the_permission_relay(student):
    student.ctx.settings.dev_overlay = True
    errors = student.ctx.errors

    def render(p):
        import gui as gui_module

        if p.current_user:
            gui_module.show_main_app(p)
        else:
            gui_module.show_login_page(p)

    baseline = errors.listener_count(PERMISSION_ERROR)
    app = AppTest.from_function(render, args=(student,), default_timeout=15)
    app.run()
    assert errors.listener_count(PERMISSION_ERROR) == baseline + 1

    _labels(app)["Log Out"].click().run()

    # The signed-out page subscribes again for its own session; the old relay is gone.
    assert errors.listener_count(PERMISSION_ERROR) == baseline + 1
    assert len(app.session_state["permission_events"]) == 0


def test_today_binding_keys_change_at_utc_midnight():
    before = gui._day_key("home:today_ratings", datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc))
    after = gui._day_key("home:today_ratings", datetime(2024, 5, 2, 0, 1, tzinfo=timezone.utc))

    assert before == "home:today_ratings:2024-05-01"
    assert after == "home:today_ratings:2024-05-02"
