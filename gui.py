"""
This module defines the graphical user interface (GUI) for the CampusCare portal using Streamlit.

It includes functions for rendering every page of the portal: the sign-in page (email, phone
and one-time code), the student pages (SOS, hospital, appointments, mess, AI assistant,
nutrition diary, profile) and the admin dashboard with live alerts and charts.

Pages read through live bindings kept in session state. A binding stays open while its
page is shown and is closed as soon as the page stops using it. The main entry point for
the UI is `show_main_app`.
"""
# campuscare/gui.py

import datetime
from collections import deque

import streamlit as st
from streamlit_autorefresh import st_autorefresh

from campuscare import aggregates
from campuscare.live import BindingRegistry
from campuscare.models import EMERGENCY_TYPES, MEALS, MESSES, TIME_SLOTS, meals_for
from campuscare.portal import today_bounds

OVERLAY_EVENTS = 20
ALL = "All"


def _format_timestamp(timestamp):
    """Formats an aware datetime in local time, e.g. "Jan 01, 2024 • 14:30"."""
    if not timestamp:
        return "Just now"
    return timestamp.astimezone().strftime("%b %d, %Y • %H:%M")


def _ensure_session(portal):
    """Initializes the session state keys the pages rely on."""
    if "bindings" not in st.session_state:
        st.session_state.bindings = BindingRegistry()
    if "page" not in st.session_state:
        st.session_state.page = None
    if "live_keys" not in st.session_state:
        st.session_state.live_keys = set()
    if "first_aid_history" not in st.session_state:
        st.session_state.first_aid_history = []
    if "permission_events" not in st.session_state:
        events = deque(maxlen=OVERLAY_EVENTS)
        st.session_state.permission_events = events
        if portal.ctx.settings.dev_overlay:
            portal.watch_permission_errors(events.appendleft)


def _day_key(key, now=None):
    """Binding key for a view of today's records; it changes at UTC midnight."""
    return f"{key}:{today_bounds(now)[0].date().isoformat()}"


def _watch(key, factory):
    """Returns the live binding stored under `key`, opening it on first use in this run."""
    st.session_state.live_keys.add(key)
    return st.session_state.bindings.bind(key, factory)


def _release_unused_bindings():
    st.session_state.bindings.release(keep=st.session_state.live_keys)
    st.session_state.live_keys = set()


def _show_failure(result):
    """Shows one error message for a failed submission, listing any per-field problems."""
    lines = [result.detail or "Something went wrong. Please try again."]
    for field, message in result.fields.items():
        label = "Form" if field == "form" else field.replace("_", " ").capitalize()
        lines.append(f"- **{label}:** {message}")
    st.error("\n".join(lines))


def _render_binding_state(binding, empty_message=None):
    """Renders the loading or error placeholder of a binding.

    Returns:
        bool: True when the binding has records to show.
    """
    if binding.error is not None:
        st.error("You do not have permission to view this data.")
        return False
    if binding.loading:
        st.info("Loading...")
        return False
    if empty_message and not binding.records:
        st.info(empty_message)
        return False
    return True


def _schedule_auto_refresh(portal, key):
    """Reruns the page periodically so new snapshots reach the screen."""
    interval_seconds = portal.ctx.settings.live_refresh_seconds
    if interval_seconds <= 0:
        return
    st_autorefresh(interval=int(interval_seconds * 1000), key=key)
    st.caption(f"Updates automatically every {int(interval_seconds)} seconds.")


def _show_dev_overlay():
    """Lists recent permission denials in the sidebar (development only)."""
    events = st.session_state.permission_events
    with st.sidebar.expander(f"Permission errors ({len(events)})", expanded=False):
        if not events:
            st.caption("No permission errors recorded.")
        for event in list(events):
            st.code(f"{event.operation} {event.path}\n{event.message}", language="text")
            st.json(event.to_dict(), expanded=False)


def _image_source(portal, url):
    """Local files are passed to st.image by path, other URLs as they are."""
    return portal.ctx.storage.path_for(url) or url


def _photo(uploaded_file):
    """Turns a Streamlit upload into the `(bytes, content_type)` pair the service expects."""
    if uploaded_file is None:
        return None
    return uploaded_file.getvalue(), uploaded_file.type


# Page navigation helpers
def set_page(page):
    st.session_state.page = page


# Authentication Pages
def show_login_page(portal):
    """Displays the sign-in page with email, phone, one-time code and (when configured) Google options.

    Args:
        portal: The signed-out `CampusPortalService` of this session.
    """
    _ensure_session(portal)
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center;'>Welcome to CampusCare</h1>", unsafe_allow_html=True)
        st.markdown("<p style='text-align: center;'>Your campus health and wellbeing companion.</p>",
                    unsafe_allow_html=True)
        tab_names = ["Email", "Phone", "OTP"]
        if portal.ctx.settings.google_sign_in:
            tab_names.append("Google")
        tabs = st.tabs(tab_names)
        email_tab, phone_tab, otp_tab = tabs[:3]

        with email_tab:
            with st.form("email_login_form"):
                email = st.text_input("Email")
                password = st.text_input("Password", type="password",
                                         help="New here? Signing in creates your account.")
                submitted = st.form_submit_button("Sign In", use_container_width=True)
            if submitted:
                _finish_login(portal, portal.login_with_email(email, password))

        with phone_tab:
            with st.form("phone_login_form"):
                phone_number = st.text_input("Phone Number", placeholder="10-digit mobile number")
                phone_password = st.text_input("Password", type="password", key="phone_password")
                submitted = st.form_submit_button("Sign In with Phone", use_container_width=True)
            if submitted:
                _finish_login(portal, portal.login_with_phone(phone_number, phone_password))

        with otp_tab:
            with st.form("otp_request_form"):
                otp_phone = st.text_input("Phone Number", placeholder="10-digit mobile number", key="otp_phone")
                send_code = st.form_submit_button("Send Code", use_container_width=True)
            if send_code:
                result = portal.request_otp(otp_phone)
                if result.ok:
                    st.session_state.otp_phone_number = otp_phone.strip()
                    st.success(f"A verification code was sent to {result.value}.")
                else:
                    _show_failure(result)
            if st.session_state.get("otp_phone_number"):
                with st.form("otp_verify_form"):
                    code = st.text_input("Verification Code", max_chars=portal.ctx.settings.otp_length)
                    verify = st.form_submit_button("Verify", use_container_width=True)
                if verify:
                    _finish_login(portal, portal.verify_otp(st.session_state.otp_phone_number, code))

        if portal.ctx.settings.google_sign_in:
            with tabs[3]:
                _render_google_sign_in(portal)


def _render_google_sign_in(portal):
    """Signs in with the Google account Streamlit's OIDC login has verified."""
    if not st.user.is_logged_in:
        st.button("Continue with Google", on_click=st.login, args=("google",), use_container_width=True)
        return
    st.caption(f"Signed in to Google as {st.user.get('email')}.")
    if st.button("Continue to CampusCare", use_container_width=True):
        _finish_login(portal, portal.login_with_federated("google", st.user.get("email"), st.user.get("name"),
                                                          st.user.get("picture")))


def _finish_login(portal, result):
    if not result.ok:
        _show_failure(result)
        return
    st.session_state.current_user = result.value
    st.session_state.page = None
    st.session_state.pop("otp_phone_number", None)
    st.rerun()


# Main Application UI
def show_main_app(portal):
    """
    The main application router that shows the menu or the selected page.

    Args:
        portal: The signed-in `CampusPortalService` of this session.
    """
    _ensure_session(portal)
    user = portal.current_user
    is_admin = portal.is_admin()

    st.sidebar.markdown(f"**{user.label}**")
    if is_admin:
        st.sidebar.caption("Administrator")
    if st.sidebar.button("Log Out", key="logout_btn", use_container_width=True):
        st.session_state.bindings.close()
        st.session_state.first_aid_history = []
        st.session_state.pop("permission_events", None)
        portal.logout()
        st.session_state.current_user = None
        st.session_state.page = None
        if portal.ctx.settings.google_sign_in and st.user.is_logged_in:
            st.logout()
        st.rerun()
    if portal.ctx.settings.dev_overlay:
        _show_dev_overlay()

    menu_items = [
        ("🚨 SOS", "sos", "Raise an emergency alert to campus security and the hospital."),
        ("🏥 Hospital", "hospital", "Check doctor availability, book an appointment or leave feedback."),
        ("📅 My Appointments", "appointments", "See and cancel your upcoming appointments."),
        ("🍽️ Mess", "mess", "Rate today's meals and see each mess's hygiene score."),
        ("🤖 AI Assistant", "assistant", "Ask for first-aid guidance."),
        ("🥗 Nutrition Diary", "nutrition", "Log your meals and track today's nutrition."),
        ("👤 My Profile", "profile", "Update your campus details and photo."),
    ]
    if is_admin:
        menu_items.append(("📊 Admin Dashboard", "admin", "Live alerts, appointments, hygiene and health trends."))

    pages = {
        "sos": _render_sos_page,
        "hospital": _render_hospital_page,
        "appointments": _render_my_appointments_page,
        "mess": _render_mess_page,
        "assistant": _render_ai_assistant_page,
        "nutrition": _render_nutrition_page,
        "profile": _render_profile_page,
        "admin": _render_admin_page,
    }

    if st.session_state.page is None:
        _render_home(portal, menu_items)
    elif st.session_state.page in pages:
        if st.button("← Back to Main Menu"):
            st.session_state.page = None
            _release_unused_bindings()
            st.rerun()
        pages[st.session_state.page](portal)
    else:
        st.session_state.page = None
        st.rerun()
    _release_unused_bindings()


def _render_home(portal, menu_items):
    """Renders the main menu with today's mess rating and the doctor on duty."""
    user = portal.current_user
    st.markdown(f"## CampusCare · {user.label}")
    col1, col2 = st.columns(2)
    with col1:
        st.markdown("##### Today's Mess Rating")
        today = _watch(_day_key("home:today_ratings"), portal.watch_today_mess_ratings)
        if _render_binding_state(today, "No ratings submitted for today yet. Be the first!"):
            average = aggregates.average_rating(today.records)
            st.metric("Average rating", f"{aggregates.round_half_up(average, 1):.1f}/5")
            st.caption("Based on today's student feedback.")
    with col2:
        st.markdown("##### Doctor on Duty")
        _render_doctor_status(_watch("doctor_status", portal.watch_doctor_status))
    st.divider()

    for idx, (label, value, description) in enumerate(menu_items):
        st.button(label, key=f"menu_btn_{idx}", on_click=set_page, args=(value,), use_container_width=True)
        st.caption(description)
    _schedule_auto_refresh(portal, "home_refresh")


def _render_doctor_status(binding):
    if not _render_binding_state(binding):
        return
    doctor = binding.records
    availability = "🟢 Available" if doctor.is_available else "🔴 Unavailable"
    st.write(f"**{doctor.name}** · {doctor.specialty}")
    st.write(availability)


def _render_sos_page(portal):
    """Renders the emergency SOS form."""
    st.markdown("<h2 style='text-align: center;'>Emergency SOS</h2>", unsafe_allow_html=True)
    st.warning("Use this only in a real emergency. Your alert goes straight to campus security and the hospital.")
    user = portal.current_user
    profile = portal.load_profile()

    with st.form("sos_form"):
        emergency_type = st.selectbox("Emergency Type", EMERGENCY_TYPES)
        location = st.text_input("Your Location", placeholder="e.g. Gargi hostel, room 214")
        student_name = st.text_input("Your Name", value=(profile.display_name if profile else None) or user.display_name or "")
        enrollment_number = st.text_input("Enrollment Number", value=profile.enrollment_number if profile else "")
        submitted = st.form_submit_button("Send SOS Alert", type="primary", use_container_width=True)

    if submitted:
        result = portal.report_emergency({
            "emergency_type": emergency_type,
            "location": location,
            "student_name": student_name,
            "enrollment_number": enrollment_number,
        })
        if result.ok:
            st.success(f"Your {emergency_type.lower()} emergency alert has been sent. Authorities are on their way.")
        else:
            _show_failure(result)


def _render_hospital_page(portal):
    """Renders the hospital page: doctor status, booking, feedback and (for admins) waiting times."""
    st.markdown("<h2 style='text-align: center;'>Campus Hospital</h2>", unsafe_allow_html=True)
    col1, col2 = st.columns(2)
    with col1:
        st.markdown("##### Doctor on Duty")
        _render_doctor_status(_watch("doctor_status", portal.watch_doctor_status))
    with col2:
        if portal.is_admin():
            st.markdown("##### Average Waiting Time")
            feedbacks = _watch("hospital:feedbacks", portal.watch_hospital_feedbacks)
            if _render_binding_state(feedbacks):
                st.metric("Minutes", aggregates.average_waiting_time(feedbacks.records))

    book_tab, feedback_tab = st.tabs(["Book Appointment", "Leave Feedback"])
    with book_tab:
        _render_booking_form(portal)
    with feedback_tab:
        _render_feedback_form(portal)


def _render_booking_form(portal):
    user = portal.current_user
    with st.form("appointment_form"):
        student_name = st.text_input("Full Name", value=user.display_name or "")
        enrollment_number = st.text_input("Enrollment Number")
        appointment_date = st.date_input("Appointment Date", min_value=datetime.date.today())
        appointment_time = st.selectbox("Time Slot", TIME_SLOTS)
        reason = st.text_area("Reason for Visit", max_chars=200)
        submitted = st.form_submit_button("Book Appointment", use_container_width=True)

    if submitted:
        result = portal.book_appointment({
            "student_name": student_name,
            "enrollment_number": enrollment_number,
            "appointment_date": appointment_date,
            "appointment_time": appointment_time,
            "reason": reason,
        })
        if result.ok:
            st.success(f"Your appointment is scheduled for {appointment_date.strftime('%B %d, %Y')} "
                       f"at {appointment_time}.")
        else:
            _show_failure(result)


def _render_feedback_form(portal):
    with st.form("hospital_feedback_form"):
        case_type = st.radio("Visit Type", ["normal", "emergency"], horizontal=True,
                             format_func=str.capitalize)
        waiting_time = st.number_input("Waiting Time (minutes)", min_value=0, step=1, value=0)
        doctor_availability = st.radio("Was a doctor available?", ["available", "unavailable"], horizontal=True,
                                       format_func=str.capitalize)
        feedback = st.text_area("Your Feedback", max_chars=500)
        submitted = st.form_submit_button("Submit Feedback", use_container_width=True)

    if submitted:
        result = portal.submit_hospital_feedback({
            "case_type": case_type,
            "waiting_time": int(waiting_time),
            "doctor_availability": doctor_availability,
            "feedback": feedback,
        })
        if result.ok:
            st.success("Thank you for your feedback. It helps us improve our services.")
        else:
            _show_failure(result)


def _render_my_appointments_page(portal):
    """Lists the user's appointments, with a cancel button for scheduled ones."""
    st.markdown("<h2 style='text-align: center;'>My Appointments</h2>", unsafe_allow_html=True)
    binding = _watch("appointments:mine", portal.watch_my_appointments)
    if not _render_binding_state(binding, "You have no appointments yet. Book one from the Hospital page."):
        return

    for appointment in binding.records:
        with st.container(border=True):
            date_label = appointment.appointment_date.strftime("%B %d, %Y") if appointment.appointment_date else "TBD"
            st.markdown(f"**{date_label}** at **{appointment.appointment_time}** · `{appointment.status}`")
            st.write(appointment.reason)
            if appointment.status == "scheduled":
                if st.button("Cancel Appointment", key=f"cancel_{appointment.id}"):
                    result = portal.cancel_appointment(appointment.id)
                    if result.ok:
                        st.success("Appointment cancelled.")
                        st.rerun()
                    else:
                        _show_failure(result)
    _schedule_auto_refresh(portal, "appointments_refresh")


def _render_mess_page(portal):
    """Renders the mess scorecard, the rating form and recent meal photos."""
    st.markdown("<h2 style='text-align: center;'>Mess Food Ratings</h2>", unsafe_allow_html=True)

    st.markdown("##### Hygiene Scorecard")
    col1, col2 = st.columns(2)
    with col1:
        score_mess = st.selectbox("Mess", [ALL] + MESSES, key="score_mess")
    with col2:
        meals = MEALS if score_mess == ALL else meals_for(score_mess)
        score_meal = st.selectbox("Meal", [ALL] + meals, key="score_meal")
    # "All" is passed on as no filter.
    mess_filter = None if score_mess == ALL else score_mess
    meal_filter = None if score_meal == ALL else score_meal
    scorecard = _watch(f"mess:{score_mess}:{score_meal}",
                       lambda: portal.watch_mess_ratings(mess_filter, meal_filter))
    if _render_binding_state(scorecard):
        ratings = scorecard.records
        m1, m2, m3 = st.columns(3)
        m1.metric("Hygiene Score", f"{aggregates.hygiene_score(ratings)}%")
        m2.metric("Average Rating", f"{aggregates.round_half_up(aggregates.average_rating(ratings), 1):.1f}/5")
        m3.metric("Ratings", len(ratings))
        if not ratings:
            st.caption("No ratings for this meal yet.")
    st.divider()

    st.markdown("##### Rate Your Meal")
    mess_name = st.selectbox("Mess", MESSES, key="rate_mess")
    with st.form("mess_rating_form", clear_on_submit=True):
        meal_type = st.selectbox("Meal", meals_for(mess_name))
        rating = st.slider("Food Quality", min_value=1, max_value=5, value=3)
        sick = st.radio("Did you feel sick after this meal?", ["no", "yes"], horizontal=True,
                        format_func=str.capitalize)
        photo = st.file_uploader("Meal Photo (optional)", type=["jpg", "jpeg", "png", "webp"])
        submitted = st.form_submit_button("Submit Rating", use_container_width=True)

    if submitted:
        result = portal.submit_mess_rating({
            "mess_name": mess_name,
            "meal_type": meal_type,
            "rating": rating,
            "sick_after_meal": sick,
        }, photo=_photo(photo))
        if not result.ok:
            _show_failure(result)
        elif sick == "yes":
            st.warning("Sickness Reported: your report has been sent. Please visit the hospital if you feel unwell.")
        else:
            st.success(f"You rated today's food {rating} out of 5. Thank you!")
    st.divider()

    st.markdown("##### Recent Meal Photos")
    photos = _watch(f"mess:recent_photos:{score_mess}:{score_meal}",
                    lambda: portal.watch_recent_mess_photos(mess_filter, meal_filter))
    if _render_binding_state(photos, "No meal photos yet."):
        columns = st.columns(3)
        for idx, rating in enumerate(photos.records):
            with columns[idx % 3]:
                st.image(_image_source(portal, rating.image_url),
                         caption=f"{rating.mess_name} · {rating.meal_type} · {rating.food_quality_rating}/5")
    _schedule_auto_refresh(portal, "mess_refresh")


def _render_ai_assistant_page(portal):
    """Renders the first-aid chat assistant."""
    st.markdown("<h2 style='text-align: center;'>AI First-Aid Assistant</h2>", unsafe_allow_html=True)
    st.info("The assistant gives general first-aid guidance. For emergencies use the SOS page.")
    history = st.session_state.first_aid_history

    for message in history:
        with st.chat_message("user" if message["role"] == "user" else "assistant"):
            st.write(message["content"])

    question = st.chat_input("Describe the situation...")
    if question:
        history.append({"role": "user", "content": question})
        with st.chat_message("user"):
            st.write(question)
        with st.spinner("Thinking..."):
            result = portal.first_aid_reply(history)
        if result.ok:
            history.append({"role": "model", "content": result.value})
            with st.chat_message("assistant"):
                st.write(result.value)
        else:
            history.pop()
            _show_failure(result)

    if history and st.button("Clear Conversation"):
        st.session_state.first_aid_history = []
        st.rerun()


def _render_nutrition_page(portal):
    """Renders the nutrition diary: photo analysis, meal logging and today's totals."""
    st.markdown("<h2 style='text-align: center;'>Nutrition Diary</h2>", unsafe_allow_html=True)

    photo = st.file_uploader("Photo of your meal", type=["jpg", "jpeg", "png", "webp"], key="nutrition_photo")
    if photo is not None and st.button("Analyze Meal"):
        with st.spinner("Estimating nutrition..."):
            result = portal.estimate_meal_nutrition(photo.getvalue(), photo.type)
        if result.ok:
            st.session_state.nutrition_estimate = result.value
        else:
            _show_failure(result)

    estimate = st.session_state.get("nutrition_estimate")
    with st.form("nutrition_log_form"):
        meal_description = st.text_input("Meal", value=(estimate.meal_description if estimate else "") or "")
        c1, c2, c3, c4 = st.columns(4)
        calories = c1.number_input("Calories", min_value=0.0, value=float(estimate.calories) if estimate else 0.0)
        protein = c2.number_input("Protein (g)", min_value=0.0,
                                  value=float(estimate.protein_grams) if estimate else 0.0)
        carbs = c3.number_input("Carbs (g)", min_value=0.0, value=float(estimate.carbs_grams) if estimate else 0.0)
        fat = c4.number_input("Fat (g)", min_value=0.0, value=float(estimate.fat_grams) if estimate else 0.0)
        submitted = st.form_submit_button("Log Meal", use_container_width=True)

    if submitted:
        result = portal.log_nutrition({
            "calories": calories,
            "protein_grams": protein,
            "carbs_grams": carbs,
            "fat_grams": fat,
            "meal_description": meal_description or None,
        }, photo=_photo(photo))
        if result.ok:
            st.session_state.pop("nutrition_estimate", None)
            st.success("Meal logged.")
        else:
            _show_failure(result)

    st.markdown("##### Today")
    logs = _watch(_day_key("nutrition:today"), portal.watch_today_nutrition_logs)
    if _render_binding_state(logs):
        totals = aggregates.nutrition_totals(logs.records)
        t1, t2, t3, t4 = st.columns(4)
        t1.metric("Calories", f"{totals['calories']:.0f}")
        t2.metric("Protein", f"{totals['proteinGrams']:.0f} g")
        t3.metric("Carbs", f"{totals['carbsGrams']:.0f} g")
        t4.metric("Fat", f"{totals['fatGrams']:.0f} g")
        for log in logs.records:
            st.write(f"{_format_timestamp(log.timestamp)} · {log.meal_description or 'Meal'} · {log.calories:.0f} kcal")


def _render_profile_page(portal):
    """Renders the profile page for viewing and editing campus details."""
    st.markdown("<h2 style='text-align: center;'>My Profile</h2>", unsafe_allow_html=True)
    user = portal.current_user
    profile = portal.load_profile()

    photo_url = (profile.photo_url if profile else None) or user.photo_url
    if photo_url:
        st.image(_image_source(portal, photo_url), width=120)
    st.write(f"**Signed in as:** {user.email or user.phone_number}")

    with st.form("profile_form"):
        display_name = st.text_input("Display Name", value=(profile.display_name if profile else None) or user.display_name or "")
        enrollment_number = st.text_input("Enrollment Number", value=profile.enrollment_number if profile else "")
        hostel = st.text_input("Hostel", value=profile.hostel if profile else "")
        department = st.text_input("Department", value=profile.department if profile else "")
        year = st.text_input("Year", value=profile.year if profile else "")
        photo = st.file_uploader("Profile Picture", type=["jpg", "jpeg", "png", "webp"])
        submitted = st.form_submit_button("Update Profile")

    if submitted:
        result = portal.save_profile({
            "display_name": display_name,
            "enrollment_number": enrollment_number,
            "hostel": hostel,
            "department": department,
            "year": year,
        }, photo=_photo(photo))
        if result.ok:
            st.session_state.current_user = portal.current_user
            st.success("Your profile has been successfully updated.")
        else:
            _show_failure(result)


def _render_admin_page(portal):
    """Renders the admin dashboard."""
    if not portal.is_admin():
        st.warning("The admin dashboard is only available to administrators.")
        return
    st.markdown("<h2 style='text-align: center;'>Admin Dashboard</h2>", unsafe_allow_html=True)
    alerts_tab, appointments_tab, doctor_tab, hygiene_tab, response_tab, health_tab = st.tabs(
        ["Live Alerts", "Appointments", "Doctor Status", "Mess Hygiene", "Response Times", "Predictive Health"])

    reports = _watch("admin:emergencies", portal.watch_emergency_reports)
    feedbacks = _watch("admin:feedbacks", portal.watch_hospital_feedbacks)
    ratings = _watch("admin:ratings", portal.watch_mess_ratings)

    with alerts_tab:
        _render_live_alerts(reports)
    with appointments_tab:
        _render_admin_appointments(portal)
    with doctor_tab:
        _render_doctor_status_updater(portal)
    with hygiene_tab:
        if _render_binding_state(ratings, "No mess ratings yet."):
            rows = aggregates.daily_mess_averages(ratings.records)
            st.line_chart(aggregates.to_chart_frame(rows, "day"), y=aggregates.mess_names(rows))
            st.caption(f"Sickness reports: {aggregates.sickness_reports(ratings.records)}")
    with response_tab:
        if _render_binding_state(feedbacks, "No hospital feedback yet."):
            rows = aggregates.daily_response_times(feedbacks.records)
            st.bar_chart(aggregates.to_chart_frame(rows, "date"))
    with health_tab:
        _render_predictive_health(portal, reports, feedbacks, ratings)
    _schedule_auto_refresh(portal, "admin_refresh")


def _render_live_alerts(reports):
    if not _render_binding_state(reports, "No emergency alerts."):
        return
    for report in reports.records:
        with st.container(border=True):
            st.markdown(f"🚨 **{report.emergency_type}** at **{report.location}**")
            st.caption(f"{report.student_name} ({report.enrollment_number or 'no enrollment number'}) · "
                       f"{_format_timestamp(report.timestamp)}")


def _render_admin_appointments(portal):
    binding = _watch("admin:appointments", portal.watch_all_appointments)
    if not _render_binding_state(binding, "No appointments booked."):
        return
    counts = aggregates.status_counts(binding.records)
    c1, c2, c3 = st.columns(3)
    c1.metric("Scheduled", counts["scheduled"])
    c2.metric("Completed", counts["completed"])
    c3.metric("Cancelled", counts["cancelled"])

    for appointment in binding.records:
        with st.expander(f"{appointment.student_name} · {appointment.appointment_date} {appointment.appointment_time}"
                         f" · {appointment.status}"):
            st.write(f"**Enrollment:** {appointment.enrollment_number}")
            st.write(f"**Reason:** {appointment.reason}")
            if appointment.is_terminal:
                continue
            col1, col2 = st.columns(2)
            if col1.button("Mark Completed", key=f"complete_{appointment.id}"):
                _apply_status(portal, appointment.id, "completed")
            if col2.button("Cancel", key=f"admin_cancel_{appointment.id}"):
                _apply_status(portal, appointment.id, "cancelled")


def _apply_status(portal, appointment_id, status):
    result = portal.set_appointment_status(appointment_id, status)
    if result.ok:
        st.rerun()
    else:
        _show_failure(result)


def _render_doctor_status_updater(portal):
    binding = _watch("doctor_status", portal.watch_doctor_status)
    if not _render_binding_state(binding):
        return
    doctor = binding.records
    with st.form("doctor_status_form"):
        name = st.text_input("Doctor Name", value=doctor.name)
        specialty = st.text_input("Specialty", value=doctor.specialty)
        is_available = st.toggle("Available", value=doctor.is_available)
        submitted = st.form_submit_button("Update Status")
    if submitted:
        result = portal.update_doctor_status({"name": name, "specialty": specialty, "is_available": is_available})
        if result.ok:
            st.success("Doctor's availability has been updated successfully.")
        else:
            _show_failure(result)


def _render_predictive_health(portal, reports, feedbacks, ratings):
    st.write("Analyze emergency reports, hospital feedback and mess ratings for emerging health risks.")
    if any(binding.records is None for binding in (reports, feedbacks, ratings)):
        st.info("Waiting for data...")
        return
    if st.button("Run Health Analysis"):
        with st.spinner("Analyzing campus health data..."):
            result = portal.analyze_health_risks(reports.records, feedbacks.records, ratings.records)
        if result.ok:
            st.session_state.health_risks = result.value
        else:
            _show_failure(result)

    risks = st.session_state.get("health_risks")
    if risks is None:
        return
    if not risks:
        st.success("No significant health risks detected.")
    for risk in risks:
        with st.container(border=True):
            st.markdown(f"**{risk.risk_type}** · {risk.risk_level} · {risk.affected_area}")
            st.write(risk.description)
            st.caption(f"Recommendations: {risk.recommendations}")
