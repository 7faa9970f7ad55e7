"""
This is the main entry point for the CampusCare Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration for the Streamlit app.
- Builds the shared `CampusContext` (document store, auth, storage, AI client) once per server.
- Gives each browser session its own `CampusPortalService`.
- Routes the user to the sign-in page or the main app based on their login status.
"""
# campuscare/main.py

import streamlit as st

import gui
from campuscare.config import configure_logging, load_settings
from campuscare.context import create_context
from campuscare.portal import CampusPortalService

st.set_page_config(
    page_title="CampusCare",
    layout="wide"
)


def _read_secrets():
    """Returns Streamlit secrets as a dict, or an empty dict when no secrets file exists."""
    try:
        return dict(st.secrets)
    except FileNotFoundError:
        return {}


# Context Initialization
@st.cache_resource
def get_campus_context():
    """
    Builds and returns the CampusContext shared by every session.

    Decorated with `@st.cache_resource` so the store and its listeners are created
    once per server process and survive reruns.
    """
    settings = load_settings(_read_secrets())
    configure_logging(settings.log_level)
    return create_context(settings)


context = get_campus_context()

# Session State Management
if 'portal' not in st.session_state:
    st.session_state.portal = CampusPortalService(context)
if 'current_user' not in st.session_state:
    st.session_state.current_user = None

portal = st.session_state.portal

# Main App Router
if portal.current_user:
    gui.show_main_app(portal)
else:
    gui.show_login_page(portal)
