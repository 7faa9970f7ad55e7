"""
CampusCare configuration.

Settings come from three places, in order of precedence: environment variables,
Streamlit secrets (`.streamlit/secrets.toml`, passed in as a mapping) and the
defaults below. Never hardcode secrets.
"""
# campuscare/config.py

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE = {"1", "true", "yes", "on"}


class Settings:
    """Application settings.

    Attributes:
        data_file (str): Encrypted JSON file backing the document store.
        key_file (str): Fernet key used to encrypt the data file.
        media_dir (str): Directory for uploaded photos.
        media_base_url (str): Public URL prefix for `media_dir`; empty for file URLs.
        gemini_api_key (str): API key for Google Gemini.
        gemini_model (str): Model used for text and structured analysis.
        gemini_vision_model (str): Model used for meal photos.
        otp_length (int): Digits in phone verification codes.
        otp_ttl_seconds (int): Lifetime of a verification code.
        dev_overlay (bool): Show permission diagnostics in the sidebar.
        google_sign_in (bool): Offer Google sign-in through Streamlit's OIDC login.
        live_refresh_seconds (float): How often live pages rerun to pick up new snapshots.
        log_level (str): Root logging level.
    """

    def __init__(self, data_file="records.json", key_file="secret.key", media_dir="media", media_base_url="",
                 gemini_api_key="", gemini_model="gemini-1.5-flash", gemini_vision_model="gemini-1.5-flash",
                 otp_length=6, otp_ttl_seconds=300, dev_overlay=False, google_sign_in=False, live_refresh_seconds=5.0,
                 log_level="INFO"):
        self.data_file = data_file
        self.key_file = key_file
        self.media_dir = media_dir
        self.media_base_url = media_base_url
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.gemini_vision_model = gemini_vision_model
        self.otp_length = int(otp_length)
        self.otp_ttl_seconds = int(otp_ttl_seconds)
        self.dev_overlay = dev_overlay if isinstance(dev_overlay, bool) else str(dev_overlay).lower() in _TRUE
        self.google_sign_in = (google_sign_in if isinstance(google_sign_in, bool)
                               else str(google_sign_in).lower() in _TRUE)
        self.live_refresh_seconds = float(live_refresh_seconds)
        self.log_level = log_level


# Setting attribute -> (environment variable / secret name)
_SOURCES = {
    "data_file": "CAMPUSCARE_DATA_FILE",
    "key_file": "CAMPUSCARE_KEY_FILE",
    "media_dir": "CAMPUSCARE_MEDIA_DIR",
    "media_base_url": "CAMPUSCARE_MEDIA_BASE_URL",
    "gemini_api_key": "GEMINI_API_KEY",
    "gemini_model": "GEMINI_MODEL",
    "gemini_vision_model": "GEMINI_VISION_MODEL",
    "otp_length": "CAMPUSCARE_OTP_LENGTH",
    "otp_ttl_seconds": "CAMPUSCARE_OTP_TTL_SECONDS",
    "dev_overlay": "CAMPUSCARE_DEV_OVERLAY",
    "google_sign_in": "CAMPUSCARE_GOOGLE_SIGN_IN",
    "live_refresh_seconds": "CAMPUSCARE_LIVE_REFRESH_SECONDS",
    "log_level": "CAMPUSCARE_LOG_LEVEL",
}


def load_settings(secrets=None, environ=None) -> Settings:
    """Builds `Settings` from the environment, then `secrets`, then defaults."""
    environ = os.environ if environ is None else environ
    secrets = secrets or {}
    values = {}
    for attr, name in _SOURCES.items():
        if name in environ:
            values[attr] = environ[name]
        elif name in secrets:
            values[attr] = secrets[name]
    # An [auth] secrets section is Streamlit's OIDC configuration.
    if "google_sign_in" not in values and "auth" in secrets:
        values["google_sign_in"] = True
    return Settings(**values)


def configure_logging(level="INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
