"""
The client context: every handle CampusCare needs, built once and passed down.

`create_context` wires the document store, authentication, photo storage, the
Gemini client and the diagnostic channel from `Settings`. `close()` releases
live bindings and flushes the store; the context also works as a `with` block.
"""
# campuscare/context.py

import logging

from campuscare.auth import AuthService
from campuscare.encryption import build_encryptor
from campuscare.errors import ErrorEmitter
from campuscare.gemini import GeminiClient
from campuscare.mutations import MutationSubmitter
from campuscare.storage import PhotoStorage
from campuscare.store import DocumentStore

logger = logging.getLogger(__name__)


class CampusContext:
    """Holds the store, auth, storage, AI and error-channel handles."""

    def __init__(self, settings, store, auth, storage, ai, emitter):
        self.settings = settings
        self.store = store
        self.auth = auth
        self.storage = storage
        self.ai = ai
        self.errors = emitter
        self.mutations = MutationSubmitter(store, emitter)
        self._closed = False

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.store.close()
        logger.info("CampusCare context closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def create_context(settings, encryptor=None, ai=None, otp_sender=None) -> CampusContext:
    """Builds a `CampusContext` from settings.

    Args:
        settings: A `Settings` instance.
        encryptor: Overrides the Fernet instance built from `settings.key_file`.
        ai: Overrides the Gemini client.
        otp_sender: Overrides how phone verification codes are delivered.
    """
    encryptor = encryptor or build_encryptor(settings.key_file)
    store = DocumentStore(settings.data_file, encryptor)
    auth_kwargs = {"otp_length": settings.otp_length, "otp_ttl_seconds": settings.otp_ttl_seconds}
    if otp_sender is not None:
        auth_kwargs["otp_sender"] = otp_sender
    auth = AuthService(store, **auth_kwargs)
    storage = PhotoStorage(settings.media_dir, settings.media_base_url)
    if ai is None:
        ai = GeminiClient(settings.gemini_api_key, settings.gemini_model, settings.gemini_vision_model)
    logger.info("CampusCare context ready (data file %s)", settings.data_file)
    return CampusContext(settings, store, auth, storage, ai, ErrorEmitter())
