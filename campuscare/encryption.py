"""
This module handles the key used to encrypt the CampusCare data file.

It uses the `cryptography` library (Fernet symmetric encryption) so that the
document store's JSON file is never written in clear text. The key lives in a
separate file whose path comes from the settings.

Security Note: the key file must be kept secret and out of version control.
"""
# campuscare/encryption.py

import logging
import os

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)


def write_key(key_path: str) -> bytes:
    """Generates a new Fernet key and saves it to `key_path`.

    Returns:
        bytes: The generated key.
    """
    key = Fernet.generate_key()
    directory = os.path.dirname(key_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(key_path, "wb") as key_file:
        key_file.write(key)
    return key


def load_key(key_path: str) -> bytes:
    """Loads the Fernet key from `key_path`."""
    with open(key_path, "rb") as key_file:
        return key_file.read()


def build_encryptor(key_path: str) -> Fernet:
    """Returns a Fernet instance, generating the key file on first run."""
    try:
        key = load_key(key_path)
    except FileNotFoundError:
        logger.info("Encryption key not found at %s. Generating a new one.", key_path)
        key = write_key(key_path)
    return Fernet(key)
