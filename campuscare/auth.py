"""
This module provides the authentication service for CampusCare.

`AuthService` is responsible for:
- Email/password sign-up and sign-in, with salted password hashing.
- Phone-number sign-in, either with a password or with a one-time code (OTP).
- Federated sign-in from an identity already verified by an external provider.
- Updating the display name and photo of an account.

Accounts are kept in the document store's private `_accounts` collection, which
the access rules close to every client, so only this service reads or writes it.
Every method returns a `Result` whose value is a `User` on success.
"""
# campuscare/auth.py

import hashlib
import hmac
import logging
import os
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from campuscare.errors import AuthError, ErrorKind, Result
from campuscare.models import User
from campuscare.store import SERVER_TIMESTAMP, Query, to_wire

logger = logging.getLogger(__name__)

ACCOUNTS = "_accounts"
OTP_CODES = "_otpCodes"
PHONE_EMAIL_DOMAIN = "phone.campuscare"
COUNTRY_CODE = "+91"
MIN_PASSWORD_LENGTH = 6


def _hash_password(password, salt):
    return hashlib.sha256((salt + password).encode()).hexdigest()


def phone_email(phone_number: str) -> str:
    """The synthetic email used for phone + password accounts."""
    return f"{COUNTRY_CODE}{phone_number}@{PHONE_EMAIL_DOMAIN}"


def log_otp_sender(phone_number: str, code: str) -> None:
    """Default OTP delivery: writes the code to the log (development only)."""
    logger.info("OTP for %s: %s", phone_number, code)


class AuthService:
    """Manages user accounts and sign-in flows."""

    def __init__(self, store, otp_sender=log_otp_sender, otp_length=6, otp_ttl_seconds=300):
        """
        Args:
            store: The `DocumentStore` holding the account records.
            otp_sender: Callable `(phone_number, code)` that delivers one-time codes.
            otp_length: Number of digits in a one-time code.
            otp_ttl_seconds: How long a one-time code stays valid.
        """
        self._store = store
        self._otp_sender = otp_sender
        self._otp_length = otp_length
        self._otp_ttl = timedelta(seconds=otp_ttl_seconds)

    # Account records

    def _find_account(self, field, value):
        matches = self._store.admin_query(Query(ACCOUNTS).where(field, "==", value).limit(1))
        return matches[0].data if matches else None

    def _create_account(self, email=None, password=None, display_name=None, phone_number=None, provider="password",
                        photo_url=None):
        uid = uuid.uuid4().hex
        account = {
            "uid": uid,
            "email": email,
            "displayName": display_name,
            "photoURL": photo_url,
            "phoneNumber": phone_number,
            "provider": provider,
            "createdAt": SERVER_TIMESTAMP,
        }
        if password is not None:
            salt = os.urandom(16).hex()
            account["salt"] = salt
            account["passwordHash"] = _hash_password(password, salt)
        snapshot = self._store.admin_set(f"{ACCOUNTS}/{uid}", account)
        logger.info("Created %s account %s", provider, uid)
        return snapshot.data

    def _check_password(self, account, password) -> bool:
        salt = account.get("salt")
        if not salt:
            return False
        return hmac.compare_digest(account.get("passwordHash", ""), _hash_password(password, salt))

    # Email / password

    def sign_up_with_email(self, email, password, display_name=None) -> Result:
        """Creates an email/password account.

        Returns:
            Result: the new `User`, or an OTHER failure for a short password or an email already in use.
        """
        email = (email or "").strip().lower()
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return Result.failure(ErrorKind.VALIDATION, f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        if self._find_account("email", email):
            return Result.failure(ErrorKind.OTHER, "An account already exists for this email.")
        account = self._create_account(email=email, password=password, display_name=display_name)
        return Result.success(User.from_account(account))

    def sign_in_with_email(self, email, password, create_if_missing=False) -> Result:
        """Signs in with email and password.

        Args:
            create_if_missing: When True and no account exists for the email, one is created.
        """
        email = (email or "").strip().lower()
        account = self._find_account("email", email)
        if account is None:
            if create_if_missing:
                return self.sign_up_with_email(email, password)
            return Result.failure(ErrorKind.OTHER, "Invalid email or password.")
        if not self._check_password(account, password):
            return Result.failure(ErrorKind.OTHER, "Invalid email or password.")
        logger.info("Signed in %s", account["uid"])
        return Result.success(User.from_account(account))

    # Phone

    def sign_in_with_phone_password(self, phone_number, password) -> Result:
        """Phone + password sign-in; creates the account on first use."""
        result = self.sign_in_with_email(phone_email(phone_number), password, create_if_missing=True)
        if result.ok and not result.value.phone_number:
            self._store.admin_set(f"{ACCOUNTS}/{result.value.uid}",
                                  {"phoneNumber": f"{COUNTRY_CODE}{phone_number}", "provider": "phone"}, merge=True)
            result.value.phone_number = f"{COUNTRY_CODE}{phone_number}"
            result.value.provider = "phone"
        return result

    def request_otp(self, phone_number) -> Result:
        """Generates a one-time code for `phone_number` and hands it to the sender."""
        full_number = f"{COUNTRY_CODE}{phone_number}"
        code = "".join(str(secrets.randbelow(10)) for _ in range(self._otp_length))
        expires_at = datetime.now(timezone.utc) + self._otp_ttl
        salt = os.urandom(8).hex()
        self._store.admin_set(f"{OTP_CODES}/{full_number}", {
            "salt": salt,
            "codeHash": _hash_password(code, salt),
            "expiresAt": to_wire(expires_at),
        })
        try:
            self._otp_sender(full_number, code)
        except Exception as e:
            logger.error("Could not send OTP to %s: %s", full_number, e)
            return Result.failure(ErrorKind.UPSTREAM, str(e))
        return Result.success(full_number)

    def verify_otp(self, phone_number, code) -> Result:
        """Checks a one-time code and signs in (or signs up) the phone account."""
        full_number = f"{COUNTRY_CODE}{phone_number}"
        record = self._store.admin_get(f"{OTP_CODES}/{full_number}").data
        if not record:
            return Result.failure(ErrorKind.OTHER, "Request a code first.")
        if datetime.fromisoformat(record["expiresAt"]) < datetime.now(timezone.utc):
            self._store.admin_delete(f"{OTP_CODES}/{full_number}")
            return Result.failure(ErrorKind.OTHER, "The code has expired. Request a new one.")
        if not hmac.compare_digest(record["codeHash"], _hash_password(code or "", record["salt"])):
            return Result.failure(ErrorKind.OTHER, "Invalid verification code.")
        self._store.admin_delete(f"{OTP_CODES}/{full_number}")

        account = self._find_account("phoneNumber", full_number)
        if account is None:
            account = self._create_account(phone_number=full_number, provider="phone")
        return Result.success(User.from_account(account))

    # Federated

    def sign_in_with_federated(self, provider, email, display_name=None, photo_url=None) -> Result:
        """Signs in with an identity verified by an external provider such as Google."""
        if not email:
            return Result.failure(ErrorKind.OTHER, f"{provider} did not return an email address.")
        email = email.strip().lower()
        account = self._find_account("email", email)
        if account is None:
            account = self._create_account(email=email, display_name=display_name, provider=provider,
                                           photo_url=photo_url)
        return Result.success(User.from_account(account))

    # Profile

    def get_user(self, uid) -> User:
        account = self._store.admin_get(f"{ACCOUNTS}/{uid}").data
        if account is None:
            raise AuthError("user-not-found", f"No account for uid {uid}")
        return User.from_account(account)

    def update_profile(self, uid, display_name=None, photo_url=None) -> Result:
        """Updates the account's display name and/or photo URL."""
        try:
            self.get_user(uid)
        except AuthError as e:
            return Result.failure(ErrorKind.NOT_FOUND, str(e))
        changes = {}
        if display_name is not None:
            changes["displayName"] = display_name
        if photo_url is not None:
            changes["photoURL"] = photo_url
        if changes:
            self._store.admin_set(f"{ACCOUNTS}/{uid}", changes, merge=True)
        return Result.success(self.get_user(uid))
