"""Account lifecycle: registration, email verification, login and password reset."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Protocol

from .codes import CodeIssuer
from .conversations import KEY_SEPARATOR
from .errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    NotificationError,
    ServerError,
    ValidationError,
    VerificationDeliveryError,
)
from .models import Account, Profile
from .notifier import Notifier
from .security import dummy_verify, hash_password, verify_password

logger = logging.getLogger("quicktalk.identity")

REGISTERED_MESSAGE = "Registration successful. Please verify your email with the OTP."
VERIFIED_MESSAGE = "Email verified successfully."
RESET_REQUESTED_MESSAGE = "If this email exists, a reset code has been sent."
RESEND_REQUESTED_MESSAGE = "If this email is awaiting verification, a new code has been sent."
RESET_COMPLETED_MESSAGE = "Password reset successful. You can now log in with the new password."

INVALID_LOGIN_MESSAGE = "Invalid email or password."
INVALID_CODE_MESSAGE = "Invalid or expired OTP."
UNVERIFIED_MESSAGE = "Email is not verified. Please verify your email first."
ACCOUNT_NOT_FOUND_MESSAGE = "User not found for this email."
PASSWORD_MISMATCH_MESSAGE = "Passwords do not match."


class AccountStore(Protocol):
    def create_account(
        self,
        handle: str,
        address: str,
        password_hash: str,
        profile: Optional[Profile] = None,
    ) -> Account: ...

    def find_account_by_handle(self, handle: str) -> Optional[Account]: ...

    def find_account_by_address(self, address: str) -> Optional[Account]: ...

    def account_exists_by_handle(self, handle: str) -> bool: ...

    def account_exists_by_address(self, address: str) -> bool: ...

    def save_account(self, account: Account) -> Account: ...


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class IdentityManager:
    """Drive accounts from ``PendingVerification`` to ``Verified`` and manage credentials.

    Every failure is reported as one of the :mod:`quicktalk.errors` kinds so
    the transport layer can map it without inspecting lower-level faults.
    """

    def __init__(self, accounts: AccountStore, codes: CodeIssuer, notifier: Notifier) -> None:
        self._accounts = accounts
        self._codes = codes
        self._notifier = notifier

    def register(
        self,
        handle: Optional[str],
        address: Optional[str],
        password: Optional[str],
        confirm_password: Optional[str],
        profile: Optional[Profile] = None,
    ) -> Account:
        if _is_blank(handle) or _is_blank(address) or _is_blank(password) or _is_blank(confirm_password):
            raise ValidationError("Email, username and password are required.")
        if password != confirm_password:
            raise ValidationError(PASSWORD_MISMATCH_MESSAGE)
        if KEY_SEPARATOR in handle:
            raise ValidationError(f"Username must not contain '{KEY_SEPARATOR}'.")

        # Fast-path checks; the store's unique constraints settle concurrent races.
        if self._accounts.account_exists_by_address(address):
            raise ConflictError("Email is already registered.", field="address")
        if self._accounts.account_exists_by_handle(handle):
            raise ConflictError("Username is already taken.", field="handle")

        account = self._accounts.create_account(handle, address, hash_password(password), profile)
        logger.info("Registered account %s pending verification", account.handle)

        code = self._codes.issue(account.address)
        try:
            self._notifier.notify(account.address, code)
        except NotificationError as exc:
            logger.warning("Failed to send verification code for account %s: %s", account.handle, exc)
            raise VerificationDeliveryError() from exc

        return account

    def verify_email(self, address: Optional[str], code: Optional[str]) -> Account:
        if _is_blank(address) or _is_blank(code):
            raise ValidationError("Email and OTP are required.")

        if not self._codes.consume(address, code):
            raise AuthError(INVALID_CODE_MESSAGE)

        account = self._accounts.find_account_by_address(address)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND_MESSAGE)

        if not account.verified:
            account = self._accounts.save_account(replace(account, verified=True))
            logger.info("Account %s verified its email address", account.handle)
        return account

    def resend_verification(self, address: Optional[str]) -> str:
        """Issue a fresh verification code for an unverified account.

        Unknown and already verified addresses get the same reply without a
        code being issued.
        """

        if _is_blank(address):
            raise ValidationError("Email is required.")

        account = self._accounts.find_account_by_address(address)
        if account is None or account.verified:
            return RESEND_REQUESTED_MESSAGE

        code = self._codes.issue(account.address)
        try:
            self._notifier.notify(account.address, code)
        except NotificationError as exc:
            logger.warning("Failed to resend verification code for account %s: %s", account.handle, exc)
            raise VerificationDeliveryError("Failed to send verification email.") from exc
        return RESEND_REQUESTED_MESSAGE

    def login(self, address: Optional[str], password: Optional[str]) -> str:
        """Return the handle of the verified account matching the credentials."""

        if _is_blank(address) or _is_blank(password):
            raise ValidationError("Email and password are required.")

        account = self._accounts.find_account_by_address(address)
        if account is None:
            dummy_verify()
            raise AuthError(INVALID_LOGIN_MESSAGE)

        if not account.verified:
            raise ForbiddenError(UNVERIFIED_MESSAGE)

        if not verify_password(password, account.password_hash):
            logger.info("Rejected login for account %s: bad credentials", account.handle)
            raise AuthError(INVALID_LOGIN_MESSAGE)

        logger.info("Account %s logged in", account.handle)
        return account.handle

    def request_password_reset(self, address: Optional[str]) -> str:
        if _is_blank(address):
            raise ValidationError("Email is required.")

        account = self._accounts.find_account_by_address(address)
        if account is None:
            return RESET_REQUESTED_MESSAGE

        code = self._codes.issue(account.address)
        try:
            self._notifier.notify(account.address, code)
        except NotificationError as exc:
            logger.warning("Failed to send reset code for account %s: %s", account.handle, exc)
            raise ServerError("Failed to send reset OTP email.") from exc

        logger.info("Issued password reset code for account %s", account.handle)
        return RESET_REQUESTED_MESSAGE

    def reset_password(
        self,
        address: Optional[str],
        code: Optional[str],
        new_password: Optional[str],
        confirm_password: Optional[str],
    ) -> Account:
        if _is_blank(address) or _is_blank(code) or _is_blank(new_password) or _is_blank(confirm_password):
            raise ValidationError("All fields are required.")
        if new_password != confirm_password:
            raise ValidationError(PASSWORD_MISMATCH_MESSAGE)

        if not self._codes.consume(address, code):
            raise AuthError(INVALID_CODE_MESSAGE)

        account = self._accounts.find_account_by_address(address)
        if account is None:
            raise NotFoundError(ACCOUNT_NOT_FOUND_MESSAGE)

        account = self._accounts.save_account(
            replace(account, password_hash=hash_password(new_password))
        )
        logger.info("Password reset for account %s", account.handle)
        return account


__all__ = [
    "AccountStore",
    "IdentityManager",
    "RESEND_REQUESTED_MESSAGE",
    "RESET_COMPLETED_MESSAGE",
    "RESET_REQUESTED_MESSAGE",
    "REGISTERED_MESSAGE",
    "VERIFIED_MESSAGE",
]
