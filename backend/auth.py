from __future__ import annotations
import hmac
import logging
from typing import Optional

from persistence import PersistenceError
from schemas import AdminCredentials, CredentialsUpdate
from sessions import Session
from store import Store

logger = logging.getLogger(__name__)

SESSION_KEY = "admin_logged_in"
MIN_PASSWORD_LENGTH = 4


class AdminAuth:
    """Admin dashboard login.

    The credentials record is read from the same backend the store writes
    to and is shared by everyone; the logged-in flag lives in each browser's
    own session flags and does not survive a restart.
    """

    def __init__(self, store: Store, default: AdminCredentials):
        self.store = store
        self.default = default
        self.credentials = default

    async def load(self) -> AdminCredentials:
        try:
            saved = await self.store.persistence.get_credentials()
        except PersistenceError as e:
            logger.warning("Could not read admin credentials, using defaults: %s", e)
            saved = None
        self.credentials = saved or self.default
        return self.credentials

    def _matches(self, username: str, password: str) -> bool:
        user_ok = hmac.compare_digest(username.encode(), self.credentials.username.encode())
        password_ok = hmac.compare_digest(password.encode(), self.credentials.password.encode())
        return user_ok and password_ok

    def is_logged_in(self, session: Session) -> bool:
        return session.flags.get(SESSION_KEY) == "true"

    def login(self, session: Session, username: str, password: str) -> bool:
        if not self._matches(username, password):
            logger.warning("Failed admin login for %r", username)
            return False
        session.flags.set(SESSION_KEY, "true")
        logger.info("Admin %r logged in", username)
        return True

    def logout(self, session: Session) -> None:
        session.flags.remove(SESSION_KEY)

    async def update_credentials(self, form: CredentialsUpdate, session: Optional[Session] = None) -> dict[str, str]:
        if not self._matches(form.current_username, form.current_password):
            return {"current": "Current username or password is incorrect"}

        errors: dict[str, str] = {}
        if not form.new_username.strip():
            errors["new_username"] = "New username is required"
        if not form.new_password.strip():
            errors["new_password"] = "New password is required"
        elif len(form.new_password) < MIN_PASSWORD_LENGTH:
            errors["new_password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        if form.new_password != form.confirm_password:
            errors["confirm_password"] = "New passwords do not match"
        if errors:
            return errors

        credentials = AdminCredentials(username=form.new_username.strip(), password=form.new_password)
        try:
            await self.store.persistence.save_credentials(credentials)
        except PersistenceError as e:
            logger.exception("Failed to save admin credentials")
            return {"form": f"Failed to save credentials: {e}"}

        self.credentials = credentials
        self.store.show_toast("Credentials updated successfully!", session=session)
        return {}
