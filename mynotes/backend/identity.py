"""
Identity backend and its authentication adapter.

IdentityService is the identity provider: a self-contained account service
with its own SQLite file, password hashing, a persisted session slot and a
mail outbox for verification and password reset messages. It speaks its own
language - plain dict user records and IdentityError codes.

IdentityAuthProvider is the only code that talks to IdentityService. It
implements AuthProvider, turns user records into AuthUser objects and maps
every backend failure onto the closed AuthError taxonomy.
"""

import asyncio
import contextlib
import logging
import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional, Type

from email_validator import EmailNotValidError, validate_email

from .auth_provider import AuthProvider
from .domain import AuthUser
from .exceptions import (
    AuthError,
    EmailAlreadyInUseAuthError,
    GenericAuthError,
    IdentityError,
    InvalidEmailAuthError,
    RequiresRecentLoginAuthError,
    UserNotFoundAuthError,
    WeakPasswordAuthError,
    WrongPasswordAuthError,
)
from .utils import hash_password, make_id, time_now

logger = logging.getLogger(__name__)

IDENTITY_ERRORS: Dict[str, Type[AuthError]] = {
    "invalid-email": InvalidEmailAuthError,
    "weak-password": WeakPasswordAuthError,
    "email-already-in-use": EmailAlreadyInUseAuthError,
    "user-not-found": UserNotFoundAuthError,
    "wrong-password": WrongPasswordAuthError,
    "requires-recent-login": RequiresRecentLoginAuthError,
}


def map_identity_error(error: BaseException) -> AuthError:
    """Translate a backend failure into the AuthError it stands for."""
    if isinstance(error, AuthError):
        return error
    if isinstance(error, IdentityError):
        error_class = IDENTITY_ERRORS.get(error.code, GenericAuthError)
        return error_class(str(error))
    return GenericAuthError(str(error))


class IdentityService:
    """
    Account service with SQLite persistence.

    Manages sign-up, sign-in, the single signed-in session of this device,
    email verification and password reset messages. Blocking and
    thread-safe; the adapter runs it in worker threads.

    The service uses SQLite for persistence with two tables:
    - accounts: credentials and verification flag
    - session: at most one row, the signed-in account

    Attributes:
        db_path (str): Path to the SQLite database file
        lock (threading.Lock): Guards the in-memory caches and database writes
        accounts (Dict): In-memory cache of accounts keyed by lowercase email
        outbox (List): Every email the service has "sent"
    """

    def __init__(self, db_path: str = "users.db", min_password_length: int = 6):
        self.db_path = db_path
        self.min_password_length = min_password_length
        self.lock = threading.Lock()
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.current_uid: Optional[str] = None
        self.outbox: List[Dict[str, str]] = []
        self._verification_tokens: Dict[str, str] = {}
        self.initialized = False

    def start(self) -> None:
        """Create the schema and load accounts and the saved session."""
        with self.lock:
            if self.initialized:
                return
            self._init_database()
            self._load_from_database()
            self.initialized = True
            logger.info("Identity service started with %d accounts", len(self.accounts))

    def _init_database(self):
        with self._get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                uid TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                email_verified INTEGER NOT NULL DEFAULT 0,
                created_time TEXT NOT NULL
            )
            """)
            cursor.execute("""
            CREATE TABLE IF NOT EXISTS session (
                slot INTEGER PRIMARY KEY CHECK (slot = 0),
                uid TEXT NOT NULL,
                created_time TEXT NOT NULL,
                FOREIGN KEY (uid) REFERENCES accounts (uid)
            )
            """)
            conn.commit()

    @contextlib.contextmanager
    def _get_db_connection(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            yield conn
        finally:
            conn.close()

    def _load_from_database(self):
        with self._get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT uid, email, password_hash, email_verified FROM accounts")
            for uid, email, password_hash, email_verified in cursor.fetchall():
                self.accounts[email] = {
                    "uid": uid,
                    "email": email,
                    "password_hash": password_hash,
                    "email_verified": bool(email_verified),
                }
            cursor.execute("SELECT uid FROM session WHERE slot = 0")
            row = cursor.fetchone()
            self.current_uid = row[0] if row else None

    def _require_initialized(self):
        if not self.initialized:
            raise IdentityError("not-initialized", "Identity service has not been started")

    def _normalize_email(self, email: str) -> str:
        try:
            result = validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise IdentityError("invalid-email", str(e)) from e
        return result.normalized.lower()

    def _account_by_uid(self, uid: Optional[str]) -> Optional[Dict[str, Any]]:
        for account in self.accounts.values():
            if account["uid"] == uid:
                return account
        return None

    def _public(self, account: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "uid": account["uid"],
            "email": account["email"],
            "email_verified": account["email_verified"],
        }

    def _save_session(self, uid: Optional[str]):
        with self._get_db_connection() as conn:
            cursor = conn.cursor()
            if uid is None:
                cursor.execute("DELETE FROM session WHERE slot = 0")
            else:
                cursor.execute(
                    "INSERT OR REPLACE INTO session (slot, uid, created_time) VALUES (0, ?, ?)",
                    (uid, time_now()),
                )
            conn.commit()
        self.current_uid = uid

    def current_user(self) -> Optional[Dict[str, Any]]:
        """Record of the signed-in account, or None."""
        account = self._account_by_uid(self.current_uid)
        return self._public(account) if account else None

    def create_user_with_email_and_password(self, email: str, password: str) -> Dict[str, Any]:
        """
        Register a new account and sign it in.

        Raises:
            IdentityError: invalid-email, email-already-in-use or weak-password
        """
        self._require_initialized()
        email = self._normalize_email(email)
        with self.lock:
            if email in self.accounts:
                raise IdentityError("email-already-in-use", "The email address is already in use")
            if len(password) < self.min_password_length:
                raise IdentityError(
                    "weak-password",
                    f"Password must be at least {self.min_password_length} characters long",
                )
            uid = make_id("uid")
            password_hash = hash_password(password)
            with self._get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT INTO accounts (uid, email, password_hash, email_verified, created_time) VALUES (?, ?, ?, 0, ?)",
                    (uid, email, password_hash, time_now()),
                )
                conn.commit()
            account = {"uid": uid, "email": email, "password_hash": password_hash, "email_verified": False}
            self.accounts[email] = account
            self._save_session(uid)
            logger.info("Account created: %s", uid)
            return self._public(account)

    def sign_in_with_email_and_password(self, email: str, password: str) -> Dict[str, Any]:
        """
        Sign in an existing account.

        Raises:
            IdentityError: invalid-email, user-not-found or wrong-password
        """
        self._require_initialized()
        email = self._normalize_email(email)
        with self.lock:
            account = self.accounts.get(email)
            if account is None:
                raise IdentityError("user-not-found", "No account exists for this email")
            if account["password_hash"] != hash_password(password):
                raise IdentityError("wrong-password", "The password is invalid")
            self._save_session(account["uid"])
            logger.info("Signed in: %s", account["uid"])
            return self._public(account)

    def sign_out(self) -> None:
        self._require_initialized()
        with self.lock:
            if self.current_uid is None:
                raise IdentityError("no-current-user", "Nobody is signed in")
            uid = self.current_uid
            self._save_session(None)
            logger.info("Signed out: %s", uid)

    def send_email_verification(self) -> str:
        """Queue a verification email for the signed-in account and return its token."""
        self._require_initialized()
        with self.lock:
            account = self._account_by_uid(self.current_uid)
            if account is None:
                raise IdentityError("no-current-user", "Nobody is signed in")
            token = make_id("verify")
            self._verification_tokens[token] = account["uid"]
            self.outbox.append({
                "kind": "verify-email",
                "to": account["email"],
                "token": token,
                "sent_time": time_now(),
            })
            return token

    def verify_email(self, token: str) -> None:
        """Apply a verification link, marking its account as verified."""
        self._require_initialized()
        with self.lock:
            uid = self._verification_tokens.pop(token, None)
            account = self._account_by_uid(uid)
            if account is None:
                raise IdentityError("invalid-action-code", "The verification link is invalid or was already used")
            with self._get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("UPDATE accounts SET email_verified = 1 WHERE uid = ?", (uid,))
                conn.commit()
            account["email_verified"] = True
            logger.info("Email verified: %s", uid)

    def send_password_reset_email(self, email: str) -> str:
        """Queue a password reset email and return its token."""
        self._require_initialized()
        email = self._normalize_email(email)
        with self.lock:
            if email not in self.accounts:
                raise IdentityError("user-not-found", "No account exists for this email")
            token = make_id("reset")
            self.outbox.append({
                "kind": "reset-password",
                "to": email,
                "token": token,
                "sent_time": time_now(),
            })
            return token


class IdentityAuthProvider(AuthProvider):
    """AuthProvider backed by an IdentityService."""

    def __init__(self, backend: IdentityService):
        self._backend = backend
        self._initialized = False

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as e:
            error = map_identity_error(e)
            logger.debug("Identity call %s failed: %s", func.__name__, error.kind)
            raise error from e

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self._call(self._backend.start)
        self._initialized = True

    @property
    def current_user(self) -> Optional[AuthUser]:
        record = self._backend.current_user()
        return AuthUser.from_identity(record) if record else None

    async def log_in(self, email: str, password: str) -> AuthUser:
        record = await self._call(self._backend.sign_in_with_email_and_password, email, password)
        return AuthUser.from_identity(record)

    async def create_user(self, email: str, password: str) -> AuthUser:
        record = await self._call(self._backend.create_user_with_email_and_password, email, password)
        return AuthUser.from_identity(record)

    async def log_out(self) -> None:
        await self._call(self._backend.sign_out)

    async def send_email_verification(self) -> None:
        await self._call(self._backend.send_email_verification)

    async def send_password_reset_email(self, email: str) -> None:
        await self._call(self._backend.send_password_reset_email, email)
