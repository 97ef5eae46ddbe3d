import logging

import psycopg2
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

import config
from stores.activity import log_activity

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
DUMMY_PASSWORD_HASH = generate_password_hash("not-a-real-password", method="pbkdf2:sha256")


class AdminUser(UserMixin):
    def __init__(self, id, username, email=None, is_active=True):
        self.id = id
        self.username = username
        self.email = email
        self._is_active = is_active

    @property
    def is_active(self):
        return self._is_active


class AuthStore:
    ''' Admin accounts and credential checks '''

    def __init__(self, db):
        self.db = db

    def authenticate(self, username, password):
        '''
        Check a username/password pair against the active admin accounts.

        Unknown user, inactive user and wrong password all produce the same
        message so the response does not reveal which usernames exist.
        '''
        try:
            with self.db.cursor() as cur:
                cur.execute(
                    "SELECT id, username, password_hash FROM admin_users WHERE username = %s AND is_active = %s",
                    (username, True)
                )
                user = cur.fetchone()
                # Unknown users are checked against a dummy hash to keep timing uniform
                password_hash = user["password_hash"] if user else DUMMY_PASSWORD_HASH
                if not check_password_hash(password_hash, password or "") or not user:
                    return {"success": False, "message": INVALID_CREDENTIALS}

                cur.execute("UPDATE admin_users SET last_login = NOW() WHERE id = %s", (user["id"],))
                log_activity(cur, user["id"], config.ACTIVITY_LOGIN, f"Logged in: {user['username']}")
        except psycopg2.Error:
            logger.exception("Error authenticating user")
            return {"success": False, "message": "Authentication error"}

        return {"success": True, "user": {"id": user["id"], "username": user["username"]}}

    def get_user(self, user_id):
        ''' Load an active admin for the session, None when gone or deactivated '''
        with self.db.cursor() as cur:
            cur.execute(
                "SELECT id, username, email, is_active FROM admin_users WHERE id = %s AND is_active = %s",
                (user_id, True)
            )
            row = cur.fetchone()
        if not row:
            return None
        return AdminUser(row["id"], row["username"], row["email"], row["is_active"])

    def record_logout(self, user_id, username):
        ''' Logging out must still work when the audit row cannot be written '''
        try:
            with self.db.cursor() as cur:
                log_activity(cur, user_id, config.ACTIVITY_LOGOUT, f"Logged out: {username}")
        except psycopg2.Error:
            logger.exception("Error recording logout", extra={"admin_user_id": user_id})

    def create_user(self, username, password, email=None):
        password_hash = generate_password_hash(password, method="pbkdf2:sha256")
        try:
            with self.db.cursor() as cur:
                cur.execute("""
                    INSERT INTO admin_users (username, password_hash, email, is_active)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id
                """, (username, password_hash, email, True))
                user_id = cur.fetchone()["id"]
        except psycopg2.Error as e:
            logger.exception("Error creating user", extra={"username": username})
            return {"success": False, "error": str(e)}
        return {"success": True, "user_id": user_id}

    def set_password(self, username, password):
        password_hash = generate_password_hash(password, method="pbkdf2:sha256")
        try:
            with self.db.cursor() as cur:
                cur.execute(
                    "UPDATE admin_users SET password_hash = %s WHERE username = %s",
                    (password_hash, username)
                )
                updated = cur.rowcount
        except psycopg2.Error as e:
            logger.exception("Error updating password", extra={"username": username})
            return {"success": False, "error": str(e)}
        if not updated:
            return {"success": False, "error": "User not found"}
        return {"success": True}
