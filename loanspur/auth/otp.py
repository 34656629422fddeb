"""One-time codes for email verification and password reset.

A code is valid once. Verification claims the row with a conditional update
(``used`` false -> true) and only the caller whose update matched a row gets
a success, so two concurrent verifications of the same code cannot both pass.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from ..errors import AppError

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
DEFAULT_TTL_MINUTES = 10


def generate_otp(length=OTP_LENGTH):
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def _now(now=None):
    return (now or datetime.now(timezone.utc)).isoformat()


def _expiry(ttl_minutes, now=None):
    return ((now or datetime.now(timezone.utc)) + timedelta(minutes=ttl_minutes)).isoformat()


def _find_unused(client, table, email, column, code, now):
    try:
        resp = (client.table(table).select("*")
                .eq("email", email)
                .eq(column, code)
                .eq("used", False)
                .gte("expires_at", _now(now))
                .order("created_at", desc=True)
                .limit(1)
                .execute())
    except Exception as e:
        logger.error("Database error reading %s: %s", table, e)
        raise AppError("Failed to verify code", "DATABASE_ERROR", 500)
    return resp.data[0] if resp.data else None


def _claim(client, table, record_id):
    """Mark a code used; True only if this call flipped the flag."""
    resp = (client.table(table).update({"used": True})
            .eq("id", record_id).eq("used", False).execute())
    return bool(resp.data)


def create_email_otp(client, email, ttl_minutes=DEFAULT_TTL_MINUTES, now=None):
    if not email:
        raise AppError("Email is required", "VALIDATION_ERROR", 400)
    code = generate_otp()
    row = {
        "email": email,
        "otp_code": code,
        "expires_at": _expiry(ttl_minutes, now),
        "created_at": _now(now),
        "used": False,
    }
    try:
        client.table("email_otps").insert(row).execute()
    except Exception as e:
        logger.error("Failed to store OTP for %s: %s", email, e)
        raise AppError("Failed to store OTP", "DATABASE_ERROR", 500)
    return code


def verify_email_otp(client, email, code, now=None):
    if not email or not code:
        raise AppError("Email and OTP code are required", "VALIDATION_ERROR", 400)
    record = _find_unused(client, "email_otps", email, "otp_code", code, now)
    if not record or not _claim(client, "email_otps", record["id"]):
        raise AppError("Invalid or expired verification code", "INVALID_OTP", 400)
    logger.info("OTP verified for %s", email)
    return record


def create_password_reset_token(client, email, ttl_minutes=DEFAULT_TTL_MINUTES, now=None):
    if not email:
        raise AppError("Email is required", "VALIDATION_ERROR", 400)
    token = generate_otp()
    try:
        client.table("password_reset_tokens").insert({
            "email": email,
            "token": token,
            "expires_at": _expiry(ttl_minutes, now),
            "created_at": _now(now),
            "used": False,
        }).execute()
    except Exception as e:
        logger.error("Failed to store reset token for %s: %s", email, e)
        raise AppError("Failed to generate reset code", "DATABASE_ERROR", 500)
    return token


def find_auth_user(client, email):
    users = client.auth.admin.list_users()
    # older clients wrap the list in a response object
    users = getattr(users, "users", users) or []
    for user in users:
        user_email = user.get("email") if isinstance(user, dict) else getattr(user, "email", None)
        if user_email and user_email.lower() == email.lower():
            return user
    return None


def verify_password_reset(client, email, token, new_password, now=None):
    """Consume a reset token and set the user's new password."""
    if not email or not token or not new_password:
        raise AppError("Email, token, and new password are required", "VALIDATION_ERROR", 400)

    record = _find_unused(client, "password_reset_tokens", email, "token", token, now)
    if not record or not _claim(client, "password_reset_tokens", record["id"]):
        raise AppError("Invalid or expired reset token", "INVALID_TOKEN", 400)

    try:
        user = find_auth_user(client, email)
    except Exception as e:
        logger.error("Error fetching users: %s", e)
        raise AppError("Failed to find user", "AUTH_ERROR", 500)
    if not user:
        raise AppError("User not found", "NOT_FOUND", 404)

    user_id = user.get("id") if isinstance(user, dict) else user.id
    try:
        client.auth.admin.update_user_by_id(user_id, {"password": new_password})
    except Exception as e:
        logger.error("Error updating password for %s: %s", email, e)
        raise AppError("Failed to update password", "AUTH_ERROR", 500)

    logger.info("Password reset for %s", email)
    return True
