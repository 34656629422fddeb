"""HTTP handlers called directly by the browser client.

Each handler answers the CORS preflight and returns ``{success, message}``
or ``{success: false, error|message}``.
"""

from urllib.parse import quote

from flask import current_app, jsonify, request

from . import functions_bp
from ..auth.otp import (
    create_email_otp,
    create_password_reset_token,
    verify_email_otp,
    verify_password_reset,
)
from ..db import get_supabase
from ..errors import AppError
from ..notification.email_utils import send_otp_email, send_password_reset_email, send_test_email
from ..tenant.utils import build_subdomain_url


def _preflight():
    return "", 200


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise AppError("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return data


@functions_bp.route("/send-test-email", methods=["POST", "OPTIONS"])
def send_test_email_handler():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        data = _payload()
        test_email = data.get("testEmail")
        from_name = data.get("fromName") or "LoanSpur"
        if not test_email:
            raise AppError("Test email address is required", "VALIDATION_ERROR", 400)
        email_id = send_test_email(test_email, from_name)
    except AppError as e:
        current_app.logger.error("Error in send-test-email: %s", e.message)
        return jsonify({"success": False, "error": e.message or "Failed to send test email"}), 500

    current_app.logger.info("Test email sent: %s", email_id)
    return jsonify({"success": True, "message": "Test email sent successfully", "emailId": email_id}), 200


@functions_bp.route("/verify-otp", methods=["POST", "OPTIONS"])
def verify_otp_handler():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        data = _payload()
        verify_email_otp(get_supabase(), data.get("email"), data.get("otpCode"))
    except AppError as e:
        current_app.logger.warning("Error in verify-otp: %s", e.message)
        return jsonify({"success": False, "message": e.message or "Failed to verify OTP"}), 400
    return jsonify({"success": True, "message": "OTP verified successfully"}), 200


@functions_bp.route("/verify-password-reset-otp", methods=["POST", "OPTIONS"])
def verify_password_reset_handler():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        data = _payload()
        verify_password_reset(get_supabase(), data.get("email"), data.get("token"), data.get("newPassword"))
    except AppError as e:
        current_app.logger.warning("Error in verify-password-reset-otp: %s", e.message)
        return jsonify({"success": False, "message": e.message or "Failed to reset password"}), 400
    return jsonify({"success": True, "message": "Password reset successfully"}), 200


@functions_bp.route("/send-otp-email", methods=["POST", "OPTIONS"])
def send_otp_email_handler():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        data = _payload()
        email = data.get("email")
        code = create_email_otp(get_supabase(), email, current_app.config.get("OTP_TTL_MINUTES", 10))
        send_otp_email(email, code, data.get("type") or "verification", data.get("tenantName"))
    except AppError as e:
        current_app.logger.error("Error in send-otp-email: %s", e.message)
        return jsonify({"success": False, "error": e.message or "Failed to send OTP email"}), 500
    return jsonify({"success": True, "message": "OTP sent successfully"}), 200


@functions_bp.route("/send-password-reset-otp", methods=["POST", "OPTIONS"])
def send_password_reset_handler():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        data = _payload()
        email = data.get("email")
        token = create_password_reset_token(get_supabase(), email, current_app.config.get("OTP_TTL_MINUTES", 10))
        path = f"/auth/reset-password?token={token}&email={quote(email)}"
        reset_url = build_subdomain_url(data.get("tenantSubdomain"), path, current_app.config["PRODUCTION_DOMAIN"])
        send_password_reset_email(email, token, reset_url)
    except AppError as e:
        current_app.logger.warning("Error in send-password-reset-otp: %s", e.message)
        return jsonify({"success": False, "message": e.message or "Failed to send password reset code"}), 400
    return jsonify({"success": True, "message": "Password reset code sent successfully"}), 200
