import logging
from datetime import datetime, timezone

import httpx
from flask import current_app, render_template

from ..errors import AppError, handle_api_error

logger = logging.getLogger(__name__)


def _sender(from_name=None):
    address = current_app.config.get("RESEND_EMAIL_FROM")
    if not address:
        raise AppError("RESEND_EMAIL_FROM environment variable is not set", "EMAIL_NOT_CONFIGURED", 500)
    if from_name and "<" not in address:
        return f"{from_name} <{address}>"
    return address


def send_email(to_email, subject, html_body, from_name=None):
    """Send an HTML email through Resend and return the provider's email id."""
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        raise AppError("RESEND_API_KEY environment variable is not set", "EMAIL_NOT_CONFIGURED", 500)

    payload = {
        "from": _sender(from_name),
        "to": [to_email] if isinstance(to_email, str) else list(to_email),
        "subject": subject,
        "html": html_body,
    }
    try:
        response = httpx.post(
            current_app.config["RESEND_API_URL"],
            json=payload,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=current_app.config.get("HTTP_TIMEOUT_SECONDS", 10),
        )
    except httpx.HTTPError as e:
        raise handle_api_error(e, "send_email")

    if response.status_code >= 400:
        try:
            detail = response.json().get("message") or response.text
        except ValueError:
            detail = response.text
        logger.error("Resend error (%s): %s", response.status_code, detail)
        raise AppError(f"Failed to send email: {detail}", "EMAIL_SEND_FAILED", 500)

    email_id = (response.json() or {}).get("id")
    logger.info("Email %s sent to %s", email_id, payload["to"])
    return email_id


def send_test_email(to_email, from_name="LoanSpur"):
    html_body = render_template(
        "email/test_email.html",
        from_name=from_name,
        from_email=current_app.config.get("RESEND_EMAIL_FROM"),
        sent_at=datetime.now(timezone.utc).isoformat(),
    )
    return send_email(to_email, "Test Email - Email Configuration Verification", html_body, from_name)


def send_otp_email(to_email, otp_code, purpose="verification", tenant_name=None):
    if purpose == "registration":
        subject = f"Verify your email for {tenant_name or 'LoanSpur'} registration"
    else:
        subject = "Email verification code"
    html_body = render_template(
        "email/otp_email.html",
        otp_code=otp_code,
        purpose=purpose,
        tenant_name=tenant_name,
        ttl_minutes=current_app.config.get("OTP_TTL_MINUTES", 10),
    )
    return send_email(to_email, subject, html_body, "LoanSpur")


def send_password_reset_email(to_email, token, reset_url):
    html_body = render_template(
        "email/password_reset.html",
        token=token,
        reset_url=reset_url,
        ttl_minutes=current_app.config.get("OTP_TTL_MINUTES", 10),
    )
    return send_email(to_email, "Reset Your Password - LoanSpur CBS", html_body)
