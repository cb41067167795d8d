"""
Email service for account management.

Sends verification, password reset and email change messages.
Requires SMTP configuration in environment variables; without it the
messages are only logged.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from accounts.config import get_smtp_settings, settings

logger = logging.getLogger(__name__)


def is_email_configured() -> bool:
    """Check if email sending is properly configured."""
    smtp = get_smtp_settings()
    return bool(smtp["user"] and smtp["password"])


def _app_name() -> str:
    return settings.shared.get("app_name", "Accounts")


def send_email(to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
    """
    Send an email using SMTP.

    Args:
        to: Recipient email address
        subject: Email subject
        html_body: HTML content
        text_body: Plain text fallback (optional)

    Returns:
        True if sent successfully
    """
    if not is_email_configured():
        logger.warning("Email not configured - skipping send")
        logger.info(f"Would send email to {to}: {subject}\n{text_body or html_body}")
        return False

    smtp = get_smtp_settings()
    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{_app_name()} <{smtp['from']}>"
        msg["To"] = to

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(smtp["host"], smtp["port"]) as server:
            if smtp["use_tls"]:
                server.starttls()
            server.login(smtp["user"], smtp["password"])
            server.sendmail(smtp["from"], to, msg.as_string())

        logger.info(f"Email sent to {to}: {subject}")
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to}: {e}")
        return False


def _render(title: str, greeting: str, intro: str, link: str, button: str, expiry: str, footer: str) -> tuple[str, str]:
    app_name = _app_name()
    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .button {{
                display: inline-block;
                padding: 12px 24px;
                background-color: #3B82F6;
                color: white !important;
                text-decoration: none;
                border-radius: 6px;
                margin: 20px 0;
            }}
            .footer {{ color: #666; font-size: 12px; margin-top: 30px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h2>{title}</h2>
            <p>{greeting}</p>
            <p>{intro}</p>
            <a href="{link}" class="button">{button}</a>
            <p>Or copy this link into your browser:</p>
            <p style="word-break: break-all; color: #666;">{link}</p>
            <p>{expiry}</p>
            <div class="footer">
                <p>{footer}</p>
                <p>&copy; {app_name}</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""
    {title}

    {greeting}

    {intro}

    {link}

    {expiry}

    {footer}
    """
    return html_body, text_body


def _greeting(name: Optional[str]) -> str:
    return f"Hi {name}," if name else "Hi,"


def verification_link(user_id: int, code: str) -> str:
    return f"{settings.app_url}/users/{user_id}/verification?code={code}"


def password_reset_link(code: str) -> str:
    return f"{settings.app_url}/reset-password?code={code}"


def change_email_link(user_id: int, code: str) -> str:
    return f"{settings.app_url}/users/{user_id}/email?code={code}"


def send_verification_email(email: str, link: str, name: Optional[str] = None) -> bool:
    """Send the email verification link to a newly signed up user."""
    html_body, text_body = _render(
        title=f"Welcome to {_app_name()}!",
        greeting=_greeting(name),
        intro="Thanks for signing up! Please verify your email address to activate your account.",
        link=link,
        button="Verify Email Address",
        expiry=f"This link will expire in {settings.verification_token_hours} hours.",
        footer="If you didn't create an account, you can safely ignore this email.",
    )
    return send_email(email, f"Verify your {_app_name()} account", html_body, text_body)


def send_password_reset_email(email: str, link: str, name: Optional[str] = None) -> bool:
    """Send the password reset link."""
    html_body, text_body = _render(
        title="Password Reset Request",
        greeting=_greeting(name),
        intro="We received a request to reset your password. Use the link below to create a new password:",
        link=link,
        button="Reset Password",
        expiry=f"This link will expire in {settings.reset_token_hours} hour(s).",
        footer="If you didn't request a password reset, you can safely ignore this email. "
        "Your password will remain unchanged.",
    )
    return send_email(email, f"Reset your {_app_name()} password", html_body, text_body)


def send_change_email_email(new_email: str, link: str, name: Optional[str] = None) -> bool:
    """Send the confirmation link for an email change to the new address."""
    html_body, text_body = _render(
        title="Confirm your new email",
        greeting=_greeting(name),
        intro=f"You asked to use {new_email} for your {_app_name()} account. Confirm the change below:",
        link=link,
        button="Confirm Email Change",
        expiry=f"This link will expire in {settings.change_email_token_hours} hours.",
        footer="If you didn't ask for this change, you can safely ignore this email.",
    )
    return send_email(new_email, f"Confirm your new {_app_name()} email", html_body, text_body)
