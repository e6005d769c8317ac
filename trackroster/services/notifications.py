"""Email delivery (Mailgun, Resend or SendGrid) for verification codes."""
import html
import logging

import httpx

from trackroster.config import get_settings

log = logging.getLogger("uvicorn.error")

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"


def send_email(to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send email via Mailgun (preferred), Resend or SendGrid. Returns True only if a provider accepted it."""
    settings = get_settings()
    if settings.mailgun_api_key and settings.mailgun_domain:
        return _send_email_mailgun(to_email, subject, html_content, text_content=text_content, settings=settings)
    if settings.resend_api_key:
        return _send_email_resend(to_email, subject, html_content, text_content=text_content, settings=settings)
    if settings.sendgrid_api_key:
        return _send_email_sendgrid(to_email, subject, html_content, text_content=text_content, settings=settings)
    log.warning(
        "[Email] NOT SENT: to=%s subject=%s. No transport configured (MAILGUN_API_KEY/MAILGUN_DOMAIN, RESEND_API_KEY or SENDGRID_API_KEY).",
        to_email,
        subject,
    )
    return False


def _send_email_mailgun(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    base = (settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
    domain = (settings.mailgun_domain or "").strip().lower()
    from_addr = (settings.mailgun_from_email or "").strip()
    from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
    if domain and from_domain != domain:
        # Mailgun drops mail whose sender domain differs from the sending domain
        from_addr = f"noreply@{domain}"
    data = {
        "from": f"{settings.mailgun_from_name} <{from_addr}>",
        "to": to_email,
        "subject": subject,
        "text": text_content or "",
        "html": html_content or "",
    }
    try:
        with httpx.Client(timeout=10.0) as client:
            r = client.post(f"{base}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data)
            if 200 <= r.status_code < 300:
                log.info("[Mailgun] sent: to=%s status=%s", to_email, r.status_code)
                return True
            if r.status_code == 401 and base == MAILGUN_US_BASE:
                log.info("[Mailgun] 401 with US endpoint. Retrying with EU endpoint...")
                r2 = client.post(
                    f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=("api", settings.mailgun_api_key), data=data
                )
                if 200 <= r2.status_code < 300:
                    log.info("[Mailgun] sent (EU): to=%s", to_email)
                    return True
                log.warning("[Mailgun] EU request failed: status=%s body=%s", r2.status_code, r2.text[:500])
                return False
            log.warning("[Mailgun] API failed: status=%s to=%s body=%s", r.status_code, to_email, r.text[:500])
            return False
    except httpx.HTTPError as e:
        log.warning("[Mailgun] transport error: to=%s error=%s: %s", to_email, type(e).__name__, e)
        return False


def _send_email_resend(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    url = f"{settings.resend_base_url.rstrip('/')}/emails"
    body = {
        "from": f"{settings.mail_from_name} <{settings.mail_from_email}>",
        "to": [to_email],
        "subject": subject,
        "html": html_content or "",
    }
    if text_content:
        body["text"] = text_content
    try:
        with httpx.Client(timeout=10.0) as client:
            r = client.post(url, headers={"Authorization": f"Bearer {settings.resend_api_key}"}, json=body)
    except httpx.HTTPError as e:
        log.warning("[Resend] transport error: to=%s error=%s: %s", to_email, type(e).__name__, e)
        return False
    if 200 <= r.status_code < 300:
        log.info("[Resend] sent: to=%s", to_email)
        return True
    log.warning("[Resend] API failed: status=%s to=%s body=%s", r.status_code, to_email, r.text[:500])
    return False


def _send_email_sendgrid(to_email: str, subject: str, html_content: str, text_content: str | None = None, settings=None) -> bool:
    if settings is None:
        settings = get_settings()
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=(settings.mail_from_email, settings.mail_from_name),
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
        plain_text_content=text_content or "",
    )
    try:
        response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    except Exception as e:  # sendgrid raises python_http_client errors of several types
        log.warning("[SendGrid] send failed: to=%s error=%s: %s", to_email, type(e).__name__, e)
        return False
    return 200 <= getattr(response, "status_code", 0) < 300


def send_verification_email(to_email: str, code: str, full_name: str | None = None) -> bool:
    """Send the 6-digit verification code email for signup."""
    minutes = get_settings().verification_code_expire_minutes
    greeting = f"Welcome, {full_name}!" if full_name else "Welcome!"
    # Display names are user-supplied
    html_greeting = f"Welcome, {html.escape(full_name)}!" if full_name else "Welcome!"
    subject = "Your TrackRoster verification code"
    text_content = (
        f"{greeting}\n\nYour TrackRoster verification code is: {code}\n\n"
        f"This code expires in {minutes} minutes. If you didn't sign up for TrackRoster, you can safely ignore this email."
    )
    html_content = f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 32px 16px;">
      <h1 style="color: #1e3a5f; font-size: 24px; text-align: center;">TrackRoster</h1>
      <h2 style="color: #1e3a5f; font-size: 20px;">{html_greeting}</h2>
      <p style="color: #4b5563; font-size: 16px;">Your verification code is:</p>
      <div style="background: #f3f4f6; border-radius: 12px; padding: 24px; text-align: center; margin: 24px 0;">
        <span style="font-size: 36px; font-weight: bold; letter-spacing: 8px; color: #1e3a5f; font-family: monospace;">{code}</span>
      </div>
      <p style="color: #9ca3af; font-size: 12px;">This code expires in {minutes} minutes. If you didn't sign up for TrackRoster, you can safely ignore this email.</p>
    </div>
    """
    return send_email(to_email, subject, html_content, text_content=text_content)
