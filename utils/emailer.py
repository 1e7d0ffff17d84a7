import smtplib
from email.message import EmailMessage

from flask import current_app


def email_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get("SMTP_HOST") and (cfg.get("SMTP_FROM_EMAIL") or cfg.get("SMTP_USERNAME")))


def send_email(to_email: str, subject: str, body: str, attachments=None):
    """
    attachments: iterable of (filename, bytes, mime_type) tuples.
    Returns (ok, error). Connection problems come back as errors, not exceptions.
    """
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    for filename, content, mime_type in attachments or ():
        maintype, _, subtype = mime_type.partition("/")
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)
