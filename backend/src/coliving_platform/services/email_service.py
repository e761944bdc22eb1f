"""SendGrid email service for agreement, payment, reimbursement and tenant emails.

Uses asyncio.to_thread to wrap the synchronous SendGrid client. Every public
send returns True/False and never raises, so callers can treat email as
best-effort.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration: read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from coliving_platform.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.email_from, s.email_from_name


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def format_currency(amount_cents: int | None) -> str:
    """Format integer cents as $X,XXX.XX."""
    try:
        return f"${int(amount_cents or 0) / 100:,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def _format_date(value) -> str:
    if value is None:
        return ""
    return value.strftime("%B %d, %Y")


def _layout(title: str, body_html: str, cta_url: str | None = None, cta_label: str | None = None) -> str:
    """Wrap a message body in the shared email layout."""
    button = ""
    if cta_url and cta_label:
        button = f"""
                <tr>
                    <td align="center" style="padding: 16px 0 8px 0;">
                        <a href="{cta_url}" style="display: inline-block; background-color: #2563eb; color: #ffffff; font-size: 16px; font-weight: 600; text-decoration: none; padding: 12px 32px; border-radius: 8px;">
                            {cta_label}
                        </a>
                    </td>
                </tr>"""
    return f"""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background-color: #f3f4f6;">
    <table width="600" cellpadding="0" cellspacing="0" style="background: #fff; border-radius: 8px; padding: 32px; margin: 0 auto;">
        <tr>
            <td>
                <h2 style="color: #111827; margin-top: 0;">{title}</h2>
                <div style="font-size: 15px; color: #374151; line-height: 1.6;">{body_html}</div>
            </td>
        </tr>{button}
    </table>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Message builders: return (subject, html)
# ---------------------------------------------------------------------------


def build_agreement_sent_email(
    prospect_name: str,
    property_name: str,
    agreement_url: str,
    expiration_date,
) -> tuple[str, str]:
    subject = f"Your lease agreement for {property_name} is ready to sign"
    body = (
        f"<p>Hi {html.escape(prospect_name)},</p>"
        f"<p>Your lease agreement for <strong>{html.escape(property_name)}</strong> "
        f"is ready for your review and signature.</p>"
        f"<p>Please sign before <strong>{_format_date(expiration_date)}</strong>.</p>"
    )
    return subject, _layout("Lease agreement ready", body, agreement_url, "Review & Sign")


def reminder_urgency(days_until_expiry: int) -> str:
    """low / medium / high depending on how close the deadline is."""
    if days_until_expiry <= 1:
        return "high"
    if days_until_expiry <= 3:
        return "medium"
    return "low"


def build_agreement_reminder_email(
    prospect_name: str,
    property_name: str,
    agreement_url: str,
    reminder_number: int,
    days_until_expiry: int,
) -> tuple[str, str]:
    urgency = reminder_urgency(days_until_expiry)
    prefix = "Urgent: " if urgency == "high" else ""
    day_word = "day" if days_until_expiry == 1 else "days"
    subject = (
        f"{prefix}Reminder #{reminder_number}: your lease for {property_name} "
        f"expires in {days_until_expiry} {day_word}"
    )
    body = (
        f"<p>Hi {html.escape(prospect_name)},</p>"
        f"<p>This is reminder #{reminder_number} that your lease agreement for "
        f"<strong>{html.escape(property_name)}</strong> is still waiting for your signature.</p>"
        f"<p>The signing link expires in <strong>{days_until_expiry} {day_word}</strong>.</p>"
    )
    return subject, _layout("Signature reminder", body, agreement_url, "Sign Now")


def build_agreement_completed_email(prospect_name: str, property_name: str) -> tuple[str, str]:
    subject = f"Your lease for {property_name} is complete"
    body = (
        f"<p>Hi {html.escape(prospect_name)},</p>"
        f"<p>Your lease agreement for <strong>{html.escape(property_name)}</strong> "
        f"has been fully executed. Welcome home!</p>"
    )
    return subject, _layout("Lease complete", body)


_REIMBURSEMENT_SUBJECTS = {
    "requested": "Reimbursement request submitted",
    "approved": "Reimbursement request approved",
    "denied": "Reimbursement request denied",
    "paid": "Reimbursement paid",
}


def build_reimbursement_status_email(
    event: str,
    amount_cents: int,
    request_id: str,
    comment: str | None = None,
    payment_method: str | None = None,
) -> tuple[str, str]:
    """Build the email for a reimbursement event (requested/approved/denied/paid)."""
    amount = format_currency(amount_cents)
    subject = f"{_REIMBURSEMENT_SUBJECTS.get(event, 'Reimbursement update')}: {amount}"
    lines = [f"<p>Reimbursement <strong>{request_id}</strong> for <strong>{amount}</strong> is now {event}.</p>"]
    if payment_method:
        lines.append(f"<p>Payment method: {html.escape(payment_method)}</p>")
    if comment:
        label = "Reason" if event == "denied" else "Comment"
        lines.append(f"<p>{label}: {html.escape(comment)}</p>")
    return subject, _layout(_REIMBURSEMENT_SUBJECTS.get(event, "Reimbursement update"), "".join(lines))


def build_payment_confirmation_email(
    tenant_name: str, property_name: str, amount_cents: int, paid_date
) -> tuple[str, str]:
    amount = format_currency(amount_cents)
    subject = f"Payment received: {amount}"
    body = (
        f"<p>Hi {html.escape(tenant_name)},</p>"
        f"<p>We received your payment of <strong>{amount}</strong> for "
        f"<strong>{html.escape(property_name)}</strong> on {_format_date(paid_date)}.</p>"
        "<p>Thank you!</p>"
    )
    return subject, _layout("Payment received", body)


def build_refund_confirmation_email(
    tenant_name: str, property_name: str, amount_cents: int, reason: str
) -> tuple[str, str]:
    amount = format_currency(amount_cents)
    subject = f"Refund issued: {amount}"
    body = (
        f"<p>Hi {html.escape(tenant_name)},</p>"
        f"<p>A refund of <strong>{amount}</strong> for "
        f"<strong>{html.escape(property_name)}</strong> has been issued.</p>"
        f"<p>Reason: {html.escape(reason)}</p>"
    )
    return subject, _layout("Refund issued", body)


def build_communication_email(subject: str, content: str) -> tuple[str, str]:
    """Wrap rendered plain-text communication content in the layout."""
    body = "".join(f"<p>{html.escape(p)}</p>" for p in content.split("\n\n") if p.strip())
    return subject, _layout(subject, body.replace("\n", "<br>"))


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


async def send_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send one HTML email.

    Returns:
        True on success, False on failure or when SendGrid is not configured.
    """
    api_key, email_from, from_name = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping email to %s: %s", to_email, subject)
        return False

    try:
        mail = Mail(
            from_email=Email(email_from, from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=HtmlContent(html_body),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Email sent to %s: %s", to_email, subject)
        return result
    except Exception:
        logger.exception("Failed to send email to %s", to_email)
        return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_agreement_email(to_email: str, prospect_name: str, property_name: str,
                               agreement_url: str, expiration_date) -> bool:
    subject, body = build_agreement_sent_email(prospect_name, property_name, agreement_url, expiration_date)
    return await send_email(to_email, subject, body)


async def send_agreement_reminder(to_email: str, prospect_name: str, property_name: str,
                                  agreement_url: str, reminder_number: int,
                                  days_until_expiry: int) -> bool:
    subject, body = build_agreement_reminder_email(
        prospect_name, property_name, agreement_url, reminder_number, days_until_expiry
    )
    return await send_email(to_email, subject, body)


async def send_agreement_completed(to_email: str, prospect_name: str, property_name: str) -> bool:
    subject, body = build_agreement_completed_email(prospect_name, property_name)
    return await send_email(to_email, subject, body)


async def send_reimbursement_notification(to_email: str, event: str, amount_cents: int,
                                          request_id: str, comment: str | None = None,
                                          payment_method: str | None = None) -> bool:
    subject, body = build_reimbursement_status_email(
        event, amount_cents, request_id, comment, payment_method
    )
    return await send_email(to_email, subject, body)


async def send_communication_email(to_email: str, subject: str, content: str) -> bool:
    subject, body = build_communication_email(subject, content)
    return await send_email(to_email, subject, body)


async def send_payment_confirmation(to_email: str, tenant_name: str, property_name: str,
                                    amount_cents: int, paid_date) -> bool:
    subject, body = build_payment_confirmation_email(tenant_name, property_name, amount_cents, paid_date)
    return await send_email(to_email, subject, body)


async def send_refund_confirmation(to_email: str, tenant_name: str, property_name: str,
                                   amount_cents: int, reason: str) -> bool:
    subject, body = build_refund_confirmation_email(tenant_name, property_name, amount_cents, reason)
    return await send_email(to_email, subject, body)
