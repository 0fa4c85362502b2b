from __future__ import annotations

from html import escape

from .. import config
from ..models import DocumentRequest

_HEADER = """
<div style="background:#0a1628;padding:24px 32px;border-radius:12px 12px 0 0">
  <h1 style="color:#fff;margin:0;font-size:22px">{company}</h1>
  <p style="color:#8899aa;margin:6px 0 0;font-size:13px">{tagline}</p>
</div>"""

_FOOTER = """
<div style="background:#0a1628;padding:14px 32px;border-radius:0 0 12px 12px;text-align:center">
  <p style="color:#8899aa;font-size:11px;margin:0">{address} &nbsp;|&nbsp; {phone} &nbsp;|&nbsp; {website}</p>
</div>"""


def _frame(body: str) -> str:
    header = _HEADER.format(
        company=escape(config.COMPANY_NAME),
        tagline=escape(f"{config.COMPANY_TAGLINE} - {config.COMPANY_REGION}"),
    )
    footer = _FOOTER.format(
        address=escape(config.COMPANY_ADDRESS),
        phone=escape(config.COMPANY_PHONE),
        website=escape(config.COMPANY_WEBSITE),
    )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;color:#333">'
        f"{header}"
        '<div style="padding:32px;background:#f8f9fa;border:1px solid #e9ecef;border-top:none">'
        f"{body}"
        "</div>"
        f"{footer}"
        "</div>"
    )


def _signoff(rep: str) -> str:
    return (
        f'<p style="margin-top:16px">Best regards,<br><strong>{escape(rep)}</strong>'
        f"<br>{escape(config.COMPANY_NAME)}</p>"
    )


def payment_subject(label: str, amount_text: str) -> str:
    return f"Your {config.COMPANY_NAME} {label} Link - {amount_text}"


def payment_email_html(
    client_name: str,
    label: str,
    amount_text: str,
    description: str,
    checkout_url: str,
    rep_name: str,
) -> str:
    """Body of the payment-request email; the only place the checkout URL is written."""
    body = (
        f'<p style="font-size:16px">Hi <strong>{escape(client_name)}</strong>,</p>'
        f"<p>Your secure payment link is ready. Click the button below to complete your "
        f'{escape(label.lower())} of <strong style="color:#27ae60;font-size:18px">{escape(amount_text)}</strong>.</p>'
        f'<p style="color:#666;font-size:13px;margin-bottom:6px"><strong>Services:</strong> {escape(description)}</p>'
        '<div style="text-align:center;margin:32px 0">'
        f'<a href="{escape(checkout_url, quote=True)}" style="display:inline-block;background:#F5B800;color:#1A1A1A;'
        'font-size:17px;font-weight:700;padding:16px 40px;border-radius:50px;text-decoration:none">'
        f"Pay Securely Now - {escape(amount_text)}</a>"
        "</div>"
        '<div style="background:#fff;border:1px solid #e9ecef;border-radius:10px;padding:16px;font-size:13px;color:#555">'
        "<strong>Secure Payment</strong><br>Powered by Stripe. Your card details are never shared with us."
        "</div>"
        '<p style="margin-top:16px;font-size:13px;color:#666">Your <strong>payment request</strong> and '
        "<strong>service agreement</strong> are attached as PDFs for your records.</p>"
        f'<p style="margin-top:8px;font-size:13px;color:#888">This link expires in 24 hours. Questions? Call us at '
        f"<strong>{escape(config.COMPANY_PHONE)}</strong> or reply to this email.</p>"
        f"{_signoff(rep_name)}"
    )
    return _frame(body)


def payment_sms_text(client_name: str, label: str, amount_text: str) -> str:
    # No link: carriers filter SMS bodies that carry URLs.
    return (
        f"Hi {client_name or 'there'}! {config.COMPANY_NAME} has sent your {label.lower()} request of "
        f"{amount_text} {config.CURRENCY_LABEL}. Please check your email for the secure payment link. "
        f"Questions? Call {config.COMPANY_PHONE.replace(' ', '-')}."
    )


def estimate_subject(request: DocumentRequest) -> str:
    return f"Your Estimate from {config.COMPANY_NAME} | {request.document_number}".rstrip(" |")


def estimate_email_html(request: DocumentRequest) -> str:
    body = (
        f"<p>Hi <strong>{escape(request.client_name)}</strong>,</p>"
        f"<p>Thank you for your interest in {escape(config.COMPANY_NAME)}! Please find your estimate attached as a PDF.</p>"
        '<table style="width:100%;margin:20px 0;border-collapse:collapse">'
        '<tr style="background:#0a1628;color:#fff">'
        '<td style="padding:10px 15px;font-weight:bold">Estimate #</td>'
        f'<td style="padding:10px 15px;text-align:right">{escape(request.document_number or "N/A")}</td></tr>'
        '<tr><td style="padding:10px 15px;border-bottom:1px solid #e9ecef">Total Estimate</td>'
        '<td style="padding:10px 15px;text-align:right;font-weight:bold;color:#27ae60;font-size:18px;'
        f'border-bottom:1px solid #e9ecef">{escape(request.total or "$0.00")}</td></tr>'
        "</table>"
        '<p style="color:#666;font-size:13px">This estimate is valid for 30 days. '
        "A 25% deposit is required to confirm your booking.</p>"
        "<p>If you have any questions, feel free to reply to this email or call us at "
        f"<strong>{escape(config.COMPANY_PHONE)}</strong>.</p>"
        f"{_signoff(request.sales_rep or config.COMPANY_NAME + ' Team')}"
    )
    return _frame(body)


def contract_subject(request: DocumentRequest) -> str:
    return f"Your {config.COMPANY_NAME} Service Agreement - {request.document_number or 'N/A'}"


def contract_email_html(request: DocumentRequest) -> str:
    services = request.service_type or ", ".join(request.service_names())
    body = (
        f'<p style="font-size:16px">Hi <strong>{escape(request.client_name or "Valued Customer")}</strong>,</p>'
        f"<p>Thank you for choosing {escape(config.COMPANY_NAME)}! Your signed service agreement is attached. "
        "Please review it and keep a copy for your records.</p>"
        '<table style="width:100%;margin:20px 0;border-collapse:collapse">'
        '<tr style="background:#0a1628;color:#fff"><td style="padding:10px 15px;font-weight:bold">Contract #</td>'
        f'<td style="padding:10px 15px;text-align:right">{escape(request.document_number or "N/A")}</td></tr>'
        '<tr><td style="padding:10px 15px;border-bottom:1px solid #e9ecef">Services</td>'
        f'<td style="padding:10px 15px;text-align:right;border-bottom:1px solid #e9ecef">{escape(services)}</td></tr>'
        '<tr><td style="padding:10px 15px">Total</td>'
        '<td style="padding:10px 15px;text-align:right;font-weight:bold;color:#27ae60;font-size:18px">'
        f"{escape(request.total or '$0.00')}</td></tr>"
        "</table>"
        '<div style="background:#fff8e8;border:1px solid #F5B800;border-radius:8px;padding:14px;font-size:13px;'
        'color:#7a5500;margin:16px 0"><strong>Reminder:</strong> A 20% deposit is due at signing. '
        "Your 10-day cooling off period is in effect from today.</div>"
        f"<p>Questions? Reply to this email or call us at <strong>{escape(config.COMPANY_PHONE)}</strong>.</p>"
        f"{_signoff(request.sales_rep or config.COMPANY_NAME + ' Team')}"
    )
    return _frame(body)


def follow_up_subject() -> str:
    return f"Following Up on Your Estimate - {config.COMPANY_NAME}"


def follow_up_email_html(client_name: str, service: str, days_since: int) -> str:
    plural = "s" if days_since != 1 else ""
    body = (
        f"<h2 style=\"color:#1a2a4a;font-size:18px;margin-top:0\">Hi {escape(client_name)},</h2>"
        f"<p style=\"color:#555;line-height:1.6\">We hope you're doing well! We wanted to follow up on the estimate "
        f"we provided {days_since} day{plural} ago for <strong>{escape(service or 'your project')}</strong>.</p>"
        "<p style=\"color:#555;line-height:1.6\">If you have any questions about the estimate or would like to "
        "discuss any changes, we're here for you.</p>"
        f"<p style=\"color:#555;line-height:1.6\">Call us at <strong>{escape(config.COMPANY_PHONE)}</strong> "
        f"or write to <strong>{escape(config.DEFAULT_SENDER)}</strong>.</p>"
        f"<p style=\"color:#1a2a4a;font-weight:600;margin-bottom:0\">The {escape(config.COMPANY_NAME)} Team</p>"
    )
    return _frame(body)
