"""
leadengine/notifications/templates.py — Lead notification rendering.

Builds the subject, plain-text summary and a minimal HTML wrapper for the
emails sent to contractors (new assignment) and to the admin inbox (quote
request). User-supplied values are HTML-escaped.
"""

from dataclasses import dataclass
from html import escape
from typing import Any, Optional


@dataclass
class RenderedEmail:
    """Final email ready to be sent — subject, HTML body, plain-text body."""
    subject: str
    html_body: str
    plain_body: str


def lead_priority(lead_score: Optional[int]) -> str:
    score = lead_score or 0
    if score >= 70:
        return "HIGH PRIORITY"
    if score >= 50:
        return "MEDIUM PRIORITY"
    return "STANDARD"


def _format_room(room_type: Optional[str]) -> str:
    if not room_type:
        return "Project"
    return room_type.replace("_", " ").title()


def lead_summary_lines(lead: Any) -> list[str]:
    """The lead facts shared by every notification, one 'Label: value' per line."""
    return [
        f"Name: {lead.name or 'Not provided'}",
        f"Email: {lead.email or 'Not provided'}",
        f"Phone: {lead.phone or 'Not provided'}",
        f"ZIP Code: {lead.zip or 'Not provided'}",
        f"Project Type: {_format_room(lead.room_type)}",
        f"Style: {lead.style or 'Not specified'}",
        f"Wants Quote: {'YES' if lead.wants_quote else 'NO'}",
        f"Lead Score: {lead.lead_score}",
    ]


def _wrap_html(title: str, lines: list[str], footer: str) -> str:
    paragraphs = "\n    ".join(
        f"<p>{escape(line)}</p>" if line.strip() else "<br>" for line in lines
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{escape(title)}</title>
  <style>
    body {{ font-family: Arial, sans-serif; font-size: 15px; line-height: 1.6; color: #1a1a1a; }}
    .container {{ max-width: 600px; margin: 40px auto; padding: 0 24px; }}
    p {{ margin: 0 0 8px 0; }}
    .footer {{ margin-top: 32px; color: #555; font-size: 13px; border-top: 1px solid #eee; padding-top: 16px; }}
  </style>
</head>
<body>
  <div class="container">
    <h2>{escape(title)}</h2>
    {paragraphs}
    <div class="footer">{escape(footer)}</div>
  </div>
</body>
</html>"""


def render_contractor_notification(
    lead: Any,
    contractor: Any,
    assignment_id: Optional[int],
    dashboard_url: str,
) -> RenderedEmail:
    """Email telling a contractor a lead has been assigned to them."""
    priority = lead_priority(lead.lead_score)
    subject = f"New {priority} Lead - {_format_room(lead.room_type)} in {lead.zip or 'your area'}"

    lines = [
        f"Hi {contractor.name},",
        "",
        "A new homeowner lead has been assigned to you.",
        "",
        *lead_summary_lines(lead),
        "",
        "Contact the lead within 24 hours for best results, and update the",
        f"lead status in your dashboard: {dashboard_url}",
    ]
    footer = f"Assignment ID: {assignment_id}" if assignment_id is not None else "Lead assignment"
    plain_body = "\n".join(lines + ["", footer])

    return RenderedEmail(
        subject=subject,
        html_body=_wrap_html(f"New Lead Assignment - {priority}", lines, footer),
        plain_body=plain_body,
    )


def render_admin_alert(lead: Any) -> RenderedEmail:
    """Email telling the admin inbox a homeowner asked for a quote."""
    subject = f"Quote request - {_format_room(lead.room_type)} in {lead.zip or 'unknown ZIP'} (score {lead.lead_score})"
    lines = [
        f"Lead #{lead.id} requested a quote.",
        "",
        *lead_summary_lines(lead),
        f"Status: {getattr(lead.status, 'value', lead.status)}",
    ]
    footer = "Lead engine admin alert"
    return RenderedEmail(
        subject=subject,
        html_body=_wrap_html("Quote Request", lines, footer),
        plain_body="\n".join(lines + ["", footer]),
    )
