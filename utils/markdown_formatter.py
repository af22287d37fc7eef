"""Markdown composition and sanitized rendering for outgoing notifications."""
import re
from typing import Dict, List

import bleach
from markdown_it import MarkdownIt


# HTML input disabled; anything user-supplied stays text.
_md = MarkdownIt("commonmark", {"linkify": True, "typographer": True, "html": False}).enable(["linkify", "table", "strikethrough"])

EMAIL_ALLOWED_TAGS = [
    "p",
    "ul",
    "ol",
    "li",
    "strong",
    "em",
    "h1",
    "h2",
    "h3",
    "h4",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "hr",
    "a",
    "br",
]

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "th": ["colspan", "rowspan", "align"],
    "td": ["colspan", "rowspan", "align"],
}

STATUS_EMOJI = {
    "pending": "⏳",
    "investigating": "🔍",
    "in-progress": "🔧",
    "resolved": "✅",
    "rejected": "❌",
}


def _normalize_whitespace(text: str) -> str:
    cleaned = re.sub(r"[\r\t]+", " ", text or "")
    cleaned = re.sub(r" +", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def markdown_to_html(md_text: str) -> str:
    rendered = _md.render(_normalize_whitespace(md_text))
    return bleach.clean(rendered, tags=EMAIL_ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def markdown_to_email_html(md_text: str) -> str:
    safe_html = markdown_to_html(md_text)
    return (
        "<div style=\"font-family: 'Segoe UI', Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #0f172a;\">"
        f"{safe_html}"
        "</div>"
    )


def markdown_to_plaintext(md_text: str) -> str:
    text_only = bleach.clean(markdown_to_html(md_text), tags=[], attributes={}, strip=True)
    return re.sub(r"\s+", " ", text_only).strip()


def format_sections(sections: List[Dict[str, object]]) -> str:
    """Build markdown from an ordered list of sections."""
    parts: List[str] = []
    for section in sections:
        title = _normalize_whitespace(str(section.get("title", "") or ""))
        if title:
            parts.append(f"## {title}")
        for bullet in section.get("bullets") or []:
            if bullet is None:
                continue
            bullet_text = _normalize_whitespace(str(bullet))
            if bullet_text:
                parts.append(f"- {bullet_text}")
        body = section.get("body") or ""
        if body:
            parts.append(_normalize_whitespace(str(body)))
        parts.append("")
    return "\n".join([p for p in parts if p.strip()])


def format_status_label(status: str) -> str:
    return (status or "").replace("-", " ").capitalize()


def format_status_update_markdown(
    complaint_id: str,
    title: str,
    old_status: str | None,
    new_status: str,
    *,
    resolution: str | None = None,
    assigned_worker: str | None = None,
    points_awarded: int | None = None,
) -> str:
    sections: List[Dict[str, object]] = [
        {
            "title": f"{STATUS_EMOJI.get(new_status, '📋')} Status Update",
            "body": "Your complaint status has been updated.",
            "bullets": [
                f"Complaint ID: {complaint_id}",
                f"Title: {title}",
                f"Previous status: {format_status_label(old_status) if old_status else 'N/A'}",
                f"Current status: {format_status_label(new_status)}",
            ],
        }
    ]
    if assigned_worker:
        sections.append({"title": "Assigned Worker", "body": assigned_worker})
    if resolution:
        sections.append({"title": "Resolution Notes", "body": resolution})
    if points_awarded:
        sections.append(
            {
                "title": "Points Earned",
                "body": f"+{points_awarded} points. Thank you for helping improve your community!",
            }
        )
    return format_sections(sections)
