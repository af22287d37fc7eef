from unittest.mock import patch

import pytest

from conftest import make_complaint
from utils.markdown_formatter import format_status_update_markdown, markdown_to_html, markdown_to_plaintext
from utils.notifications import EmailDeliveryError, build_status_email, send_status_notification


class TestMarkdown:
    def test_status_markdown_sections(self):
        md = format_status_update_markdown(
            "CIV-ABC123",
            "Pothole",
            "in-progress",
            "resolved",
            resolution="Filled",
            assigned_worker="Ravi",
            points_awarded=50,
        )
        assert "- Previous status: In progress" in md
        assert "## Resolution Notes" in md
        assert "+50 points" in md

    def test_html_is_sanitized(self):
        html = markdown_to_html("Hello <script>alert(1)</script> **world**")
        assert "<script>" not in html
        assert "<strong>world</strong>" in html

    def test_plaintext(self):
        assert markdown_to_plaintext("## Title\n- one\n- two") == "Title one two"


class TestStatusNotification:
    def test_subject_and_body(self, app):
        complaint = make_complaint(status="resolved", resolution="Filled", reporter_email="asha@civiceye.org")
        subject, text_body, html_body = build_status_email(complaint, "pending", points_awarded=50)
        assert subject.endswith('Your complaint "Large pothole on Main Street" is now Resolved')
        assert "CIV-AAA111" in text_body
        assert "+50 points" in html_body

    def test_dispatches_to_reporter(self, app):
        complaint = make_complaint(reporter_email="asha@civiceye.org", status="investigating")
        with patch("utils.notifications._dispatch_email") as dispatch:
            assert send_status_notification(complaint, "pending") is True
        assert dispatch.call_args.args[4] == ["asha@civiceye.org"]

    def test_skips_without_email(self, app):
        complaint = make_complaint()
        with patch("utils.notifications._dispatch_email") as dispatch:
            assert send_status_notification(complaint, "pending") is False
        dispatch.assert_not_called()

    def test_disabled_by_config(self, app):
        app.config["STATUS_NOTIFICATIONS_ENABLED"] = False
        complaint = make_complaint(reporter_email="asha@civiceye.org")
        with patch("utils.notifications._dispatch_email") as dispatch:
            assert send_status_notification(complaint, "pending") is False
        dispatch.assert_not_called()

    def test_missing_mail_server_raises(self, app):
        complaint = make_complaint(reporter_email="asha@civiceye.org")
        with pytest.raises(EmailDeliveryError):
            send_status_notification(complaint, "pending")
