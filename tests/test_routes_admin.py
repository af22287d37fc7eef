from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import PASSWORD, login, make_category, make_complaint, make_user
from extensions import db
from models import AuditLog, Complaint, ComplaintCategory, User, UserReward
from utils.rewards import credit_submission


@pytest.fixture(autouse=True)
def quiet_mail():
    with patch("utils.status_workflow.send_status_notification", return_value=False) as sender:
        yield sender


class TestStatusRoute:
    def test_authority_resolves_complaint(self, client, authority, citizen):
        complaint = make_complaint(reporter_id=citizen.id)
        login(client, authority.email)
        resp = client.post(
            f"/admin/complaints/{complaint.complaint_id}/status",
            json={"status": "resolved", "resolution": "Patched with asphalt"},
        )
        assert resp.status_code == 200
        body = resp.get_json()["complaint"]
        assert body["status"] == "resolved"
        assert body["resolution"] == "Patched with asphalt"
        assert UserReward.query.filter_by(user_id=citizen.id).one().points == 50

    def test_citizen_forbidden_and_audited(self, client, citizen):
        complaint = make_complaint()
        login(client, citizen.email)
        resp = client.post(f"/admin/complaints/{complaint.id}/status", json={"status": "resolved"})
        assert resp.status_code == 403
        audit = AuditLog.query.filter_by(action_type="UNAUTHORIZED_ACCESS").one()
        assert audit.context_entity == "complaint.update_status"
        assert Complaint.query.one().status == "pending"

    def test_anonymous_user_needs_login(self, client):
        complaint = make_complaint()
        resp = client.post(f"/admin/complaints/{complaint.id}/status", json={"status": "resolved"})
        assert resp.status_code == 401

    def test_invalid_status(self, client, authority):
        complaint = make_complaint()
        login(client, authority.email)
        resp = client.post(f"/admin/complaints/{complaint.id}/status", json={"status": "closed"})
        assert resp.status_code == 400

    def test_unknown_complaint(self, client, authority):
        login(client, authority.email)
        assert client.post("/admin/complaints/CIV-NOPE00/status", json={"status": "resolved"}).status_code == 404


class TestAssignRoute:
    def test_assign(self, client, authority):
        complaint = make_complaint()
        login(client, authority.email)
        resp = client.post(
            f"/admin/complaints/{complaint.id}/assign",
            json={"assigned_to": "Ravi Kumar", "department": "Roads"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["complaint"]["assigned_to"] == "Ravi Kumar"

    def test_blank_worker(self, client, authority):
        complaint = make_complaint()
        login(client, authority.email)
        resp = client.post(f"/admin/complaints/{complaint.id}/assign", json={"assigned_to": "  "})
        assert resp.status_code == 400


class TestDeleteRoute:
    def test_admin_deletes(self, client, admin):
        complaint = make_complaint()
        login(client, admin.email)
        resp = client.delete(f"/admin/complaints/{complaint.complaint_id}")
        assert resp.status_code == 200
        assert resp.get_json()["deleted"] == "CIV-AAA111"
        assert Complaint.query.count() == 0

    def test_authority_cannot_delete(self, client, authority):
        make_complaint()
        login(client, authority.email)
        assert client.delete("/admin/complaints/CIV-AAA111").status_code == 403
        assert Complaint.query.count() == 1


class TestCategoryRoutes:
    def test_create_normalizes_slug(self, client, admin):
        login(client, admin.email)
        resp = client.post(
            "/admin/categories",
            json={"name": "Broken Bench", "icon": "🪑", "type": "civic", "slug": "  Broken   Bench "},
        )
        assert resp.status_code == 201
        category = resp.get_json()["category"]
        assert category["slug"] == "broken-bench"
        assert category["is_active"] is True

    def test_duplicate_slug(self, client, admin):
        make_category("pothole")
        login(client, admin.email)
        resp = client.post("/admin/categories", json={"name": "Pothole", "icon": "🕳️", "type": "civic", "slug": "Pothole"})
        assert resp.status_code == 409

    def test_missing_icon(self, client, admin):
        login(client, admin.email)
        resp = client.post("/admin/categories", json={"name": "Bench", "type": "civic", "slug": "bench"})
        assert resp.status_code == 400

    def test_update_and_deactivate(self, client, admin):
        category = make_category("garbage", display_order=4)
        login(client, admin.email)
        resp = client.put(
            f"/admin/categories/{category.id}",
            json={"name": "Garbage Overflow", "icon": "🗑️", "type": "civic", "slug": "garbage", "is_active": False},
        )
        assert resp.status_code == 200
        body = resp.get_json()["category"]
        assert body["is_active"] is False
        assert body["display_order"] == 4

    def test_delete_does_not_touch_complaints(self, client, admin):
        category = make_category("pothole")
        make_complaint(category="pothole")
        login(client, admin.email)
        assert client.delete(f"/admin/categories/{category.id}").status_code == 200
        assert ComplaintCategory.query.count() == 0
        assert Complaint.query.one().category == "pothole"

    def test_delete_database_error_rolls_back(self, client, admin):
        category = make_category("streetlight")
        login(client, admin.email)
        with patch.object(db.session, "commit", side_effect=SQLAlchemyError("db down")):
            resp = client.delete(f"/admin/categories/{category.id}")
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "Unable to delete category. Please retry."
        assert ComplaintCategory.query.filter_by(slug="streetlight").count() == 1
        assert AuditLog.query.filter_by(action_type="CATEGORY_DELETED").count() == 0

    def test_authority_cannot_manage(self, client, authority):
        login(client, authority.email)
        assert client.get("/admin/categories").status_code == 403


class TestUserRoutes:
    def test_list_users(self, client, admin, citizen):
        make_complaint(reporter_id=citizen.id)
        login(client, admin.email)
        users = {u["email"]: u for u in client.get("/admin/users").get_json()["users"]}
        assert users[citizen.email]["complaint_count"] == 1
        assert users[admin.email]["role"] == "admin"

    def test_change_role(self, client, admin, citizen):
        login(client, admin.email)
        resp = client.post(f"/admin/users/{citizen.id}/role", json={"role": "authority"})
        assert resp.status_code == 200
        assert User.query.filter_by(email=citizen.email).one().role == "authority"
        assert AuditLog.query.filter_by(action_type="ROLE_CHANGED").count() == 1

    def test_role_outside_closed_set(self, client, admin, citizen):
        login(client, admin.email)
        resp = client.post(f"/admin/users/{citizen.id}/role", json={"role": "superuser"})
        assert resp.status_code == 400

    def test_admin_cannot_demote_self(self, client, admin):
        login(client, admin.email)
        resp = client.post(f"/admin/users/{admin.id}/role", json={"role": "citizen"})
        assert resp.status_code == 400

    def test_admin_creates_user_with_role(self, client, admin):
        login(client, admin.email)
        resp = client.post(
            "/admin/users",
            json={
                "full_name": "Ravi Kumar",
                "email": "Ravi@CivicEye.org",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "role": "authority",
            },
        )
        assert resp.status_code == 201
        created = User.query.filter_by(email="ravi@civiceye.org").one()
        assert created.role == "authority"
        audit = AuditLog.query.filter_by(action_type="USER_CREATED").one()
        assert audit.user_id == admin.id
        assert audit.context_entity == f"{created.id}:authority"

    def test_created_user_defaults_to_citizen(self, client, admin):
        login(client, admin.email)
        resp = client.post(
            "/admin/users",
            json={"full_name": "Meera", "email": "meera@civiceye.org", "password": PASSWORD, "confirm_password": PASSWORD},
        )
        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == "citizen"

    @pytest.mark.parametrize(
        "overrides",
        [{"role": "superuser"}, {"password": "weakpassword1", "confirm_password": "weakpassword1"}],
    )
    def test_create_user_rejects_bad_input(self, client, admin, overrides):
        login(client, admin.email)
        payload = {"full_name": "Ravi", "email": "ravi@civiceye.org", "password": PASSWORD, "confirm_password": PASSWORD}
        payload.update(overrides)
        assert client.post("/admin/users", json=payload).status_code == 400
        assert User.query.filter_by(email="ravi@civiceye.org").count() == 0

    def test_citizen_cannot_create_users(self, client, citizen):
        login(client, citizen.email)
        resp = client.post(
            "/admin/users",
            json={"full_name": "Ravi", "email": "ravi@civiceye.org", "password": PASSWORD, "confirm_password": PASSWORD, "role": "admin"},
        )
        assert resp.status_code == 403
        assert User.query.filter_by(email="ravi@civiceye.org").count() == 0

    def test_citizen_cannot_change_roles(self, client, citizen):
        other = make_user("other@civiceye.org")
        login(client, citizen.email)
        assert client.post(f"/admin/users/{other.id}/role", json={"role": "admin"}).status_code == 403


class TestApiRoutes:
    def test_stats_require_staff(self, client, citizen, authority):
        make_complaint()
        login(client, citizen.email)
        assert client.get("/api/stats").status_code == 403
        client.post("/auth/logout")
        login(client, authority.email)
        assert client.get("/api/stats").get_json()["total"] == 1

    def test_dashboard_stats_public(self, client):
        make_complaint(credibility_score=81)
        body = client.get("/api/dashboard-stats").get_json()
        assert body["avg_credibility"] == 81.0
        assert body["hotspots"] == [{"ward": "Ward 12", "count": 1}]

    def test_leaderboard_and_my_rewards(self, client, citizen):
        credit_submission(citizen.id)
        board = client.get("/api/leaderboard").get_json()["leaderboard"]
        assert board[0]["full_name"] == "Asha Rao"
        login(client, citizen.email)
        assert client.get("/api/rewards/me").get_json()["points"] == 10

    def test_csrf_token_endpoint(self, client):
        assert client.get("/api/csrf-token").get_json()["csrf_token"]

    def test_security_headers(self, client):
        resp = client.get("/")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_json_404(self, client):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Not found."
