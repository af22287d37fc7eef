"""
Shared pytest fixtures for the Civic-Eye test suite.

Each test gets a fresh application on an in-memory SQLite database with CSRF
disabled and scratch folders for evidence and logs. Gemini is never called:
tests patch the analysis function or the client builder.
"""
import io
from datetime import datetime

import pytest
from PIL import Image

from app import create_app
from extensions import db
from models import Complaint, ComplaintCategory, User
from utils.ai_analysis import AIAnalysis
from utils.security import reset_attempts

PASSWORD = "Civic-Eye-2024!"


@pytest.fixture
def app():
    app = create_app("testing")
    reset_attempts()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email: str, role: str = "citizen", full_name: str = "Test User", password: str = PASSWORD) -> User:
    user = User(full_name=full_name, email=email, role=role, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def make_complaint(**overrides) -> Complaint:
    values = {
        "complaint_id": "CIV-AAA111",
        "type": "civic",
        "category": "pothole",
        "title": "Large pothole on Main Street",
        "description": "A dangerous pothole near the bus stop.",
        "location_lat": 12.97,
        "location_lng": 77.59,
        "location_address": "Main Street, Ward 12",
        "location_ward": "Ward 12",
        "status": "pending",
        "priority": "medium",
        "credibility_score": 70,
    }
    values.update(overrides)
    complaint = Complaint(**values)
    db.session.add(complaint)
    db.session.commit()
    return complaint


def make_category(slug: str = "pothole", category_type: str = "civic", **overrides) -> ComplaintCategory:
    values = {"name": slug.title(), "icon": "🕳️", "type": category_type, "slug": slug, "display_order": 0}
    values.update(overrides)
    category = ComplaintCategory(**values)
    db.session.add(category)
    db.session.commit()
    return category


def login(client, email: str, password: str = PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


def refreshed(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


@pytest.fixture
def citizen(app):
    return make_user("asha@civiceye.org", full_name="Asha Rao")


@pytest.fixture
def authority(app):
    return make_user("officer@civiceye.org", role="authority", full_name="Ward Officer")


@pytest.fixture
def admin(app):
    return make_user("root@civiceye.org", role="admin", full_name="Site Admin")


@pytest.fixture
def analysis():
    return AIAnalysis(
        sentiment="negative",
        fake_probability=8,
        credibility_score=88.6,
        keywords=["pothole", "road", "danger"],
        suggested_department="Public Works",
        urgency_score=9,
        summary="Deep pothole endangering traffic near a bus stop.",
    )


def image_bytes(fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return image_bytes("PNG")


@pytest.fixture
def frozen_now():
    return datetime(2024, 6, 15, 12, 0, 0)
