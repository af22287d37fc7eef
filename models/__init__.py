"""Core data models for complaints, categories, accounts, rewards, and audit trails."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


COMPLAINT_TYPES: tuple[str, ...] = (
	"civic",
	"anonymous",
	"special",
)

COMPLAINT_STATUSES: tuple[str, ...] = (
	"pending",
	"investigating",
	"in-progress",
	"resolved",
	"rejected",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
	"critical",
)

AI_SENTIMENTS: tuple[str, ...] = (
	"positive",
	"neutral",
	"negative",
)

USER_ROLES: tuple[str, ...] = (
	"citizen",
	"authority",
	"admin",
)

AI_FIELDS: tuple[str, ...] = (
	"ai_sentiment",
	"ai_fake_probability",
	"ai_urgency_score",
	"ai_suggested_department",
	"ai_keywords",
	"ai_summary",
)

REPORTER_FIELDS: tuple[str, ...] = (
	"reporter_name",
	"reporter_email",
	"reporter_phone",
)


def _in_clause(values: tuple[str, ...]) -> str:
	return ",".join(f"'{v}'" for v in values)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	phone = db.Column(db.String(32), nullable=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="citizen", index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint(f"role IN ({_in_clause(USER_ROLES)})", name="ck_user_role_valid"),
	)

	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	complaints = db.relationship("Complaint", back_populates="reporter", lazy="dynamic")
	reward = db.relationship("UserReward", back_populates="user", uselist=False)

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return self.role == "admin"

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"full_name": self.full_name,
			"email": self.email,
			"phone": self.phone,
			"role": self.role,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class ComplaintCategory(db.Model):
	__tablename__ = "complaint_categories"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(100), nullable=False)
	icon = db.Column(db.String(16), nullable=False)
	type = db.Column(db.String(20), nullable=False, index=True)
	slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
	description = db.Column(db.String(500), nullable=True)
	is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
	display_order = db.Column(db.Integer, nullable=False, default=0)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(f"type IN ({_in_clause(COMPLAINT_TYPES)})", name="ck_category_type_valid"),
	)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"icon": self.icon,
			"type": self.type,
			"slug": self.slug,
			"description": self.description,
			"is_active": self.is_active,
			"display_order": self.display_order,
		}


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	complaint_id = db.Column(db.String(16), nullable=False, unique=True, index=True)
	type = db.Column(db.String(20), nullable=False, index=True)
	category = db.Column(db.String(100), nullable=False, index=True)
	title = db.Column(db.String(255), nullable=False)
	description = db.Column(db.Text, nullable=False)
	location_lat = db.Column(db.Float, nullable=False)
	location_lng = db.Column(db.Float, nullable=False)
	location_address = db.Column(db.String(500), nullable=False)
	location_ward = db.Column(db.String(120), nullable=True, index=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	priority = db.Column(db.String(20), nullable=False, default="medium", index=True)
	credibility_score = db.Column(db.Integer, nullable=False, default=70)
	evidence = db.Column(db.JSON, nullable=True)
	reporter_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	reporter_name = db.Column(db.String(150), nullable=True)
	reporter_email = db.Column(db.String(255), nullable=True)
	reporter_phone = db.Column(db.String(32), nullable=True)
	anonymous_id = db.Column(db.String(16), nullable=True, index=True)
	assigned_to = db.Column(db.String(150), nullable=True)
	department = db.Column(db.String(150), nullable=True)
	resolution = db.Column(db.Text, nullable=True)
	ai_sentiment = db.Column(db.String(20), nullable=True)
	ai_fake_probability = db.Column(db.Float, nullable=True)
	ai_urgency_score = db.Column(db.Float, nullable=True)
	ai_suggested_department = db.Column(db.String(150), nullable=True)
	ai_keywords = db.Column(db.JSON, nullable=True)
	ai_summary = db.Column(db.Text, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
		index=True,
	)

	__table_args__ = (
		db.CheckConstraint(f"type IN ({_in_clause(COMPLAINT_TYPES)})", name="ck_complaint_type_valid"),
		db.CheckConstraint(f"status IN ({_in_clause(COMPLAINT_STATUSES)})", name="ck_complaint_status_valid"),
		db.CheckConstraint(f"priority IN ({_in_clause(COMPLAINT_PRIORITIES)})", name="ck_complaint_priority_valid"),
		db.CheckConstraint(
			"credibility_score >= 0 AND credibility_score <= 100",
			name="ck_complaint_credibility_range",
		),
		db.CheckConstraint(
			"type = 'civic' OR (reporter_name IS NULL AND reporter_email IS NULL AND reporter_phone IS NULL AND reporter_id IS NULL)",
			name="ck_complaint_reporter_civic_only",
		),
	)

	reporter = db.relationship("User", back_populates="complaints")
	status_history = db.relationship(
		"ComplaintStatusHistory",
		back_populates="complaint",
		order_by="ComplaintStatusHistory.changed_at",
		cascade="all, delete-orphan",
	)

	@property
	def has_ai_analysis(self) -> bool:
		return self.ai_urgency_score is not None

	def ai_payload(self) -> dict | None:
		if not self.has_ai_analysis:
			return None
		return {
			"sentiment": self.ai_sentiment,
			"fakeProbability": self.ai_fake_probability,
			"credibilityScore": self.credibility_score,
			"keywords": list(self.ai_keywords or []),
			"suggestedDepartment": self.ai_suggested_department,
			"urgencyScore": self.ai_urgency_score,
			"summary": self.ai_summary,
		}

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"complaint_id": self.complaint_id,
			"type": self.type,
			"category": self.category,
			"title": self.title,
			"description": self.description,
			"location_lat": self.location_lat,
			"location_lng": self.location_lng,
			"location_address": self.location_address,
			"location_ward": self.location_ward,
			"status": self.status,
			"priority": self.priority,
			"credibility_score": self.credibility_score,
			"evidence": self.evidence,
			"reporter_id": self.reporter_id,
			"reporter_name": self.reporter_name,
			"reporter_email": self.reporter_email,
			"reporter_phone": self.reporter_phone,
			"anonymous_id": self.anonymous_id,
			"assigned_to": self.assigned_to,
			"department": self.department,
			"resolution": self.resolution,
			"ai_sentiment": self.ai_sentiment,
			"ai_fake_probability": self.ai_fake_probability,
			"ai_urgency_score": self.ai_urgency_score,
			"ai_suggested_department": self.ai_suggested_department,
			"ai_keywords": self.ai_keywords,
			"ai_summary": self.ai_summary,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}

	def public_payload(self) -> dict:
		"""Status view for tracking-id lookups; never exposes reporter identity."""
		return {
			"complaint_id": self.complaint_id,
			"type": self.type,
			"category": self.category,
			"title": self.title,
			"status": self.status,
			"priority": self.priority,
			"location_address": self.location_address,
			"assigned_to": self.assigned_to,
			"department": self.department,
			"resolution": self.resolution,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}


class ComplaintStatusHistory(db.Model):
	__tablename__ = "complaint_status_history"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	previous_status = db.Column(db.String(20), nullable=True)
	new_status = db.Column(db.String(20), nullable=False, index=True)
	remarks = db.Column(db.String(500), nullable=True)
	changed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(
			f"new_status IN ({_in_clause(COMPLAINT_STATUSES)})",
			name="ck_complaint_status_history_valid",
		),
	)

	complaint = db.relationship("Complaint", back_populates="status_history")
	actor = db.relationship("User")


class UserReward(db.Model):
	__tablename__ = "user_rewards"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
	points = db.Column(db.Integer, nullable=False, default=0, index=True)
	level = db.Column(db.String(30), nullable=False, default="Newcomer")
	badges = db.Column(db.JSON, nullable=False, default=list)
	complaints_submitted = db.Column(db.Integer, nullable=False, default=0)
	complaints_resolved = db.Column(db.Integer, nullable=False, default=0)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	user = db.relationship("User", back_populates="reward")

	def to_dict(self) -> dict:
		return {
			"user_id": self.user_id,
			"full_name": self.user.full_name if self.user else None,
			"points": self.points,
			"level": self.level,
			"badges": list(self.badges or []),
			"complaints_submitted": self.complaints_submitted,
			"complaints_resolved": self.complaints_resolved,
		}
