"""Complaint filters and dashboard aggregation.

Nothing here caches: every call re-reads the store so callers always see
the latest transitions.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, or_

from extensions import db
from models import COMPLAINT_PRIORITIES, COMPLAINT_STATUSES, COMPLAINT_TYPES, Complaint, User

FILTER_KEYS = ("status", "type", "category", "priority", "date_from", "date_to", "search")
TREND_MONTHS = 6
HOTSPOT_LIMIT = 5


def _parse_date(value: str | None, end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if end_of_day and len(value.strip()) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed


def parse_filters(args) -> Dict:
    """Turn query-string arguments into a filter dict, dropping blanks and ``all``."""
    filters: Dict = {}
    for key in ("status", "type", "category", "priority"):
        value = (args.get(key) or "").strip()
        if value and value != "all":
            filters[key] = value
    search = (args.get("search") or "").strip()
    if search:
        filters["search"] = search
    date_from = _parse_date(args.get("date_from"))
    if date_from:
        filters["date_from"] = date_from
    date_to = _parse_date(args.get("date_to"), end_of_day=True)
    if date_to:
        filters["date_to"] = date_to
    return filters


def complaint_query(filters: Optional[Dict] = None):
    query = Complaint.query
    if not filters:
        return query.order_by(Complaint.created_at.desc())
    if filters.get("status"):
        query = query.filter(Complaint.status == filters["status"])
    if filters.get("type"):
        query = query.filter(Complaint.type == filters["type"])
    if filters.get("category"):
        query = query.filter(Complaint.category == filters["category"])
    if filters.get("priority"):
        query = query.filter(Complaint.priority == filters["priority"])
    if filters.get("date_from"):
        query = query.filter(Complaint.created_at >= filters["date_from"])
    if filters.get("date_to"):
        query = query.filter(Complaint.created_at <= filters["date_to"])
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(or_(Complaint.title.ilike(pattern), Complaint.description.ilike(pattern)))
    return query.order_by(Complaint.created_at.desc())


def filter_complaints(filters: Optional[Dict] = None, limit: int | None = None) -> List[Complaint]:
    query = complaint_query(filters)
    if limit:
        query = query.limit(limit)
    return query.all()


def find_by_tracking_id(tracking_id: str) -> Optional[Complaint]:
    return Complaint.query.filter_by(complaint_id=(tracking_id or "").strip().upper()).first()


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _shift_months(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) + months
    return moment.replace(year=index // 12, month=index % 12 + 1)


def monthly_trend(complaints: List[Complaint], now: datetime | None = None, months: int = TREND_MONTHS) -> List[Dict]:
    current = _month_start(now or datetime.utcnow())
    buckets = []
    for offset in range(months - 1, -1, -1):
        start = _shift_months(current, -offset)
        end = _shift_months(start, 1)
        in_month = [c for c in complaints if c.created_at and start <= c.created_at < end]
        buckets.append(
            {
                "month": start.strftime("%b"),
                "year": start.year,
                "complaints": len(in_month),
                "resolved": sum(1 for c in in_month if c.status == "resolved"),
            }
        )
    return buckets


def complaint_stats(now: datetime | None = None) -> Dict:
    complaints = Complaint.query.all()
    total = len(complaints)
    by_status = Counter(c.status for c in complaints)
    resolved = by_status.get("resolved", 0)
    return {
        "total": total,
        "pending": by_status.get("pending", 0),
        "investigating": by_status.get("investigating", 0),
        "in_progress": by_status.get("in-progress", 0),
        "resolved": resolved,
        "rejected": by_status.get("rejected", 0),
        "by_status": {status: by_status.get(status, 0) for status in COMPLAINT_STATUSES},
        "by_category": dict(Counter(c.category for c in complaints)),
        "by_type": {t: sum(1 for c in complaints if c.type == t) for t in COMPLAINT_TYPES},
        "by_priority": {p: sum(1 for c in complaints if c.priority == p) for p in COMPLAINT_PRIORITIES},
        "monthly_trend": monthly_trend(complaints, now=now),
        "resolution_rate": round(resolved / total * 100) if total else 0,
    }


def dashboard_stats() -> Dict:
    total = db.session.query(func.count(Complaint.id)).scalar() or 0
    resolved = db.session.query(func.count(Complaint.id)).filter(Complaint.status == "resolved").scalar() or 0
    avg_credibility = db.session.query(func.avg(Complaint.credibility_score)).scalar()
    ward_rows = (
        db.session.query(Complaint.location_ward, func.count(Complaint.id).label("count"))
        .filter(Complaint.location_ward.isnot(None), Complaint.location_ward != "")
        .group_by(Complaint.location_ward)
        .order_by(func.count(Complaint.id).desc(), Complaint.location_ward.asc())
        .limit(HOTSPOT_LIMIT)
        .all()
    )
    active_citizens = (
        db.session.query(func.count(func.distinct(Complaint.reporter_id)))
        .filter(Complaint.reporter_id.isnot(None))
        .scalar()
        or 0
    )
    return {
        "total_complaints": total,
        "resolved_complaints": resolved,
        "resolution_rate": round(resolved / total * 100) if total else 0,
        "avg_credibility": round(float(avg_credibility), 1) if avg_credibility is not None else 0,
        "active_citizens": active_citizens,
        "hotspots": [{"ward": ward, "count": count} for ward, count in ward_rows],
    }


def map_points(filters: Optional[Dict] = None) -> List[Dict]:
    return [
        {
            "id": c.complaint_id,
            "title": c.title,
            "type": c.type,
            "status": c.status,
            "priority": c.priority,
            "lat": c.location_lat,
            "lng": c.location_lng,
        }
        for c in complaint_query(filters).all()
    ]


def users_with_roles() -> List[Dict]:
    counts = dict(
        db.session.query(Complaint.reporter_id, func.count(Complaint.id))
        .filter(Complaint.reporter_id.isnot(None))
        .group_by(Complaint.reporter_id)
        .all()
    )
    users = User.query.order_by(User.created_at.desc()).all()
    payload = []
    for user in users:
        row = user.to_dict()
        row["complaint_count"] = counts.get(user.id, 0)
        payload.append(row)
    return payload
