"""Reward ledger: points, levels, and badges earned through complaints."""
from __future__ import annotations

from typing import Dict, List

from flask import current_app

from extensions import db
from models import UserReward

SUBMISSION_POINTS = 10
RESOLUTION_POINTS = 50

# Minimum points per level, highest first.
LEVEL_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (500, "Champion"),
    (200, "Active Citizen"),
    (100, "Contributor"),
    (0, "Newcomer"),
)

BADGE_DEFINITIONS: Dict[str, str] = {
    "First Report": "Submitted your first complaint",
    "Reporter": "Submitted 10 or more complaints",
    "Helpful Citizen": "Had 5 complaints resolved",
    "Problem Solver": "Had 10 complaints resolved",
    "Champion": "Reached Champion level with 500+ points",
}


def level_for_points(points: int) -> str:
    for minimum, level in LEVEL_THRESHOLDS:
        if points >= minimum:
            return level
    return "Newcomer"


def badges_for(reward: UserReward) -> List[str]:
    earned = list(reward.badges or [])
    rules = [
        ("First Report", (reward.complaints_submitted or 0) >= 1),
        ("Reporter", (reward.complaints_submitted or 0) >= 10),
        ("Helpful Citizen", (reward.complaints_resolved or 0) >= 5),
        ("Problem Solver", (reward.complaints_resolved or 0) >= 10),
        ("Champion", level_for_points(reward.points or 0) == "Champion"),
    ]
    for badge, unlocked in rules:
        if unlocked and badge not in earned:
            earned.append(badge)
    return earned


def get_or_create_reward(user_id: str) -> UserReward:
    reward = UserReward.query.filter_by(user_id=user_id).first()
    if reward:
        return reward
    reward = UserReward(
        user_id=user_id,
        points=0,
        level="Newcomer",
        badges=[],
        complaints_submitted=0,
        complaints_resolved=0,
    )
    db.session.add(reward)
    return reward


def _apply(reward: UserReward, points: int) -> UserReward:
    reward.points = (reward.points or 0) + points
    reward.level = level_for_points(reward.points)
    reward.badges = badges_for(reward)
    return reward


def credit_submission(user_id: str) -> UserReward:
    reward = get_or_create_reward(user_id)
    reward.complaints_submitted = (reward.complaints_submitted or 0) + 1
    _apply(reward, SUBMISSION_POINTS)
    db.session.commit()
    current_app.logger.info("Submission reward credited", extra={"user_id": user_id, "points": reward.points})
    return reward


def credit_resolution(user_id: str) -> UserReward:
    reward = get_or_create_reward(user_id)
    reward.complaints_resolved = (reward.complaints_resolved or 0) + 1
    _apply(reward, RESOLUTION_POINTS)
    db.session.commit()
    current_app.logger.info("Resolution reward credited", extra={"user_id": user_id, "points": reward.points})
    return reward


def reward_snapshot(user_id: str) -> Dict:
    """Stored ledger for a user, or the zero ledger when none exists yet."""
    reward = UserReward.query.filter_by(user_id=user_id).first()
    if reward:
        return reward.to_dict()
    return {
        "user_id": user_id,
        "full_name": None,
        "points": 0,
        "level": "Newcomer",
        "badges": [],
        "complaints_submitted": 0,
        "complaints_resolved": 0,
    }


def leaderboard(limit: int = 50) -> List[UserReward]:
    return (
        UserReward.query.order_by(UserReward.points.desc(), UserReward.updated_at.asc())
        .limit(limit)
        .all()
    )
