"""
Central constants for the Mindful Champion application.
"""
from __future__ import annotations

# Authorization roles
ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ROLE_SPONSOR = "SPONSOR"
ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_SPONSOR)

# Ordered lowest -> highest; requirement checks compare positions.
SKILL_LEVELS = ("BEGINNER", "INTERMEDIATE", "ADVANCED", "PRO")
SUBSCRIPTION_TIERS = ("FREE", "TRIAL", "PRO", "PREMIUM")
SUBSCRIPTION_STATUSES = ("ACTIVE", "TRIALING", "PAST_DUE", "CANCELED")

TRIAL_DAYS = 7

# Drill categories tracked by the achievement engine
DRILL_CATEGORIES = (
    "serving",
    "return_of_serve",
    "dinking",
    "third_shot",
    "volleys",
    "strategy",
    "footwork",
    "mental_game",
    "advanced_techniques",
)
# The eight sections counted toward skill-level badges
CORE_DRILL_CATEGORIES = DRILL_CATEGORIES[:8]

DRILL_STATUSES = ("COMPLETED", "IN_PROGRESS", "ABANDONED")

GOAL_STATUSES = ("ACTIVE", "COMPLETED", "ABANDONED")

TICKET_STATUSES = ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED")
TICKET_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")

VIDEO_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED")
VIDEO_REVIEW_STATUSES = ("PENDING", "APPROVED", "NEEDS_ATTENTION", "REJECTED")
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "webm", "avi", "m4v"})

SPONSOR_APPLICATION_STATUSES = ("PENDING", "UNDER_REVIEW", "APPROVED", "REJECTED")
SPONSOR_ACTIVE_APPLICATION_STATUSES = ("PENDING", "UNDER_REVIEW", "APPROVED")
SPONSOR_TIERS = ("bronze", "silver", "gold", "platinum")
OFFER_STATUSES = ("DRAFT", "ACTIVE", "PAUSED", "EXPIRED")
REDEMPTION_STATUSES = ("PENDING", "FULFILLED", "SHIPPED", "CANCELLED", "REFUNDED")
REDEMPTION_INACTIVE_STATUSES = ("CANCELLED", "REFUNDED")

WEARABLE_DEVICE_TYPES = ("APPLE_WATCH", "FITBIT", "GARMIN", "WHOOP", "OURA", "POLAR", "OTHER")
HEALTH_DATA_TYPES = ("HEART_RATE", "STEPS", "CALORIES", "SLEEP", "HRV", "ACTIVE_MINUTES")

EMAIL_STATUSES = ("SENT", "FAILED")
