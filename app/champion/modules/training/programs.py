"""Built-in training program catalogue, seeded by init_db and /api/admin/seed-programs."""
from __future__ import annotations

TRAINING_PROGRAMS: tuple[dict, ...] = (
    {
        "slug": "beginner-fundamentals",
        "name": "Beginner Fundamentals",
        "tagline": "Master the basics and build a solid foundation",
        "description": (
            "Perfect for players new to pickleball. Learn proper grip, stance, basic strokes, "
            "and court positioning through structured daily lessons."
        ),
        "duration_days": 30,
        "skill_level": "BEGINNER",
        "estimated_time_per_day": "20-30 minutes",
        "key_outcomes": [
            "Proper grip and ready position",
            "Consistent forehand and backhand",
            "Basic serve technique",
            "Understanding of court positioning",
            "Dinking fundamentals",
        ],
        "daily_structure": {"warmup": "5 min", "technique": "10 min", "drills": "10 min", "cooldown": "5 min"},
    },
    {
        "slug": "intermediate-skills",
        "name": "Intermediate Skills Development",
        "tagline": "Elevate your game with advanced techniques",
        "description": (
            "For players with basic skills looking to compete. Focus on spin, power, strategy, "
            "and transitioning from baseline to kitchen."
        ),
        "duration_days": 45,
        "skill_level": "INTERMEDIATE",
        "estimated_time_per_day": "30-45 minutes",
        "key_outcomes": [
            "Topspin and slice techniques",
            "Third shot drop mastery",
            "Effective transition game",
            "Advanced dinking patterns",
            "Offensive and defensive strategies",
        ],
        "daily_structure": {"warmup": "5 min", "technique": "15 min", "drills": "20 min", "cooldown": "5 min"},
    },
    {
        "slug": "advanced-tournament-prep",
        "name": "Advanced Tournament Prep",
        "tagline": "Compete at the highest level",
        "description": (
            "Intensive training for competitive players. Advanced shot selection, partner "
            "communication, match strategy, and mental toughness."
        ),
        "duration_days": 60,
        "skill_level": "ADVANCED",
        "estimated_time_per_day": "45-60 minutes",
        "key_outcomes": [
            "Tournament-level shot execution",
            "Advanced partner communication",
            "Match strategy and adaptation",
            "Mental game mastery",
            "Pressure situation handling",
        ],
        "daily_structure": {"warmup": "10 min", "technique": "15 min", "drills": "25 min", "matchPlay": "10 min"},
    },
    {
        "slug": "pro-performance",
        "name": "Pro Performance Mastery",
        "tagline": "Train like the pros",
        "description": (
            "Elite-level training program for serious competitors. Focus on consistency, power, "
            "precision, and professional-level strategies."
        ),
        "duration_days": 90,
        "skill_level": "PRO",
        "estimated_time_per_day": "60-90 minutes",
        "key_outcomes": [
            "Pro-level consistency",
            "Maximum power with control",
            "Advanced court coverage",
            "Elite mental conditioning",
            "Tournament preparation protocols",
        ],
        "daily_structure": {
            "warmup": "15 min",
            "technique": "20 min",
            "drills": "30 min",
            "matchPlay": "15 min",
            "analysis": "10 min",
        },
    },
    {
        "slug": "dinking-mastery",
        "name": "Dinking Mastery",
        "tagline": "Dominate the kitchen game",
        "description": (
            "Specialized program focused entirely on dinking techniques, patterns, and strategies "
            "to control the net game."
        ),
        "duration_days": 21,
        "skill_level": "INTERMEDIATE",
        "estimated_time_per_day": "25-35 minutes",
        "key_outcomes": [
            "Soft hands and touch",
            "Cross-court and straight dinking",
            "Dink patterns and setups",
            "Attacking from the kitchen",
            "Defensive dinking strategies",
        ],
        "daily_structure": {"warmup": "5 min", "technique": "10 min", "drills": "15 min", "cooldown": "5 min"},
    },
    {
        "slug": "serve-return-excellence",
        "name": "Serve & Return Excellence",
        "tagline": "Win points before the rally starts",
        "description": (
            "Master the most important shots in pickleball. Develop powerful, consistent serves "
            "and aggressive, strategic returns."
        ),
        "duration_days": 21,
        "skill_level": "INTERMEDIATE",
        "estimated_time_per_day": "25-35 minutes",
        "key_outcomes": [
            "Consistent deep serves",
            "Serve placement strategies",
            "Aggressive return positioning",
            "Return of serve tactics",
            "Third shot preparation",
        ],
        "daily_structure": {"warmup": "5 min", "serveDrills": "10 min", "returnDrills": "10 min", "cooldown": "5 min"},
    },
    {
        "slug": "mental-game-champion",
        "name": "Mental Game Champion",
        "tagline": "Master your mind, master the game",
        "description": (
            "Develop unshakeable mental toughness, focus, and confidence. Learn visualization, "
            "breathing techniques, and pressure management."
        ),
        "duration_days": 30,
        "skill_level": "INTERMEDIATE",
        "estimated_time_per_day": "15-20 minutes",
        "key_outcomes": [
            "Pre-match mental preparation",
            "Focus and concentration techniques",
            "Pressure management strategies",
            "Confidence building exercises",
            "Post-match reflection protocols",
        ],
        "daily_structure": {"meditation": "5 min", "visualization": "5 min", "mentalDrills": "5 min", "reflection": "5 min"},
    },
)

# Onboarding goal ids mapped to words looked for in program names/descriptions.
GOAL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "improve-accuracy": ("accuracy", "precision", "control"),
    "build-consistency": ("consistency", "fundamentals", "basics"),
    "master-strategy": ("strategy", "tactics", "game", "advanced"),
    "increase-speed": ("speed", "power", "athletic"),
    "mental-toughness": ("mental", "focus", "confidence"),
    "win-matches": ("competition", "tournament", "winning"),
    "specific-shots": ("serve", "dink", "volley", "drop"),
}
