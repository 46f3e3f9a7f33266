"""
Achievement catalogue.

Each drill category gets bronze/silver/gold medals and a section badge; on top
of those sit four skill-level badges, four multi-section combo badges and the
crown. Definitions are plain dicts so they can be synced into the
``achievements`` table without an app context.
"""
from __future__ import annotations

# (drill category, key prefix, label, catalogue category, badge key, badge name, badge icon)
_SECTIONS = (
    ("serving", "serving", "Serving", "SERVING", "serving_master", "Serving Master", "🎯"),
    ("return_of_serve", "return", "Return", "RETURN_OF_SERVE", "return_specialist", "Return Specialist", "↩️"),
    ("dinking", "dinking", "Dinking", "DINKING", "dinking_expert", "Dinking Expert", "🏓"),
    ("third_shot", "third_shot", "Third Shot", "THIRD_SHOT", "third_shot_specialist", "Third Shot Specialist", "🏓"),
    ("volleys", "volley", "Volley", "VOLLEY", "volley_champion", "Volley Champion", "⚡"),
    ("strategy", "strategy", "Strategy", "STRATEGY", "strategy_guru", "Strategy Guru", "🧠"),
    ("footwork", "footwork", "Footwork", "FOOTWORK", "footwork_master", "Footwork Master", "👟"),
    ("mental_game", "mental", "Mental Game", "MENTAL_GAME", "mental_champion", "Mental Game Champion", "🧘"),
    (
        "advanced_techniques",
        "advanced",
        "Advanced Techniques",
        "ADVANCED_TECHNIQUES",
        "advanced_master",
        "Advanced Techniques Master",
        "⚔️",
    ),
)

# (tier, completions, points, rarity, icon)
_MEDALS = (
    ("BRONZE", 1, 10, "common", "🥉"),
    ("SILVER", 5, 25, "common", "🥈"),
    ("GOLD", 10, 50, "rare", "🥇"),
)

SECTION_BADGE_POINTS = 100
SECTION_COMPLETION_TARGET = 10

LEVEL_SECTION_DRILLS = 5
LEVEL_SECTIONS_REQUIRED = 6
LEVEL_BADGE_POINTS = 250
_LEVEL_BADGES = (
    ("beginner_champion", "Beginner Champion", "BEGINNER", "🌱", "epic",
     "Complete all Beginner level sections and graduate to intermediate"),
    ("intermediate_master", "Intermediate Master", "INTERMEDIATE", "🌿", "epic",
     "Complete all Intermediate level sections and advance to the next tier"),
    ("advanced_expert", "Advanced Expert", "ADVANCED", "🌳", "legendary",
     "Complete all Advanced level sections and approach pro status"),
    ("pro_legend", "Pro Legend", "PRO", "🏆", "legendary",
     "Complete all Pro level sections and join the elite ranks"),
)
LEVEL_BADGE_KEYS = tuple(b[0] for b in _LEVEL_BADGES)

MULTI_SECTION_POINTS = 200
_MULTI_SECTION_BADGES = (
    ("fundamentals_ace", "Fundamentals Ace", "🎯", "epic", ("serving", "return_of_serve"),
     "Complete both Serving and Return sections to master the first two shots"),
    ("kitchen_dominator", "Kitchen Dominator", "👨‍🍳", "epic", ("dinking", "volleys"),
     "Complete both Dinking and Volley sections to control the net"),
    ("court_commander", "Court Commander", "🗺️", "epic", ("footwork", "strategy"),
     "Complete both Footwork and Strategy sections to master court movement and tactics"),
    ("complete_player", "Complete Player", "💪", "legendary",
     ("serving", "return_of_serve", "dinking", "third_shot", "volleys"),
     "Complete all fundamental categories (Serving, Return, Dinking, Third Shot, Volley)"),
)

CROWN_KEY = "mindful_champion_crown"
CROWN_POINTS = 1000


def _drill_word(n: int) -> str:
    return "drill" if n == 1 else "drills"


def build_definitions() -> list[dict]:
    defs: list[dict] = []

    def add(**kw) -> None:
        kw["sort_order"] = len(defs) + 1
        defs.append(kw)

    for drill_category, prefix, label, category, badge_key, badge_name, badge_icon in _SECTIONS:
        section_label = label.lower() if label != "Return" else "return of serve"
        for tier, completions, points, rarity, icon in _MEDALS:
            add(
                key=f"{prefix}_{tier.lower()}",
                name=f"{label} {tier.title()} Medal",
                description=f"Complete {completions} {section_label} {_drill_word(completions)}",
                tier=tier,
                category=category,
                icon=icon,
                requirement={"type": "drill_completion", "criteria": {"category": drill_category, "completions": completions}},
                points=points,
                rarity=rarity,
            )
        add(
            key=badge_key,
            name=badge_name,
            description=f"Complete all {section_label} drills",
            tier="BADGE",
            category=category,
            icon=badge_icon,
            requirement={"type": "section_completion", "criteria": {"category": drill_category}},
            points=SECTION_BADGE_POINTS,
            rarity="epic",
        )

    for key, name, level, icon, rarity, description in _LEVEL_BADGES:
        add(
            key=key,
            name=name,
            description=description,
            tier="BADGE",
            category="SKILL_LEVEL",
            icon=icon,
            requirement={"type": "level_completion", "criteria": {"skillLevel": level}},
            points=LEVEL_BADGE_POINTS,
            rarity=rarity,
        )

    for key, name, icon, rarity, sections, description in _MULTI_SECTION_BADGES:
        add(
            key=key,
            name=name,
            description=description,
            tier="BADGE",
            category="MULTI_SECTION",
            icon=icon,
            requirement={"type": "multi_section", "criteria": {"sections": list(sections)}},
            points=MULTI_SECTION_POINTS,
            rarity=rarity,
        )

    add(
        key=CROWN_KEY,
        name="Mindful Champion Crown",
        description="Complete ALL training programs across ALL skill levels to earn the ultimate achievement",
        tier="CROWN",
        category="ULTIMATE",
        icon="👑",
        requirement={"type": "ultimate", "criteria": {"allSections": True}},
        points=CROWN_POINTS,
        rarity="legendary",
    )
    return defs


ACHIEVEMENT_DEFINITIONS: list[dict] = build_definitions()
