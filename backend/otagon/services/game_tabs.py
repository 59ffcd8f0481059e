"""
Insight sub-tabs shown inside a game tab.

Each genre has its own set of sub-tabs; unknown genres fall back to
``Default``. Sub-tabs start in ``loading`` state and are filled by the
insight generator or by ``INSIGHT_UPDATE`` tags.
"""
from typing import Any, Dict, List, Optional, Tuple

from ..models.user import TIER_FREE

DEFAULT_GENRE = "Default"

INSIGHT_TABS_CONFIG: Dict[str, List[Dict[str, str]]] = {
    "Default": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the story up to the player's current point without spoilers."},
        {"id": "tips", "title": "Tips", "instruction": "Give general gameplay tips for a new player."},
        {"id": "objectives", "title": "Objectives", "instruction": "Describe the player's likely next goals."},
    ],
    "RPG": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the story up to the player's current point without spoilers."},
        {"id": "characters", "title": "Characters", "instruction": "Introduce the main characters the player has met."},
        {"id": "builds", "title": "Builds", "instruction": "Suggest beginner-friendly character builds."},
        {"id": "quests", "title": "Quests", "instruction": "List notable early quests worth doing."},
    ],
    "Action RPG": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the story up to the player's current point without spoilers."},
        {"id": "combat", "title": "Combat", "instruction": "Explain the core combat mechanics."},
        {"id": "builds", "title": "Builds", "instruction": "Suggest beginner-friendly builds and gear."},
        {"id": "bosses", "title": "Bosses", "instruction": "Give spoiler-free advice for early bosses."},
    ],
    "Souls-like": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the lore the player has uncovered."},
        {"id": "bosses", "title": "Bosses", "instruction": "Give spoiler-free advice for early bosses."},
        {"id": "builds", "title": "Builds", "instruction": "Suggest starting classes and stat priorities."},
        {"id": "secrets", "title": "Secrets", "instruction": "Point at easy-to-miss areas without naming what is inside."},
    ],
    "FPS": [
        {"id": "loadouts", "title": "Loadouts", "instruction": "Recommend strong starting loadouts."},
        {"id": "maps", "title": "Maps", "instruction": "Describe key map areas and routes."},
        {"id": "tips", "title": "Tips", "instruction": "Give tactical tips for a new player."},
    ],
    "Strategy": [
        {"id": "openings", "title": "Openings", "instruction": "Describe solid opening strategies."},
        {"id": "economy", "title": "Economy", "instruction": "Explain resource management basics."},
        {"id": "tips", "title": "Tips", "instruction": "Give strategic tips for a new player."},
    ],
    "Puzzle": [
        {"id": "mechanics", "title": "Mechanics", "instruction": "Explain the puzzle mechanics the game introduces."},
        {"id": "hints", "title": "Hints", "instruction": "Give gentle, spoiler-free hints for early puzzles."},
    ],
    "Horror": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the story up to the player's current point without spoilers."},
        {"id": "survival", "title": "Survival", "instruction": "Give resource and survival tips."},
        {"id": "threats", "title": "Threats", "instruction": "Describe how to deal with common enemies."},
    ],
    "Adventure": [
        {"id": "story_so_far", "title": "Story So Far", "instruction": "Summarize the story up to the player's current point without spoilers."},
        {"id": "exploration", "title": "Exploration", "instruction": "Point out areas worth exploring."},
        {"id": "tips", "title": "Tips", "instruction": "Give general gameplay tips for a new player."},
    ],
}

STATUS_LOADING = "loading"
STATUS_LOADED = "loaded"
STATUS_ERROR = "error"


def tabs_for_genre(genre: Optional[str]) -> List[Dict[str, str]]:
    return INSIGHT_TABS_CONFIG.get(genre or DEFAULT_GENRE, INSIGHT_TABS_CONFIG[DEFAULT_GENRE])


def tier_has_insights(tier: Optional[str]) -> bool:
    return bool(tier) and tier != TIER_FREE


def build_insights(genre: Optional[str]) -> Tuple[Dict[str, Dict[str, Any]], List[str]]:
    """
    Create empty sub-tabs for ``genre``.

    Returns:
        Tuple of (insights keyed by tab id, tab order)
    """
    insights = {}
    order = []
    for tab in tabs_for_genre(genre):
        insights[tab["id"]] = {
            "id": tab["id"],
            "title": tab["title"],
            "content": "",
            "status": STATUS_LOADING,
            "is_new": True,
        }
        order.append(tab["id"])
    return insights, order


def fill_insights(
    insights: Optional[Dict[str, Dict[str, Any]]],
    generated: Dict[str, str]
) -> Dict[str, Dict[str, Any]]:
    """
    Apply generated sub-tab content.

    Tabs missing from ``generated`` are marked as errored. Returns a new dict;
    the input is left untouched.
    """
    result = {}
    for tab_id, tab in (insights or {}).items():
        tab = dict(tab)
        content = generated.get(tab_id)
        if content:
            tab["content"] = str(content)
            tab["status"] = STATUS_LOADED
            tab["is_new"] = True
        elif tab.get("status") == STATUS_LOADING:
            tab["status"] = STATUS_ERROR
        result[tab_id] = tab
    return result


def apply_insight_update(
    insights: Optional[Dict[str, Dict[str, Any]]],
    update: Any
) -> Optional[Dict[str, Dict[str, Any]]]:
    """
    Append an ``INSIGHT_UPDATE`` tag's content to its sub-tab.

    Returns a new insights dict, or None when the update does not match a
    known sub-tab.
    """
    if not insights or not isinstance(update, dict):
        return None
    tab_id = update.get("id")
    content = update.get("content")
    if tab_id not in insights or not content:
        return None

    tab = dict(insights[tab_id])
    existing = tab.get("content") or ""
    tab["content"] = f"{existing}\n\n{content}" if existing else str(content)
    tab["status"] = STATUS_LOADED
    tab["is_new"] = True

    result = dict(insights)
    result[tab_id] = tab
    return result
