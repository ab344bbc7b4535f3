"""Level titles derived from total points.

These values MUST match the web client's level badge table.
"""

from __future__ import annotations

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Curious Traveler", "cumulative": 0},
    {"level": 2, "title": "Culture Explorer", "cumulative": 100},
    {"level": 3, "title": "Phrasebook Pro", "cumulative": 300},
    {"level": 4, "title": "Bridge Builder", "cumulative": 750},
    {"level": 5, "title": "Global Citizen", "cumulative": 1500},
    {"level": 6, "title": "Cultural Ambassador", "cumulative": 3000},
    {"level": 7, "title": "World Bridger", "cumulative": 6000},
]


def compute_level(total_points: int) -> dict:
    """Compute level info from total points."""
    current = LEVEL_THRESHOLDS[0]
    next_level = LEVEL_THRESHOLDS[1]

    for i in range(len(LEVEL_THRESHOLDS) - 1):
        if total_points >= LEVEL_THRESHOLDS[i]["cumulative"]:
            current = LEVEL_THRESHOLDS[i]
            next_level = LEVEL_THRESHOLDS[i + 1]

    if total_points >= LEVEL_THRESHOLDS[-1]["cumulative"]:
        current = LEVEL_THRESHOLDS[-1]
        next_level = LEVEL_THRESHOLDS[-1]

    return {
        "level": current["level"],
        "title": current["title"],
        "points_into_level": total_points - current["cumulative"],
        "points_for_level": max(next_level["cumulative"] - current["cumulative"], 1),
        "next_title": next_level["title"],
    }


def level_title(total_points: int) -> str:
    return compute_level(total_points)["title"]
