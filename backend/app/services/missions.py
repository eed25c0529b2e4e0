"""Daily mission storage and generation.

Generation always ends with exactly ``MISSION_COUNT`` well-formed missions: a
deterministic list built from the user's profile is prepared first, and an AI
answer only replaces it when one is configured and its text yields a JSON
array of mission objects. Every AI failure is logged and then ignored.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..persistence import KVStore, missions_key
from ..schemas import DEFAULT_TIPS, DEFAULT_WHY_IT_MATTERS, Mission, MissionsState, UserRecord, level_for
from ..store import InMemoryStore
from .accounts import UserService
from .gemini import TextGenerator

logger = logging.getLogger(__name__)

MISSION_COUNT = 5
DEFAULT_MONTHLY_INCOME = 50000
DEFAULT_TARGET_AGE = 35
DEFAULT_GOAL = "wealth freedom"

_FENCE = re.compile(r"```(?:json)?\n?")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

PROMPT_TEMPLATE = """You are an AI financial advisor for a wealth-building app targeting young Indians (18-30). Generate 5 personalized daily missions for this user:

User Profile:
- Goal: {goal}
- Target Age: {target_age}
- Monthly Income: ₹{income}
- Current Level: {level}

Generate 5 missions in this EXACT JSON format (must be valid JSON, no markdown, no code blocks):
[
  {{
    "id": "mission_1",
    "title": "Mission title",
    "description": "Short description",
    "icon": "emoji",
    "xp": 20,
    "category": "SAVE",
    "timeEstimate": "5_MIN",
    "priority": "HIGH",
    "classification": "ALPHA",
    "whyItMatters": "Explanation",
    "tips": ["tip1", "tip2", "tip3"]
  }}
]

Return ONLY the JSON array, nothing else. Make missions specific, actionable, and relevant to Indian context. Use tactical/gaming language like "Execute protocol", "Deploy strategy", etc."""


def _goal(user: UserRecord | None) -> str:
    if user and user.interests:
        return user.interests[0]
    return DEFAULT_GOAL


def _income(user: UserRecord | None) -> float:
    return (user.monthlyIncome if user else None) or DEFAULT_MONTHLY_INCOME


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_fallback_missions(user: UserRecord | None, now_ms: int | None = None) -> list[Mission]:
    stamp = now_ms if now_ms is not None else InMemoryStore.now_ms()
    income = _income(user)
    business = _goal(user) == "business"
    allocation = max(200, int(income * 0.05))
    templates: list[dict[str, Any]] = [
        {
            "title": "Execute savings protocol",
            "description": f"Allocate ₹{allocation} to emergency buffer",
            "icon": "💰",
            "xp": 20,
            "category": "SAVE",
            "timeEstimate": "2_MIN",
            "priority": "HIGH",
            "classification": "ALPHA",
            "whyItMatters": "Emergency fund protocols create financial stability barriers against unexpected system failures. Critical for wealth preservation.",
            "tips": ["Implement automatic transfer protocols", "Round-up transaction algorithms", "Deploy micro-savings accumulation systems"],
        },
        {
            "title": "Knowledge acquisition module",
            "description": "Research 2 startup ideas" if business else "Complete investment strategy learning protocol",
            "icon": "📘",
            "xp": 15,
            "category": "LEARN",
            "timeEstimate": "5_MIN",
            "priority": "HIGH",
            "classification": "BETA",
            "whyItMatters": "Financial intelligence upgrades optimize decision-making algorithms and prevent costly system errors.",
            "tips": ["Active note-taking during data acquisition", "Apply learned algorithms to portfolio systems", "Share intelligence with network nodes"],
        },
        {
            "title": "Revenue stream expansion",
            "description": "Create business plan outline" if business else "Submit 2 freelance proposals",
            "icon": "💼",
            "xp": 30,
            "category": "EARN",
            "timeEstimate": "30_MIN",
            "priority": "HIGH",
            "classification": "ALPHA",
            "whyItMatters": "Multiple revenue streams accelerate wealth accumulation velocity and provide system redundancy.",
            "tips": ["Customize each proposal for target client systems", "Highlight relevant skill matrices", "Deploy competitive pricing algorithms"],
        },
        {
            "title": "Network expansion protocol",
            "description": "Establish 2 professional node connections",
            "icon": "🤝",
            "xp": 25,
            "category": "NETWORK",
            "timeEstimate": "15_MIN",
            "priority": "MEDIUM",
            "classification": "GAMMA",
            "whyItMatters": "Network node expansion increases opportunity discovery rates and collaborative wealth generation potential.",
            "tips": ["Deploy personalized connection requests", "Reference mutual network nodes", "Share valuable data insights"],
        },
        {
            "title": "Investment analysis protocol",
            "description": "Research 3 investment opportunity matrices",
            "icon": "📊",
            "xp": 25,
            "category": "LEARN",
            "timeEstimate": "20_MIN",
            "priority": "HIGH",
            "classification": "BETA",
            "whyItMatters": "Investment analysis protocols optimize return algorithms and minimize risk exposure vectors.",
            "tips": ["Analyze expense ratio metrics", "Review fund management intelligence", "Compare benchmark performance data"],
        },
    ]
    return [Mission(id=f"mission_{index + 1}_{stamp}", **template) for index, template in enumerate(templates)]


def build_prompt(user: UserRecord | None) -> str:
    target_age = (user.targetAge if user else None) or DEFAULT_TARGET_AGE
    xp = user.xpLevel if user else 0
    return PROMPT_TEMPLATE.format(
        goal=_goal(user),
        target_age=target_age,
        income=_fmt_number(_income(user)),
        level=level_for(xp),
    )


def _backfill(raw: dict[str, Any], index: int, stamp: int) -> Mission:
    tips = raw.get("tips")
    return Mission(
        id=str(raw.get("id") or f"mission_{index + 1}_{stamp}"),
        title=str(raw.get("title") or "Mission"),
        description=str(raw.get("description") or ""),
        icon=str(raw.get("icon") or "🎯"),
        xp=raw.get("xp") or 20,
        category=str(raw.get("category") or "LEARN"),
        timeEstimate=str(raw.get("timeEstimate") or "10_MIN"),
        priority=str(raw.get("priority") or "MEDIUM"),
        classification=str(raw.get("classification") or "BETA"),
        whyItMatters=str(raw.get("whyItMatters") or DEFAULT_WHY_IT_MATTERS),
        tips=[str(tip) for tip in tips] if isinstance(tips, list) else list(DEFAULT_TIPS),
    )


def parse_ai_missions(text: str, now_ms: int | None = None) -> list[Mission]:
    """Extract mission objects from free-form model output.

    Raises ``ValueError`` when no usable JSON array is present.
    """
    stamp = now_ms if now_ms is not None else InMemoryStore.now_ms()
    cleaned = _FENCE.sub("", text).strip()
    match = _JSON_ARRAY.search(cleaned)
    if match is None:
        raise ValueError("no JSON array in AI response")
    try:
        parsed = json.loads(match.group(0))
    except RecursionError as exc:
        raise ValueError("AI response nests too deeply") from exc
    if not isinstance(parsed, list) or not parsed:
        raise ValueError("AI response is not a non-empty JSON array")
    objects = [item for item in parsed if isinstance(item, dict)]
    if not objects:
        raise ValueError("AI response contains no mission objects")
    return [_backfill(item, index, stamp) for index, item in enumerate(objects)]


def fit_to_count(missions: list[Mission], fallback: list[Mission]) -> list[Mission]:
    result = list(missions[:MISSION_COUNT])
    for mission in fallback[len(result):MISSION_COUNT]:
        result.append(mission)
    return result


class MissionService:
    def __init__(self, kv: KVStore, users: UserService, ai_client: TextGenerator | None = None) -> None:
        self.kv = kv
        self.users = users
        self.ai_client = ai_client

    def get_state(self, email: str) -> MissionsState:
        raw = self.kv.get(missions_key(email))
        if not isinstance(raw, dict):
            return MissionsState(lastReset=InMemoryStore.now_iso())
        raw.setdefault("lastReset", InMemoryStore.now_iso())
        return MissionsState.model_validate(raw)

    def _save_state(self, email: str, state: MissionsState) -> None:
        self.kv.set(missions_key(email), state.to_json())

    def save_missions(self, email: str, missions: list[Mission] | None) -> MissionsState:
        for mission in missions or []:
            # the completion flag is always stored, even when the client omits it
            mission.completed = mission.completed
        state = MissionsState(missions=missions or [], completedToday=0, lastReset=InMemoryStore.now_iso())
        self._save_state(email, state)
        return state

    def complete(self, email: str, mission_id: str, xp_earned: int) -> int:
        state = self.get_state(email)
        for mission in state.missions:
            if mission.id == mission_id:
                mission.completed = True
                break
        else:
            state.missions.append(Mission(id=mission_id, completed=True, completedAt=InMemoryStore.now_iso()))
        state.completedToday += 1
        self._save_state(email, state)

        new_xp = self.users.add_xp(email, xp_earned)
        logger.info("Mission %s completed by %s (+%s xp, total %s)", mission_id, email, xp_earned, new_xp)
        return new_xp

    async def _ai_missions(self, user: UserRecord | None, now_ms: int) -> list[Mission] | None:
        if self.ai_client is None:
            logger.info("No AI client configured, using default missions")
            return None
        try:
            text = await self.ai_client.generate(build_prompt(user))
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("AI mission generation failed, using defaults: %s", exc)
            return None
        try:
            missions = parse_ai_missions(text, now_ms)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to parse AI response, using defaults: %s", exc)
            logger.debug("AI response: %s", (text or "")[:500])
            return None
        logger.info("Parsed %s AI missions", len(missions))
        return missions

    async def generate(self, email: str) -> list[Mission]:
        user = self.users.get_user(email)
        now_ms = InMemoryStore.now_ms()
        fallback = build_fallback_missions(user, now_ms)
        ai_missions = await self._ai_missions(user, now_ms)
        missions = fit_to_count(ai_missions, fallback) if ai_missions else fallback
        for mission in missions:
            mission.completed = False
        self.save_missions(email, missions)
        return missions
