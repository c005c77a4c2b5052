# dailydues/notifier.py
"""
Slack incoming-webhook notifications.

The notifier never raises: a missing webhook, a disabled event or a failed
POST is logged and reported as False so the calling operation carries on.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

import requests

from .leaderboard import SORT_REPS, rank_emoji, rank_title, reps_title

logger = logging.getLogger(__name__)

USER_JOINED = "user_joined"
COMMITMENT_LOGGED = "commitment_logged"
COMMITMENT_APPROVED = "commitment_approved"
COMMITMENT_REJECTED = "commitment_rejected"
STREAK_MILESTONE = "streak_milestone"
LEADERBOARD_UPDATE = "leaderboard_update"
CUSTOM = "custom"

EVENT_TYPES = frozenset(
    [
        USER_JOINED,
        COMMITMENT_LOGGED,
        COMMITMENT_APPROVED,
        COMMITMENT_REJECTED,
        STREAK_MILESTONE,
        LEADERBOARD_UPDATE,
        CUSTOM,
    ]
)
DEFAULT_EVENTS = frozenset(
    [USER_JOINED, COMMITMENT_APPROVED, STREAK_MILESTONE, LEADERBOARD_UPDATE]
)

STREAK_MILESTONES = (7, 14, 30, 50, 100, 365)


def should_notify_streak_milestone(streak: int) -> bool:
    return streak in STREAK_MILESTONES


@dataclass(frozen=True)
class NotifierConfig:
    webhook_url: Optional[str] = None
    enabled_events: FrozenSet[str] = field(default=DEFAULT_EVENTS)
    timeout: float = 5.0

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "NotifierConfig":
        events = config.get("SLACK_ENABLED_EVENTS")
        if events is None:
            enabled = DEFAULT_EVENTS
        else:
            unknown = set(events) - EVENT_TYPES
            if unknown:
                logger.warning("[slack] ignoring unknown events: %s", ", ".join(sorted(unknown)))
            enabled = frozenset(events) & EVENT_TYPES
        return cls(
            webhook_url=config.get("SLACK_WEBHOOK_URL") or None,
            enabled_events=enabled,
            timeout=float(config.get("SLACK_TIMEOUT_SECONDS", 5.0)),
        )


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def format_message(event: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    user = payload.get("user_name")
    commitment = payload.get("commitment_name")
    amount = payload.get("amount")
    unit = payload.get("unit")

    if event == USER_JOINED:
        text = f"👋 New user joined: {user}"
        body = f"👋 *New User Alert!*\n\n*{user}* has joined Daily Dues. Welcome to the grind! 💪"
    elif event == COMMITMENT_LOGGED:
        text = f"📝 {user} logged {amount} {unit}"
        body = f"📝 *Progress Logged*\n\n*{user}* completed *{amount} {unit}* of {commitment}"
    elif event == COMMITMENT_APPROVED:
        text = f"✅ {user}'s {commitment} approved!"
        body = (
            f"✅ *Commitment Approved!*\n\n*{user}* crushed their *{commitment}* goal!\n"
            f"{amount} {unit} completed 🎯"
        )
    elif event == COMMITMENT_REJECTED:
        text = f"❌ {user}'s submission was rejected"
        body = (
            f"❌ *Submission Rejected*\n\n*{user}*'s {commitment} submission was rejected. "
            "Time to step up! 💪"
        )
    elif event == STREAK_MILESTONE:
        milestone = payload.get("milestone")
        text = f"🔥 {user} hit a {milestone}-day streak!"
        body = (
            f"🔥 *Streak Milestone!*\n\n*{user}* just hit a *{milestone}-day streak*! 🏆\n\n"
            "Incredible discipline. Keep it up!"
        )
    elif event == LEADERBOARD_UPDATE:
        text = "🏆 Leaderboard updated!"
        body = f"🏆 *Leaderboard Update*\n\n{payload.get('message') or 'Check the latest standings!'}"
    else:
        text = payload.get("message") or "Daily Dues notification"
        body = text

    return {"text": text, "blocks": [_section(body)]}


def build_leaderboard_blocks(
    commitment_name: str,
    unit: str,
    entries: List[Mapping[str, Any]],
    sort_by: str,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Slack blocks for a leaderboard snapshot: podium for the top three,
    ranks 4-10 below it. Entries need user_name, current_streak,
    total_completed and pending_carry_over.
    """
    today = today or date.today()
    total_mode = sort_by == SORT_REPS
    sort_label = f"by Total {unit}" if total_mode else "by Streak"

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f":trophy: {commitment_name} Leaderboard",
                "emoji": True,
            },
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f":calendar: {today.strftime('%A, %B %d, %Y')} • {sort_label}",
                }
            ],
        },
        {"type": "divider"},
    ]

    podium = []
    for index, entry in enumerate(entries[:3]):
        emoji = rank_emoji(index + 1)
        if total_mode:
            title = reps_title(entry["total_completed"])
            podium.append(
                f"{emoji} *{entry['user_name']}*\n"
                f"      :dart: {entry['total_completed']} {unit} • _{title}_"
            )
        else:
            title = rank_title(entry["current_streak"])
            debt = ""
            if entry["pending_carry_over"] > 0:
                debt = f" | :warning: {entry['pending_carry_over']} {unit} debt"
            podium.append(
                f"{emoji} *{entry['user_name']}*\n"
                f"      :fire: {entry['current_streak']} day streak • _{title}_{debt}"
            )
    if podium:
        blocks.append(_section("\n\n".join(podium)))

    rest = []
    for index, entry in enumerate(entries[3:10]):
        rank = index + 4
        if total_mode:
            title = reps_title(entry["total_completed"])
            rest.append(
                f"{rank}. *{entry['user_name']}* - :dart: {entry['total_completed']} {unit} • _{title}_"
            )
        else:
            title = rank_title(entry["current_streak"])
            debt = ""
            if entry["pending_carry_over"] > 0:
                debt = f" | {entry['pending_carry_over']} debt"
            rest.append(
                f"{rank}. *{entry['user_name']}* - :fire: {entry['current_streak']} days • _{title}_{debt}"
            )
    if rest:
        blocks.append({"type": "divider"})
        blocks.append(_section("\n".join(rest)))

    blocks.append({"type": "divider"})
    blocks.append(
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": ":muscle: Keep pushing! Consistency is key."}
            ],
        }
    )
    return blocks


class SlackNotifier:
    def __init__(self, config: NotifierConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return bool(self.config.webhook_url)

    def is_event_enabled(self, event: str) -> bool:
        return event in self.config.enabled_events

    def _post(self, message: Dict[str, Any], label: str) -> bool:
        try:
            response = requests.post(
                self.config.webhook_url,
                json=message,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            logger.error("[slack] error sending %s: %s", label, exc)
            return False

        if not response.ok:
            logger.error("[slack] failed to send %s: %s %s", label, response.status_code, response.text)
            return False

        logger.info("[slack] %s sent", label)
        return True

    def send(self, event: str, payload: Optional[Mapping[str, Any]] = None) -> bool:
        if not self.enabled:
            logger.debug("[slack] disabled or no webhook URL, event=%s", event)
            return False
        if not self.is_event_enabled(event):
            logger.debug("[slack] event %s is disabled", event)
            return False
        return self._post(format_message(event, payload or {}), event)

    def send_leaderboard(
        self,
        commitment_name: str,
        unit: str,
        entries: List[Mapping[str, Any]],
        sort_by: str,
    ) -> bool:
        """Explicit admin share; posts regardless of the enabled event set."""
        if not self.enabled:
            logger.warning("[slack] leaderboard share requested but no webhook configured")
            return False
        message = {
            "text": f"🏆 {commitment_name} Leaderboard Update",
            "blocks": build_leaderboard_blocks(commitment_name, unit, entries, sort_by),
        }
        return self._post(message, LEADERBOARD_UPDATE)

    # Convenience methods
    def notify_user_joined(self, user_name: str) -> bool:
        return self.send(USER_JOINED, {"user_name": user_name})

    def notify_commitment_logged(self, user_name, commitment_name, amount, unit) -> bool:
        return self.send(
            COMMITMENT_LOGGED,
            {"user_name": user_name, "commitment_name": commitment_name, "amount": amount, "unit": unit},
        )

    def notify_commitment_approved(self, user_name, commitment_name, amount, unit) -> bool:
        return self.send(
            COMMITMENT_APPROVED,
            {"user_name": user_name, "commitment_name": commitment_name, "amount": amount, "unit": unit},
        )

    def notify_commitment_rejected(self, user_name, commitment_name) -> bool:
        return self.send(
            COMMITMENT_REJECTED,
            {"user_name": user_name, "commitment_name": commitment_name},
        )

    def notify_streak_milestone(self, user_name: str, milestone: int) -> bool:
        return self.send(STREAK_MILESTONE, {"user_name": user_name, "milestone": milestone})
