"""Notification sinks for newly strong matches.

Delivery is fire-and-forget: a failing sink is logged and never fails the
rescan that triggered it.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from matchiq.matching.scorer import Tier

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify_strong_match(self, match: Dict[str, Any], investor_name: str, target_name: str) -> None:
        ...


def build_payload(match: Dict[str, Any], investor_name: str, target_name: str) -> Dict[str, Any]:
    """Notification body for a strong match.

    Args:
        match: Match values with at least id, investor_id, target_id, total_score
        investor_name: Display name of the investor
        target_name: Display name of the target
    """
    score = match["total_score"]
    tier = Tier.from_score(score)
    return {
        "title": "New MatchIQ Suggestion",
        "message": f"{investor_name} ↔ {target_name} scored {score}% — {tier.label}",
        "type": "matchiq",
        "entity_type": "match",
        "entity_id": match.get("id"),
        "link": "/matchiq",
        "match_data": {
            "match_id": match.get("id"),
            "buyer_id": match["investor_id"],
            "seller_id": match["target_id"],
            "score": score,
        },
    }


class LoggingNotifier:
    """Writes strong matches to the log."""

    def notify_strong_match(self, match: Dict[str, Any], investor_name: str, target_name: str) -> None:
        payload = build_payload(match, investor_name, target_name)
        logger.info(f"[notify] {payload['message']}")


class WebhookNotifier:
    """POSTs the notification payload as JSON to a webhook URL."""

    def __init__(self, url: str, client: Optional[httpx.Client] = None, timeout: float = 5.0):
        self.url = url
        self.client = client
        self.timeout = timeout

    def notify_strong_match(self, match: Dict[str, Any], investor_name: str, target_name: str) -> None:
        payload = build_payload(match, investor_name, target_name)
        if self.client is not None:
            response = self.client.post(self.url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        response.raise_for_status()
        logger.debug(f"Webhook delivered for match {match.get('id')}")


def safe_notify(
    sink: Optional[NotificationSink], match: Dict[str, Any], investor_name: str, target_name: str
) -> bool:
    """Deliver one notification, logging and swallowing any failure.

    Returns:
        True if the sink accepted the notification
    """
    if sink is None:
        return False
    try:
        sink.notify_strong_match(match, investor_name, target_name)
        return True
    except Exception as e:
        logger.warning(
            f"Notification failed for match {investor_name} / {target_name}: {str(e)}"
        )
        return False
