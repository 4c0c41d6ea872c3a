"""Guardian alert delivery over an HTTP webhook.

The journey core only raises alarms; how a guardian hears about them (push,
SMS, chat) is up to whatever sits behind the webhook.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import requests
from requests import Session

from .config import GUARDIAN_WEBHOOK_URL, REQUEST_TIMEOUT
from .errors import NotificationError
from .models import JourneySnapshot
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

EVENT_OVERDUE_UNANSWERED = "overdue_unanswered"
EVENT_SOS = "sos"


def build_alert(
    event: str, snapshot: JourneySnapshot, person: str | None = None
) -> Dict[str, Any]:
    """JSON body for one alert, carrying the last known position."""

    return {
        "event": event,
        "person": person,
        "sent_at": datetime.now(timezone.utc).isoformat(),
        "journey": snapshot.as_dict(),
        "last_position": snapshot.last_position.as_dict()
        if snapshot.last_position
        else None,
    }


class WebhookGuardianNotifier:
    def __init__(
        self,
        url: str = GUARDIAN_WEBHOOK_URL,
        *,
        person: str | None = None,
        session: Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        if not url:
            raise ValueError(
                "a webhook URL is required (SAFEWALK_GUARDIAN_WEBHOOK_URL)"
            )
        self.url = url
        self.person = person
        self._session = session or get_default_session()
        self.timeout = timeout

    def notify(self, event: str, snapshot: JourneySnapshot) -> None:
        """POST one alert.

        Raises:
            NotificationError: The webhook could not be reached or refused it.
        """

        payload = build_alert(event, snapshot, self.person)
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"guardian webhook unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise NotificationError(
                f"guardian webhook rejected {event} (status {response.status_code})"
            )
        LOGGER.info("Guardian notified: %s", event)


__all__ = [
    "WebhookGuardianNotifier",
    "build_alert",
    "EVENT_OVERDUE_UNANSWERED",
    "EVENT_SOS",
]
