"""
Notification fan-out for Pattern Alerts.

Turns one run's new matches into at most one push and one email per
owner. A failure delivering to one owner is logged and never stops the
others. Actual delivery is done by external push/email functions reached
over HTTP.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .config import NotificationConfig, get_notification_config
from .errors import DeliveryError
from .models import MatchResult
from .ports import NotificationTransport

logger = logging.getLogger(__name__)

PUSH_TAG = "pattern-match"
EMAIL_TYPE = "pattern_match"


# =============================================================================
# PAYLOADS
# =============================================================================

def summarize_domains(matches: list[MatchResult], limit: int = 3) -> str:
    """First ``limit`` domain names joined, then "+K more" for the rest."""
    names = ", ".join(m.domain_name for m in matches[:limit])
    if len(matches) > limit:
        names = f"{names} +{len(matches) - limit} more"
    return names


def build_push_payload(matches: list[MatchResult], config: NotificationConfig) -> dict:
    count = len(matches)
    payload = {
        "title": f"🎯 {count} Domain{'s' if count > 1 else ''} Match Your Patterns!",
        "body": summarize_domains(matches, config.push_summary_count),
        "tag": PUSH_TAG,
        "url": config.dashboard_url,
    }
    if config.icon_url:
        payload.update({"icon": config.icon_url, "badge": config.icon_url})
    return payload


def build_email_payload(matches: list[MatchResult], config: NotificationConfig) -> dict:
    return {
        "type": EMAIL_TYPE,
        "matches": [
            {
                "domain": m.domain_name,
                "price": m.price,
                "pattern": m.pattern_description,
                "pattern_id": m.pattern_id,
                "auction_id": m.auction_id,
                "end_time": m.end_time.isoformat() if m.end_time else None,
            }
            for m in matches[:config.email_max_matches]
        ],
        "totalMatches": len(matches),
    }


# =============================================================================
# FAN-OUT
# =============================================================================

@dataclass
class FanoutReport:
    """What a fan-out actually delivered."""
    users_notified: int = 0
    pushes_sent: int = 0
    emails_sent: int = 0
    failed_owners: int = 0


class NotificationFanout:
    """
    Sends one summarized push and one email per owner per run.

    Usage:
        fanout = NotificationFanout(HttpNotificationTransport())
        report = fanout.dispatch({"user-1": matches})
    """

    def __init__(self, transport: NotificationTransport, config: Optional[NotificationConfig] = None):
        self.transport = transport
        self.config = config or get_notification_config()

    def dispatch(self, matches_by_owner: dict[str, list[MatchResult]]) -> FanoutReport:
        report = FanoutReport()
        for owner, matches in matches_by_owner.items():
            if not matches:
                continue
            report.users_notified += 1
            pushed, emailed = self.notify_owner(owner, matches)
            report.pushes_sent += int(pushed)
            report.emails_sent += int(emailed)
            if not (pushed and emailed):
                report.failed_owners += 1

        logger.info(
            f"Notified {report.users_notified} users: {report.pushes_sent} pushes, "
            f"{report.emails_sent} emails, {report.failed_owners} with failures"
        )
        return report

    def notify_owner(self, owner: str, matches: list[MatchResult]) -> tuple[bool, bool]:
        """Send this owner's push and email; each channel fails independently."""
        pushed = self._deliver("push", owner, self.transport.send_push, build_push_payload(matches, self.config))
        emailed = self._deliver("email", owner, self.transport.send_email, build_email_payload(matches, self.config))
        return pushed, emailed

    def _deliver(self, channel: str, owner: str, send, payload: dict) -> bool:
        try:
            send(owner, payload)
            return True
        except Exception as e:
            logger.error(f"Error sending {channel} to user {owner}: {e}")
            return False


# =============================================================================
# HTTP TRANSPORT
# =============================================================================

class HttpNotificationTransport:
    """
    Delivers through the send-push-notification / send-email-notification
    functions. Whether an owner has email enabled is decided on that side.
    """

    def __init__(self, config: Optional[NotificationConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or get_notification_config()
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if self.config.service_key:
            self.session.headers.update({"Authorization": f"Bearer {self.config.service_key}"})

    def send_push(self, owner: str, payload: dict) -> None:
        self._post("push", owner, "send-push-notification", {"user_id": owner, "payload": payload})

    def send_email(self, owner: str, payload: dict) -> None:
        body = {
            "type": payload["type"],
            "userId": owner,
            "data": {"matches": payload["matches"], "totalMatches": payload["totalMatches"]},
        }
        self._post("email", owner, "send-email-notification", body)

    def _post(self, channel: str, owner: str, function: str, body: dict) -> None:
        if not self.config.functions_url:
            raise DeliveryError(channel, owner, "functions URL not configured")
        url = f"{self.config.functions_url.rstrip('/')}/{function}"
        try:
            response = self.session.post(url, json=body, timeout=self.config.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DeliveryError(channel, owner, str(e)) from e
