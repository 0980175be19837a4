from __future__ import annotations

from datetime import datetime, timezone

import pytest
import requests

from conftest import FakeTransport
from pattern_alerts.config import NotificationConfig
from pattern_alerts.errors import DeliveryError
from pattern_alerts.models import MatchResult
from pattern_alerts.notifications import (
    HttpNotificationTransport,
    NotificationFanout,
    build_email_payload,
    build_push_payload,
    summarize_domains,
)


def _matches(count: int, owner: str = "user-1") -> list[MatchResult]:
    return [
        MatchResult(
            auction_id=f"a{i}",
            domain_name=f"domain{i}.com",
            price=float(i),
            end_time=datetime(2025, 3, 2, tzinfo=timezone.utc),
            pattern_id="p1",
            pattern_description="^domain",
            owner=owner,
        )
        for i in range(1, count + 1)
    ]


def test_ten_matches_send_one_push_naming_three(transport: FakeTransport, notification_config) -> None:
    fanout = NotificationFanout(transport, notification_config)

    report = fanout.dispatch({"user-1": _matches(10)})

    assert len(transport.pushes) == 1
    assert len(transport.emails) == 1
    body = transport.pushes[0][1]["body"]
    assert body == "domain1.com, domain2.com, domain3.com +7 more"
    assert report.users_notified == 1
    assert report.pushes_sent == 1


def test_summary_without_overflow() -> None:
    assert summarize_domains(_matches(2)) == "domain1.com, domain2.com"


def test_push_payload_shape(notification_config) -> None:
    notification_config.icon_url = "https://example.test/icon.png"

    single = build_push_payload(_matches(1), notification_config)
    many = build_push_payload(_matches(4), notification_config)

    assert single["title"] == "🎯 1 Domain Match Your Patterns!"
    assert many["title"] == "🎯 4 Domains Match Your Patterns!"
    assert many["tag"] == "pattern-match"
    assert many["url"] == "/dashboard"
    assert many["icon"] == many["badge"] == "https://example.test/icon.png"


def test_email_payload_caps_listed_matches(notification_config) -> None:
    payload = build_email_payload(_matches(12), notification_config)

    assert payload["type"] == "pattern_match"
    assert payload["totalMatches"] == 12
    assert len(payload["matches"]) == 10
    assert payload["matches"][0] == {
        "domain": "domain1.com",
        "price": 1.0,
        "pattern": "^domain",
        "pattern_id": "p1",
        "auction_id": "a1",
        "end_time": "2025-03-02T00:00:00+00:00",
    }


def test_failure_for_one_owner_does_not_stop_others(notification_config) -> None:
    transport = FakeTransport(failing_owners={"user-1"})
    fanout = NotificationFanout(transport, notification_config)

    report = fanout.dispatch({"user-1": _matches(2), "user-2": _matches(1, owner="user-2")})

    assert [owner for owner, _ in transport.pushes] == ["user-2"]
    assert report.failed_owners == 1
    assert report.pushes_sent == 1


class FakeResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, status_code: int = 200) -> None:
        self.headers: dict = {}
        self.posts: list[tuple[str, dict, float]] = []
        self.status_code = status_code

    def post(self, url: str, json: dict, timeout: float) -> FakeResponse:
        self.posts.append((url, json, timeout))
        return FakeResponse(self.status_code)


def test_http_transport_posts_to_delivery_functions(notification_config) -> None:
    session = FakeSession()
    transport = HttpNotificationTransport(notification_config, session=session)

    transport.send_push("user-1", {"title": "t"})
    transport.send_email("user-1", build_email_payload(_matches(1), notification_config))

    push_url, push_body, _ = session.posts[0]
    email_url, email_body, _ = session.posts[1]
    assert push_url == "https://example.test/functions/v1/send-push-notification"
    assert push_body == {"user_id": "user-1", "payload": {"title": "t"}}
    assert email_url == "https://example.test/functions/v1/send-email-notification"
    assert email_body["userId"] == "user-1"
    assert email_body["data"]["totalMatches"] == 1
    assert session.headers["Authorization"] == "Bearer service"


def test_http_transport_raises_delivery_error(notification_config) -> None:
    transport = HttpNotificationTransport(notification_config, session=FakeSession(status_code=500))

    with pytest.raises(DeliveryError) as excinfo:
        transport.send_push("user-1", {"title": "t"})

    assert excinfo.value.channel == "push"


def test_http_transport_requires_functions_url() -> None:
    config = NotificationConfig(functions_url="", service_key="")

    with pytest.raises(DeliveryError):
        HttpNotificationTransport(config, session=FakeSession()).send_push("user-1", {})
