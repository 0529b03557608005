"""
Tests for notification payloads and sinks.
"""

import json

import httpx

from matchiq.notifications import LoggingNotifier, WebhookNotifier, build_payload, safe_notify

from conftest import RecordingNotifier


MATCH = {"id": 11, "investor_id": 1, "target_id": 2, "total_score": 84}


class TestPayload:

    def test_shape(self):
        payload = build_payload(MATCH, "Acme Capital", "Bangkok Foods")
        assert payload["title"] == "New MatchIQ Suggestion"
        assert payload["message"] == "Acme Capital ↔ Bangkok Foods scored 84% — Strong Match"
        assert payload["type"] == "matchiq"
        assert payload["entity_type"] == "match"
        assert payload["entity_id"] == 11
        assert payload["link"] == "/matchiq"
        assert payload["match_data"] == {
            "match_id": 11,
            "buyer_id": 1,
            "seller_id": 2,
            "score": 84,
        }


class TestSinks:

    def test_logging_notifier(self, caplog):
        caplog.set_level("INFO", logger="matchiq.notifications")
        LoggingNotifier().notify_strong_match(MATCH, "Acme Capital", "Bangkok Foods")
        assert "scored 84%" in caplog.text

    def test_webhook_posts_json(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(204)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        WebhookNotifier("https://hooks.example.com/matchiq", client=client).notify_strong_match(
            MATCH, "Acme Capital", "Bangkok Foods"
        )
        assert received[0]["match_data"]["score"] == 84

    def test_safe_notify_swallows_failures(self, caplog):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        sink = WebhookNotifier("https://hooks.example.com/matchiq", client=client)

        assert safe_notify(sink, MATCH, "Acme Capital", "Bangkok Foods") is False
        assert "Notification failed" in caplog.text

    def test_safe_notify_success_and_missing_sink(self):
        sink = RecordingNotifier()
        assert safe_notify(sink, MATCH, "A", "B") is True
        assert sink.sent == [(MATCH, "A", "B")]
        assert safe_notify(None, MATCH, "A", "B") is False
