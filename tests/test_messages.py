"""Tests for vibecore.models.messages — uAgents Model serialization roundtrips."""

from vibecore.models.messages import (
    CoordinationSuggestion,
    GateReceiptEvent,
    GroupSignals,
    VibeQuery,
    VibeReport,
)


class TestVibeMessages:
    def test_query_roundtrip(self):
        q = VibeQuery(user_id="u1", timestamp="2026-02-14T20:00:00+00:00")
        assert VibeQuery.parse_raw(q.json()).user_id == "u1"

    def test_report_roundtrip(self):
        report = VibeReport(
            vibe="social",
            vector={"social": 0.4, "hype": 0.6},
            energy=0.7,
            confidence=0.5,
            sources=["temporal", "venue"],
            interval_ms=30_000,
            timestamp="2026-02-14T20:00:00+00:00",
        )
        restored = VibeReport.parse_raw(report.json())
        assert restored.vector["hype"] == 0.6
        assert restored.interval_ms == 30_000
        assert restored.sources == ["temporal", "venue"]


class TestGroupMessages:
    def test_group_signals_roundtrip(self):
        msg = GroupSignals(
            group_id="g1",
            action="merge",
            energies=[0.8, 0.82],
            member_dists=[[0.0, 1.0], [0.1]],
            envelope_id="balanced",
            cohort_size=0,
            feature_timestamps=[1771099200.0],
            epsilon_cost=0.5,
        )
        restored = GroupSignals.parse_raw(msg.json())
        assert restored.member_dists == [[0.0, 1.0], [0.1]]
        assert restored.cohort_size == 0

    def test_suggestion_roundtrip(self):
        s = CoordinationSuggestion(
            group_id="g1",
            action="rally",
            ok=False,
            degrade="binary",
            receipt_id="rcpt_abc",
            cohesion=0.0,
            fragmentation_risk=0.0,
            spread=0.0,
            gain=0.0,
            fallback="",
            confidence="",
            reason="cohort_far_below_floor",
        )
        restored = CoordinationSuggestion.parse_raw(s.json())
        assert restored.ok is False
        assert restored.reason == "cohort_far_below_floor"

    def test_receipt_event(self):
        e = GateReceiptEvent(
            event="gate_decision", envelope="strict", receipt_id="rcpt_1",
            degrade="suppress", reason="epsilon_budget_exhausted",
        )
        assert GateReceiptEvent.parse_raw(e.json()).degrade == "suppress"
