"""Tests for aznetmon.models invariants."""

from datetime import datetime, timezone

import pytest

from aznetmon.models import DashboardSummary, ProbeOutcome, Protocol, Target, TargetSummary


class TestTarget:
    """Test Target identity and validation."""

    def test_icmp_target_key_is_host(self):
        target = Target.icmp("8.8.8.8")

        assert target.protocol == Protocol.ICMP
        assert target.port is None
        assert target.key == "8.8.8.8"
        assert target.address == "8.8.8.8"

    def test_tcp_target_key_includes_port(self):
        target = Target.tcp("example.com", 443)

        assert target.key == "example.com-tcp-443"
        assert target.address == "example.com:443"

    def test_icmp_port_is_discarded(self):
        """Port is meaningless for ICMP and must not split identity."""
        assert Target("host.example", Protocol.ICMP, 80) == Target.icmp("host.example")

    def test_protocol_string_is_normalized(self):
        target = Target("example.com", "TCP", 80)
        assert target.protocol is Protocol.TCP

    def test_targets_are_hashable_and_equal_by_identity(self):
        assert len({Target.tcp("a", 80), Target.tcp("a", 80), Target.tcp("a", 81)}) == 2

    @pytest.mark.parametrize("port", [None, 0, 65536, -1])
    def test_tcp_target_requires_valid_port(self, port):
        with pytest.raises(ValueError, match="1-65535"):
            Target("example.com", Protocol.TCP, port)

    def test_empty_host_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            Target.icmp("   ")


class TestProbeOutcome:
    """Test ProbeOutcome consistency rules and wire format."""

    def test_failure_forces_zero_duration(self, icmp_target):
        outcome = ProbeOutcome(target=icmp_target, success=False, duration_ms=12.0, error="boom")

        assert outcome.duration_ms == 0.0
        assert outcome.error == "boom"

    def test_success_drops_error(self, icmp_target):
        outcome = ProbeOutcome(target=icmp_target, success=True, duration_ms=5.0, error="stale")
        assert outcome.error is None

    def test_failure_always_has_error_text(self, icmp_target):
        outcome = ProbeOutcome(target=icmp_target, success=False)
        assert outcome.error

    def test_timestamp_is_timezone_aware(self, icmp_target):
        outcome = ProbeOutcome.succeeded(icmp_target, 1.0)
        assert outcome.timestamp.tzinfo is not None

    def test_icmp_message_omits_port_and_error(self, icmp_target):
        message = ProbeOutcome.succeeded(icmp_target, 12.5).to_message()

        assert message["target"] == "10.0.0.1"
        assert message["protocol"] == "ICMP"
        assert message["success"] is True
        assert message["duration_ms"] == 12.5
        assert "port" not in message
        assert "error" not in message
        assert datetime.fromisoformat(message["timestamp"])

    def test_tcp_failure_message_has_port_and_error(self, tcp_target):
        message = ProbeOutcome.failed(tcp_target, "refused").to_message()

        assert message["port"] == 443
        assert message["error"] == "refused"
        assert message["success"] is False
        assert message["duration_ms"] == 0.0


class TestTargetSummary:
    """Test incremental statistics."""

    def test_initial_state(self, icmp_target):
        summary = TargetSummary(target=icmp_target)

        assert summary.total_tests == 0
        assert summary.packet_loss_percent == 0.0
        assert summary.avg_latency_ms == 0.0
        assert summary.last_error is None

    def test_average_ignores_failures(self, icmp_target):
        summary = TargetSummary(target=icmp_target)
        durations = [10.0, 20.0, 45.0]

        summary.apply(ProbeOutcome.succeeded(icmp_target, durations[0]))
        summary.apply(ProbeOutcome.failed(icmp_target, "timeout"))
        summary.apply(ProbeOutcome.succeeded(icmp_target, durations[1]))
        summary.apply(ProbeOutcome.failed(icmp_target, "unreachable"))
        summary.apply(ProbeOutcome.succeeded(icmp_target, durations[2]))

        assert summary.avg_latency_ms == pytest.approx(sum(durations) / len(durations))
        assert summary.total_tests == 5
        assert summary.successful + summary.failed == summary.total_tests
        assert summary.packet_loss_percent == pytest.approx(40.0)
        assert summary.last_error == "unreachable"

    def test_last_error_survives_later_success(self, icmp_target):
        summary = TargetSummary(target=icmp_target)
        summary.apply(ProbeOutcome.failed(icmp_target, "timeout"))
        summary.apply(ProbeOutcome.succeeded(icmp_target, 3.0))

        assert summary.last_error == "timeout"

    def test_copy_is_independent(self, icmp_target):
        summary = TargetSummary(target=icmp_target)
        snapshot = summary.copy()
        summary.apply(ProbeOutcome.succeeded(icmp_target, 3.0))

        assert snapshot.total_tests == 0

    def test_to_dict_uses_target_key(self, tcp_target):
        summary = TargetSummary(target=tcp_target)
        summary.apply(ProbeOutcome.failed(tcp_target, "refused"))
        data = summary.to_dict()

        assert data == {
            "target": "example.com-tcp-443",
            "total_tests": 1,
            "successful": 0,
            "failed": 1,
            "packet_loss_percent": 100.0,
            "avg_latency_ms": 0.0,
            "last_error": "refused",
        }


class TestDashboardSummary:
    def test_message_envelope(self, icmp_target):
        summary = DashboardSummary(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            total_targets=1,
            online_targets=0,
            offline_targets=1,
            avg_latency_ms=0.0,
            target_stats=(TargetSummary(target=icmp_target),),
        )
        message = summary.to_message()

        assert message["type"] == "summary"
        assert message["summary"]["total_targets"] == 1
        assert message["summary"]["target_stats"][0]["target"] == "10.0.0.1"
        assert "last_error" not in message["summary"]["target_stats"][0]
