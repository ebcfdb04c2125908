"""Unit tests for the autoscale advisor."""

from __future__ import annotations

import msgspec
import pytest

from tender.autoscale import (
    IDLE_SAMPLE,
    AutoscaleAdvisor,
    AutoscaleConfig,
    ScaleAction,
    UtilizationSample,
    UtilizationSampler,
)
from tender.launcher import ConcurrencyCeiling
from tender.ledger import DispatchLedger
from tests.helpers.event_builders import canonical_event
from tests.helpers.femtologging_capture import capture_femto_logs

HOT = UtilizationSample(cpu_pct=90.0, mem_pct=40.0)
COOL = UtilizationSample(cpu_pct=30.0, mem_pct=40.0)
AT_TARGET = UtilizationSample(cpu_pct=70.0, mem_pct=40.0)
MEM_HOT = UtilizationSample(cpu_pct=10.0, mem_pct=95.0)


class _FixedSampler:
    def __init__(self, sample: UtilizationSample | None) -> None:
        self.sample_value = sample
        self.calls = 0

    async def sample(self) -> UtilizationSample | None:
        self.calls += 1
        return self.sample_value


def _advisor(
    ledger: DispatchLedger,
    *,
    initial: int = 3,
    minimum: int = 1,
    maximum: int = 5,
    sampler: UtilizationSampler | None = None,
) -> AutoscaleAdvisor:
    config = AutoscaleConfig(
        minimum=minimum, maximum=maximum, initial=initial, target_cpu_pct=70.0
    )
    ceiling = ConcurrencyCeiling(
        config.initial_ceiling, minimum=minimum, maximum=maximum
    )
    return AutoscaleAdvisor(config, ceiling, ledger, sampler=sampler)


async def _backlog(ledger: DispatchLedger, size: int) -> None:
    for index in range(size):
        await ledger.admit(canonical_event(sequence_token=f"{index:04d}"))


class TestRecommend:
    """Pure ceiling recommendation rules."""

    @pytest.mark.parametrize(
        ("current", "sample", "backlog", "in_flight", "expected"),
        [
            (3, COOL, 0, 0, (1, ScaleAction.IDLE)),
            (3, HOT, 4, 3, (2, ScaleAction.DECREASE)),
            (1, HOT, 4, 1, (1, ScaleAction.DECREASE)),
            (3, MEM_HOT, 4, 3, (2, ScaleAction.DECREASE)),
            (3, COOL, 4, 3, (4, ScaleAction.INCREASE)),
            (5, COOL, 4, 5, (5, ScaleAction.INCREASE)),
            (3, COOL, 0, 2, (3, ScaleAction.HOLD)),
            (3, AT_TARGET, 4, 3, (3, ScaleAction.HOLD)),
        ],
    )
    def test_rules(
        self,
        ledger: DispatchLedger,
        current: int,
        sample: UtilizationSample,
        backlog: int,
        in_flight: int,
        expected: tuple[int, ScaleAction],
    ) -> None:
        """Each rule fires under its conditions and results are clamped."""
        advisor = _advisor(ledger)
        assert advisor.recommend(current, sample, backlog, in_flight) == expected


class TestTick:
    """Ceiling updates driven by the ledger."""

    @pytest.mark.asyncio
    async def test_hot_fleet_with_backlog_scales_down(
        self, ledger: DispatchLedger
    ) -> None:
        """90% CPU against a 70% target lowers the ceiling despite backlog."""
        advisor = _advisor(ledger, initial=2, minimum=1)
        await _backlog(ledger, 3)

        first = await advisor.tick(HOT)
        second = await advisor.tick(HOT)

        assert (first.previous, first.ceiling) == (2, 1)
        assert first.action is ScaleAction.DECREASE
        assert first.backlog == 3
        assert second.ceiling == 1
        assert not second.changed

    @pytest.mark.asyncio
    async def test_idle_drops_to_minimum(self, ledger: DispatchLedger) -> None:
        """No backlog and nothing running goes straight to the floor."""
        advisor = _advisor(ledger, initial=4, minimum=0)
        decision = await advisor.tick(COOL)
        assert decision.ceiling == 0
        assert decision.action is ScaleAction.IDLE

    @pytest.mark.asyncio
    async def test_backlog_without_telemetry_scales_up(
        self, ledger: DispatchLedger
    ) -> None:
        """With no sample at all the fleet is treated as idle."""
        advisor = _advisor(ledger, initial=1)
        await _backlog(ledger, 2)

        decision = await advisor.tick()

        assert decision.sample == IDLE_SAMPLE
        assert decision.action is ScaleAction.INCREASE
        assert decision.ceiling == 2

    @pytest.mark.asyncio
    async def test_pushed_sample_beats_sampler(self, ledger: DispatchLedger) -> None:
        """The sampler is consulted only when nothing was pushed."""
        sampler = _FixedSampler(COOL)
        advisor = _advisor(ledger, sampler=sampler)
        await _backlog(ledger, 1)

        advisor.submit(HOT)
        pushed = await advisor.tick()
        assert pushed.sample == HOT
        assert sampler.calls == 0
        assert advisor.latest_sample == HOT

    @pytest.mark.asyncio
    async def test_sampler_used_without_push(self, ledger: DispatchLedger) -> None:
        """A pull sampler supplies the sample when none was pushed."""
        sampler = _FixedSampler(HOT)
        advisor = _advisor(ledger, sampler=sampler)
        await _backlog(ledger, 1)

        decision = await advisor.tick()

        assert sampler.calls == 1
        assert decision.action is ScaleAction.DECREASE

    @pytest.mark.asyncio
    async def test_change_logged_at_info(self, ledger: DispatchLedger) -> None:
        """Effective changes are logged with the inputs that caused them."""
        advisor = _advisor(ledger, initial=3)
        await _backlog(ledger, 1)

        with capture_femto_logs("tender.autoscale.advisor") as capture:
            await advisor.tick(HOT)
            log = capture.wait_for_message("autoscale.ceiling.changed")

        assert log.level == "INFO"
        assert "previous=3 ceiling=2 action=decrease" in log.message
        assert "cpu_pct=90.0" in log.message


class TestAutoscaleConfig:
    """Configuration validation."""

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"minimum": -1}, "minimum"),
            ({"minimum": 5, "maximum": 2}, "below minimum"),
            ({"step": 0}, "step"),
            ({"target_cpu_pct": 0}, "target_cpu_pct"),
            ({"target_mem_pct": 120}, "target_mem_pct"),
            ({"interval_s": 0}, "interval_s"),
        ],
    )
    def test_rejects_invalid_values(
        self, kwargs: dict[str, float], match: str
    ) -> None:
        """Inconsistent settings fail at construction."""
        with pytest.raises(ValueError, match=match):
            AutoscaleConfig(**kwargs)  # type: ignore[arg-type]

    def test_initial_ceiling_is_clamped(self) -> None:
        """initial is bounded by minimum and maximum."""
        assert AutoscaleConfig(minimum=2, maximum=4, initial=9).initial_ceiling == 4
        assert AutoscaleConfig(minimum=2, maximum=4).initial_ceiling == 2

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """TENDER_CEILING_* and target variables are honoured."""
        monkeypatch.setenv("TENDER_CEILING_MIN", "1")
        monkeypatch.setenv("TENDER_CEILING_MAX", "6")
        monkeypatch.setenv("TENDER_CEILING_INITIAL", "3")
        monkeypatch.setenv("TENDER_TARGET_CPU_PCT", "65")
        monkeypatch.setenv("TENDER_CEILING_STEP", "2")
        monkeypatch.delenv("TENDER_TARGET_MEM_PCT", raising=False)
        monkeypatch.delenv("TENDER_AUTOSCALE_INTERVAL_S", raising=False)

        config = AutoscaleConfig.from_env()

        assert (config.minimum, config.maximum, config.initial) == (1, 6, 3)
        assert config.target_cpu_pct == 65.0
        assert config.target_mem_pct == 80.0
        assert config.step == 2

    def test_from_env_rejects_garbage(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Malformed numbers are reported with the variable name."""
        monkeypatch.setenv("TENDER_CEILING_MAX", "lots")
        with pytest.raises(ValueError, match="TENDER_CEILING_MAX"):
            AutoscaleConfig.from_env()


def test_sample_rejects_out_of_range_percent() -> None:
    """Utilisation is validated when decoded from JSON."""
    with pytest.raises(msgspec.ValidationError):
        msgspec.json.decode(
            b'{"cpu_pct": 140, "mem_pct": 10}', type=UtilizationSample
        )
