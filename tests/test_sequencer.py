from __future__ import annotations

import asyncio
import json
import logging

import pytest

from zhouyi.algo import (
    DivinationSession,
    HexagramRepository,
    LineAccumulator,
    LineRevealed,
    NotFound,
    Phase,
    Resolved,
    SessionReset,
    ThinkingStarted,
    TossStarted,
    transition,
)
from zhouyi.algo.knowledge import DEFAULT_KNOWLEDGE_FILE

from conftest import engine_for_lines


TOTAL_DURATION = 6 * (1.5 + 0.5) + 2.0


def _repository_without(code: str) -> HexagramRepository:
    data = json.loads(DEFAULT_KNOWLEDGE_FILE.read_text(encoding="utf-8"))
    del data[code]
    return HexagramRepository.from_mapping(data, strict=False)


def test_initial_state_is_idle(make_sequencer):
    sequencer = make_sequencer()
    assert sequencer.phase is Phase.IDLE
    assert not sequencer.in_progress
    assert sequencer.remaining() is None
    assert sequencer.poll() == []


def test_start_enters_first_toss(make_sequencer):
    sequencer = make_sequencer([7] * 6)
    events = []
    sequencer.subscribe(events.append)

    assert sequencer.start() is True
    assert sequencer.phase is Phase.TOSSING
    assert sequencer.session.line_index == 0
    assert sequencer.in_progress
    assert events == [TossStarted(index=0)]


def test_phase_timings(make_sequencer, clock):
    sequencer = make_sequencer([7, 8, 7, 8, 7, 8])
    sequencer.start()

    clock.advance(1.25)
    assert sequencer.poll() == []
    assert sequencer.lines == ()

    clock.advance(0.25)
    assert sequencer.poll() == [LineRevealed(index=0, value=7)]
    assert sequencer.phase is Phase.REVEAL_PAUSE
    assert sequencer.remaining() == pytest.approx(0.5)

    clock.advance(0.5)
    assert sequencer.poll() == [TossStarted(index=1)]
    assert sequencer.phase is Phase.TOSSING
    assert sequencer.session.line_index == 1


def test_full_sequence_event_order(make_sequencer, clock):
    lines = [6, 7, 8, 9, 7, 8]
    sequencer = make_sequencer(lines)
    events = []
    sequencer.subscribe(events.append)

    sequencer.start()
    clock.advance(TOTAL_DURATION - 2.0)
    sequencer.poll()
    assert sequencer.phase is Phase.THINKING
    assert sequencer.in_progress
    assert isinstance(events[-1], ThinkingStarted)

    clock.advance(2.0)
    sequencer.poll()
    assert sequencer.phase is Phase.RESOLVED
    assert not sequencer.in_progress

    expected_prefix = []
    for index, value in enumerate(lines):
        expected_prefix.append(TossStarted(index=index))
        expected_prefix.append(LineRevealed(index=index, value=value))
    assert events[:12] == expected_prefix
    assert events[12] == ThinkingStarted()
    resolved = events[13]
    assert isinstance(resolved, Resolved)
    assert resolved.record.code == "010110"
    assert resolved.lines == tuple(lines)
    assert resolved.moving == (0, 3)
    assert resolved.changed is not None
    assert resolved.changed.code == "110010"
    assert len(events) == 14


def test_late_poll_catches_up_deterministically(make_sequencer, clock):
    sequencer = make_sequencer([7] * 6)
    sequencer.start()
    clock.advance(100.0)
    events = sequencer.poll()
    assert sequencer.phase is Phase.RESOLVED
    assert sequencer.session.entered_at == pytest.approx(TOTAL_DURATION)
    assert [e.kind for e in events].count("line_revealed") == 6


def test_reveal_is_observed_before_next_draw(make_sequencer, clock):
    sequencer = make_sequencer([7] * 6)
    observed = []

    def listener(event):
        if isinstance(event, LineRevealed):
            # 显示事件发布时，下一爻尚未抽取
            observed.append((event.index, len(sequencer._accumulator)))

    sequencer.subscribe(listener)
    sequencer.start()
    clock.advance(100.0)
    sequencer.poll()
    assert observed == [(i, i + 1) for i in range(6)]


def test_all_heads_resolves_to_all_yang(make_sequencer):
    sequencer = make_sequencer(coins=[3])
    sequencer.start()
    events = sequencer.fast_forward()

    assert sequencer.lines == (9,) * 6
    assert sequencer.session.gua.code == "111111"
    assert sequencer.session.hexagram.code == "111111"
    assert sequencer.session.hexagram.name == "乾為天"
    resolved = events[-1]
    assert isinstance(resolved, Resolved)
    assert resolved.moving == (0, 1, 2, 3, 4, 5)
    assert resolved.changed.code == "000000"


def test_all_tails_resolves_to_all_yin(make_sequencer):
    sequencer = make_sequencer(coins=[2])
    sequencer.start()
    sequencer.fast_forward()

    assert sequencer.lines == (6,) * 6
    assert sequencer.session.gua.code == "000000"
    assert sequencer.session.hexagram.name == "坤為地"


def test_second_start_is_ignored_while_in_progress(make_sequencer, clock):
    sequencer = make_sequencer([9, 8, 7, 6, 9, 8])
    events = []
    sequencer.subscribe(events.append)
    sequencer.start()
    clock.advance(1.5 + 0.5 + 1.5)
    sequencer.poll()
    before = sequencer.session
    assert before.lines == (9, 8)
    emitted = len(events)

    assert sequencer.start() is False
    assert sequencer.session == before
    assert len(events) == emitted

    sequencer.fast_forward()
    assert sequencer.lines == (9, 8, 7, 6, 9, 8)


@pytest.mark.parametrize("advance", [0.0, 3.0, TOTAL_DURATION - 0.1])
def test_start_rejected_in_every_active_phase(make_sequencer, clock, advance):
    sequencer = make_sequencer([7] * 6)
    sequencer.start()
    clock.advance(advance)
    sequencer.poll()
    assert sequencer.in_progress
    assert sequencer.start() is False


def test_restart_after_resolved_resets_first(make_sequencer, clock):
    sequencer = make_sequencer(coins=[3])
    sequencer.start()
    sequencer.fast_forward()
    events = []
    sequencer.subscribe(events.append)

    assert sequencer.start() is True
    assert events == [SessionReset(), TossStarted(index=0)]
    assert sequencer.lines == ()
    assert sequencer.session.hexagram is None


def test_lookup_miss_ends_in_not_found(make_sequencer, caplog):
    repo = _repository_without("111111")
    sequencer = make_sequencer(coins=[3], repo=repo)
    sequencer.start()
    with caplog.at_level(logging.ERROR, logger="zhouyi"):
        events = sequencer.fast_forward()

    assert sequencer.phase is Phase.NOT_FOUND
    assert not sequencer.in_progress
    assert sequencer.session.hexagram is None
    assert events[-1] == NotFound(code="111111")
    assert not any(isinstance(e, Resolved) for e in events)
    assert any(getattr(r, "code", None) == "111111" for r in caplog.records)

    # 仍可重新起卦
    assert sequencer.start() is True
    assert sequencer.phase is Phase.TOSSING


def test_reset_abandons_session(make_sequencer, clock):
    sequencer = make_sequencer([7] * 6)
    events = []
    sequencer.subscribe(events.append)
    sequencer.start()
    clock.advance(2.0)
    sequencer.poll()

    sequencer.reset()
    assert sequencer.phase is Phase.IDLE
    assert sequencer.lines == ()
    assert events[-1] == SessionReset()
    clock.advance(100.0)
    assert sequencer.poll() == []


def test_reset_when_idle_is_silent(make_sequencer):
    sequencer = make_sequencer()
    events = []
    sequencer.subscribe(events.append)
    sequencer.reset()
    assert events == []


def test_unsubscribe_stops_delivery(make_sequencer):
    sequencer = make_sequencer([7] * 6)
    events = []
    unsubscribe = sequencer.subscribe(events.append)
    unsubscribe()
    sequencer.start()
    assert events == []


def test_transition_is_noop_before_deadline(repository):
    acc = LineAccumulator(engine_for_lines([7] * 6))
    session = DivinationSession(phase=Phase.TOSSING, entered_at=10.0)
    assert transition(session, 11.0, accumulator=acc, repository=repository) == (session, [])
    assert acc.values == ()


def test_transition_from_terminal_phase_does_nothing(repository):
    acc = LineAccumulator(engine_for_lines([7] * 6))
    session = DivinationSession(phase=Phase.RESOLVED)
    assert transition(session, 1e9, accumulator=acc, repository=repository) == (session, [])


def test_thinking_with_short_sequence_fails_fast(repository):
    acc = LineAccumulator(engine_for_lines([7] * 6))
    session = DivinationSession(phase=Phase.THINKING, line_index=5, lines=(7, 7, 7))
    with pytest.raises(ValueError, match="六爻"):
        transition(session, 10.0, accumulator=acc, repository=repository)


def test_session_snapshot_to_dict(make_sequencer):
    sequencer = make_sequencer(coins=[3])
    sequencer.start()
    sequencer.fast_forward()
    data = sequencer.session.to_dict()
    assert data["phase"] == "resolved"
    assert data["lines"] == [9] * 6
    assert data["code"] == "111111"
    assert data["moving"] == [0, 1, 2, 3, 4, 5]
    assert data["hexagram"]["name"] == "乾為天"
    assert data["in_progress"] is False


def test_event_to_dict():
    assert LineRevealed(index=2, value=9).to_dict() == {"event": "line_revealed", "index": 2, "value": 9}
    assert ThinkingStarted().to_dict() == {"event": "thinking_started"}


def test_fast_forward_requires_manual_clock(repository):
    from zhouyi.algo import DivinationSequencer, MonotonicClock

    sequencer = DivinationSequencer(repository, clock=MonotonicClock())
    with pytest.raises(TypeError):
        sequencer.fast_forward()


def test_async_run_on_manual_clock(make_sequencer, clock):
    sequencer = make_sequencer([6, 7, 8, 9, 7, 8])
    session = asyncio.run(sequencer.run())
    assert session.phase is Phase.RESOLVED
    assert session.lines == (6, 7, 8, 9, 7, 8)
    assert clock.now() == pytest.approx(TOTAL_DURATION)


def test_async_stream_sleeps_between_phases(make_sequencer, clock):
    sequencer = make_sequencer(coins=[2])
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        clock.advance(seconds)

    async def collect():
        return [event async for event in sequencer.stream(sleep=fake_sleep)]

    events = asyncio.run(collect())
    assert events[0] == TossStarted(index=0)
    assert isinstance(events[-1], Resolved)
    assert sleeps == pytest.approx([1.5, 0.5] * 6 + [2.0])


def test_changed_hexagram_miss_is_logged(make_sequencer, caplog):
    repo = _repository_without("000000")
    sequencer = make_sequencer(coins=[3], repo=repo)
    sequencer.start()
    with caplog.at_level(logging.ERROR, logger="zhouyi"):
        events = sequencer.fast_forward()

    resolved = events[-1]
    assert isinstance(resolved, Resolved)
    assert resolved.record.code == "111111"
    assert resolved.changed is None
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert [getattr(r, "code", None) for r in errors] == ["000000"]


def test_static_hexagram_logs_no_changed_miss(make_sequencer, caplog):
    repo = _repository_without("000000")
    sequencer = make_sequencer([7] * 6, repo=repo)
    sequencer.start()
    with caplog.at_level(logging.ERROR, logger="zhouyi"):
        sequencer.fast_forward()
    assert sequencer.phase is Phase.RESOLVED
    assert not [r for r in caplog.records if r.levelno == logging.ERROR]


def test_line_reveal_log_carries_value(make_sequencer, caplog):
    sequencer = make_sequencer([6, 7, 8, 9, 7, 8])
    sequencer.start()
    with caplog.at_level(logging.DEBUG, logger="zhouyi"):
        sequencer.fast_forward()
    values = [r.value for r in caplog.records if hasattr(r, "value")]
    assert values == [6, 7, 8, 9, 7, 8]
