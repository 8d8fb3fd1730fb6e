"""起卦时序状态机。

阶段依次为：掷钱 -> 显爻停顿 -> ...（共六爻）-> 思考 -> 得卦 / 未找到。
每次状态转移都是 `transition(session, now, ...)` 的结果，时间由注入的时钟决定，
因此既可以用真实时钟异步驱动，也可以在测试中手动推进。
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Dict, List, Optional, Tuple

from .clock import Clock, ManualClock, MonotonicClock
from .constants import LINE_COUNT, REVEAL_PAUSE, THINKING_DURATION, TOSS_DURATION
from .engine import CoinTossEngine, LineAccumulator
from .gua_model import Gua
from .knowledge import HexagramNotFound, HexagramRecord, HexagramRepository


logger = logging.getLogger(__name__)


class Phase(Enum):
    IDLE = "idle"
    TOSSING = "tossing"
    REVEAL_PAUSE = "reveal_pause"
    THINKING = "thinking"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"


ACTIVE_PHASES = frozenset({Phase.TOSSING, Phase.REVEAL_PAUSE, Phase.THINKING})

PHASE_DURATIONS: Dict[Phase, float] = {
    Phase.TOSSING: TOSS_DURATION,
    Phase.REVEAL_PAUSE: REVEAL_PAUSE,
    Phase.THINKING: THINKING_DURATION,
}


@dataclass(frozen=True)
class DivinationEvent:
    kind: ClassVar[str] = "event"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.kind, **asdict(self)}


@dataclass(frozen=True)
class TossStarted(DivinationEvent):
    kind: ClassVar[str] = "toss_started"
    index: int


@dataclass(frozen=True)
class LineRevealed(DivinationEvent):
    kind: ClassVar[str] = "line_revealed"
    index: int
    value: int


@dataclass(frozen=True)
class ThinkingStarted(DivinationEvent):
    kind: ClassVar[str] = "thinking_started"


@dataclass(frozen=True)
class Resolved(DivinationEvent):
    kind: ClassVar[str] = "resolved"
    record: HexagramRecord
    lines: Tuple[int, ...]
    moving: Tuple[int, ...]
    changed: Optional[HexagramRecord] = None


@dataclass(frozen=True)
class NotFound(DivinationEvent):
    kind: ClassVar[str] = "not_found"
    code: str


@dataclass(frozen=True)
class SessionReset(DivinationEvent):
    kind: ClassVar[str] = "session_reset"


Listener = Callable[[DivinationEvent], None]


@dataclass(frozen=True)
class DivinationSession:
    """一次起卦的状态快照；每次转移都产生新的快照。"""

    phase: Phase = Phase.IDLE
    line_index: int = 0
    lines: Tuple[int, ...] = ()
    entered_at: float = 0.0
    gua: Optional[Gua] = field(default=None, compare=False)
    hexagram: Optional[HexagramRecord] = None

    @property
    def in_progress(self) -> bool:
        return self.phase in ACTIVE_PHASES

    @property
    def due_at(self) -> Optional[float]:
        duration = PHASE_DURATIONS.get(self.phase)
        if duration is None:
            return None
        return self.entered_at + duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "line_index": self.line_index,
            "lines": list(self.lines),
            "in_progress": self.in_progress,
            "code": self.gua.code if self.gua else None,
            "moving": sorted(self.gua.moving) if self.gua else [],
            "hexagram": self.hexagram.to_dict() if self.hexagram else None,
        }


def transition(
    session: DivinationSession,
    now: float,
    *,
    accumulator: LineAccumulator,
    repository: HexagramRepository,
) -> Tuple[DivinationSession, List[DivinationEvent]]:
    """若当前阶段已到期，则推进一步，返回 (新状态, 产生的事件)；否则原样返回。

    新阶段的起始时间取上一阶段的到期时间，而非 `now`，迟到的轮询也能得到确定的时序。
    """
    due_at = session.due_at
    if due_at is None or now < due_at:
        return session, []

    if session.phase is Phase.TOSSING:
        value = accumulator.advance()
        assert value is not None, "六爻已满，不能再掷"
        lines = session.lines + (value,)
        assert len(lines) == session.line_index + 1, f"第{session.line_index + 1}爻的顺序不合法"
        return (
            replace(session, phase=Phase.REVEAL_PAUSE, lines=lines, entered_at=due_at),
            [LineRevealed(index=session.line_index, value=value)],
        )

    if session.phase is Phase.REVEAL_PAUSE:
        next_index = session.line_index + 1
        if next_index < LINE_COUNT:
            return (
                replace(session, phase=Phase.TOSSING, line_index=next_index, entered_at=due_at),
                [TossStarted(index=next_index)],
            )
        return replace(session, phase=Phase.THINKING, entered_at=due_at), [ThinkingStarted()]

    # Phase.THINKING
    gua = Gua(session.lines)
    try:
        record = repository.lookup(gua.code)
    except HexagramNotFound:
        return replace(session, phase=Phase.NOT_FOUND, gua=gua, entered_at=due_at), [NotFound(code=gua.code)]

    changed = repository.find(gua.changed().code) if gua.has_moving else None
    resolved = Resolved(record=record, lines=gua.lines, moving=tuple(sorted(gua.moving)), changed=changed)
    return replace(session, phase=Phase.RESOLVED, gua=gua, hexagram=record, entered_at=due_at), [resolved]


class DivinationSequencer:
    """持有单个起卦会话的句柄；同一句柄同时最多只有一个进行中的会话。

    展示层通过 `subscribe()` 接收事件，只能通过 `start()`（以及可选的 `reset()`）改变状态。
    """

    def __init__(
        self,
        repository: HexagramRepository | None = None,
        *,
        engine: CoinTossEngine | None = None,
        clock: Clock | None = None,
        session_id: str | None = None,
    ) -> None:
        self.repository = repository if repository is not None else HexagramRepository.get()
        self.engine = engine or CoinTossEngine()
        self.clock = clock or MonotonicClock()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._session = DivinationSession()
        self._accumulator: Optional[LineAccumulator] = None
        self._listeners: List[Listener] = []

    @property
    def session(self) -> DivinationSession:
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase

    @property
    def in_progress(self) -> bool:
        return self._session.in_progress

    @property
    def lines(self) -> Tuple[int, ...]:
        return self._session.lines

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> bool:
        """开始起卦；若已有进行中的会话则忽略并返回 False。"""
        if self.in_progress:
            logger.debug("起卦进行中，忽略新的开始请求", extra=self._log_extra())
            return False

        events: List[DivinationEvent] = []
        if self._session.phase is not Phase.IDLE:
            self._session = DivinationSession()
            events.append(SessionReset())

        self._accumulator = self.engine.accumulator()
        self._session = DivinationSession(phase=Phase.TOSSING, line_index=0, entered_at=self.clock.now())
        events.append(TossStarted(index=0))
        logger.debug("开始起卦", extra=self._log_extra())
        self._publish(events)
        return True

    def reset(self) -> None:
        """放弃当前会话，回到空闲状态。"""
        if self._session.phase is Phase.IDLE:
            return
        self._session = DivinationSession()
        self._accumulator = None
        logger.debug("会话已重置", extra=self._log_extra())
        self._publish([SessionReset()])

    def remaining(self) -> Optional[float]:
        due_at = self._session.due_at
        if due_at is None:
            return None
        return max(0.0, due_at - self.clock.now())

    def poll(self) -> List[DivinationEvent]:
        """推进所有已到期的阶段，依次发布并返回产生的事件。"""
        emitted: List[DivinationEvent] = []
        if self._accumulator is None:
            return emitted

        now = self.clock.now()
        while True:
            session, events = transition(
                self._session, now, accumulator=self._accumulator, repository=self.repository
            )
            if not events:
                break
            self._session = session
            self._log_transition(events)
            # 逐次发布，保证第 i 爻的显示事件先于第 i+1 爻的抽取
            self._publish(events)
            emitted.extend(events)
        return emitted

    def fast_forward(self) -> List[DivinationEvent]:
        """在手动时钟上直接跑完当前会话，不实际等待。"""
        if not isinstance(self.clock, ManualClock):
            raise TypeError("fast_forward 仅支持 ManualClock")
        emitted: List[DivinationEvent] = []
        while self.in_progress:
            self.clock.advance(self.remaining() or 0.0)
            emitted.extend(self.poll())
        return emitted

    async def stream(
        self, sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ) -> AsyncIterator[DivinationEvent]:
        """开始（或接管进行中的）会话，并按时序异步产出事件，直到会话结束。

        手动时钟下默认以推进时钟代替真实等待。
        """
        if sleep is None:
            sleep = self._advance_clock if isinstance(self.clock, ManualClock) else asyncio.sleep
        pending: List[DivinationEvent] = []
        unsubscribe = self.subscribe(pending.append)
        try:
            self.start()
            while True:
                while pending:
                    yield pending.pop(0)
                if not self.in_progress:
                    break
                await sleep(self.remaining() or 0.0)
                self.poll()
        finally:
            unsubscribe()

    async def run(self, sleep: Optional[Callable[[float], Awaitable[Any]]] = None) -> DivinationSession:
        async for _ in self.stream(sleep=sleep):
            pass
        return self._session

    async def _advance_clock(self, seconds: float) -> None:
        self.clock.advance(seconds)  # type: ignore[attr-defined]

    def _publish(self, events: List[DivinationEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                listener(event)

    def _log_transition(self, events: List[DivinationEvent]) -> None:
        for event in events:
            if isinstance(event, NotFound):
                logger.error(
                    "卦象知识库缺少卦码，本次起卦无结果",
                    extra={**self._log_extra(), "code": event.code},
                )
            elif isinstance(event, Resolved):
                logger.info(
                    "得卦 %s", event.record.name, extra={**self._log_extra(), "code": event.record.code}
                )
                if event.moving and event.changed is None:
                    logger.error(
                        "卦象知识库缺少之卦卦码",
                        extra={**self._log_extra(), "code": self._session.gua.changed().code},
                    )
            elif isinstance(event, LineRevealed):
                logger.debug(
                    "阶段转移: %s", event.kind, extra={**self._log_extra(), "value": event.value}
                )
            else:
                logger.debug("阶段转移: %s", event.kind, extra=self._log_extra())

    def _log_extra(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "phase": self._session.phase.value,
            "line_index": self._session.line_index,
        }
