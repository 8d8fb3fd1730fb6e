from __future__ import annotations

import argparse
import asyncio

try:
    from zhouyi.algo import DivinationSequencer, LineRevealed, ManualClock, NotFound, Resolved, ThinkingStarted, TossStarted
except ModuleNotFoundError:
    import sys
    from pathlib import Path

    project_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(project_root))
    from zhouyi.algo import DivinationSequencer, LineRevealed, ManualClock, NotFound, Resolved, ThinkingStarted, TossStarted

from zhouyi.logging_config import configure_logging


LINE_GLYPHS = {6: "▅▅  ▅▅ ×", 7: "▅▅▅▅▅▅", 8: "▅▅  ▅▅", 9: "▅▅▅▅▅▅ ○"}


def render(event) -> None:
    if isinstance(event, TossStarted):
        print(f"第{event.index + 1}爻 掷钱中...")
    elif isinstance(event, LineRevealed):
        print(f"  {LINE_GLYPHS[event.value]}  ({event.value})")
    elif isinstance(event, ThinkingStarted):
        print("思考中...")
    elif isinstance(event, Resolved):
        print(f"\n{event.record.name}（第{event.record.index}卦）")
        print("【卦辭】", event.record.judgment)
        print("【白話解讀】", event.record.explanation)
        if event.changed is not None:
            print("之卦:", event.changed.name, "动爻:", [k + 1 for k in event.moving])
    elif isinstance(event, NotFound):
        print("未找到卦象:", event.code)


async def run_demo(instant: bool) -> None:
    sequencer = DivinationSequencer(clock=ManualClock() if instant else None)
    sequencer.subscribe(render)
    session = await sequencer.run()
    print("\n六爻:", list(session.lines))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="三钱起卦演示")
    parser.add_argument("--instant", action="store_true", help="不等待，直接跑完时序")
    parser.add_argument("--log-level", default="warning")
    args = parser.parse_args()

    configure_logging(args.log_level)
    asyncio.run(run_demo(args.instant))
