from .coin import CoinTosser, draw_line, line_distribution, sample_line_values, toss_coins
from .clock import Clock, ManualClock, MonotonicClock
from .engine import CoinTossEngine, LineAccumulator
from .gua_model import Gua, encode_lines, validate_code
from .gua_types import YaoType
from .knowledge import HexagramNotFound, HexagramRecord, HexagramRepository, KnowledgeBaseError
from .sequencer import (
    DivinationEvent,
    DivinationSequencer,
    DivinationSession,
    LineRevealed,
    NotFound,
    Phase,
    Resolved,
    SessionReset,
    ThinkingStarted,
    TossStarted,
    transition,
)

__all__ = [
    "CoinTosser",
    "draw_line",
    "toss_coins",
    "sample_line_values",
    "line_distribution",
    "Clock",
    "ManualClock",
    "MonotonicClock",
    "CoinTossEngine",
    "LineAccumulator",
    "Gua",
    "encode_lines",
    "validate_code",
    "YaoType",
    "HexagramRecord",
    "HexagramRepository",
    "HexagramNotFound",
    "KnowledgeBaseError",
    "Phase",
    "DivinationSession",
    "DivinationSequencer",
    "DivinationEvent",
    "TossStarted",
    "LineRevealed",
    "ThinkingStarted",
    "Resolved",
    "NotFound",
    "SessionReset",
    "transition",
]
