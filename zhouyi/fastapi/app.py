from __future__ import annotations

import json
import logging
import os
from collections import OrderedDict
from typing import List, Optional

import dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from zhouyi.algo.engine import CoinTossEngine
from zhouyi.algo.gua_model import Gua, validate_code
from zhouyi.algo.gua_types import YaoType
from zhouyi.algo.knowledge import HexagramNotFound, HexagramRecord, HexagramRepository
from zhouyi.algo.sequencer import DivinationSequencer
from zhouyi.logging_config import configure_logging
from .schemas import CastInput, CastResponse, HexagramOut, SessionOut, StartResponse, YaoOut


dotenv.load_dotenv()
# uvicorn 的 reload / workers 子进程只导入本模块，日志在此配置
configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="Zhouyi Coin Divination API", version="0.1.0")

repository = HexagramRepository.get()

MAX_SESSIONS = max(1, int(os.getenv("ZHOUYI_MAX_SESSIONS", "256")))

# 服务端持有的起卦句柄，按 session_id 索引，按最近使用排序
_sessions: "OrderedDict[str, DivinationSequencer]" = OrderedDict()


def _parse_lines(lines: List[object]) -> List[YaoType]:
    """将前端传入的爻表示（名字或数值）转换为 `YaoType` 列表。"""
    parsed: List[YaoType] = []
    for item in lines:
        if isinstance(item, int):
            try:
                parsed.append(YaoType(item))
            except ValueError:
                raise ValueError(f"无效的爻值: {item}")
        elif isinstance(item, str):
            try:
                parsed.append(YaoType[item])
            except KeyError:
                try:
                    parsed.append(YaoType(int(item)))
                except ValueError:
                    raise ValueError(f"无效的爻名: {item}")
        else:
            raise ValueError(f"不支持的爻类型: {type(item)}")
    if len(parsed) != 6:
        raise ValueError("卦必须有六爻")
    return parsed


def _hexagram_out(record: Optional[HexagramRecord]) -> Optional[HexagramOut]:
    if record is None:
        return None
    return HexagramOut(**record.to_dict())


def _cast_response(gua: Gua) -> CastResponse:
    record = repository.find(gua.code)
    changed = gua.changed()
    return CastResponse(
        found=record is not None,
        code=gua.code,
        lines=[YaoOut(name=y.name, value=y.value, moving=y.is_moving) for y in gua.yaos],
        moving=sorted(gua.moving),
        changed_code=changed.code,
        hexagram=_hexagram_out(record),
        changed=_hexagram_out(repository.find(changed.code)) if gua.has_moving else None,
    )


def _session_out(sequencer: DivinationSequencer) -> SessionOut:
    data = sequencer.session.to_dict()
    return SessionOut(session_id=sequencer.session_id, **data)


def _new_sequencer() -> DivinationSequencer:
    return DivinationSequencer(repository)


def _get_sequencer(session_id: str) -> DivinationSequencer:
    sequencer = _sessions.get(session_id)
    if sequencer is None:
        raise HTTPException(status_code=404, detail=f"未找到会话: {session_id}")
    _sessions.move_to_end(session_id)
    return sequencer


def _store_session(sequencer: DivinationSequencer) -> None:
    """登记新句柄；超过上限时先淘汰最久未用的空闲或已结束会话，没有则淘汰最久未用的。"""
    _sessions[sequencer.session_id] = sequencer
    while len(_sessions) > MAX_SESSIONS:
        victim = next(
            (sid for sid, s in _sessions.items() if sid != sequencer.session_id and not s.in_progress), None
        )
        if victim is None:
            victim = next(iter(_sessions))
        evicted = _sessions.pop(victim)
        evicted.reset()
        logger.info("会话数已达上限，淘汰会话", extra={"session_id": victim, "count": len(_sessions)})


@app.get("/", response_class=JSONResponse)
async def health():
    return {"status": "ok", "hexagrams": len(repository)}


@app.get("/api/hexagrams/{code}", response_model=HexagramOut)
async def get_hexagram(code: str):
    try:
        validate_code(code)
        record = repository.lookup(code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HexagramNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _hexagram_out(record)


@app.post("/api/cast", response_model=CastResponse)
async def cast(input: CastInput):
    """即时起卦：传入 `lines` 则以其为准（空列表同样校验），否则直接掷六爻。"""
    if input.lines is not None:
        try:
            gua = Gua(_parse_lines(input.lines))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _cast_response(gua)

    return _cast_response(Gua(CoinTossEngine().six_yaos()))


@app.post("/api/divine")
async def divine(request: Request):
    """实时起卦：以 Server-Sent Events (SSE) 的格式按时序推送事件。"""
    sequencer = _new_sequencer()

    async def event_generator():
        async for event in sequencer.stream():
            # 客户端断开时放弃本次会话
            if await request.is_disconnected():
                sequencer.reset()
                break
            yield f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@app.post("/api/sessions", response_model=SessionOut, status_code=201)
async def create_session():
    sequencer = _new_sequencer()
    _store_session(sequencer)
    logger.info("已创建起卦会话", extra={"session_id": sequencer.session_id})
    return _session_out(sequencer)


@app.post("/api/sessions/{session_id}/start", response_model=StartResponse)
async def start_session(session_id: str):
    """开始起卦；会话进行中时请求被忽略，返回 `started: false`。"""
    sequencer = _get_sequencer(session_id)
    sequencer.poll()
    started = sequencer.start()
    return StartResponse(started=started, session=_session_out(sequencer))


@app.get("/api/sessions/{session_id}", response_model=SessionOut)
async def get_session(session_id: str):
    sequencer = _get_sequencer(session_id)
    sequencer.poll()
    return _session_out(sequencer)


@app.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str):
    sequencer = _sessions.pop(session_id, None)
    if sequencer is None:
        raise HTTPException(status_code=404, detail=f"未找到会话: {session_id}")
    sequencer.reset()
