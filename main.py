#!/usr/bin/env python3
"""启动脚本：通过 `python main.py --host 127.0.0.1 --port 8000` 启动 FastAPI 后端。

示例：
    python main.py --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import argparse
import os
import sys

import dotenv


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run the Zhouyi coin divination FastAPI server with uvicorn.")
    p.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    p.add_argument("--reload", action="store_true", help="Enable auto-reload (for development)")
    p.add_argument("--workers", type=int, default=1, help="Number of worker processes (uvicorn) to run")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (debug, info, warning, error); defaults to ZHOUYI_LOG_LEVEL or info",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    dotenv.load_dotenv()
    args = build_parser().parse_args(argv)
    log_level = (args.log_level or os.getenv("ZHOUYI_LOG_LEVEL", "info")).lower()
    # reload / workers 子进程不会执行 main()，通过环境变量把日志级别传给它们
    os.environ["ZHOUYI_LOG_LEVEL"] = log_level

    import uvicorn

    from zhouyi.logging_config import configure_logging

    configure_logging(log_level)

    # Use string app import so uvicorn can spawn workers correctly
    app_location = "zhouyi.fastapi.app:app"
    try:
        uvicorn.run(
            app_location,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=max(1, int(args.workers)),
            log_level=log_level,
        )
    except ModuleNotFoundError as e:
        print("Failed to import application modules. Missing dependency:", e.name, file=sys.stderr)
        print("Install dependencies: pip install -e .", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
