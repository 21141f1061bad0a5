"""
Retrieval debugging CLI.

Usage:
    python -m retrieval.cli "What is the policy on refunds?"
    python -m retrieval.cli "revenue growth" --top-k 10 --json
"""

import argparse
import asyncio
import json
import logging
from typing import List, Optional

from config.settings import get_settings

from .guard import GuardedRetrieval, retrieve_context
from .render import render_trace
from .service import build_pipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one knowledge-base retrieval and show its trace")
    parser.add_argument("query", help="Question to retrieve context for")
    parser.add_argument("--top-k", type=int, default=None, help="Results to return (default: RAG_TOP_K)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall deadline in seconds (default: RETRIEVAL_TIMEOUT_SECONDS)",
    )
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def format_output(result: GuardedRetrieval, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)

    parts = [render_trace(result.trace)]
    if result.context:
        parts.append(result.context)
    else:
        parts.append("(no context retrieved)")
    return "\n\n".join(parts)


async def run(query: str, top_k: Optional[int] = None, timeout: Optional[float] = None) -> GuardedRetrieval:
    settings = get_settings()
    pipeline = build_pipeline(settings)
    if top_k:
        pipeline.top_k = top_k
    return await retrieve_context(
        pipeline,
        query,
        timeout_seconds=timeout or settings.retrieval_timeout_seconds,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level or get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    result = asyncio.run(run(args.query, args.top_k, args.timeout))
    print(format_output(result, as_json=args.json))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
