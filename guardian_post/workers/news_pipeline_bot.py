from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from guardian_post.config import settings
from guardian_post.core.logging import configure_logging, get_logger
from guardian_post.core.request_id import with_run_id
from guardian_post.services.news_pipeline_service import NewsPipelineService, build_pipeline

configure_logging(service_name="worker", level=settings.LOG_LEVEL)
logger = get_logger().bind(worker="news_pipeline_bot")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="NewsPipelineBot: collect Google News feeds, normalize, and warm the analysis cache."
    )
    parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Only collect and normalize; skip the eager analysis pass.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional limit on number of records printed.",
    )
    parser.add_argument(
        "--queries",
        type=Path,
        default=None,
        help="Path to a news_queries.yml (defaults to NEWS_QUERIES_PATH).",
    )
    parser.add_argument(
        "--cache",
        type=Path,
        default=None,
        help="Path to the analysis cache JSON (defaults to ANALYSIS_CACHE_PATH).",
    )
    parser.add_argument(
        "--analyze-id",
        default=None,
        help="Analyze a single news id instead of running a collection cycle.",
    )
    parser.add_argument(
        "--seed",
        default=None,
        help="Seed text (title, newline, summary) for --analyze-id.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="With --analyze-id: ignore the cached analysis and recompute.",
    )
    args = parser.parse_args(argv)
    if args.analyze_id and not args.seed:
        parser.error("--seed is required with --analyze-id")
    return args


async def run_pipeline(pipeline: NewsPipelineService, *, enrich: bool, limit: Optional[int]) -> int:
    records = await pipeline.collect_and_enrich_all(enrich=enrich)
    if limit is not None:
        records = records[:limit]
    payload = {
        "records": [r.model_dump(mode="json") for r in records],
        "stats": pipeline.news_stats().model_dump(mode="json"),
    }
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
    logger.info("news_pipeline_bot_finished", printed=len(records))
    return 0


async def run_analyze(pipeline: NewsPipelineService, *, news_id: str, seed: str, force: bool) -> int:
    result = await pipeline.analyze_one(news_id, seed, force=force)
    sys.stdout.write(json.dumps(result.to_json_dict(), ensure_ascii=False, indent=2) + "\n")
    logger.info("news_pipeline_bot_analyzed", news_id=news_id, reliability=result.reliability)
    return 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id():
        pipeline = build_pipeline(cache_path=args.cache, queries_path=args.queries)
        if args.analyze_id:
            return await run_analyze(
                pipeline,
                news_id=args.analyze_id,
                seed=args.seed.replace("\\n", "\n"),
                force=args.force,
            )
        return await run_pipeline(pipeline, enrich=not args.no_enrich, limit=args.limit)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
