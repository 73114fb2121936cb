#!/usr/bin/env python3
"""
Standalone story worker process.

Processes one batch of story jobs and exits, or with --loop keeps
processing on a fixed interval. Use this when no external scheduler calls
the /api/story/worker endpoint.

Usage:
    python -m talebox.jobs.run_worker                       # One batch
    python -m talebox.jobs.run_worker --max-jobs 10         # Bigger batch
    python -m talebox.jobs.run_worker --story-id <id>       # One story
    python -m talebox.jobs.run_worker --loop --interval 15  # Keep running
"""

import argparse
import asyncio
import signal
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from talebox.config import config
from talebox.jobs.processor import StoryJobProcessor, get_job_processor
from talebox.utils.logging import configure_logging, job_logger as logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Talebox story worker")
    parser.add_argument(
        "--max-jobs",
        "-m",
        type=int,
        default=None,
        help="Jobs per batch (default 5, clamped to 1..20)"
    )
    parser.add_argument(
        "--story-id",
        "-s",
        default=None,
        help="Only process the job of this story"
    )
    parser.add_argument(
        "--loop",
        "-l",
        action="store_true",
        help="Keep processing batches on an interval"
    )
    parser.add_argument(
        "--interval",
        "-i",
        type=float,
        default=15.0,
        help="Seconds between batches in loop mode (default 15)"
    )
    return parser


async def run_batch(processor: StoryJobProcessor, max_jobs, story_id):
    result = await processor.process_batch(max_jobs=max_jobs, only_story_id=story_id)
    for error in result.errors:
        logger.error(f"Batch error: {error}")
    return result


async def run_loop(processor: StoryJobProcessor, max_jobs, story_id, interval: float):
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_batch,
        trigger=IntervalTrigger(seconds=interval),
        args=[processor, max_jobs, story_id],
        id="story_worker",
        name="Process story jobs",
        replace_existing=True,
        max_instances=1  # Prevent overlapping batches
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    scheduler.start()
    logger.info("Story worker started", interval=interval, max_jobs=max_jobs)
    try:
        await shutdown_event.wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Story worker stopped")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(config.LOG_LEVEL)

    if not config.supabase_configured:
        logger.error("SUPABASE_URL and keys are required to run the worker")
        return 1

    processor = get_job_processor()

    if args.loop:
        asyncio.run(run_loop(processor, args.max_jobs, args.story_id, args.interval))
        return 0

    result = asyncio.run(run_batch(processor, args.max_jobs, args.story_id))
    print(result.model_dump_json(indent=2))
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
