"""CLI entry point: drive the band generation pipeline against a sqlite store."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path

from bandgen.bootstrap import build_pipeline
from bandgen.config import PipelineConfig
from bandgen.errors import PipelineError
from bandgen.pipeline.triggers import DirectRequest
from bandgen.models.status import RecordType
from bandgen.store.sqlite import SqliteRecordStore

log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate virtual bands: profiles, lyrics, audio and status polling."
    )
    parser.add_argument(
        "--db",
        type=str,
        default="bandgen.db",
        help="Path to the sqlite document store (default: bandgen.db).",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log pipeline steps at DEBUG level.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Trace language-model prompts, raw output and token usage.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    band = sub.add_parser("band", help="Create a band from a prompt.")
    band.add_argument("prompt", nargs="?", default="", help="Band concept.")
    band.add_argument("--user", default="anonymous", help="Owning user id.")
    band.add_argument("--mock", action="store_true", help="Use the canned profile.")

    stage = sub.add_parser("stage", help="Run the next stage of a song or band.")
    stage.add_argument("record_id")
    stage.add_argument("--type", choices=["song", "band"], default="song")
    stage.add_argument(
        "--wait", action="store_true", help="Wait briefly for audio to finish."
    )

    lyrics = sub.add_parser("lyrics", help="Generate lyrics for every song of a band.")
    lyrics.add_argument("band_id")

    audio = sub.add_parser("audio", help="Submit audio for every song of a band.")
    audio.add_argument("band_id")

    poll = sub.add_parser("poll", help="Check in-flight audio tasks once.")
    poll.add_argument("--force", action="store_true", help="Ignore the initial grace period.")
    poll.add_argument("--song", default=None, help="Check only this song.")

    retry = sub.add_parser("retry", help="Reset a failed record so it can run again.")
    retry.add_argument("record_type", choices=[t.value for t in RecordType])
    retry.add_argument("record_id")

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Setup logging to the console and optionally a file."""
    log_level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


async def run(args: argparse.Namespace) -> dict:
    config = PipelineConfig.from_env()
    if args.debug:
        config.llm.debug = True
    store = SqliteRecordStore(args.db, config.collections)
    orchestrator = build_pipeline(config, store=store).orchestrator

    if args.command == "band":
        result = await orchestrator.create_band(args.prompt, user_id=args.user, use_mock=args.mock)
        return result.model_dump()
    if args.command == "stage":
        trigger = DirectRequest(record_id=args.record_id, record_type=RecordType(args.type))
        result = await orchestrator.run_stage(trigger, wait_for_completion=args.wait)
        return result.model_dump()
    if args.command == "lyrics":
        batch = await orchestrator.generate_lyrics_for_band(args.band_id)
        return {"summary": batch.summary(), **batch.model_dump()}
    if args.command == "audio":
        batch = await orchestrator.submit_audio_for_band(args.band_id)
        return {"summary": batch.summary(), **batch.model_dump()}
    if args.command == "poll":
        summary = await orchestrator.run_poll(force=args.force, song_id=args.song)
        return {"checked": summary.checked, **summary.model_dump()}
    if args.command == "retry":
        record = await orchestrator.retry_record(args.record_type, args.record_id)
        return record.model_dump(mode="json")
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose or args.debug, args.log_file)

    start_time = time.time()
    log.info("Running '%s' against %s", args.command, args.db)
    try:
        output = asyncio.run(run(args))
    except PipelineError as e:
        log.error("Error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    log.info("'%s' completed in %.2fs", args.command, time.time() - start_time)
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
