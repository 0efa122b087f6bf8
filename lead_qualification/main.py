"""
Lead Qualification CLI.

Usage:
    python -m lead_qualification.main init-db
    python -m lead_qualification.main push-config --file form_config.json
    python -m lead_qualification.main show-config
    python -m lead_qualification.main submit --file submission.json
    python -m lead_qualification.main report --window-hours 48
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from pydantic import ValidationError

from config.settings import Settings, get_settings
from database.repositories import FormConfigRepository, FormLeadRepository
from database.session import close_db, init_db, session_scope

from .exceptions import LeadQualificationError
from .merge_engine import ProgressiveMergeEngine
from .models import LeadFilters, LeadRecord, PartialSubmission
from .question_schema import default_form_config, load_form_config
from .reporting import summarize_leads

logger = logging.getLogger(__name__)

PAGE_SIZE = 500


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _connect(settings: Settings) -> None:
    await init_db(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=settings.debug,
    )


async def init_database(settings: Settings) -> None:
    await _connect(settings)
    await close_db()


async def push_config(settings: Settings, path: Optional[str]) -> None:
    config = load_form_config(path) if path else default_form_config(settings.thresholds)
    problems = config.log_problems()

    await _connect(settings)
    try:
        async with session_scope() as session:
            await FormConfigRepository(session).save(config)
    finally:
        await close_db()

    t = config.thresholds
    print(f"Total questions: {config.total_questions}")
    print(f"Max score: {config.max_score()}")
    print(f"Thresholds: HOT >= {t.hot}, WARM >= {t.warm}, COLD >= {t.cold}")
    if problems:
        print(f"Warnings: {len(problems)} (see log)")


async def show_config(settings: Settings) -> None:
    await _connect(settings)
    try:
        async with session_scope() as session:
            config = await FormConfigRepository(session).get_active(settings)
    finally:
        await close_db()
    _print_json(config.to_dict())


async def submit(settings: Settings, path: str) -> LeadRecord:
    with open(path, encoding="utf-8") as f:
        submission = PartialSubmission.model_validate(json.load(f))

    await _connect(settings)
    try:
        async with session_scope() as session:
            config = await FormConfigRepository(session).get_active(settings)
            engine = ProgressiveMergeEngine.from_settings(FormLeadRepository(session), settings)
            lead = await engine.submit(submission, config)
    finally:
        await close_db()

    _print_json(lead.to_dict())
    return lead


async def report(settings: Settings, window_hours: Optional[float]) -> None:
    window = timedelta(hours=window_hours) if window_hours is not None else settings.abandonment_window

    await _connect(settings)
    leads: List[LeadRecord] = []
    try:
        async with session_scope() as session:
            repo = FormLeadRepository(session)
            while True:
                page = await repo.list_leads(
                    LeadFilters(limit=PAGE_SIZE, offset=len(leads)), window=window
                )
                leads.extend(page)
                if len(page) < PAGE_SIZE:
                    break
    finally:
        await close_db()

    _print_json(summarize_leads(leads, window=window).to_dict())


def main():
    parser = argparse.ArgumentParser(description="Lead Qualification Engine")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    push = subparsers.add_parser("push-config", help="Store the active form config")
    push.add_argument("--file", help="JSON form config (defaults to the shipped config)")

    subparsers.add_parser("show-config", help="Print the active form config")

    sub = subparsers.add_parser("submit", help="Run one submission through the engine")
    sub.add_argument("--file", required=True, help="JSON submission payload")

    rep = subparsers.add_parser("report", help="Print a lead summary")
    rep.add_argument("--window-hours", type=float, help="Abandonment window override")

    args = parser.parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.command == "init-db":
            asyncio.run(init_database(settings))
            logger.info("Tables created")
        elif args.command == "push-config":
            asyncio.run(push_config(settings, args.file))
        elif args.command == "show-config":
            asyncio.run(show_config(settings))
        elif args.command == "submit":
            asyncio.run(submit(settings, args.file))
        elif args.command == "report":
            asyncio.run(report(settings, args.window_hours))
    except (LeadQualificationError, ValidationError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
