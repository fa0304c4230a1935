"""CLI entry point: python -m guide_match.cli {links,recompute}"""

import argparse
import asyncio
import json
import sys

import structlog

from guide_match.config.settings import get_settings
from guide_match.db.session import close_sessions, get_session_factory
from guide_match.logging_config import configure_logging
from guide_match.reviews.scorer import ReliabilityScorer
from guide_match.tokens.codec import TokenCodec
from guide_match.tokens.links import build_match_urls


def print_links(request_id: str, student_id: str, selection_id: str) -> None:
    """Mint a fresh accept/decline pair, e.g. to resend an invitation by hand."""
    settings = get_settings()
    codec = TokenCodec.from_settings(settings)
    links = build_match_urls(
        codec,
        settings.app_base_url,
        request_id=request_id,
        student_id=student_id,
        selection_id=selection_id,
        ttl_hours=settings.match_token_ttl_hours,
    )
    print(f"accept:  {links.accept_url}")
    print(f"decline: {links.decline_url}")


async def run_recompute(student_ids: list[str]) -> None:
    """Recompute stored metrics for each guide from their full review history."""
    log = structlog.get_logger()
    settings = get_settings()
    scorer = ReliabilityScorer(timeout_seconds=settings.db_timeout_seconds)
    session_factory = get_session_factory()

    try:
        for student_id in student_ids:
            async with session_factory() as session:
                metrics = await scorer.refresh_metrics(session, student_id)
            log.info("metrics_refreshed", student_id=student_id, badge=metrics.reliability_badge)
            print(json.dumps({"student_id": student_id, **metrics.__dict__}))
    finally:
        await close_sessions()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="guide_match.cli",
        description="Guide Match CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    links_parser = subparsers.add_parser("links", help="Mint accept/decline links for a selection")
    links_parser.add_argument("--request-id", required=True)
    links_parser.add_argument("--student-id", required=True)
    links_parser.add_argument("--selection-id", required=True)

    recompute_parser = subparsers.add_parser(
        "recompute", help="Recompute reliability metrics for one or more guides"
    )
    recompute_parser.add_argument(
        "--student-id",
        action="append",
        required=True,
        dest="student_ids",
        help="Guide ID (repeatable)",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    # stdout carries command output
    configure_logging(
        json_output=settings.log_json, log_level=settings.log_level, stream=sys.stderr
    )

    if args.command == "links":
        print_links(args.request_id, args.student_id, args.selection_id)
    elif args.command == "recompute":
        asyncio.run(run_recompute(args.student_ids))


if __name__ == "__main__":
    main()
