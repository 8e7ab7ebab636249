"""
Command-line runner for the slide library.

    python -m figma_slides.runner ingest <figma-url-or-key> [--node 1:2 ...]
    python -m figma_slides.runner classify <figma-url-or-key>
    python -m figma_slides.runner duplicates [--threshold 0.7] [--scope drafts]
    python -m figma_slides.runner check (--slide-id ID | --text TEXT)
"""

import argparse
import asyncio
import logging

from .orchestrator import SlideLibraryOrchestrator


async def ingest_document(orchestrator: SlideLibraryOrchestrator, args):
    result = await orchestrator.execute(
        mode="ingest",
        document_ref=args.document,
        selected_node_ids=args.node or None,
        min_score=args.min_score,
        high_fidelity=args.svg,
    )

    print(f"✅ {result.document_name or result.document_id}: "
          f"{result.created_count} created, {result.updated_count} updated, "
          f"{result.skipped_count} frames below threshold")
    for error in result.per_node_errors:
        print(f"  ⚠️  {error.node_id} [{error.stage}] {error.reason}")


async def classify_document(orchestrator: SlideLibraryOrchestrator, args):
    report = await orchestrator.execute(
        mode="classify",
        document_ref=args.document,
        selected_node_ids=args.node or None,
    )

    print(f"🔍 {report['document_name'] or report['document_id']}: {report['summary']}")
    for candidate in report["candidates"]:
        print(f"  📄 {candidate['score']} {candidate['quality']:<9} "
              f"{int(candidate['width'])}x{int(candidate['height'])}  {candidate['path']}")


async def find_duplicates(orchestrator: SlideLibraryOrchestrator, args):
    report = await orchestrator.execute(mode="duplicates", threshold=args.threshold, scope=args.scope)

    stats = report.stats
    print(f"🔍 {stats.group_count} groups, {stats.duplicate_slides} of {stats.total_slides} slides "
          f"(threshold {stats.threshold})")
    for group in report.groups:
        print(f"  {group.id} (max {group.max_similarity:.2f})")
        for member in group.members:
            print(f"\t{member.similarity:.2f}  {member.slide_id}  {member.title}")


async def check_duplicates(orchestrator: SlideLibraryOrchestrator, args):
    matches = await orchestrator.execute(
        mode="check_duplicates",
        slide_id=args.slide_id,
        text=args.text,
        threshold=args.threshold,
        scope=args.scope,
    )

    print(f"🔍 {len(matches)} similar slides")
    for match in matches:
        marker = " (same source)" if match.is_exact_duplicate else ""
        print(f"  {match.similarity:.2f}  {match.slide_id}  {match.title}{marker}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="figma-slides", description="Figma slide library")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Import slide frames as drafts")
    ingest.add_argument("document", help="Figma file key or URL")
    ingest.add_argument("--node", action="append", help="Only import this node id (repeatable)")
    ingest.add_argument("--min-score", type=int, default=None)
    ingest.add_argument("--svg", action="store_true", help="Export previews as SVG")
    ingest.set_defaults(handler=ingest_document)

    classify = sub.add_parser("classify", help="Rank candidate frames without importing")
    classify.add_argument("document", help="Figma file key or URL")
    classify.add_argument("--node", action="append")
    classify.set_defaults(handler=classify_document)

    duplicates = sub.add_parser("duplicates", help="Cluster near-duplicate slides")
    duplicates.add_argument("--threshold", type=float, default=None)
    duplicates.add_argument("--scope", choices=["drafts", "all"], default="all")
    duplicates.set_defaults(handler=find_duplicates)

    check = sub.add_parser("check", help="Find slides similar to one slide or a text")
    target = check.add_mutually_exclusive_group(required=True)
    target.add_argument("--slide-id")
    target.add_argument("--text")
    check.add_argument("--threshold", type=float, default=None)
    check.add_argument("--scope", choices=["drafts", "all"], default="all")
    check.set_defaults(handler=check_duplicates)

    return parser


async def run(args):
    orchestrator = SlideLibraryOrchestrator()
    try:
        await args.handler(orchestrator, args)
    finally:
        await orchestrator.close()


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
