#!/usr/bin/env python3
"""
packleader - Conversational Attack-Path Intelligence for BloodHound CE
======================================================================

Command-line interface over the BloodHound explorer core.

Usage:
    # Session bootstrap: domains, statistics, initial findings
    python -m packleader init

    # Search, pathfinding and raw read-only Cypher
    python -m packleader search "user:admin"
    python -m packleader path <start-objectid> <end-objectid>
    python -m packleader query "MATCH (n:User) RETURN n LIMIT 5"

    # Analytical tools
    python -m packleader tools
    python -m packleader tool find_choke_points --args '{"limit": 5}'

    # One-shot chat question, optionally saving the remediation plan
    python -m packleader chat "Which users can reach Domain Admins?" --report

    # Report from a JSON list of remediation items
    python -m packleader report items.json

Environment Variables:
    BH_URL              BloodHound base URL (default http://127.0.0.1:8080)
    BH_USERNAME         BloodHound account
    BH_PASSWORD         BloodHound secret
    ANTHROPIC_API_KEY   API key for Anthropic (chat)
    OPENAI_API_KEY      API key for OpenAI (alternative)
"""

import argparse
import asyncio
import json
import logging
import sys

from . import __version__
from .ai_engine.llm_client import LLMClient
from .analysis.tool_catalog import ToolCatalog
from .config import PackLeaderConfig
from .errors import PackLeaderError
from .gui_integration.bridge import ExploreSession
from .ingestion.bloodhound_client import BloodHoundClient
from .model.schemas import to_serializable
from .reporting.report_builder import ReportBuilder


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="packleader",
        description="packleader - Conversational attack-path analysis for BloodHound CE",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    bh_group = parser.add_argument_group("BloodHound")
    bh_group.add_argument("--url", help="BloodHound base URL (default: $BH_URL)")
    bh_group.add_argument("--username", help="BloodHound account (default: $BH_USERNAME)")
    bh_group.add_argument("--password", help="BloodHound secret (default: $BH_PASSWORD)")

    llm_group = parser.add_argument_group("LLM")
    llm_group.add_argument(
        "--provider", choices=["anthropic", "openai"], default="anthropic",
        help="LLM provider for chat (default: anthropic)"
    )
    llm_group.add_argument("--model", help="Model name override")

    parser.add_argument(
        "-o", "--output", default="output",
        help="Output directory for reports (default: ./output)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"packleader {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Load domains, statistics and initial findings")

    search = sub.add_parser("search", help="Search objects by name")
    search.add_argument("text", help='Search text, optionally prefixed ("user:admin")')
    search.add_argument("--limit", type=int, default=10)
    search.add_argument("--kind", help="Only return objects of this kind")

    path = sub.add_parser("path", help="Shortest path between two objects")
    path.add_argument("start", help="Start objectId")
    path.add_argument("end", help="End objectId")

    query = sub.add_parser("query", help="Run a read-only Cypher query")
    query.add_argument("cypher", help="Cypher query text")
    query.add_argument(
        "--no-properties", action="store_true",
        help="Do not request node properties"
    )

    tool = sub.add_parser("tool", help="Run one analytical tool")
    tool.add_argument("name", help="Tool name (see 'tools')")
    tool.add_argument("--args", default="{}", help="Tool arguments as a JSON object")

    sub.add_parser("tools", help="List the analytical tools")

    chat = sub.add_parser("chat", help="Ask the analyst one question")
    chat.add_argument("question")
    chat.add_argument(
        "--report", action="store_true",
        help="Save the remediation plan the agent recorded"
    )

    report = sub.add_parser("report", help="Build a report from remediation items")
    report.add_argument("items", help="JSON file holding a list of remediation items")
    report.add_argument(
        "--no-stats", action="store_true",
        help="Skip loading environment statistics from BloodHound"
    )

    return parser


def build_config(args) -> PackLeaderConfig:
    """Translate CLI arguments into a configuration."""
    bloodhound = {
        key: value for key, value in
        (("url", args.url), ("username", args.username), ("password", args.password))
        if value
    }
    llm = {"provider": args.provider}
    if args.model:
        llm["model"] = args.model
    return PackLeaderConfig.from_dict({
        "bloodhound": bloodhound,
        "llm": llm,
        "output": {"output_dir": args.output},
        "verbose": args.verbose,
    })


def print_json(data) -> None:
    print(json.dumps(to_serializable(data), indent=2, default=str))


async def run_command(args, config: PackLeaderConfig) -> int:
    """Execute one subcommand."""
    if args.command == "tools":
        print_json(ToolCatalog.definitions())
        return 0

    progress = (lambda msg: print(msg, file=sys.stderr)) if args.verbose else None

    async with BloodHoundClient(config.bloodhound) as client:
        session = ExploreSession(
            client, config, llm=LLMClient(config.llm), progress_callback=progress
        )

        if args.command == "init":
            snapshot = await session.initialize()
            print_json(snapshot.to_dict())

        elif args.command == "search":
            results = await session.search(args.text, args.limit, args.kind)
            print_json([r.to_dict() for r in results or []])

        elif args.command == "path":
            result = await session.find_path(args.start, args.end)
            print_json(result.to_dict())

        elif args.command == "query":
            outcome = await session.run_query(args.cypher, not args.no_properties)
            print_json(outcome.to_dict())

        elif args.command == "tool":
            try:
                arguments = json.loads(args.args)
            except json.JSONDecodeError as e:
                print(f"[!] Error: --args is not valid JSON: {e}", file=sys.stderr)
                return 1
            print_json(await session.catalog.invoke(args.name, arguments))

        elif args.command == "chat":
            await session.initialize()
            reply = await session.chat(args.question)
            print(reply.content)
            if args.verbose:
                print_json(reply.tool_trace)
            if args.report and len(session.remediation):
                save_report(session, config)

        elif args.command == "report":
            with open(args.items, encoding="utf-8") as f:
                items = json.load(f)
            for item in items:
                session.apply_client_tool("add_remediation_item", item)
            if not args.no_stats:
                await session.initialize()
            save_report(session, config)

    return 0


def save_report(session: ExploreSession, config: PackLeaderConfig) -> None:
    builder = ReportBuilder(config.output.output_dir)
    stats = session.snapshot.stats if session.snapshot else None
    paths = builder.save(builder.build_report(session.remediation, stats))
    print("\n[+] Report saved to:")
    print(f"  - JSON: {paths['json']}")
    print(f"  - Markdown: {paths['markdown']}")


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = build_config(args)
    try:
        return asyncio.run(run_command(args, config))
    except (PackLeaderError, OSError, json.JSONDecodeError) as e:
        print(f"[!] Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
