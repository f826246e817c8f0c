"""Command-line access to the workflow graph core.

Works on workflow files in the backend's ``{nodes, edges, metadata}`` format.

Usage:
    pipeline-studio normalize flow.json -o flow.normalized.json
    pipeline-studio validate flow.json
    pipeline-studio save flow.json 12
    pipeline-studio tools
    pipeline-studio node-test flow.json node-abc script="A short film" count=3
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from pipeline_studio.client import Settings, StudioClient
from pipeline_studio.workflow.session import EditingSession
from pipeline_studio.workflow.versions import run_node_test, save_session, validate_session


def _load(path: str) -> EditingSession:
    return EditingSession.open(Path(path).read_text(encoding="utf-8"))


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _parse_assignments(pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` arguments into a dict of raw (string) values."""
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Expected KEY=VALUE, got {pair!r}")
        values[key] = value
    return values


def _print_issues(label: str, issues: list[Any]) -> None:
    for issue in issues:
        where = f" [{issue.node_id}]" if issue.node_id else ""
        print(f"{label} {issue.code}{where}: {issue.message}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_normalize(args) -> int:
    text = _dump(_load(args.file).payload())
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


async def cmd_validate(args, client: StudioClient) -> int:
    result = await validate_session(client, _load(args.file))
    _print_issues("ERROR", result.errors)
    _print_issues("WARN ", result.warnings)
    print("OK" if result.ok else "INVALID")
    return 0 if result.ok else 1


async def cmd_save(args, client: StudioClient) -> int:
    outcome = await save_session(client, args.template_id, _load(args.file))
    _print_issues("ERROR", outcome.validation.errors)
    _print_issues("WARN ", outcome.validation.warnings)
    if outcome.error:
        print(f"Save failed: {outcome.error}")
    if not outcome.ok:
        return 1
    print(f"Saved version {outcome.version.get('id')}")
    return 0


def _port_summary(ports) -> str:
    if not isinstance(ports, list):
        return ""
    return ", ".join(f"{p.get('key')}:{p.get('type')}" for p in ports if isinstance(p, dict))


async def cmd_tools(args, client: StudioClient) -> int:
    tools = await client.list_node_tools(enabled=None if args.all else True)
    if isinstance(tools, dict) and "error" in tools:
        print(f"Could not list tools: {tools['error']}")
        return 1
    if tools is None:
        tools = []
    if not isinstance(tools, list):
        print(f"Unexpected tool catalog response: {tools!r}")
        return 1
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        ins = _port_summary(tool.get("inputs"))
        outs = _port_summary(tool.get("outputs"))
        print(f"{str(tool.get('id')):>5}  {tool.get('name')}  ({ins}) -> ({outs})")
    return 0


async def cmd_node_test(args, client: StudioClient) -> int:
    session = _load(args.file)
    node = session.graph.get_node(args.node_id)
    if node is None:
        print(f"Node '{args.node_id}' not found")
        return 1
    result = await run_node_test(client, node, _parse_assignments(args.inputs))
    print(_dump(result))
    return 1 if isinstance(result, dict) and "error" in result else 0


_REMOTE_COMMANDS = {
    "validate": cmd_validate,
    "save": cmd_save,
    "tools": cmd_tools,
    "node-test": cmd_node_test,
}


async def _run_remote(args, settings: Settings) -> int:
    client = StudioClient(settings)
    try:
        return await _REMOTE_COMMANDS[args.command](args, client)
    finally:
        await client.close()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="pipeline-studio",
        description="Normalize, validate and test pipeline workflow graphs",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    norm_p = sub.add_parser("normalize", help="Print the normalized {nodes, edges, metadata}")
    norm_p.add_argument("file", help="Workflow JSON file")
    norm_p.add_argument("-o", "--output", help="Write to this file instead of stdout")

    val_p = sub.add_parser("validate", help="Validate a workflow with the backend")
    val_p.add_argument("file", help="Workflow JSON file")

    save_p = sub.add_parser("save", help="Validate, then save as a new template version")
    save_p.add_argument("file", help="Workflow JSON file")
    save_p.add_argument("template_id", type=int, help="Workflow template id")

    tools_p = sub.add_parser("tools", help="List reusable node tools")
    tools_p.add_argument("--all", action="store_true", help="Include disabled tools")

    test_p = sub.add_parser("node-test", help="Run a single node with test inputs")
    test_p.add_argument("file", help="Workflow JSON file")
    test_p.add_argument("node_id", help="Id of the node to test")
    test_p.add_argument("inputs", nargs="*", metavar="KEY=VALUE", help="Raw input values")

    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "normalize":
        sys.exit(cmd_normalize(args))
    elif args.command in _REMOTE_COMMANDS:
        sys.exit(asyncio.run(_run_remote(args, settings)))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
