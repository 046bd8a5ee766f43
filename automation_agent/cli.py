"""Terminal client for the automation agent.

Resolves intents and runs flow graphs directly in the terminal — no HTTP
server or curl required.

Usage:
    automation-agent resolve "Text me when I leave home after 10pm"
    automation-agent resolve "intent" --capability sms --location home --out flow.json
    automation-agent run flow.json --meta local_time=22:30 --meta battery_percent=80
    automation-agent run flow.json --gate-conditions
    automation-agent serve --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser
from datetime import datetime
from pathlib import Path

from automation_agent.config import AgentSettings
from automation_agent.errors import AutomationAgentError, FlowValidationError
from automation_agent.flow.models import IntentContext, IntentRequest, TimeWindow
from automation_agent.flow.validator import validate_graph
from automation_agent.runtime import (
    FlowEngine,
    FlowExecutionInput,
    FlowExecutionResult,
    SimulatedPlatform,
    TraversalPolicy,
    build_default_registry,
)
from automation_agent.synthesis.extract import decode_graph, extract_json_object, unwrap_graph


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _resolve(
    intent: str,
    user_id: str,
    capabilities: list[str],
    locations: list[str],
    out: Path | None,
) -> None:
    """Synthesize one flow and print (or save) the response JSON."""
    from dotenv import load_dotenv

    from automation_agent.reasoning import ReasoningSettings
    from automation_agent.synthesis.service import FlowSynthesisService

    load_dotenv()
    try:
        service = FlowSynthesisService.from_settings(ReasoningSettings.from_env())
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    now = datetime.now().astimezone()
    request = IntentRequest(
        user_id=user_id,
        intent_text=intent,
        context=IntentContext(
            location_aliases=locations,
            capabilities=capabilities,
            time_window=TimeWindow(tz=str(now.tzinfo), now=now.isoformat(timespec="seconds")),
        ),
    )
    response = await service.synthesize(request)
    text = json.dumps(response.to_wire(), indent=2)

    if out is not None:
        out.write_text(text + "\n", encoding="utf-8")
        print(f"Flow {response.flow_id} written to {out}")
    else:
        print(text)


async def _run(path: Path, metadata: dict[str, str], policy: TraversalPolicy) -> FlowExecutionResult:
    """Load a graph (bare or wrapped in a response) and execute it once."""
    settings = AgentSettings.from_env()
    graph = decode_graph(unwrap_graph(extract_json_object(path.read_text(encoding="utf-8"))))
    validate_graph(graph)

    platform = SimulatedPlatform()
    registry = build_default_registry(platform=platform, webhook_timeout=settings.webhook_timeout)
    engine = FlowEngine(registry, policy=policy)

    print(f"\nFlow    : {graph.id}" + (f" ({graph.title})" if graph.title else ""))
    print(f"Policy  : {policy.value}")
    print("-" * 60)

    result = await engine.execute(
        graph,
        FlowExecutionInput(metadata=metadata),
        on_step=lambda step: print(f"  {step.block_id:<16} {step.status.value:<8} {step.message}"),
    )

    print("-" * 60)
    print(f"{len(result.steps)} step(s)")
    if platform.events:
        print("\nSimulated side effects:")
        for event in platform.events:
            print(f"  {event.capability}: {event.detail}")
    return result


def _parse_meta(pairs: list[str]) -> dict[str, str]:
    """Turn ['k=v', ...] into a dict. Exits with an error on a bare key."""
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            print(f"Error: --meta expects key=value, got {pair!r}", file=sys.stderr)
            sys.exit(2)
        metadata[key.strip()] = value
    return metadata


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    settings = AgentSettings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    parser = ArgumentParser(
        prog="automation-agent",
        description="Automation agent — natural-language intents to executable flows",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    resolve_p = sub.add_parser("resolve", help="Synthesize a flow graph from an intent")
    resolve_p.add_argument("intent", help="Natural-language description of the automation")
    resolve_p.add_argument("--user", default="cli", help="User id sent with the request (default: cli)")
    resolve_p.add_argument(
        "--capability",
        action="append",
        default=[],
        metavar="NAME",
        help="Device capability the flow may use (repeatable)",
    )
    resolve_p.add_argument(
        "--location",
        action="append",
        default=[],
        metavar="ALIAS",
        help="Known location alias, e.g. home (repeatable)",
    )
    resolve_p.add_argument("--out", type=Path, metavar="FILE", help="Write the response JSON to FILE")

    run_p = sub.add_parser("run", help="Execute a flow graph JSON file on a simulated device")
    run_p.add_argument("file", type=Path, help="Graph JSON (bare graph or resolve output)")
    run_p.add_argument(
        "--meta",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Execution metadata, e.g. local_time=22:30 (repeatable)",
    )
    run_p.add_argument(
        "--gate-conditions",
        action="store_true",
        help="Stop a branch when a condition is SKIPPED or FAILED",
    )

    serve_p = sub.add_parser("serve", help="Start the HTTP API")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8000)
    serve_p.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    args = parser.parse_args(argv)

    try:
        if args.command == "resolve":
            asyncio.run(_resolve(args.intent, args.user, args.capability, args.location, args.out))
        elif args.command == "run":
            policy = TraversalPolicy.GATE_CONDITIONS if args.gate_conditions else TraversalPolicy.CONTINUE
            asyncio.run(_run(args.file, _parse_meta(args.meta), policy))
        elif args.command == "serve":
            from automation_agent.api import serve

            serve(host=args.host, port=args.port, reload=args.reload)
        else:
            parser.print_help()
            sys.exit(1)
    except FlowValidationError as e:
        print(f"Invalid flow [{e.rule}]: {e.message}", file=sys.stderr)
        sys.exit(1)
    except AutomationAgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
