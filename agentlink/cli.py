"""Command-line interface for remote agents and multi-agent orchestration."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import AsyncIterator, List, NoReturn, Optional

import httpx
from dotenv import load_dotenv

from agentlink.agents.directory import AskRequest, PublicApiClient
from agentlink.agents.invoker import AgentInvoker
from agentlink.config import Config
from agentlink.core.errors import AgentLinkError
from agentlink.core.models import DoneEvent, ErrorEvent, MessageEvent, MetaEvent, StatusEvent, StreamEvent
from agentlink.logging_config import setup_logging
from agentlink.runtime import create_http_client, create_manager, create_planner, load_agents


def print_error(message: object) -> None:
    print(f"Error: {message}", file=sys.stderr)


async def print_events(events: AsyncIterator[StreamEvent]) -> int:
    """Render a live event stream. Returns a process exit code."""
    async for event in events:
        if isinstance(event, MessageEvent):
            sys.stdout.write(event.text)
            sys.stdout.flush()
        elif isinstance(event, StatusEvent):
            print(f"[status] {event.text}", file=sys.stderr)
        elif isinstance(event, MetaEvent):
            payload = event.payload
            label = payload.get("DisplayName") or payload.get("Name") or payload.get("taskId") or json.dumps(payload)
            print(f"[meta] {label}", file=sys.stderr)
        elif isinstance(event, DoneEvent):
            print("\nDone")
        elif isinstance(event, ErrorEvent):
            print_error(event.reason)
            return 1
    return 0


async def agents_list(settings: Config, args: argparse.Namespace) -> int:
    async with create_http_client(settings, api_key=args.key) as http:
        agents = await PublicApiClient(http).list_agents()
    print(json.dumps([asdict(agent) for agent in agents], indent=2))
    return 0


def _ask_request(args: argparse.Namespace) -> AskRequest:
    return AskRequest(input=args.input, user_name=args.user, user_id=args.userid)


async def ask_async(settings: Config, args: argparse.Namespace) -> int:
    async with create_http_client(settings, api_key=args.key) as http:
        return await print_events(PublicApiClient(http).ask_agent(args.agent, _ask_request(args)))


async def ask_routed(settings: Config, args: argparse.Namespace) -> int:
    async with create_http_client(settings, api_key=args.key) as http:
        return await print_events(PublicApiClient(http).ask_routed(_ask_request(args)))


async def a2a_terminal(settings: Config, args: argparse.Namespace) -> int:
    """Interactive chat with one A2A agent; ``/cancel`` stops the running task."""
    async with create_http_client(settings, api_key=args.key) as http:
        invoker = AgentInvoker(http)
        print("[INFO] Initializing A2A client...")
        endpoint = await invoker.resolve_endpoint(args.card_url)
        print("[INFO] Client ready. Type your message or /cancel to stop current task.")

        current: Optional[asyncio.Task] = None
        while True:
            try:
                line = (await asyncio.to_thread(input, "> ")).strip()
            except EOFError:
                break
            if not line:
                continue
            if line == "/cancel":
                task_id = invoker.current_task_id
                try:
                    cancelled = await invoker.cancel(endpoint)
                except (AgentLinkError, httpx.HTTPError) as exc:
                    print(f"[ERROR] Failed to cancel task: {exc}")
                    continue
                print(f"[INFO] Task {task_id} cancelled." if cancelled else "[WARN] No running task to cancel.")
                continue
            if current is not None and not current.done():
                print("[WARN] A task is still streaming; /cancel it or wait for it to finish.")
                continue
            print(f'[INFO] Streaming message: "{line}"')
            current = asyncio.create_task(print_events(invoker.stream(endpoint, line)))

        if current is not None:
            await current
        print("\n[INFO] Exiting terminal.")
    return 0


async def orchestrate(settings: Config, args: argparse.Namespace) -> int:
    cards: List[str] = args.card or list(settings.agent_cards)
    if not cards:
        print_error("No agent cards given. Use --card or set AGENTLINK_AGENT_CARDS.")
        return 1
    planner = create_planner(settings)
    async with create_http_client(settings, api_key=args.key) as http:
        agents = await load_agents(http, cards)
        await create_manager(http, planner).run(args.prompt, agents)
    print()
    return 0


COMMANDS = {
    "agents-list": agents_list,
    "ask-async": ask_async,
    "ask-routed": ask_routed,
    "a2a": a2a_terminal,
    "orchestrate": orchestrate,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-k", "--key", help="API key (in-app wallet address)")

    parser = argparse.ArgumentParser(prog="agentlink", description="Talk to remote AI agents")
    parser.add_argument("--log-level", help="Override AGENTLINK_LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("agents-list", parents=[common], help="List all available public agents")

    for name, help_text in (
        ("ask-async", "Ask a specific agent (status + message + done)"),
        ("ask-routed", "Ask with platform routing (status + meta + message + done)"),
    ):
        ask = commands.add_parser(name, parents=[common], help=help_text)
        if name == "ask-async":
            ask.add_argument("-a", "--agent", required=True, help="Agent ID")
        ask.add_argument("-i", "--input", required=True, help="Input text")
        ask.add_argument("-n", "--user", required=True, help="User name")
        ask.add_argument("-u", "--userid", help="Optional user ID")

    terminal = commands.add_parser("a2a", parents=[common], help="Interactive A2A agent terminal")
    terminal.add_argument("card_url", help="Agent card URL")

    plan = commands.add_parser("orchestrate", parents=[common], help="Plan and run a multi-agent request")
    plan.add_argument("-p", "--prompt", required=True, help="User request")
    plan.add_argument("-c", "--card", action="append", help="Agent card URL (repeatable)")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Config.from_env()
    setup_logging((args.log_level or settings.log_level).upper())
    try:
        return await COMMANDS[args.command](settings, args)
    except (AgentLinkError, httpx.HTTPError, ValueError, RuntimeError) as exc:
        print_error(exc)
        return 1


def run() -> NoReturn:
    load_dotenv()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
