"""Terminal front-end: run the API server or chat against it."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from typing import List, Optional

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from docschat.client.dispatcher import ERROR_PREFIX, ChatDispatcher, make_http_client
from docschat.client.selection import CatalogStore
from docschat.client.session import ChatSession
from docschat.config import get_settings
from docschat.core.logging import setup_logging
from docschat.errors import DocsChatError
from docschat.schemas.catalog import Provider

LOGGER = logging.getLogger(__name__)

console = Console(
    theme=Theme(
        {
            "info": "cyan",
            "warning": "yellow",
            "error": "bold red",
            "prompt": "bold green",
        }
    )
)

HELP = """Commands:
  /providers            list providers
  /provider <id>        switch provider (keeps the model when possible)
  /models               list models of the current provider
  /model <id>           switch model
  /instructions <text>  set the system prompt (empty to clear)
  /clear                clear the conversation
  /quit                 exit
Ctrl-C while a reply is streaming stops it."""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="docschat", description="Multi-provider chat server and terminal client.")
    parser.add_argument("--log-level", help="Python logging level (default: LOG_LEVEL env or INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", help="Bind address (default: SERVER_HOST).")
    serve.add_argument("--port", type=int, help="Port (default: SERVER_PORT).")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes.")

    for name, help_text in (("chat", "Chat in the terminal."), ("providers", "Print the provider catalog.")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--api-base", help="Server URL (default: API_BASE).")
        if name == "chat":
            cmd.add_argument("--provider", help="Provider id to start with.")
            cmd.add_argument("--model", help="Model id to start with.")
            cmd.add_argument("--instructions", help="System prompt sent with every turn.")
    return parser.parse_args(argv)


def format_tokens(max_tokens: Optional[int]) -> str:
    if not max_tokens:
        return ""
    if max_tokens >= 1_000_000:
        return f"{max_tokens / 1_000_000:.1f}M tokens"
    if max_tokens >= 1000:
        return f"{max_tokens / 1000:.0f}K tokens"
    return f"{max_tokens} tokens"


def providers_table(providers: List[Provider]) -> Table:
    table = Table(title="Providers", box=None, highlight=True)
    table.add_column("Provider", style="magenta")
    table.add_column("Model", style="cyan")
    table.add_column("Context", justify="right")
    table.add_column("Notes")
    for provider in providers:
        for model in provider.models:
            notes = []
            if model.is_default:
                notes.append("default")
            if not provider.is_enabled:
                notes.append("disabled")
            if provider.supports_streaming:
                notes.append("streaming")
            table.add_row(provider.id, model.id, format_tokens(model.max_tokens), ", ".join(notes))
    return table


class TerminalChat:
    def __init__(self, dispatcher: ChatDispatcher, instructions: Optional[str] = None) -> None:
        self.dispatcher = dispatcher
        self.store = dispatcher.store
        self.instructions = instructions
        self._printed = 0

    def _status(self) -> str:
        provider, model = self.store.selected_provider, self.store.selected_model
        if provider is None or model is None:
            return "no model selected"
        return f"{provider.name} · {model.name}"

    def _on_delta(self, content: str) -> None:
        console.print(content[self._printed:], end="", markup=False, highlight=False)
        self._printed = len(content)

    def handle_command(self, line: str) -> bool:
        """Run a slash command. Returns False when the loop should stop."""
        name, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        if name in ("quit", "exit"):
            return False
        if name == "help":
            console.print(HELP, style="info")
        elif name == "providers":
            console.print(providers_table(self.store.catalog.list_providers()))
        elif name == "models":
            provider = self.store.selected_provider
            console.print(providers_table([provider] if provider else []))
        elif name == "provider":
            self.store.select_provider(arg)
            console.print(f"Using {self._status()}", style="info")
        elif name == "model":
            self.store.select_model(arg)
            console.print(f"Using {self._status()}", style="info")
        elif name == "instructions":
            self.instructions = arg or None
            console.print("Instructions updated." if arg else "Instructions cleared.", style="info")
        elif name == "clear":
            self.dispatcher.session.clear()
            console.print("Conversation cleared.", style="info")
        else:
            console.print(f"Unknown command /{name}. Type /help.", style="warning")
        return True

    async def ask(self, text: str) -> None:
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, self.dispatcher.cancel)
        self._printed = 0
        try:
            turn = await self.dispatcher.send(text, instructions=self.instructions, on_delta=self._on_delta)
        finally:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGINT)
        if turn is None:
            console.print("\n[stopped]", style="warning")
        elif turn.content.startswith(ERROR_PREFIX):
            console.print(Panel(turn.content[len(ERROR_PREFIX):], title="Request failed", style="error"))
        elif self._printed:
            console.print()
        else:
            console.print(Markdown(turn.content))

    async def run(self) -> None:
        console.print(Panel(f"{self._status()}\nType /help for commands.", title="DocsChat"))
        while True:
            try:
                line = (await asyncio.to_thread(console.input, "[prompt]you>[/prompt] ")).strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                return
            if not line:
                continue
            try:
                if line.startswith("/"):
                    if not self.handle_command(line):
                        return
                    continue
                await self.ask(line)
            except DocsChatError as exc:
                console.print(exc.message, style="error")


async def _chat(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with make_http_client(settings, base_url=args.api_base or settings.api_base) as client:
        try:
            store = await CatalogStore.load(client)
        except (httpx.HTTPError, ValueError, DocsChatError) as exc:
            LOGGER.error("Could not load providers from %s: %s", client.base_url, exc)
            return 1
        if args.command == "providers":
            console.print(providers_table(store.catalog.list_providers()))
            return 0
        try:
            if args.provider:
                store.select_provider(args.provider)
            if args.model:
                store.select_model(args.model)
        except DocsChatError as exc:
            console.print(Panel(exc.message, title="Invalid selection", style="error"))
            return 1
        dispatcher = ChatDispatcher(client, store, ChatSession())
        await TerminalChat(dispatcher, instructions=args.instructions).run()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "docschat.main:create_app",
            factory=True,
            host=args.host or settings.server_host,
            port=args.port or settings.server_port,
            reload=args.reload,
        )
        return 0
    return asyncio.run(_chat(args))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
