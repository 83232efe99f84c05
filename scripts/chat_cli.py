from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.settings import get_settings
from dialogue.engine import TurnResult, describe_turn
from dialogue.runtime import ChatRuntime, build_runtime
from knowledge.llm_client import ModelClientError

app = typer.Typer(help="Interactive terminal chat against the local model with retrieval.")
console = Console()


def _configure_logging(log_level: str) -> None:
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        force=True,
    )
    for noisy_name in ("httpx", "httpcore", "openai", "openai._base_client"):
        noisy = logging.getLogger(noisy_name)
        noisy.setLevel(logging.WARNING)
        noisy.propagate = False


def _render_turn(result: TurnResult, show_trace: bool) -> None:
    console.print(Panel(result.text or "(empty reply)", title="Assistant", border_style="green"))
    if not show_trace:
        return
    details = describe_turn(result)
    sources = ", ".join(details["sources"]) or "none"
    console.print(
        "[dim]"
        f"intent={details['intent']} sources={sources} "
        f"retrieval={details['retrieval_latency_ms']}ms model={details['latency_ms']}ms "
        f"context_words={details['context_word_count']}"
        "[/dim]"
    )


async def _chat_loop(runtime: ChatRuntime, session_id: str, show_trace: bool) -> None:
    console.print("Type `exit` or `quit` to stop, `/reset` to start a new conversation.")
    try:
        while True:
            try:
                query = console.input("\n[bold cyan]You > [/bold cyan]").strip()
            except (KeyboardInterrupt, EOFError):
                console.print("\nExiting chat.")
                break

            if not query:
                continue
            if query.lower() in {"exit", "quit"}:
                console.print("Exiting chat.")
                break
            if query == "/reset":
                runtime.engine.reset(session_id)
                console.print("[dim]Conversation reset.[/dim]")
                continue

            try:
                result = await runtime.engine.chat(session_id, query)
            except ModelClientError as exc:
                console.print(f"[red]Model call failed:[/red] {exc}")
                continue
            _render_turn(result, show_trace)
    finally:
        await runtime.aclose()


@app.command()
def run(
    session_id: str = typer.Option("", help="Session id to use (random when omitted)."),
    show_trace: bool = typer.Option(False, help="Show intent, sources and latency after each answer."),
    log_level: str = typer.Option("WARNING", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    _configure_logging(log_level)
    runtime = build_runtime(get_settings())
    if runtime.store.count_chunks() == 0:
        console.print("[dim]Knowledge index is empty. Run scripts/build_index.py to enable retrieval.[/dim]")
    sid = session_id or f"cli-{uuid.uuid4().hex}"
    asyncio.run(_chat_loop(runtime, sid, show_trace))


if __name__ == "__main__":
    app()
