from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
import uvicorn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.settings import get_settings
from dialogue.server import create_app

app = typer.Typer(help="Serve the chat API over HTTP.")


@app.command()
def run(
    host: str = typer.Option("", help="Bind address (defaults to HOST)."),
    port: int = typer.Option(0, help="Port (defaults to PORT)."),
    log_level: str = typer.Option("INFO", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    app()
