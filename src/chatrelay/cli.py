"""chatrelay command line.

    chatrelay serve --port 8080
    echo '{"messages": [{"role": "user", "content": "Hi"}]}' | chatrelay prompt --pretty
"""

import json
import sys

import typer
import uvicorn

from . import config
from .errors import MalformedInput
from .prompt import ChatStreamRequest, assemble_messages, load_system_directive, parse_body

app = typer.Typer(help="Streaming chat relay.")


@app.command()
def serve(
    host: str = typer.Option(config.HOST, "--host", help="Interface to bind"),
    port: int = typer.Option(config.PORT, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the relay server."""
    uvicorn.run(
        "chatrelay.app:build_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def prompt(
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON output"),
):
    """Show the message list that would be sent upstream. No network."""
    raw = sys.stdin.read().strip()
    if not raw:
        typer.echo("Error: No input provided on stdin", err=True)
        raise typer.Exit(1)

    try:
        body = parse_body(ChatStreamRequest, raw.encode())
    except MalformedInput as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    messages = assemble_messages(body.messages, load_system_directive())
    typer.echo(json.dumps(messages, indent=2 if pretty else None, ensure_ascii=False))


if __name__ == "__main__":
    app()
