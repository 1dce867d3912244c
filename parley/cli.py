"""Parley command-line interface.

Commands:
    suggest          Generate reply options for a message
    prompts          Show which prompts apply to a sender or group
    parse            Run the response parser over a saved model response
    test-connection  Send a test message to the configured endpoint
    serve            Start the HTTP API server
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from contracts.conversation import ContextMessage, SenderInfo
from parley import __version__
from parley.config import CONFIG_PATH, get_config, load_config, set_config
from parley.errors import (
    ConfigurationError,
    HttpStatusError,
    NetworkError,
    ParleyError,
    RateLimitedError,
    RetriesExhaustedError,
    ValidationError,
)
from parley.observability.logging import configure_logging
from parley.parsing import parse_response
from parley.prompts import PromptStatus, calculate_status, select_prompts
from parley.suggestions import SuggestionService
from parley.transport import HttpxTransport

console = Console()
logger = logging.getLogger(__name__)


class HelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom help formatter with improved argument formatting."""

    def __init__(self, prog: str) -> None:
        """Initialize formatter with wider help text."""
        super().__init__(prog, max_help_position=30, width=100)


def _format_parley_error(error: ParleyError) -> None:
    """Display a Parley error with a hint for fixing it.

    Args:
        error: The error to display.
    """
    console.print(f"[red]Error: {error.message}[/red]")

    if isinstance(error, ConfigurationError):
        key = error.details.get("config_key")
        if key:
            console.print(f"[yellow]Set '{key}' in {CONFIG_PATH} or via the environment.[/yellow]")
    elif isinstance(error, RateLimitedError):
        console.print("[yellow]The endpoint is rate limiting requests. Wait and try again.[/yellow]")
    elif isinstance(error, HttpStatusError):
        preview = error.details.get("body_preview")
        if preview:
            console.print(f"[dim]{preview}[/dim]")
    elif isinstance(error, NetworkError):
        console.print("[yellow]Check the endpoint URL and your network connection.[/yellow]")

    logger.debug(
        "ParleyError details - code=%s, details=%s, cause=%s",
        error.code.value,
        error.details,
        error.cause,
    )


def _load_context(path: str | None) -> list[ContextMessage] | None:
    """Read context messages from a JSON file holding a list of objects."""
    if path is None:
        return None
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(
            f"Cannot read context file: {e}", field="context_file", value=path, cause=e
        ) from e
    if not isinstance(data, list):
        raise ValidationError("Context file must hold a JSON list", field="context_file", value=path)
    messages = []
    for item in data:
        if not isinstance(item, dict) or "content" not in item:
            raise ValidationError("Each context entry needs a 'content' field", field="context_file")
        try:
            timestamp = int(item.get("timestamp", 0))
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Context timestamps must be epoch milliseconds",
                field="context_file",
                value=item.get("timestamp"),
                cause=e,
            ) from e
        messages.append(
            ContextMessage(
                sender_name=str(item.get("sender_name", "")),
                content=str(item["content"]),
                is_self=bool(item.get("is_self", False)),
                timestamp=timestamp,
            )
        )
    return messages


def _print_options(options: list[str], as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps({"options": options}, ensure_ascii=False))
        return
    console.print("\n[bold green]Reply options:[/bold green]")
    for i, option in enumerate(options, 1):
        console.print(f"  {i}. {option}")


# =============================================================================
# Commands
# =============================================================================


async def _suggest(
    message: str, sender: SenderInfo, context: list[ContextMessage] | None
) -> list[str] | None:
    config = get_config()
    async with HttpxTransport.from_config(config.transport) as transport:
        service = SuggestionService(config, transport)
        try:
            return await service.suggest(message, sender, context)
        except RetriesExhaustedError as e:
            exhausted = e
        while True:
            console.print(f"[yellow]{exhausted.message}[/yellow]")
            if not Confirm.ask("Retry?", default=True, console=console):
                return None
            try:
                return await exhausted.retry()
            except RetriesExhaustedError as e:
                exhausted = e


def cmd_suggest(args: argparse.Namespace) -> int:
    """Generate reply options for a message.

    Args:
        args: Parsed arguments with message, sender and optional group/context.

    Returns:
        Exit code.
    """
    sender = SenderInfo(
        sender_id=args.sender,
        sender_name=args.sender_name or args.sender,
        group_id=args.group,
    )
    context = _load_context(args.context_file)

    options = asyncio.run(_suggest(args.message, sender, context))
    if options is None:
        return 1
    if not options:
        console.print("[dim]Suggestions are turned off for this sender.[/dim]")
        return 0
    _print_options(options, args.json)
    return 0


def cmd_prompts(args: argparse.Namespace) -> int:
    """Show prompt status for a sender and optional group.

    Args:
        args: Parsed arguments with sender and group.

    Returns:
        Exit code.
    """
    config = get_config()
    selected = {p.name for p in select_prompts(config.prompts, args.sender, args.group, config.ai_enabled)}

    table = Table(title=f"Prompts for {args.sender}" + (f" in {args.group}" if args.group else ""))
    table.add_column("#", justify="right")
    table.add_column("Prompt", style="bold")
    table.add_column("Status")
    table.add_column("Selected")

    status_colors = {
        PromptStatus.FORCE_ON: "green",
        PromptStatus.DEFAULT: "cyan",
        PromptStatus.FORCE_OFF: "red",
    }
    for i, prompt in enumerate(config.prompts, 1):
        status = calculate_status(prompt, args.sender, args.group, config.ai_enabled)
        color = status_colors[status]
        table.add_row(
            str(i),
            prompt.name,
            f"[{color}]{status.value}[/{color}]",
            "yes" if prompt.name in selected else "",
        )

    console.print(table)
    if not selected:
        console.print("[yellow]No prompt applies; suggestions are suppressed.[/yellow]")
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Run the parser over a response read from a file or stdin.

    Args:
        args: Parsed arguments with the input path ("-" for stdin).

    Returns:
        Exit code, 1 if no options could be recovered.
    """
    if args.input == "-":
        raw = sys.stdin.read()
    else:
        try:
            raw = Path(args.input).read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(f"Cannot read {args.input}: {e}", field="input", cause=e) from e

    outcome = parse_response(raw)
    if not outcome.ok:
        reason = outcome.reason.value if outcome.reason else "unknown"
        console.print(
            f"[red]No options recovered ({reason}, best candidate count: "
            f"{outcome.candidate_count})[/red]"
        )
        return 1

    options = list(outcome.options or ())
    if args.json:
        payload: dict[str, Any] = {
            "options": options,
            "strategy": outcome.strategy.value if outcome.strategy else None,
        }
        console.print_json(json.dumps(payload, ensure_ascii=False))
        return 0
    console.print(f"[dim]Strategy: {outcome.strategy.value if outcome.strategy else '-'}[/dim]")
    _print_options(options, as_json=False)
    return 0


async def _test_connection() -> list[str]:
    config = get_config()
    async with HttpxTransport.from_config(config.transport) as transport:
        return await SuggestionService(config, transport).test_connection()


def cmd_test_connection(args: argparse.Namespace) -> int:
    """Send a test message to the configured endpoint.

    Returns:
        Exit code.
    """
    config = get_config()
    console.print(
        Panel(
            f"Provider: {config.provider}\n"
            f"Model: {config.model}\n"
            f"Endpoint: {config.endpoint_url or '[red]not set[/red]'}",
            title="Connection Test",
        )
    )
    options = asyncio.run(_test_connection())
    console.print("[bold green]Connection OK[/bold green]")
    _print_options(options, as_json=False)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server.

    Args:
        args: Parsed arguments with host, port, and reload options.

    Returns:
        Exit code.
    """
    import uvicorn

    console.print(
        Panel(
            f"[bold green]Starting Parley API Server[/bold green]\n"
            f"Host: {args.host}\n"
            f"Port: {args.port}\n"
            f"Reload: {'Enabled' if args.reload else 'Disabled'}",
            title="API Server",
        )
    )

    try:
        uvicorn.run(
            "api.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level="info",
        )
        return 0
    except Exception as e:
        console.print(f"[red]Error starting server: {e}[/red]")
        return 1


# =============================================================================
# Parser
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="parley",
        description="Parley - AI reply options for chat messages",
        formatter_class=HelpFormatter,
        epilog="""
Examples:
  parley suggest "dinner at 8?" --sender alice     Get reply options
  parley prompts --sender alice --group friends    Show prompt status
  parley parse response.txt                        Parse a saved model response
  parley test-connection                           Check endpoint settings
  parley serve --port 8742                         Start the API server
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument(
        "--json-logs", action="store_true", help="emit logs as JSON lines"
    )
    parser.add_argument(
        "--config", metavar="PATH", help=f"config file (default: {CONFIG_PATH})"
    )
    parser.add_argument("--version", action="version", version=f"parley {__version__}")

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Use 'parley <command> --help' for more information on a specific command.",
        metavar="<command>",
    )

    suggest_parser = subparsers.add_parser(
        "suggest", help="generate reply options for a message", formatter_class=HelpFormatter
    )
    suggest_parser.add_argument("message", help="message that needs replies")
    suggest_parser.add_argument("--sender", required=True, help="sender account id")
    suggest_parser.add_argument("--sender-name", help="sender display name")
    suggest_parser.add_argument("--group", help="group chat id")
    suggest_parser.add_argument(
        "--context-file",
        metavar="PATH",
        help="JSON list of {sender_name, content, is_self, timestamp} objects",
    )
    suggest_parser.add_argument("--json", action="store_true", help="print options as JSON")
    suggest_parser.set_defaults(func=cmd_suggest)

    prompts_parser = subparsers.add_parser(
        "prompts", help="show prompt status for a sender", formatter_class=HelpFormatter
    )
    prompts_parser.add_argument("--sender", required=True, help="sender account id")
    prompts_parser.add_argument("--group", help="group chat id")
    prompts_parser.set_defaults(func=cmd_prompts)

    parse_parser = subparsers.add_parser(
        "parse", help="parse a saved model response", formatter_class=HelpFormatter
    )
    parse_parser.add_argument("input", nargs="?", default="-", help="file path, or - for stdin")
    parse_parser.add_argument("--json", action="store_true", help="print result as JSON")
    parse_parser.set_defaults(func=cmd_parse)

    test_parser = subparsers.add_parser(
        "test-connection", help="send a test message", formatter_class=HelpFormatter
    )
    test_parser.set_defaults(func=cmd_test_connection)

    serve_parser = subparsers.add_parser(
        "serve", help="start the API server", formatter_class=HelpFormatter
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="bind address")
    serve_parser.add_argument("--port", type=int, default=8742, help="port")
    serve_parser.add_argument("--reload", action="store_true", help="auto-reload on changes")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. Uses sys.argv if None.

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, structured=args.json_logs)

    if args.config:
        set_config(load_config(Path(args.config)))

    if args.command is None:
        parser.print_help()
        return 0

    result: int = args.func(args)
    return result


def run() -> NoReturn:
    """Entry point that handles errors and exit."""
    try:
        exit_code = main()
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        exit_code = 130
    except ParleyError as e:
        _format_parley_error(e)
        exit_code = 1
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        logger.exception("Unexpected error")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    run()
