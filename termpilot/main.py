"""Main entry point for termpilot."""

import asyncio
import sys
from pathlib import Path

import typer

from termpilot import __version__
from termpilot.cli import TerminalUI
from termpilot.config import Config, set_config
from termpilot.conversation import ConversationEngine
from termpilot.exceptions import ConfigurationError, LLMError
from termpilot.llm import create_client
from termpilot.logging import configure_logging, log
from termpilot.tools import ToolExecutor

app = typer.Typer(
    help="termpilot - a terminal coding assistant",
    add_completion=False,
    invoke_without_command=True,
)


def build_config(config: str = "", model: str = "", cwd: str = "") -> Config:
    """Load configuration and apply command-line overrides."""
    cfg = Config.load(Path(config) if config else None)
    if model:
        cfg.api.model = model
    if cwd:
        cfg.workspace.path = str(Path(cwd).expanduser().resolve())
    if not cfg.api.api_key:
        raise ConfigurationError(
            "No API key configured. Set ANTHROPIC_API_KEY or api.api_key in the config file."
        )
    return cfg


def create_engine(cfg: Config, ui: TerminalUI) -> ConversationEngine:
    work_dir = cfg.resolved_work_dir()
    if not work_dir.is_dir():
        raise ConfigurationError(f"Working directory does not exist: {work_dir}")
    return ConversationEngine(
        client=create_client(cfg),
        executor=ToolExecutor(work_dir, cfg.tools),
        display=ui,
        model=cfg.api.model,
        max_iterations=cfg.conversation.max_iterations,
        require_confirmation=cfg.tools.require_confirmation,
        max_tokens=cfg.api.max_tokens,
    )


async def _send(engine: ConversationEngine, text: str) -> None:
    try:
        await engine.send_message(text)
    except LLMError as e:
        # Already shown by the engine; the session continues.
        log.debug("Exchange failed", error=str(e))


async def run_interactive(engine: ConversationEngine, ui: TerminalUI) -> None:
    """Read prompts until /exit or EOF."""
    ui.print_welcome(engine.model, engine.executor.work_dir)
    try:
        while True:
            line = await asyncio.to_thread(ui.read_input)
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text in ("/exit", "/quit"):
                break
            if text == "/help":
                ui.print_help()
                continue
            if text == "/clear":
                engine.clear()
                ui.show_info("Conversation cleared.")
                continue
            await _send(engine, text)
    finally:
        await _shutdown(engine)


async def run_once(engine: ConversationEngine, prompt: str) -> int:
    """Run a single prompt and exit."""
    try:
        await engine.send_message(prompt)
    except LLMError:
        return 1
    finally:
        await _shutdown(engine)
    return 0


async def _shutdown(engine: ConversationEngine) -> None:
    await engine.executor.close()
    await engine.client.close()


@app.callback()
def main(
    ctx: typer.Context,
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    cwd: str = typer.Option("", "-C", "--cwd", help="Working directory for tools"),
    prompt: str = typer.Option("", "-p", "--prompt", help="Run one prompt and exit"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start a termpilot session."""
    if ctx.invoked_subcommand is not None:
        return

    try:
        cfg = build_config(config, model, cwd)
        set_config(cfg)
        configure_logging("DEBUG" if verbose else None)
        ui = TerminalUI()
        engine = create_engine(cfg, ui)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    try:
        if prompt:
            code = asyncio.run(run_once(engine, prompt))
            raise typer.Exit(code=code)
        asyncio.run(run_interactive(engine, ui))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"termpilot v{__version__}")


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
