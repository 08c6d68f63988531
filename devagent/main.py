"""
devagent v1.0.0: local-LLM coding agent.

Commands: devagent run TASK · devagent serve · devagent config
"""

import sys

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .agent import Agent, RunRequest
from .config import CONFIG_FIELDS, Config
from .errors import AgentError, AgentStoppedError
from .logger import setup_error_log, setup_logger
from .rendering import ConsoleEventSink, render_error
from .transport import ChatTransport

console = Console()
BANNER = (
    f"[bold #7FA6D9]devagent[/bold #7FA6D9] "
    f"[dim]v{__version__} · local-LLM coding agent[/dim]"
)


def _setup_logging(config: Config):
    setup_logger("devagent", verbose=config.verbose, log_file=config.log_file)
    setup_error_log(config.error_log)


def compose_task(task: str, review: bool = False, target: str = None) -> str:
    """Prefix the task with the mode and target-folder tags the agent reads."""
    tags = []
    if review:
        tags.append("[MODE: REVIEW]")
    if target:
        tags.append(f"[TARGET FOLDER: {target}]")
    return " ".join(tags + [task]) if tags else task


@click.group()
@click.version_option(__version__, prog_name="devagent")
def cli():
    """devagent: local-LLM coding agent."""


@cli.command()
@click.argument("task", nargs=-1, required=True)
@click.option("--review", is_flag=True, help="Review the workspace instead of changing it")
@click.option("--fast", is_flag=True, help="Fast mode: no THOUGHT output")
@click.option("--target", "-t", default=None, help="Sub-folder of the workspace to work in")
@click.option("--model", "-m", default=None, help="Model name override")
@click.option("--max-steps", type=int, default=None, help="Step budget override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(task, review, fast, target, model, max_steps, project_dir, verbose):
    """Run one task to completion."""
    console.print(BANNER)
    config = Config.load(project_dir)
    if model:
        config.model = model
    if max_steps:
        ok, err = config.set_config_value("max-steps", max_steps, persist=False)
        if not ok:
            raise click.BadParameter(err, param_hint="--max-steps")
    if verbose:
        config.verbose = True
    _setup_logging(config)

    console.print(f"  [#8B949E]model[/#8B949E] [bold #E6EDF3]{config.model}[/bold #E6EDF3] "
                  f"[#6E7681]· {config.workspace_root}[/#6E7681]")

    agent = Agent(ChatTransport.from_config(config), config)
    request = RunRequest(
        messages=[{"role": "user", "content": compose_task(" ".join(task), review, target)}],
        workspace_root=str(config.workspace_root),
        fast=fast,
    )
    try:
        result = agent.run(request, ConsoleEventSink(console, verbose=config.verbose))
    except AgentStoppedError:
        sys.exit(130)
    except AgentError:
        # Already rendered through the error event.
        sys.exit(1)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", "-p", type=int, default=None, help="Port")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def serve(host, port, project_dir, verbose):
    """Serve the agent over HTTP (server-sent events)."""
    import uvicorn

    from .server import create_app

    console.print(BANNER)
    config = Config.load(project_dir)
    if verbose:
        config.verbose = True
    _setup_logging(config)
    host = host or config.host
    port = port or config.port
    console.print(f"  [#8B949E]listening on[/#8B949E] [bold #E6EDF3]http://{host}:{port}[/bold #E6EDF3] "
                  f"[#6E7681]· {config.workspace_root}[/#6E7681]")
    uvicorn.run(create_app(config), host=host, port=port,
                log_level="info" if config.verbose else "warning")


@cli.group("config", invoke_without_command=True)
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.pass_context
def config_cmd(ctx, project_dir):
    """Show or change configuration."""
    ctx.obj = Config.load(project_dir)
    if ctx.invoked_subcommand is None:
        ctx.invoke(show)


@config_cmd.command()
@click.pass_obj
def show(cfg: Config):
    """Show the effective configuration."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in cfg.summary().items():
        table.add_row(f"[#8B949E]{key}[/#8B949E]", f"[#E6EDF3]{value}[/#E6EDF3]")
    console.print(table)


@config_cmd.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def set_value(cfg: Config, key, value):
    """Set KEY to VALUE and save it."""
    if key not in CONFIG_FIELDS:
        known = ", ".join(sorted(CONFIG_FIELDS))
        raise click.BadParameter(f"Unknown key '{key}'. Known keys: {known}", param_hint="KEY")
    ok, err = cfg.set_config_value(key, value)
    if not ok:
        render_error(console, f"{key}: {err}")
        sys.exit(1)
    console.print(f"  [#57DB9C]✓[/#57DB9C] {key} = {cfg.get_config_value(key)}")


if __name__ == "__main__":
    cli()
