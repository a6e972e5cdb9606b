"""CLI entry point for the resource

Concourse runs ``/opt/resource/{check,in,out}`` with the request on stdin and
the build directory as the first argument. The response document is the only
thing ever written to stdout; logs and playbook output go to stderr.
"""

import json
import sys
from typing import List, Optional

import typer
from rich.panel import Panel
from rich.text import Text

from ctr.exceptions import CTRError
from ctr.utils.log import setup_logging, stderr_console

app = typer.Typer(
    name="ctr",
    help="Concourse resource running terraform through ansible-playbook",
    add_completion=False
)
console = stderr_console


def handle_ctr_error(error: CTRError, exit_code: int = 1):
    """Handle CTR errors with Rich formatting

    Args:
        error: CTR exception to handle
        exit_code: Exit code to use
    """
    if error.help_text:
        panel_content = f"{error.message}\n\n[bold cyan]Help:[/bold cyan]\n{error.help_text}"
    else:
        panel_content = error.message

    panel = Panel(
        panel_content,
        title="[bold red]Error[/bold red]",
        border_style="red",
        expand=False
    )

    console.print(panel)
    raise typer.Exit(exit_code)


def handle_unexpected_error(error: Exception, exit_code: int = 1):
    """Handle unexpected errors with Rich formatting

    Args:
        error: Exception to handle
        exit_code: Exit code to use
    """
    error_text = Text()
    error_text.append("✗ Unexpected Error: ", style="bold red")
    error_text.append(str(error))

    console.print(error_text)
    console.print(f"[dim]Error type: {type(error).__name__}[/dim]")

    raise typer.Exit(exit_code)


def _load_config():
    from ctr.config import RuntimeConfig

    config = RuntimeConfig.from_environ()
    setup_logging(config.log_level)
    return config


@app.command()
def check(
    workdir: Optional[str] = typer.Argument(None, help="Unused, accepted for symmetry")
):
    """Report the supplied version, if any"""
    from ctr.commands.check import CheckCommand

    try:
        _load_config()
        versions = CheckCommand().execute(sys.stdin.read())
        typer.echo(json.dumps([v.model_dump() for v in versions]))

    except CTRError as e:
        handle_ctr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@app.command("in")
def get(
    workdir: str = typer.Argument(..., help="Directory to fetch the version into")
):
    """Fetch a version (echoes the requested version)"""
    from ctr.commands.get import GetCommand
    from ctr.config import Environment

    try:
        _load_config()
        env = Environment.from_environ()
        response = GetCommand(workdir, env).execute(sys.stdin.read())
        typer.echo(response.model_dump_json())

    except CTRError as e:
        handle_ctr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


@app.command("out")
def put(
    workdir: str = typer.Argument(..., help="Build directory holding the job's inputs")
):
    """Run the out playbook and emit the produced version"""
    from ctr.commands.put import PutCommand
    from ctr.config import Environment

    try:
        config = _load_config()
        env = Environment.from_environ()
        command = PutCommand(workdir, env, config=config, output=sys.stderr)
        response = command.execute(sys.stdin.read())
        typer.echo(response.model_dump_json())

    except CTRError as e:
        handle_ctr_error(e)
    except Exception as e:
        handle_unexpected_error(e)


def _run(command: str, argv: Optional[List[str]] = None):
    args = sys.argv[1:] if argv is None else argv
    app(args=[command, *args], prog_name=command)


def check_main(argv: Optional[List[str]] = None):
    """Console script for /opt/resource/check"""
    _run("check", argv)


def in_main(argv: Optional[List[str]] = None):
    """Console script for /opt/resource/in"""
    _run("in", argv)


def out_main(argv: Optional[List[str]] = None):
    """Console script for /opt/resource/out"""
    _run("out", argv)


if __name__ == "__main__":
    app()
