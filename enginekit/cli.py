"""
enginekit CLI

Commands:
- routes: List routes, including routes of mounted engines
- initializers: Show the resolved initializer order
- seed: Load seed data for the application or one engine
- serve: Boot the application and serve it with uvicorn

APP is an import string such as "myproject.app:application".
"""

import importlib
import logging
from typing import Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from .app import Application
from .core.config import Config
from .core.initializers import InitializerOrderError

app = typer.Typer(
    name="enginekit",
    help="Inspect, seed and serve enginekit applications",
)

console = Console()
logger = logging.getLogger(__name__)


@app.callback()
def main(log_level: str = typer.Option(Config.LOG_LEVEL, help="Logging level")):
    logging.basicConfig(
        level=log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )


def load_application(target: str) -> Application:
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        rprint(f"[red]APP must look like 'module:attribute', got {target!r}[/red]")
        raise typer.Exit(1)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        rprint(f"[red]Cannot import {module_name}: {e}[/red]")
        raise typer.Exit(1)
    application = getattr(module, attribute, None)
    if not isinstance(application, Application):
        rprint(f"[red]{target} is not an enginekit Application[/red]")
        raise typer.Exit(1)
    return application


def boot_application(target: str) -> Application:
    application = load_application(target)
    try:
        return application.boot()
    except InitializerOrderError as e:
        rprint(f"[red]Boot failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def routes(target: str = typer.Argument(..., metavar="APP", help="Application import string")):
    """List every route, with mounted engines expanded under their prefix."""
    application = boot_application(target)

    table = Table(title=f"Routes for {application.engine_name}")
    table.add_column("Name")
    table.add_column("Methods")
    table.add_column("Path")
    table.add_column("Endpoint")
    for row in application.routes.describe():
        table.add_row(row["name"], row["methods"], row["path"], row["endpoint"])
    console.print(table)


@app.command()
def initializers(target: str = typer.Argument(..., metavar="APP", help="Application import string")):
    """Print initializers in the order boot would run them."""
    application = load_application(target)
    try:
        ordered = application.initializers.tsort()
    except InitializerOrderError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Initializers")
    table.add_column("#", justify="right")
    table.add_column("Owner")
    table.add_column("Name")
    table.add_column("After")
    table.add_column("Before")
    for position, initializer in enumerate(ordered, start=1):
        table.add_row(str(position), initializer.owner_name, initializer.name, initializer.after or "", initializer.before or "")
    console.print(table)


@app.command()
def seed(
    target: str = typer.Argument(..., metavar="APP", help="Application import string"),
    engine: Optional[str] = typer.Option(None, help="Load this engine's seeds instead of the application's"),
):
    """Load db/seeds.py for the application or a single engine."""
    application = boot_application(target)
    if engine:
        try:
            component = application.engine(engine)
        except KeyError:
            rprint(f"[red]No engine named {engine!r}[/red]")
            raise typer.Exit(1)
    else:
        component = application

    if component.load_seed():
        rprint(f"[green]Seeds loaded for {component.engine_name}[/green]")
    else:
        rprint(f"[yellow]No seeds found for {component.engine_name}[/yellow]")


@app.command()
def serve(
    target: str = typer.Argument(..., metavar="APP", help="Application import string"),
    host: str = typer.Option(Config.HOST, help="Bind address"),
    port: int = typer.Option(int(Config.PORT) if Config.PORT.isdigit() else 8080, help="Bind port"),
):
    """Boot the application and serve it."""
    try:
        Config.validate()
    except ValueError as e:
        rprint(f"[red]Invalid settings: {e}[/red]")
        raise typer.Exit(1)
    application = boot_application(target)
    uvicorn.run(application, host=host, port=port)


if __name__ == "__main__":
    app()
