from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tagml.core.config import (
    ALGORITHM_PARAM,
    CUTOFF_PARAM,
    ITERATIONS_PARAM,
    THREADS_PARAM,
    TrainingConfig,
    setup_logging,
)
from tagml.core.exceptions import TagmlError
from tagml.indexing.events import EventStream, FileEventStream, RealValueFileEventStream
from tagml.model.io import load_model, save_model
from tagml.model.model import Model
from tagml.training.factory import train as train_model


app = typer.Typer(help="tagml: train and inspect maxent and perceptron models.",
                  no_args_is_help=True)
console = Console()


@app.callback()
def main() -> None:
    """Model training and inspection utilities."""


def _event_stream(path: Path, real_valued: bool) -> EventStream:
    if real_valued:
        return RealValueFileEventStream(path)
    return FileEventStream(path)


def accuracy(model: Model, events: EventStream) -> tuple[int, int]:
    """Count correctly predicted events; returns (correct, total)"""
    correct = 0
    total = 0
    for event in events:
        probs = model.eval(event.context, event.values)
        if model.best_outcome(probs) == event.outcome:
            correct += 1
        total += 1
    return correct, total


@app.command()
def train(
    events: Path = typer.Argument(..., exists=True, dir_okay=False, help="Event file, one event per line"),
    model: Path = typer.Argument(..., help="Where to write the model"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML training parameters"),
    algorithm: Optional[str] = typer.Option(None, "--algorithm", help="MAXENT | MAXENT_QN | PERCEPTRON"),
    iterations: Optional[int] = typer.Option(None, "--iterations", help="Training iterations"),
    cutoff: Optional[int] = typer.Option(None, "--cutoff", help="Minimum predicate count"),
    threads: Optional[int] = typer.Option(None, "--threads", help="Worker threads (MAXENT_QN)"),
    real_valued: bool = typer.Option(False, "--real-valued/--no-real-valued", help="Predicates carry =value suffixes"),
    binary: Optional[bool] = typer.Option(None, "--binary/--text", help="Model encoding (default: by suffix)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the logging level"),
) -> None:
    """Train a model on an event file and save it."""
    try:
        params = TrainingConfig.from_yaml(str(config)) if config else TrainingConfig.defaults()
        for key, value in ((ALGORITHM_PARAM, algorithm), (ITERATIONS_PARAM, iterations),
                           (CUTOFF_PARAM, cutoff), (THREADS_PARAM, threads)):
            if value is not None:
                params.put(key, value)
        params.validate()
        setup_logging(params, log_level)

        result = train_model(_event_stream(events, real_valued), params)
        written = save_model(result.model, model, binary)
    except TagmlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    diagnostics = result.diagnostics
    typer.echo(f"Trained {result.model.model_type.value} model on {diagnostics.num_events} events "
               f"in {diagnostics.iterations} iterations ({diagnostics.stop_reason})")
    if diagnostics.training_accuracy is not None:
        typer.echo(f"Training accuracy: {diagnostics.training_accuracy:.4f}")
    typer.echo(f"Saved model to {written}")


@app.command()
def info(
    model: Path = typer.Argument(..., exists=True, dir_okay=False, help="Model file"),
    binary: Optional[bool] = typer.Option(None, "--binary/--text", help="Model encoding (default: by suffix)"),
) -> None:
    """Show the type and size of a saved model."""
    try:
        loaded = load_model(model, binary)
    except TagmlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    num_parameters = sum(len(context) for context in loaded.params)
    table = Table(title=str(model), show_lines=True)
    table.add_column("Property")
    table.add_column("Value", justify="right")
    table.add_row("Type", loaded.model_type.value)
    table.add_row("Outcomes", str(loaded.num_outcomes))
    table.add_row("Predicates", str(loaded.num_predicates))
    table.add_row("Parameters", str(num_parameters))
    console.print(table)


@app.command(name="eval")
def eval_model(
    model: Path = typer.Argument(..., exists=True, dir_okay=False, help="Model file"),
    events: Path = typer.Argument(..., exists=True, dir_okay=False, help="Event file to score"),
    real_valued: bool = typer.Option(False, "--real-valued/--no-real-valued", help="Predicates carry =value suffixes"),
    binary: Optional[bool] = typer.Option(None, "--binary/--text", help="Model encoding (default: by suffix)"),
) -> None:
    """Report the accuracy of a model on an event file."""
    try:
        loaded = load_model(model, binary)
        correct, total = accuracy(loaded, _event_stream(events, real_valued))
    except TagmlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    if total == 0:
        typer.echo("No events to evaluate")
        raise typer.Exit(code=1)
    typer.echo(f"Accuracy: {correct / total:.4f} ({correct}/{total})")


if __name__ == "__main__":
    app()
