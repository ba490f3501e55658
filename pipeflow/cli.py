"""
Command-line interface for pipeflow.
"""

import sys
import logging
from pathlib import Path

import click

from pipeflow import __version__

_DEPENDENCIES = (
    "pandas",
    "numpy",
    "SQLAlchemy",
    "requests",
    "tenacity",
    "PyYAML",
    "click",
    "tqdm",
    "pyarrow",
    "openpyxl",
)


@click.group()
@click.version_option(version=__version__, prog_name="pipeflow")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def main(verbose: bool):
    """PipeFlow: fluent, lazy data pipelines."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _describe(config) -> None:
    click.echo(f"  Job: {config.name}")
    click.echo(f"  Source: {config.source.type if config.source else 'None'}")
    click.echo(f"  Steps: {len(config.steps)}")
    click.echo(f"  Sink: {config.sink.type if config.sink else 'None'}")


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--dry-run", is_flag=True, help="Validate config without running")
@click.option("--no-progress", is_flag=True, help="Disable progress bar")
def run(config_file: str, dry_run: bool, no_progress: bool):
    """
    Run a job from a configuration file.

    CONFIG_FILE: Path to YAML or JSON configuration file.

    Example:

        pipeflow run job.yaml

        pipeflow run job.json --dry-run
    """
    from pipeflow.core.config import ConfigLoader
    from pipeflow.core.runner import JobRunner

    click.echo(f"Loading configuration: {config_file}")

    try:
        loader = ConfigLoader()
        config = loader.load(config_file)

        errors = config.validate()
        if errors:
            click.echo(click.style("Configuration errors:", fg="red"))
            for error in errors:
                click.echo(f"  - {error}")
            sys.exit(1)

        click.echo(click.style("Configuration valid", fg="green"))
        _describe(config)

        if dry_run:
            click.echo("\nDry run - skipping execution")
            return

        click.echo("\nRunning job...")
        stats = JobRunner(config, show_progress=not no_progress, loader=loader).run()

        click.echo(click.style("\nJob completed successfully", fg="green"))
        click.echo(f"  Rows processed: {stats['rows']:,}")
        click.echo(f"  Rows written: {stats['written']:,}")
        click.echo(f"  Duration: {stats['duration']:.2f}s")
        click.echo(f"  Throughput: {stats['rows_per_second']:,.0f} rows/sec")

    except FileNotFoundError as e:
        click.echo(click.style(f"File not found: {e}", fg="red"))
        sys.exit(1)
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        if logging.getLogger().level == logging.DEBUG:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate(config_file: str):
    """
    Validate a job configuration file.

    CONFIG_FILE: Path to YAML or JSON configuration file.
    """
    from pipeflow.core.config import ConfigLoader

    click.echo(f"Validating: {config_file}")

    try:
        config = ConfigLoader().load(config_file)
    except Exception as e:
        click.echo(click.style(f"Error parsing config: {e}", fg="red"))
        sys.exit(1)

    errors = config.validate()
    if errors:
        click.echo(click.style("Validation FAILED", fg="red"))
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)

    click.echo(click.style("Validation PASSED", fg="green"))
    click.echo(f"\nJob: {config.name}")
    if config.description:
        click.echo(f"Description: {config.description}")
    click.echo(f"Source: {config.source.type}")
    click.echo(f"Steps: {len(config.steps)}")
    for i, step in enumerate(config.steps, 1):
        click.echo(f"  {i}. {step.type}")
    click.echo(f"Sink: {config.sink.type}")


@main.command()
@click.option("-o", "--output", type=click.Path(), default="job.yaml",
              help="Output file path")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml",
              help="Configuration format")
def init(output: str, fmt: str):
    """
    Generate a sample job configuration file.

    Example:

        pipeflow init -o my_job.yaml

        pipeflow init --format json -o job.json
    """
    from pipeflow.core.config import generate_sample_config

    content = generate_sample_config()

    if fmt == "json":
        import json
        import yaml
        content = json.dumps(yaml.safe_load(content), indent=2)
        if not output.endswith(".json"):
            output = output.rsplit(".", 1)[0] + ".json"

    output_path = Path(output)

    if output_path.exists():
        if not click.confirm(f"File '{output}' exists. Overwrite?"):
            click.echo("Aborted")
            return

    output_path.write_text(content, encoding="utf-8")
    click.echo(click.style(f"Created: {output}", fg="green"))
    click.echo("\nEdit the configuration file, then run:")
    click.echo(f"  pipeflow run {output}")


@main.command()
def info():
    """
    Show information about the pipeflow installation.
    """
    from importlib.metadata import version

    click.echo(f"pipeflow version: {__version__}")
    click.echo(f"Python version: {sys.version}")

    click.echo("\nDependencies:")
    for dist in _DEPENDENCIES:
        click.echo(f"  {dist}: {version(dist)}")


if __name__ == "__main__":
    main()
