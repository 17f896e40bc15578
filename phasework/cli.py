"""
CLI interface for phasework.

Provides commands to validate and run pipeline documents, list the
registered step contributors, and browse the definitions directory.

A document can be given as a file path or, when `definitions_dir` is
configured, as the id of a document in that directory.
"""

import json
from pathlib import Path

import click

from phasework import __version__

# Exit codes of `phasework run`
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNSTABLE = 2


def _get_config(ctx):
    """Config loaded by the group, or exit with the load error."""
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Fix config.yaml or run 'phasework init --force'.", err=True)
        raise SystemExit(EXIT_FAILURE)
    return ctx.obj["config"]


def _get_library(config):
    from phasework.loader import SpecLibrary

    if config.definitions_dir is None:
        click.echo("✗ No definitions_dir configured.", err=True)
        raise SystemExit(EXIT_FAILURE)
    return SpecLibrary(config.definitions_dir)


def _load_target(config, target: str):
    """Load a raw document from a path, or by id from the definitions directory."""
    from phasework.loader import SpecNotFoundError, load_document

    path = Path(target)
    if path.exists():
        return load_document(path)

    if config.definitions_dir is not None:
        try:
            return _get_library(config).load_raw(target)
        except SpecNotFoundError:
            pass

    click.echo(f"✗ Pipeline document not found: {target}", err=True)
    raise SystemExit(EXIT_FAILURE)


def _exit_code(severity) -> int:
    from phasework.schemas import Severity

    if severity == Severity.SUCCESS:
        return EXIT_SUCCESS
    if severity == Severity.UNSTABLE:
        return EXIT_UNSTABLE
    return EXIT_FAILURE


@click.group()
@click.version_option(version=__version__, prog_name="phasework")
@click.pass_context
def main(ctx):
    """
    phasework - Declarative pipeline engine.

    Run phases of named actions, concurrently within a phase.
    """
    from phasework.config import load_config
    from phasework.errors import ConfigError
    from phasework.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
    except ConfigError as e:
        # init can still repair the file; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)
        return

    ctx.obj["config"] = config
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
    )


@main.command("run")
@click.argument("target")
@click.option("--json", "as_json", is_flag=True, help="Print the run result as JSON")
@click.option(
    "--fatal-severity",
    type=click.Choice(["unstable", "failure", "aborted"], case_sensitive=False),
    help="Phase severity that stops the run (default from config)",
)
@click.pass_context
def run(ctx, target: str, as_json: bool, fatal_severity: str | None):
    """
    Run a pipeline document.

    TARGET is a document path or a document id.

    Exit status is 0 on SUCCESS, 2 on UNSTABLE and 1 otherwise.

    Examples:

        phasework run pipeline.yaml

        phasework run nightly --json
    """
    from dataclasses import replace

    from phasework.contributors import ContributorRegistry
    from phasework.errors import ConfigError, TranslationError
    from phasework.scheduler import Scheduler
    from phasework.schemas import Severity
    from phasework.utils import console, severity_markup

    config = _get_config(ctx)
    if fatal_severity:
        config = replace(config, fatal_severity=Severity.from_string(fatal_severity))

    try:
        registry = ContributorRegistry.create_default(plugins=config.plugins)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(EXIT_FAILURE)

    try:
        document = _load_target(config, target)
    except TranslationError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(EXIT_FAILURE)

    result = Scheduler(registry, config=config).run_document(document)

    if as_json:
        payload = result.to_dict()
        payload["log"] = list(result.log)
        click.echo(json.dumps(payload, indent=2))
    else:
        for line in result.log:
            click.echo(line)
        console.print(f"Result: {severity_markup(result.severity)}")
        if result.failure_reason:
            click.echo(f"Reason: {result.failure_reason}", err=True)

    raise SystemExit(_exit_code(result.severity))


@main.command("validate")
@click.argument("target")
@click.pass_context
def validate(ctx, target: str):
    """
    Validate a pipeline document without running it.

    Checks the document structure, every inline script, and every
    step reference.
    """
    from phasework.contributors import ContributorRegistry
    from phasework.errors import BuildError, ConfigError, TranslationError
    from phasework.scheduler import Scheduler
    from phasework.translator import translate

    config = _get_config(ctx)
    try:
        registry = ContributorRegistry.create_default(plugins=config.plugins)
        document = _load_target(config, target)
        spec = translate(document)
        Scheduler(registry, config=config).check(spec)
    except TranslationError as e:
        click.echo(f"✗ {e.describe()}", err=True)
        raise SystemExit(EXIT_FAILURE)
    except (BuildError, ConfigError) as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(EXIT_FAILURE)

    actions = sum(len(p.actions) for p in spec.all_phases())
    click.echo(f"✓ {target}: {len(spec.phases)} phases, {actions} actions")


@main.command("steps")
@click.pass_context
def steps(ctx):
    """List registered step contributors."""
    from phasework.contributors import ContributorRegistry
    from phasework.errors import ConfigError

    config = _get_config(ctx)
    try:
        registry = ContributorRegistry.create_default(plugins=config.plugins)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(EXIT_FAILURE)

    for name, contributor in registry.items():
        click.echo(f"{name:<12} {contributor.description}")


@main.group("specs")
def specs_group():
    """Browse pipeline documents in the definitions directory."""
    pass


@specs_group.command("list")
@click.pass_context
def list_specs(ctx):
    """List available pipeline documents."""
    library = _get_library(_get_config(ctx))
    spec_ids = library.list_specs()
    if not spec_ids:
        click.echo("No pipeline documents found.")
        return
    for spec_id in spec_ids:
        click.echo(spec_id)


@specs_group.command("show")
@click.argument("spec_id")
@click.pass_context
def show_spec(ctx, spec_id: str):
    """Show a pipeline document."""
    from phasework.errors import TranslationError
    from phasework.loader import SpecNotFoundError, compute_hash

    library = _get_library(_get_config(ctx))
    try:
        spec = library.load(spec_id)
    except SpecNotFoundError:
        click.echo(f"✗ Unknown pipeline document: {spec_id}", err=True)
        raise SystemExit(EXIT_FAILURE)
    except TranslationError as e:
        click.echo(f"✗ {spec_id}: {e.describe()}", err=True)
        raise SystemExit(EXIT_FAILURE)

    click.echo(f"Document: {spec_id}")
    click.echo(f"Definition: {library.find(spec_id)}")
    click.echo(f"SHA256: {compute_hash(spec)}")
    click.echo()
    click.echo(json.dumps(spec.to_dict(), indent=2, default=str))


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize phasework configuration."""
    import yaml

    from phasework.config import EngineConfig, get_phasework_home

    home = get_phasework_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(EXIT_FAILURE)

    default_cfg = EngineConfig().to_dict()
    default_cfg["definitions_dir"] = str(home / "definitions")
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))
    (home / "definitions").mkdir(exist_ok=True)

    click.echo(f"Initialized phasework config at {cfg_path}")


if __name__ == "__main__":
    main()
