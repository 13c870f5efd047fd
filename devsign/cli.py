"""devsign CLI application with Typer."""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer

from devsign import __version__
from devsign.bootstrap import bootstrap_application
from devsign.config import get_settings, set_settings

app = typer.Typer(
    name="devsign",
    help="Ephemeral development signing keys and batch package signing",
    add_completion=True,
    no_args_is_help=True,
)
key_app = typer.Typer(help="Local signing key lifecycle")
agent_app = typer.Typer(help="Project-only gpg-agent control")
audit_app = typer.Typer(help="Audit ledger inspection")
app.add_typer(key_app, name="key")
app.add_typer(agent_app, name="agent")
app.add_typer(audit_app, name="audit")

LabelOption = Annotated[
    str | None, typer.Option("--label", "-l", help="Key label (key directory name)")
]
KeysDirOption = Annotated[
    Path | None, typer.Option("--keys-dir", help="Parent directory of key directories")
]
EmailOption = Annotated[
    str | None, typer.Option("--email", help="Identity the key is bound to")
]


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"devsign version {__version__}")
        raise typer.Exit()


def _fail(exc: BaseException, code: int = 1) -> typer.Exit:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


def _key_overrides(
    label: str | None,
    keys_dir: Path | None,
    email: str | None,
    key_file: str | None = None,
) -> dict[str, Any]:
    settings = get_settings()
    resolved_label = label or settings.key_label
    overrides: dict[str, Any] = {"label": resolved_label, "email": email, "key_file": key_file}
    if keys_dir is not None:
        overrides["directory"] = keys_dir.expanduser().resolve() / resolved_label
    return overrides


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug information"),
    ] = False,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Override data directory"),
    ] = None,
) -> None:
    """devsign - isolated, short-lived GPG keys for signing packages."""
    settings = get_settings()
    if verbose:
        settings.verbose = True
    if data_dir:
        settings.data_dir = data_dir
    set_settings(settings)

    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else settings.log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )


@key_app.command("ensure")
def key_ensure(
    label: LabelOption = None,
    keys_dir: KeysDirOption = None,
    email: EmailOption = None,
    key_file: Annotated[
        str | None, typer.Option("--key-file", help="Exported public key filename")
    ] = None,
) -> None:
    """Generate a signing key unless an unexpired one already exists."""
    container = bootstrap_application()
    service = container.key_service(**_key_overrides(label, keys_dir, email, key_file))

    try:
        status = service.ensure_key()
    except (RuntimeError, OSError) as exc:
        raise _fail(exc) from exc

    config = service.config
    if status.generated:
        typer.secho(
            f"Generated new GPG key ({config.email}) under {config.directory}.",
            fg=typer.colors.GREEN,
        )
    typer.echo(f"GPG key ({config.email}) will expire in {status.days_left} days.")
    typer.echo(f"Public key: {status.key_path}")


@key_app.command("info")
def key_info(
    label: LabelOption = None,
    keys_dir: KeysDirOption = None,
) -> None:
    """Show identity, key id and size of the key in a key directory."""
    container = bootstrap_application()
    service = container.key_service(**_key_overrides(label, keys_dir, None))

    try:
        metadata = container.metadata_cache.load(service.config.directory)
        days_left = service.store.days_until_expiry(metadata.name)
    except (RuntimeError, OSError) as exc:
        raise _fail(exc) from exc

    typer.echo(f"Directory: {metadata.directory}")
    typer.echo(f"Identity:  {metadata.name}")
    typer.echo(f"Key ID:    {metadata.key_id}")
    typer.echo(f"Key size:  {metadata.key_size}")
    typer.echo(f"Expires in {days_left} days")


@app.command("sign")
def sign(
    artifacts: Annotated[
        str,
        typer.Argument(help="Directory, file or glob of directories containing packages"),
    ],
    label: LabelOption = None,
    keys_dir: KeysDirOption = None,
    email: EmailOption = None,
    force: Annotated[
        bool | None,
        typer.Option("--force/--no-force", help="Re-sign packages that are already signed"),
    ] = None,
    max_concurrent: Annotated[
        int | None,
        typer.Option("--max-concurrent", "-j", min=1, help="Concurrent signing jobs"),
    ] = None,
    ensure_key: Annotated[
        bool,
        typer.Option("--ensure-key/--no-ensure-key", help="Create or refresh the key first"),
    ] = True,
    progress: Annotated[
        bool,
        typer.Option("--progress/--no-progress", help="Show a progress bar"),
    ] = True,
    json_output: Annotated[
        bool, typer.Option("--json", help="Print the batch result as JSON")
    ] = False,
) -> None:
    """Sign every package found under ARTIFACTS with the local key."""
    container = bootstrap_application()
    settings = container.settings
    service = container.key_service(**_key_overrides(label, keys_dir, email))

    try:
        if ensure_key:
            service.ensure_key()
        result = container.signing_service.sign_all(
            artifacts,
            service.config.directory,
            force=settings.force if force is None else force,
            max_concurrent=max_concurrent or settings.max_concurrent,
            show_progress=progress and not json_output,
            progress_title="sign",
        )
    except (RuntimeError, OSError) as exc:
        raise _fail(exc) from exc

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo(
            f"Processed {result.total} packages: {len(result.signed)} signed, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed."
        )
        for outcome in result.results:
            if outcome.error is not None:
                typer.secho(f"  FAILED {outcome.artifact}: {outcome.error}", fg=typer.colors.RED)

    if result.failed:
        raise typer.Exit(code=2)


@agent_app.command("stop")
def agent_stop(
    label: LabelOption = None,
    keys_dir: KeysDirOption = None,
) -> None:
    """Terminate the gpg-agent serving a key directory, if any."""
    container = bootstrap_application()
    directory = container.key_service(**_key_overrides(label, keys_dir, None)).config.directory

    try:
        port = container.agent_factory(directory)
        agent = port.info()
    except (RuntimeError, OSError) as exc:
        raise _fail(exc) from exc

    port.stop(agent)
    if agent is None:
        typer.echo(f"No gpg-agent found for {directory}.")
    else:
        typer.echo(f"Stopped gpg-agent (pid {agent.pid}) for {directory}.")


@audit_app.command("show")
def audit_show(
    operation: Annotated[
        str | None, typer.Option("--operation", help="Only show entries for this operation")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print entries as JSON lines")] = False,
) -> None:
    """List audit ledger entries."""
    container = bootstrap_application()
    if not container.audit_service.is_enabled():
        typer.echo("Audit ledger is disabled.")
        return

    for entry in container.audit_service.get_entries(operation):
        if json_output:
            typer.echo(entry.model_dump_json())
        else:
            typer.echo(f"{entry.sequence:>4} {entry.timestamp} {entry.operation} {entry.args}")


@audit_app.command("verify")
def audit_verify() -> None:
    """Verify audit ledger integrity."""
    container = bootstrap_application()
    valid, error = container.audit_service.verify()
    if not valid:
        typer.secho(f"Audit ledger verification FAILED: {error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.secho("Audit ledger verified.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
