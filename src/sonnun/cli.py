"""Sonnun CLI: ledger maintenance, signing and verification."""

from __future__ import annotations

import json
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path

import click

from sonnun import __version__
from sonnun.config import SonnunConfig, configure_logging, load_config
from sonnun.errors import ProvenanceError
from sonnun.ledger import open_ledger
from sonnun.provenance.embed import bind_to_document, embed_envelope, tally_marked_html
from sonnun.provenance.events import EventKind, ProvenanceEvent
from sonnun.provenance.manifest import ManifestData, build_manifest, format_summary
from sonnun.provenance.signing import Signer, SigningError, b64decode, generate_keypair
from sonnun.provenance.verifier import DocumentVerifier

KIND_CHOICES = [k.value for k in EventKind]


def handle_error(error: Exception, debug: bool) -> None:
    """Report an error with the stage it came from and exit non-zero.

    Args:
        error: The exception that occurred
        debug: Whether to show full traceback
    """
    if debug:
        traceback.print_exc()
    if isinstance(error, ProvenanceError):
        click.echo(f"Error ({error.stage}): {error}", err=True)
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _config(ctx: click.Context) -> SonnunConfig:
    obj = ctx.find_object(dict)
    if obj is not None and "config" in obj:
        return obj["config"]
    return load_config()


def _debug(ctx: click.Context) -> bool:
    obj = ctx.find_object(dict)
    return bool(obj and obj.get("debug"))


def _signer(config: SonnunConfig) -> Signer:
    if not config.signing_key_b64:
        raise SigningError(
            "No signing key configured (set SONNUN_SIGNING_PRIVATE_KEY or signing_key_b64)"
        )
    public_key = b64decode(config.public_key_b64, "public key") if config.public_key_b64 else None
    return Signer(
        signing_key=b64decode(config.signing_key_b64, "private key"),
        verifying_key=public_key,
    )


@click.group()
@click.version_option(version=__version__, prog_name="sonnunctl")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, path_type=Path),
              help='YAML configuration file')
@click.option('--db', type=str, help='Ledger database path (":memory:" for a throwaway ledger)')
@click.option('--debug', is_flag=True, help='Enable debug mode (show full tracebacks)')
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, db: str | None, debug: bool):
    """Sonnun CLI - signed provenance manifests for documents."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    try:
        config = load_config(config_path)
        if db:
            config.database_path = db
    except (OSError, ValueError) as e:
        handle_error(e, debug)
    configure_logging(config)
    ctx.obj['config'] = config


@click.command(name="verify")
@click.argument('document', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--key', '-k', 'public_key', help='Public key to verify against (base64)')
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Write a JSON verification report')
@click.pass_context
def verify(ctx: click.Context, document: Path, public_key: str | None, out: Path | None):
    """Verify the signed manifest embedded in a document.

    Exit code 0 when the signature is valid, 1 otherwise.

    Examples:
      sonnun-verify article.html
      sonnun-verify article.html --key MCowBQYDK2VwAyEA...
    """
    debug = _debug(ctx)

    try:
        config = _config(ctx)
        verifier = DocumentVerifier(
            expected_public_key=public_key,
            max_document_size=config.max_document_size,
        )
        result = verifier.verify_file(document)

        click.echo(result.format_report())
        if result.valid:
            click.echo("Manifest:")
            click.echo(json.dumps(result.manifest, indent=2))
        if out:
            result.write_json(out)
            click.echo(f"Verification report written to: {out}")

        if not result.valid:
            sys.exit(1)
    except Exception as e:
        handle_error(e, debug)


cli.add_command(verify)


@cli.command()
def generate_keys():
    """Generate an Ed25519 signing key pair.

    Outputs environment variable format for SONNUN_SIGNING_PRIVATE_KEY
    and SONNUN_SIGNING_PUBLIC_KEY.
    """
    click.echo("Generating new Ed25519 key pair...")
    priv_b64, pub_b64 = Signer.keys_to_env_format(generate_keypair())

    click.echo("\nAdd these to your environment:")
    click.echo(f"export SONNUN_SIGNING_PRIVATE_KEY={priv_b64}")
    click.echo(f"export SONNUN_SIGNING_PUBLIC_KEY={pub_b64}")

    click.echo("\nKeep the private key secret; publish only the public key.")


@cli.command()
@click.option('--kind', '-t', required=True, type=click.Choice(KIND_CHOICES), help='Origin of the span')
@click.option('--source', '-s', required=True, help='Author id, model name or citation')
@click.option('--text', help='Attributed text (only its SHA-256 digest is stored)')
@click.option('--digest', help='SHA-256 hex digest of the attributed text')
@click.option('--span-length', type=click.IntRange(min=0), help='Characters attributed')
@click.option('--timestamp', help='ISO-8601 timestamp (default: now, UTC)')
@click.pass_context
def record(
    ctx: click.Context,
    kind: str,
    source: str,
    text: str | None,
    digest: str | None,
    span_length: int | None,
    timestamp: str | None,
):
    """Append a provenance event to the ledger."""
    debug = _debug(ctx)

    try:
        if (text is None) == (digest is None):
            raise click.UsageError("Provide exactly one of --text or --digest")
        timestamp = timestamp or datetime.now(UTC).isoformat()

        if text is not None:
            event = ProvenanceEvent.from_text(timestamp, kind, text, source, span_length)
        else:
            if span_length is None:
                raise click.UsageError("--span-length is required with --digest")
            event = ProvenanceEvent(
                timestamp=timestamp,
                kind=EventKind.parse(kind),
                content_digest=digest,
                source=source,
                span_length=span_length,
            )

        with open_ledger(_config(ctx).database_path) as ledger:
            event_id = ledger.append(event)
        click.echo(f"Recorded event {event_id} ({event.kind.value}, {event.span_length} chars)")
    except click.UsageError:
        raise
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.option('--kind', '-t', type=click.Choice(KIND_CHOICES), help='Only events of this kind')
@click.option('--limit', '-n', type=click.IntRange(min=0), help='Maximum number of events')
@click.pass_context
def history(ctx: click.Context, kind: str | None, limit: int | None):
    """List ledger events, newest first (one JSON object per line)."""
    debug = _debug(ctx)

    try:
        with open_ledger(_config(ctx).database_path) as ledger:
            events = ledger.query(kind, limit)
        for event in events:
            click.echo(json.dumps(event.to_dict(), sort_keys=True))
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.pass_context
def counts(ctx: click.Context):
    """Show the number of events per kind."""
    debug = _debug(ctx)

    try:
        with open_ledger(_config(ctx).database_path) as ledger:
            by_kind = ledger.count_by_kind()
        for kind in EventKind:
            click.echo(f"  {kind.value}: {by_kind.get(kind, 0)}")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.option('--limit', '-n', type=click.IntRange(min=0), help='Events in the excerpt (default from config)')
@click.pass_context
def manifest(ctx: click.Context, limit: int | None):
    """Print the current provenance manifest as JSON."""
    debug = _debug(ctx)

    try:
        config = _config(ctx)
        with open_ledger(config.database_path) as ledger:
            data = build_manifest(ledger, config.excerpt_limit if limit is None else limit)
        click.echo(json.dumps(data.to_dict(), indent=2))
        click.echo(format_summary(data), err=True)
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('document', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--out', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Output document (default: <name>.signed<suffix>)')
@click.option('--limit', '-n', type=click.IntRange(min=0), help='Events in the excerpt (default from config)')
@click.pass_context
def sign(ctx: click.Context, document: Path, out: Path | None, limit: int | None):
    """Sign the ledger's manifest, bound to the document's text, and embed it."""
    debug = _debug(ctx)

    try:
        config = _config(ctx)
        signer = _signer(config)
        html = document.read_text(encoding="utf-8")
        with open_ledger(config.database_path) as ledger:
            data = build_manifest(ledger, config.excerpt_limit if limit is None else limit)
        data = bind_to_document(data, html)
        envelope = signer.sign_manifest(data)

        out = out or document.with_name(f"{document.stem}.signed{document.suffix}")
        out.write_text(embed_envelope(html, envelope), encoding="utf-8")

        click.echo(f"Signed document written to: {out}")
        click.echo(f"  {format_summary(data)}")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.argument('document', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def tally(ctx: click.Context, document: Path):
    """Compute the breakdown from provenance-marked HTML (unsigned)."""
    debug = _debug(ctx)

    try:
        totals = tally_marked_html(document.read_text(encoding="utf-8"))
        click.echo(format_summary(ManifestData.from_totals(totals)))
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.confirmation_option(prompt='Are you sure you want to delete every ledger event?')
@click.pass_context
def clear(ctx: click.Context):
    """Delete all ledger events (development only)."""
    debug = _debug(ctx)

    try:
        with open_ledger(_config(ctx).database_path) as ledger:
            ledger.clear()
        click.echo("Ledger cleared")
    except Exception as e:
        handle_error(e, debug)


def main() -> None:
    """Entry point."""
    cli()


def verify_main() -> None:
    """Entry point for sonnun-verify."""
    try:
        configure_logging(load_config())
    except (OSError, ValueError) as e:
        handle_error(e, debug=False)
    verify()


if __name__ == '__main__':
    main()
