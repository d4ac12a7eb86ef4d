"""
bucketsync CLI

Implements 5 CLI verbs with Operations facade integration:
- ls: List buckets, or one level of a bucket prefix
- get: Download a single object
- pull: Download every object under a prefix
- select: Download an explicit selection of keys and folders
- sync: Download only what is missing or changed locally
"""
from __future__ import annotations

import logging
from typing import List, Optional

import typer

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import (
    SessionProgressBar,
    print_listing,
    print_plan,
    print_session_summary,
)
from .storage.uri import parse_store_root, parse_store_uri

app = typer.Typer(name="bucketsync", help="Download and sync object-store prefixes")

ConcurrencyOption = typer.Option(None, "--concurrency", "-j", min=1, help="Parallel transfers (default: BUCKETSYNC_CONCURRENCY)")
CIOption = typer.Option(False, "--ci", help="CI mode (suppress progress)")
VerboseOption = typer.Option(False, "--verbose", help="Show detailed output")


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)


def _operations(uri_str: Optional[str], ci: bool, verbose: bool, concurrency: Optional[int],
                allow_root: bool = False):
    """
    Parse the URI and build an Operations facade for its store.

    With ``allow_root``, a missing URI or a bare "s3://" or "az://" names the
    store root and the returned location is None.
    """
    _configure_logging(verbose)
    context = CLIContext.from_env()
    config = OpsConfig(ci=ci, verbose=verbose, concurrency=concurrency)

    root = None
    if allow_root:
        root = parse_store_root(uri_str) if uri_str else context.settings.store
    if root is not None:
        ops = Operations(config=config, store=context.store(root), settings=context.settings)
        return ops, None

    uri = parse_store_uri(uri_str or "", default_scheme=context.settings.store)
    ops = Operations(config=config, store=context.store(uri.scheme), settings=context.settings)
    return ops, uri


@app.command()
def ls(
    uri: Optional[str] = typer.Argument(
        None, help="Location to list, e.g. s3://bucket/prefix/; omit or pass s3:// to list buckets"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """List buckets, or one level of a bucket prefix."""

    def _ls() -> None:
        ops, location = _operations(uri, ci=True, verbose=verbose, concurrency=None, allow_root=True)
        if location is None:
            print_listing(ops.buckets(), verbose=verbose)
        else:
            print_listing(ops.ls(location), verbose=verbose)

    run_and_exit(_ls)


@app.command()
def get(
    uri: str = typer.Argument(..., help="Object to download, e.g. s3://bucket/path/file.bin"),
    dest: str = typer.Argument(..., help="Local file path or existing directory"),
    ci: bool = CIOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download a single object."""

    def _get() -> None:
        ops, location = _operations(uri, ci=ci, verbose=verbose, concurrency=None)
        with SessionProgressBar(location.key, ci=ci) as bar:
            progress = ops.get(location, dest, subscriber=bar.update)
        print_session_summary(progress, dest)

    run_and_exit(_get)


@app.command()
def pull(
    uri: str = typer.Argument(..., help="Prefix to download, e.g. s3://bucket/photos/"),
    dest: str = typer.Argument(..., help="Destination directory"),
    concurrency: Optional[int] = ConcurrencyOption,
    ci: bool = CIOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download every object under a prefix."""

    def _pull() -> None:
        ops, location = _operations(uri, ci=ci, verbose=verbose, concurrency=concurrency)
        with SessionProgressBar(str(location), ci=ci) as bar:
            progress = ops.pull(location, dest, subscriber=bar.update)
        print_session_summary(progress, dest)

    run_and_exit(_pull)


@app.command()
def select(
    uri: str = typer.Argument(..., help="Prefix the keys are relative to"),
    dest: str = typer.Argument(..., help="Destination directory"),
    keys: List[str] = typer.Argument(..., help="Keys to download; a trailing '/' selects a folder"),
    concurrency: Optional[int] = ConcurrencyOption,
    ci: bool = CIOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download an explicit selection of keys and folders."""

    def _select() -> None:
        ops, location = _operations(uri, ci=ci, verbose=verbose, concurrency=concurrency)
        with SessionProgressBar(f"{len(keys)} selected", ci=ci) as bar:
            progress = ops.select(location, dest, keys, subscriber=bar.update)
        print_session_summary(progress, dest)

    run_and_exit(_select)


@app.command()
def sync(
    uri: str = typer.Argument(..., help="Prefix to mirror, e.g. s3://bucket/photos/"),
    dest: str = typer.Argument(..., help="Destination directory"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be downloaded"),
    concurrency: Optional[int] = ConcurrencyOption,
    ci: bool = CIOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download only objects that are missing or changed locally."""

    def _sync() -> None:
        ops, location = _operations(uri, ci=ci, verbose=verbose, concurrency=concurrency)
        if dry_run:
            print_plan(ops.plan(location, dest), verbose=verbose)
            return
        with SessionProgressBar(str(location), ci=ci) as bar:
            progress = ops.sync(location, dest, subscriber=bar.update)
        print_session_summary(progress, dest)

    run_and_exit(_sync)


def main() -> None:
    """Entry point for the bucketsync console script."""
    app()


if __name__ == "__main__":
    main()
