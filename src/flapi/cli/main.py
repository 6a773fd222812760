"""CLI entrypoint for serving endpoints and exporting their API document."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from flapi.catalog.catalog import EndpointCatalog, validate_definitions
from flapi.config.loader import YamlConfigSource
from flapi.config.serving import ServingConfig
from flapi.docs.openapi import render_json, render_yaml
from flapi.serving.runtime import build_runtime
from flapi.services.errors import ProblemError, log_problem, problem

LOG = logging.getLogger("flapi.cli")

CommandHandler = Callable[..., int]


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _add_config_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to flapi.yaml (default: $FLAPI_CONFIG or ./flapi.yaml)",
    )


def _settings_from_args(args: argparse.Namespace) -> ServingConfig:
    settings = ServingConfig.from_env()
    overrides: dict[str, object] = {}
    if getattr(args, "config", None) is not None:
        overrides["config_path"] = args.config
    for name in ("host", "port", "base_url"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    if not overrides:
        return settings
    return ServingConfig.model_validate({**settings.model_dump(), **overrides})


def _register_serve_command(subparsers: argparse._SubParsersAction) -> None:
    p_serve = subparsers.add_parser("serve", help="Serve configured endpoints over HTTP")
    _add_config_arg(p_serve)
    p_serve.add_argument("--host", default=None, help="Interface to bind (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=None, help="Port to listen on (default: 8080)")
    p_serve.set_defaults(func=_cmd_serve)


def _register_doc_command(subparsers: argparse._SubParsersAction) -> None:
    p_doc = subparsers.add_parser("doc", help="Write the OpenAPI document for the configuration")
    _add_config_arg(p_doc)
    p_doc.add_argument(
        "--format",
        choices=["json", "yaml"],
        default="json",
        help="Output format (default: json)",
    )
    p_doc.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write to this file instead of stdout",
    )
    p_doc.add_argument(
        "--base-url",
        default=None,
        help="Server URL advertised in the document",
    )
    p_doc.set_defaults(func=_cmd_doc)


def _register_config_commands(subparsers: argparse._SubParsersAction) -> None:
    p_config = subparsers.add_parser("config", help="Configuration helpers")
    config_sub = p_config.add_subparsers(dest="subcommand", required=True)

    p_validate = config_sub.add_parser("validate", help="Load and validate the configuration")
    _add_config_arg(p_validate)
    p_validate.set_defaults(func=_cmd_config_validate)

    p_show = config_sub.add_parser("show", help="Print the loaded configuration as JSON")
    _add_config_arg(p_show)
    p_show.set_defaults(func=_cmd_config_show)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flapi",
        description="Configuration-driven REST API over DuckDB queries",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    _register_serve_command(subparsers)
    _register_doc_command(subparsers)
    _register_config_commands(subparsers)

    return parser


def make_parser() -> argparse.ArgumentParser:
    """
    Public helper to construct the CLI parser (for tests/tools).

    Returns
    -------
    argparse.ArgumentParser
        Configured parser with all subcommands registered.
    """
    return _make_parser()


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the HTTP server until interrupted.

    Returns
    -------
    int
        Exit code (0 on clean shutdown).
    """
    import uvicorn

    from flapi.serving.http.app import create_app

    settings = _settings_from_args(args)
    app = create_app(settings_loader=lambda: settings)
    LOG.info("Serving %s on %s:%d", settings.config_path, settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
    return 0


def _cmd_doc(args: argparse.Namespace) -> int:
    """
    Synthesize the API document and write it out.

    Returns
    -------
    int
        Exit code (0 on success).
    """
    settings = _settings_from_args(args)
    runtime = build_runtime(settings)
    try:
        document = runtime.document()
    finally:
        runtime.close()
    text = render_json(document) if args.format == "json" else render_yaml(document)
    if args.output is None:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        return 0
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(text, encoding="utf8")
    LOG.info("Wrote API document to %s", args.output)
    return 0


def _cmd_config_validate(args: argparse.Namespace) -> int:
    """
    Load the configuration and report whether it is valid.

    Returns
    -------
    int
        Exit code indicating success (0) or failure (non-zero).
    """
    settings = _settings_from_args(args)
    try:
        loaded = YamlConfigSource(settings.config_path).load()
        validate_definitions(loaded.endpoints)
    except ProblemError as exc:
        log_problem(LOG, exc.problem_detail)
        sys.stderr.write(f"Invalid configuration: {exc.problem_detail.detail}\n")
        return 1
    sys.stdout.write(
        f"Configuration OK: {len(loaded.endpoints)} endpoint(s) in {settings.config_path}\n"
    )
    return 0


def _cmd_config_show(args: argparse.Namespace) -> int:
    """
    Print project metadata and endpoints in the same shape as ``GET /config``.

    Returns
    -------
    int
        Exit code (0 on success).
    """
    settings = _settings_from_args(args)
    loaded = YamlConfigSource(settings.config_path).load()
    catalog = EndpointCatalog(loaded.endpoints, project=loaded.project)
    sys.stdout.write(json.dumps(catalog.snapshot().to_dict(), indent=2, default=str))
    sys.stdout.write("\n")
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for the flapi commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except Exception as exc:  # noqa: BLE001 pragma: no cover - error path
        pd = problem(
            code="cli.failure",
            title="CLI command failed",
            detail=str(exc),
            extras={"command": args.command},
        )
        log_problem(LOG, pd)
        return 1


if __name__ == "__main__":
    sys.exit(main())
