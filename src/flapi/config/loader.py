"""Load ``flapi.yaml`` and endpoint YAML files into catalog definitions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from flapi.catalog.catalog import EndpointCatalog
from flapi.catalog.definitions import EndpointDefinition, ProjectMetadata
from flapi.config.models import EndpointConfig, FlapiConfig
from flapi.services.errors import ConfigurationInvalidError

LOG = logging.getLogger("flapi.config.loader")

ENDPOINT_SUFFIXES = {".yaml", ".yml"}


@dataclass(frozen=True)
class LoadedConfig:
    """A complete configuration snapshot ready to install in a catalog."""

    project: ProjectMetadata
    endpoints: tuple[EndpointDefinition, ...]
    flapi: FlapiConfig = field(default_factory=FlapiConfig)


class ConfigSource(Protocol):
    """Supply full configuration snapshots on load and on refresh."""

    def load(self) -> LoadedConfig:
        """Return a freshly loaded configuration snapshot."""
        ...


def _read_yaml(path: Path) -> Any:  # noqa: ANN401
    try:
        text = path.read_text(encoding="utf8")
    except OSError as exc:
        message = f"Cannot read configuration file {path}: {exc}"
        raise ConfigurationInvalidError(message, extras={"file": str(path)}) from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        message = f"Invalid YAML in {path}: {exc}"
        raise ConfigurationInvalidError(message, extras={"file": str(path)}) from exc


def _validation_message(source: str, exc: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    )
    return f"Invalid configuration in {source}: {problems}"


def parse_flapi_config(raw: object, *, source: str = "flapi.yaml") -> FlapiConfig:
    """
    Validate the top-level configuration document.

    Returns
    -------
    FlapiConfig
        Validated configuration.

    Raises
    ------
    ConfigurationInvalidError
        If the document is not a mapping or fails validation.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        message = f"{source} must contain a mapping"
        raise ConfigurationInvalidError(message, extras={"file": source})
    try:
        return FlapiConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationInvalidError(
            _validation_message(source, exc), extras={"file": source}
        ) from exc


def parse_endpoint_config(raw: object, *, source: str) -> EndpointConfig:
    """
    Validate one endpoint document.

    Returns
    -------
    EndpointConfig
        Validated endpoint configuration.

    Raises
    ------
    ConfigurationInvalidError
        If the document fails validation.
    """
    try:
        return EndpointConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationInvalidError(
            _validation_message(source, exc), extras={"file": source}
        ) from exc


def resolve_query(cfg: EndpointConfig, *, search_dirs: Iterable[Path]) -> str:
    """
    Return the endpoint's SQL from ``query`` or ``template-source``.

    ``template-source`` is looked up in each search directory in order.

    Returns
    -------
    str
        SQL text.

    Raises
    ------
    ConfigurationInvalidError
        If neither is set or the template file cannot be found.
    """
    if cfg.query:
        return cfg.query
    if not cfg.template_source:
        message = f"Endpoint {cfg.url_path} needs either 'query' or 'template-source'"
        raise ConfigurationInvalidError(message, extras={"url_path": cfg.url_path})
    candidate = Path(cfg.template_source)
    dirs = [Path()] if candidate.is_absolute() else list(search_dirs)
    for directory in dirs:
        path = candidate if candidate.is_absolute() else directory / candidate
        if path.is_file():
            return path.read_text(encoding="utf8")
    message = f"SQL template {cfg.template_source!r} for {cfg.url_path} not found"
    raise ConfigurationInvalidError(message, extras={"url_path": cfg.url_path})


def build_definition(
    cfg: EndpointConfig,
    flapi: FlapiConfig,
    *,
    search_dirs: Iterable[Path],
    source: Path | None = None,
) -> EndpointDefinition:
    """
    Turn one endpoint configuration into a validated definition.

    Returns
    -------
    EndpointDefinition
        Definition with compiled URL template and resolved SQL.

    Raises
    ------
    ConfigurationInvalidError
        If a referenced connection is unknown, the SQL is missing or the URL
        template is malformed.
    """
    unknown = [name for name in cfg.connection if name not in flapi.connections]
    if unknown:
        message = f"Endpoint {cfg.url_path} references unknown connection(s): {', '.join(unknown)}"
        raise ConfigurationInvalidError(message, extras={"url_path": cfg.url_path})
    query = resolve_query(cfg, search_dirs=search_dirs)
    try:
        return EndpointDefinition.from_config(cfg, query=query, source=source)
    except ConfigurationInvalidError as exc:
        if source is None:
            raise
        message = f"{source}: {exc.problem_detail.detail}"
        raise ConfigurationInvalidError(message, extras=exc.problem_detail.extras) from exc


def iter_endpoint_files(template_dir: Path, *, exclude: Path | None = None) -> list[Path]:
    """
    List endpoint YAML files under ``template_dir`` in a stable order.

    Returns
    -------
    list[Path]
        Files sorted by path relative to ``template_dir``.
    """
    if not template_dir.is_dir():
        return []
    excluded = exclude.resolve() if exclude is not None else None
    files = [
        path
        for path in template_dir.rglob("*")
        if path.is_file()
        and path.suffix.lower() in ENDPOINT_SUFFIXES
        and path.resolve() != excluded
    ]
    return sorted(files, key=lambda path: path.relative_to(template_dir).as_posix())


class YamlConfigSource:
    """Read the project file and endpoint files from disk on every load."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> LoadedConfig:
        """
        Load and validate the whole configuration.

        Inline ``endpoints`` from the project file come first, followed by
        endpoint files under ``template.path`` sorted by relative path.

        Returns
        -------
        LoadedConfig
            Project metadata and endpoint definitions in configuration order.

        Raises
        ------
        ConfigurationInvalidError
            If any file is unreadable or invalid.
        """
        root = self.path.parent.resolve()
        flapi = parse_flapi_config(_read_yaml(self.path), source=str(self.path))
        template_dir = flapi.template.path
        if not template_dir.is_absolute():
            template_dir = root / template_dir

        endpoints = [
            build_definition(cfg, flapi, search_dirs=(template_dir, root), source=None)
            for cfg in flapi.endpoints
        ]
        for file_path in iter_endpoint_files(template_dir, exclude=self.path):
            raw = _read_yaml(file_path)
            if not isinstance(raw, dict) or "url-path" not in raw:
                LOG.debug("Skipping %s: not an endpoint definition", file_path)
                continue
            cfg = parse_endpoint_config(raw, source=str(file_path))
            endpoints.append(
                build_definition(
                    cfg,
                    flapi,
                    search_dirs=(file_path.parent, template_dir, root),
                    source=file_path,
                )
            )
        LOG.info("Loaded %d endpoint(s) from %s", len(endpoints), self.path)
        return LoadedConfig(
            project=ProjectMetadata.from_config(flapi),
            endpoints=tuple(endpoints),
            flapi=flapi,
        )


class StaticConfigSource:
    """Serve a fixed configuration, for embedding and tests."""

    def __init__(
        self,
        endpoints: Iterable[EndpointDefinition] = (),
        *,
        project: ProjectMetadata | None = None,
        flapi: FlapiConfig | None = None,
    ) -> None:
        self._loaded = LoadedConfig(
            project=project or ProjectMetadata(),
            endpoints=tuple(endpoints),
            flapi=flapi or FlapiConfig(),
        )

    def load(self) -> LoadedConfig:
        """
        Return the fixed configuration.

        Returns
        -------
        LoadedConfig
            The configuration given at construction.
        """
        return self._loaded


def load_catalog(source: ConfigSource) -> tuple[EndpointCatalog, LoadedConfig]:
    """
    Load a configuration and build a catalog from it.

    Returns
    -------
    tuple[EndpointCatalog, LoadedConfig]
        New catalog plus the configuration it was built from.
    """
    loaded = source.load()
    return EndpointCatalog(loaded.endpoints, project=loaded.project), loaded


__all__ = [
    "ConfigSource",
    "LoadedConfig",
    "StaticConfigSource",
    "YamlConfigSource",
    "build_definition",
    "iter_endpoint_files",
    "load_catalog",
    "parse_endpoint_config",
    "parse_flapi_config",
    "resolve_query",
]
