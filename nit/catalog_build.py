from __future__ import annotations

import json
import subprocess
import tomllib
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from . import config
from .errors import CatalogUnavailable
from .normalize import basic_clean
from .pipeline_types import Item

Runner = Callable[..., subprocess.CompletedProcess]


# ---------------------------
# Schemas
# ---------------------------

class TemplateSource(BaseModel):
    """
    One ``[[template]]`` table of the config file.

    ```toml
    [[template]]
    name = "test"                  # optional label
    uri = "github:NixOS/templates"
    templates = ["default"]        # optional; all templates when absent
    ```
    """

    name: Optional[str] = None
    uri: str = Field(..., min_length=1)
    templates: Optional[List[str]] = None


class CatalogConfig(BaseModel):
    template: List[TemplateSource] = Field(default_factory=list)


class FlakeInfo(BaseModel):
    name: Optional[str] = None
    uri: str = ""


class Template(BaseModel):
    name: str = ""
    description: str = ""
    flake_info: FlakeInfo = Field(default_factory=FlakeInfo)

    @property
    def ref(self) -> str:
        return f"{self.flake_info.uri}#{self.name}"


class Cache(BaseModel):
    data: List[Template]


# ---------------------------
# Config
# ---------------------------

def load_catalog_config(path: Path = config.CONFIG_PATH) -> CatalogConfig:
    if not path.exists():
        raise CatalogUnavailable(f"Couldn't find a config at {path}")
    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
        return CatalogConfig.model_validate(raw)
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        raise CatalogUnavailable(f"Invalid config {path}: {e}") from e


# ---------------------------
# nix flake show
# ---------------------------

def parse_flake_show(payload: str, flake_uri: str) -> List[Template]:
    """
    Turn ``nix flake show --json`` output into templates tagged with ``flake_uri``.

    ``defaultTemplate`` becomes a template named ``default``; the rest keep
    their attribute name.
    """
    try:
        doc = json.loads(payload)
    except ValueError as e:
        raise CatalogUnavailable(f"nix flake show {flake_uri} returned invalid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise CatalogUnavailable(f"nix flake show {flake_uri} returned an unexpected document")

    out: List[Template] = []
    default = doc.get("defaultTemplate")
    if isinstance(default, dict):
        out.append(_template_from(default, "default", flake_uri))

    templates: Dict[str, dict] = doc.get("templates") or {}
    for name in sorted(templates):
        value = templates[name]
        if not isinstance(value, dict):
            logger.warning("Ignoring malformed template {} in {}", name, flake_uri)
            continue
        out.append(_template_from(value, name, flake_uri))

    if not out:
        logger.warning("Flake {} exposes no templates", flake_uri)
    return out


def _template_from(raw: dict, name: str, flake_uri: str) -> Template:
    return Template(
        name=name,
        description=basic_clean(str(raw.get("description") or "")),
        flake_info=FlakeInfo(uri=flake_uri),
    )


def load_flake(flake_uri: str, runner: Runner = subprocess.run) -> List[Template]:
    cmd = [config.NIX_BIN, "flake", "show", flake_uri, "--json", "--no-pretty"]
    logger.info("Enumerating templates: {}", " ".join(cmd))
    try:
        proc = runner(cmd, capture_output=True, text=True)
    except OSError as e:
        raise CatalogUnavailable(f"failed to run nix flake show {flake_uri}: {e}") from e
    if proc.returncode != 0:
        raise CatalogUnavailable(f"failed to run nix flake show {flake_uri}, err: {proc.stderr}")
    return parse_flake_show(proc.stdout, flake_uri)


def collect_templates(cfg: CatalogConfig, runner: Runner = subprocess.run) -> List[Template]:
    """Enumerate every source, applying its template filter and label."""
    res: List[Template] = []
    for source in cfg.template:
        data = load_flake(source.uri, runner=runner)
        if source.templates is not None:
            wanted = set(source.templates)
            data = [t for t in data if t.name in wanted]
        if source.name:
            for t in data:
                t.flake_info.name = source.name
        res.extend(data)
    logger.info("Collected {} templates from {} sources", len(res), len(cfg.template))
    return res


# ---------------------------
# Cache
# ---------------------------

def write_cache(templates: List[Template], cache_path: Path = config.CACHE_PATH) -> None:
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_text(Cache(data=templates).model_dump_json(), encoding="utf-8")
    logger.info("Wrote {} templates to cache {}", len(templates), cache_path)


def read_cache(cache_path: Path = config.CACHE_PATH) -> Optional[List[Template]]:
    """Cached templates, or None when the cache is absent or unreadable."""
    if not cache_path.exists():
        return None
    try:
        return Cache.model_validate_json(cache_path.read_text(encoding="utf-8")).data
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable cache {}: {}", cache_path, e)
        return None


def load_cache(
    re_cache: bool = False,
    cache_path: Path = config.CACHE_PATH,
    config_path: Path = config.CONFIG_PATH,
    runner: Runner = subprocess.run,
) -> List[Template]:
    """
    Cached catalog, rebuilt from the config when asked or when unusable.
    """
    if not re_cache:
        cached = read_cache(cache_path)
        if cached is not None:
            logger.info("Loaded {} templates from cache {}", len(cached), cache_path)
            return cached

    templates = collect_templates(load_catalog_config(config_path), runner=runner)
    write_cache(templates, cache_path)
    return templates


# ---------------------------
# Items
# ---------------------------

def display_text(t: Template) -> str:
    prefix = f"{t.flake_info.name} - " if t.flake_info.name else ""
    return f"{prefix}{t.ref}"


def to_items(templates: List[Template]) -> List[Item[Template]]:
    return [
        Item(identity=f"{t.flake_info.uri}-{t.name}", display=display_text(t), payload=t)
        for t in templates
    ]
