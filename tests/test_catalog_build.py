import json
import subprocess

import pytest

from nit.catalog_build import (
    CatalogConfig,
    FlakeInfo,
    Template,
    TemplateSource,
    collect_templates,
    display_text,
    load_cache,
    load_catalog_config,
    load_flake,
    parse_flake_show,
    read_cache,
    to_items,
    write_cache,
)
from nit.errors import CatalogUnavailable
from nit.fuzzy import FuzzyMatcher

FLAKE_SHOW = json.dumps(
    {
        "defaultTemplate": {"description": "A very basic flake", "type": "template"},
        "templates": {
            "rust": {"description": "Rust  template,\nusing Naersk", "type": "template"},
            "haskell-hello": {"description": "A Hello World in Haskell", "type": "template"},
        },
    }
)


class FakeRunner:
    def __init__(self, outputs=None, returncode=0, stderr=""):
        self.outputs = outputs or {}
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        uri = cmd[3]
        return subprocess.CompletedProcess(cmd, self.returncode, self.outputs.get(uri, FLAKE_SHOW), self.stderr)


def test_parse_flake_show_names_default_and_keeps_uri():
    templates = parse_flake_show(FLAKE_SHOW, "github:NixOS/templates")
    names = [t.name for t in templates]
    assert names == ["default", "haskell-hello", "rust"]
    assert all(t.flake_info.uri == "github:NixOS/templates" for t in templates)
    # descriptions are whitespace-cleaned
    assert templates[2].description == "Rust template, using Naersk"


def test_parse_flake_show_without_default_template():
    templates = parse_flake_show(json.dumps({"templates": {"a": {"description": "x"}}}), "u")
    assert [t.name for t in templates] == ["a"]


def test_parse_flake_show_rejects_garbage():
    with pytest.raises(CatalogUnavailable):
        parse_flake_show("not json", "u")


def test_load_flake_failure_carries_stderr():
    runner = FakeRunner(returncode=1, stderr="error: cannot fetch")
    with pytest.raises(CatalogUnavailable, match="cannot fetch"):
        load_flake("github:nope/nope", runner=runner)


def test_load_flake_runs_nix_flake_show():
    runner = FakeRunner()
    load_flake("github:NixOS/templates", runner=runner)
    assert runner.calls[0][1:] == ["flake", "show", "github:NixOS/templates", "--json", "--no-pretty"]


def test_collect_templates_applies_filter_and_label():
    cfg = CatalogConfig(
        template=[
            TemplateSource(uri="github:NixOS/templates", templates=["rust"]),
            TemplateSource(name="work", uri="github:acme/flakes"),
        ]
    )
    templates = collect_templates(cfg, runner=FakeRunner())
    assert [(t.flake_info.uri, t.name) for t in templates] == [
        ("github:NixOS/templates", "rust"),
        ("github:acme/flakes", "default"),
        ("github:acme/flakes", "haskell-hello"),
        ("github:acme/flakes", "rust"),
    ]
    assert templates[0].flake_info.name is None
    assert all(t.flake_info.name == "work" for t in templates[1:])


def test_load_catalog_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[[template]]\nname = "test"\nuri = "github:NixOS/templates"\ntemplates = ["default"]\n'
        '\n[[template]]\nuri = "github:acme/flakes"\n'
    )
    cfg = load_catalog_config(path)
    assert cfg.template[0].name == "test"
    assert cfg.template[0].templates == ["default"]
    assert cfg.template[1].templates is None


def test_missing_or_invalid_config(tmp_path):
    with pytest.raises(CatalogUnavailable, match="Couldn't find a config"):
        load_catalog_config(tmp_path / "missing.toml")

    bad = tmp_path / "bad.toml"
    bad.write_text("[[template]]\nname = 1\n")
    with pytest.raises(CatalogUnavailable):
        load_catalog_config(bad)


def test_cache_roundtrip_and_rebuild(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[[template]]\nuri = "github:NixOS/templates"\n')
    cache_path = tmp_path / "cache" / "cache.json"
    runner = FakeRunner()

    first = load_cache(cache_path=cache_path, config_path=config_path, runner=runner)
    assert cache_path.exists()
    assert len(runner.calls) == 1

    second = load_cache(cache_path=cache_path, config_path=config_path, runner=runner)
    assert [t.name for t in second] == [t.name for t in first]
    assert len(runner.calls) == 1

    load_cache(re_cache=True, cache_path=cache_path, config_path=config_path, runner=runner)
    assert len(runner.calls) == 2


def test_unreadable_cache_is_ignored(tmp_path):
    cache_path = tmp_path / "cache.json"
    cache_path.write_text("{broken")
    assert read_cache(cache_path) is None

    write_cache([Template(name="rust", flake_info=FlakeInfo(uri="u"))], cache_path)
    assert [t.name for t in read_cache(cache_path)] == ["rust"]


def test_items_have_identity_and_display():
    templates = [
        Template(name="rust", flake_info=FlakeInfo(uri="github:NixOS/templates")),
        Template(name="python", flake_info=FlakeInfo(name="work", uri="github:acme/flakes")),
    ]
    items = to_items(templates)
    assert items[0].identity == "github:NixOS/templates-rust"
    assert items[0].display == "github:NixOS/templates#rust"
    assert items[1].display == "work - github:acme/flakes#python"
    assert items[1].payload is templates[1]
    assert display_text(templates[1]) == items[1].display


def test_cache_with_invalid_utf8_is_rebuilt(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[[template]]\nuri = "github:NixOS/templates"\n')
    cache_path = tmp_path / "cache.json"
    cache_path.write_bytes(b"\xff\xfe\x00garbage")
    assert read_cache(cache_path) is None

    runner = FakeRunner()
    templates = load_cache(cache_path=cache_path, config_path=config_path, runner=runner)
    assert [t.name for t in templates] == ["default", "haskell-hello", "rust"]
    assert len(runner.calls) == 1
    assert [t.name for t in read_cache(cache_path)] == ["default", "haskell-hello", "rust"]


def test_nix_that_cannot_be_executed_is_catalog_unavailable():
    def runner(cmd, **kwargs):
        raise PermissionError(13, "Permission denied", cmd[0])

    with pytest.raises(CatalogUnavailable, match="Permission denied"):
        load_flake("github:NixOS/templates", runner=runner)


def test_spans_index_the_displayed_text():
    item = to_items([Template(name="python", flake_info=FlakeInfo(name="work", uri="github:acme/flakes"))])[0]
    score, spans = FuzzyMatcher().score("work python", item.display)
    assert score > 0
    assert [item.display[s:s + n] for s, n in spans] == ["work", "python"]
