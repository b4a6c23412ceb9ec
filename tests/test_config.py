from pathlib import Path

import pytest
import yaml

from weaving.config import (
    DEFAULT_WATCH_EXCLUDES,
    WeaverConfig,
    default_config_text,
    load_config,
)
from weaving.errors import ConfigError


def test_defaults_without_config_file(tmp_path):
    config = load_config(tmp_path)
    root = tmp_path.resolve()
    assert config.content_dir == root / "content"
    assert config.template_dir == root / "templates"
    assert config.partials_dir == root / "partials"
    assert config.public_dir == root / "public"
    assert config.build_dir == root / "site"
    assert config.template_extension == ".jinja"
    assert config.site_url == "http://localhost:8080"
    assert config.feed_limit == 20
    assert config.clean_stale is False
    assert config.serve.port == 8080
    assert config.serve.resolved_ws_port == 8081
    assert config.serve.watch_excludes == DEFAULT_WATCH_EXCLUDES
    assert config.well_known_dir == root / ".well-known"


def test_config_file_overrides(tmp_path):
    (tmp_path / "weaving.yaml").write_text(
        "\n".join(
            [
                "content_dir: pages",
                "build_dir: /tmp/elsewhere",
                "base_url: https://example.com/",
                "title: My Site",
                "feed_limit: 5",
                "clean_stale: true",
                "serve:",
                "  address: 0.0.0.0:9000",
                "  ws_port: 9100",
                "  debounce_ms: 50",
                "  watch_excludes: ['dist']",
            ]
        ),
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.content_dir == tmp_path.resolve() / "pages"
    assert config.build_dir == Path("/tmp/elsewhere")
    assert config.site_url == "https://example.com"
    assert config.title == "My Site"
    assert config.feed_limit == 5
    assert config.clean_stale is True
    assert config.serve.host == "0.0.0.0"
    assert config.serve.port == 9000
    assert config.serve.resolved_ws_port == 9100
    assert config.serve.debounce_ms == 50
    assert config.serve.watch_excludes == ["dist"]


def test_malformed_yaml_is_config_error(tmp_path):
    (tmp_path / "weaving.yaml").write_text("title: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_non_mapping_config_is_rejected(tmp_path):
    (tmp_path / "weaving.yaml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_unsupported_language_is_rejected(tmp_path):
    (tmp_path / "weaving.yaml").write_text("templating_language: erb\n", encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert "erb" in str(excinfo.value)


def test_serve_must_be_mapping(tmp_path):
    (tmp_path / "weaving.yaml").write_text("serve: yes please\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_default_config_text_loads(tmp_path):
    parsed = yaml.safe_load(default_config_text())
    assert parsed["content_dir"] == "content"
    assert parsed["serve"]["watch_excludes"] == DEFAULT_WATCH_EXCLUDES

    (tmp_path / "weaving.yaml").write_text(default_config_text(), encoding="utf-8")
    assert load_config(tmp_path).serve.watch_excludes == DEFAULT_WATCH_EXCLUDES


def test_template_data_is_plain(tmp_path):
    data = WeaverConfig.for_base_dir(tmp_path).to_template_data()
    assert data["build_dir"] == str(tmp_path / "site")
    assert data["site_url"] == "http://localhost:8080"


@pytest.mark.parametrize(
    "text, key",
    [
        ("feed_limit: many\n", "'feed_limit'"),
        ("version: latest\n", "'version'"),
        ("feed_limit: true\n", "'feed_limit'"),
        ("serve:\n  debounce_ms: soon\n", "'serve.debounce_ms'"),
        ("serve:\n  ws_port: [1]\n", "'serve.ws_port'"),
    ],
)
def test_non_integer_values_are_config_errors(tmp_path, text, key):
    (tmp_path / "weaving.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert key in str(excinfo.value)
    assert excinfo.value.source_path == tmp_path.resolve() / "weaving.yaml"


@pytest.mark.parametrize("value", ["'4'", "0", "-2", "true", "1.5"])
def test_max_workers_must_be_positive_integer(tmp_path, value):
    (tmp_path / "weaving.yaml").write_text(f"max_workers: {value}\n", encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert "'max_workers'" in str(excinfo.value)


def test_max_workers_accepts_integer_or_null(tmp_path):
    assert load_config(tmp_path).max_workers is None
    (tmp_path / "weaving.yaml").write_text("max_workers: 3\n", encoding="utf-8")
    assert load_config(tmp_path).max_workers == 3


def test_numeric_strings_are_coerced(tmp_path):
    (tmp_path / "weaving.yaml").write_text("feed_limit: '7'\n", encoding="utf-8")
    assert load_config(tmp_path).feed_limit == 7
