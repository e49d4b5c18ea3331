# tests/test_cli.py

import pytest

from autocheck import __version__
from autocheck.cli import EXIT_CONFIG_ERROR, EXIT_WATCH_ERROR, build_parser, main, resolve_config
from autocheck.command_config import DEFAULT_PIPELINE
from autocheck.exceptions import ConfigValidationError

pytestmark = pytest.mark.usefixtures("restore_logging")

CONFIG = """
[watch]
debounce_ms = 100
ignore = ["*.bak"]

[[command]]
label = "make"
executable = "make"
"""


def resolve(*argv):
    return resolve_config(build_parser().parse_args(list(argv)))


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.project_dir is None
    assert args.config is None
    assert args.delay is None
    assert args.ignore == []
    assert not args.no_default_ignores
    assert args.verbose == 0


def test_verbose_counts():
    assert build_parser().parse_args(["-vvv"]).verbose == 3


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_defaults_without_config_file(tmp_path):
    config = resolve(str(tmp_path))
    assert config.root == tmp_path.resolve()
    assert config.pipeline == list(DEFAULT_PIPELINE)
    assert config.debounce_ms == 300


def test_project_dir_defaults_to_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve().root == tmp_path.resolve()


def test_relative_project_dir(tmp_path, monkeypatch):
    (tmp_path / "crate").mkdir()
    monkeypatch.chdir(tmp_path)
    assert resolve("crate").root == (tmp_path / "crate").resolve()


def test_config_file_in_project_is_used(tmp_path):
    (tmp_path / "autocheck.toml").write_text(CONFIG)
    config = resolve(str(tmp_path))
    assert config.root == tmp_path.resolve()
    assert [c.label for c in config.pipeline] == ["make"]
    assert config.debounce_ms == 100


def test_explicit_config_keeps_its_root(tmp_path):
    cfg_dir = tmp_path / "cfg"
    cfg_dir.mkdir()
    (cfg_dir / "pipeline.toml").write_text('[watch]\nroot = "../proj"\n' + CONFIG.replace("[watch]\n", ""))
    config = resolve("--config", str(cfg_dir / "pipeline.toml"))
    assert config.root == (tmp_path / "proj").resolve()


def test_explicit_config_with_project_dir(tmp_path):
    (tmp_path / "pipeline.toml").write_text(CONFIG)
    project = tmp_path / "proj"
    project.mkdir()
    config = resolve("-c", str(tmp_path / "pipeline.toml"), str(project))
    assert config.root == project.resolve()


def test_command_line_overrides(tmp_path):
    (tmp_path / "autocheck.toml").write_text(CONFIG)
    config = resolve(
        str(tmp_path), "--delay", "75", "--ignore", "*.log", "--ignore", "docs/", "--no-default-ignores"
    )
    assert config.debounce_ms == 75
    assert config.ignore == ["*.bak", "*.log", "docs/"]
    assert config.default_ignores is False


def test_negative_delay_rejected(tmp_path):
    with pytest.raises(ConfigValidationError):
        resolve(str(tmp_path), "--delay", "-1")


def test_main_bad_config_exits_2(tmp_path, capsys):
    (tmp_path / "autocheck.toml").write_text("[[command]\n")
    assert main([str(tmp_path)]) == EXIT_CONFIG_ERROR
    assert "Invalid TOML" in capsys.readouterr().err


def test_main_bad_ignore_pattern_exits_2(tmp_path, capsys):
    assert main([str(tmp_path), "--ignore", "!keep"]) == EXIT_CONFIG_ERROR
    assert "negated" in capsys.readouterr().err


def test_main_missing_project_dir_exits_1(tmp_path, capsys):
    assert main([str(tmp_path / "missing")]) == EXIT_WATCH_ERROR
    assert "not a directory" in capsys.readouterr().err


def test_main_writes_log_file(tmp_path):
    (tmp_path / "autocheck.toml").write_text("[[command]\n")
    log_file = tmp_path / "run.log"
    assert main([str(tmp_path), "--log-file", str(log_file)]) == EXIT_CONFIG_ERROR
    assert "Configuration error" in log_file.read_text()
