"""Unit tests for installer argument parsing and the CLI entry point."""

import pytest
import yaml

from selfhosted.installer import cli


@pytest.fixture(autouse=True)
def no_signal_handler(monkeypatch):
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)


@pytest.fixture
def config_file(tmp_path, installer_config):
    path = tmp_path / "installer.yml"
    path.write_text(yaml.safe_dump(installer_config))
    return str(path)


class TestArguments:
    """Tests for argparse setup."""

    def test_defaults(self):
        args = cli.setup_argparse().parse_args(["update", "--config-file", "x.yml"])

        assert args.command == "update"
        assert args.config_file == "x.yml"
        assert args.project is None
        assert args.message is None
        assert args.yes is False

    def test_projects_and_flags(self):
        args = cli.setup_argparse().parse_args([
            "destroy", "--config-file", "x.yml", "--project", "application",
            "--project", "kubernetes", "--message", "bye", "-y",
        ])

        assert args.project == ["application", "kubernetes"]
        assert args.message == "bye"
        assert args.yes is True

    def test_config_file_required(self):
        with pytest.raises(SystemExit):
            cli.setup_argparse().parse_args(["init"])

    def test_unknown_project(self):
        with pytest.raises(SystemExit):
            cli.setup_argparse().parse_args(["init", "--config-file", "x.yml", "--project", "dns"])


class TestMain:
    """Tests for the main entry point."""

    def test_missing_config_file(self, tmp_path):
        assert cli.main(["init", "--config-file", str(tmp_path / "missing.yml"), "-y"]) == 1

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "installer.yml"
        path.write_text("platform: gke\n")

        assert cli.main(["init", "--config-file", str(path), "-y"]) == 1

    def test_runs_selected_projects(self, monkeypatch, config_file):
        calls = []
        monkeypatch.setattr(cli.runner, "run", lambda op, projects, message: calls.append(
            (op, [p.name for p in projects], message)))

        code = cli.main(["update", "--config-file", config_file, "--project", "kubernetes", "--message", "m", "-y"])

        assert code == 0
        assert calls == [("update", ["kubernetes"], "m")]

    def test_confirmation_declined(self, monkeypatch, config_file):
        calls = []
        monkeypatch.setattr(cli.runner, "run", lambda *args: calls.append(args))
        monkeypatch.setattr("builtins.input", lambda prompt: "no")

        assert cli.main(["destroy", "--config-file", config_file]) == 0
        assert calls == []

    def test_confirmation_accepted(self, monkeypatch, config_file):
        calls = []
        monkeypatch.setattr(cli.runner, "run", lambda *args: calls.append(args))
        monkeypatch.setattr("builtins.input", lambda prompt: "yes")

        assert cli.main(["destroy", "--config-file", config_file]) == 0
        assert len(calls) == 1

    def test_operation_error_exits_1(self, monkeypatch, config_file):
        def fail(*args):
            raise RuntimeError("engine failed")

        monkeypatch.setattr(cli.runner, "run", fail)

        assert cli.main(["update", "--config-file", config_file, "-y"]) == 1
