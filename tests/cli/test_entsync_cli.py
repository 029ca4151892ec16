"""
Tests for the entsync CLI.
"""

import json

import pytest
import yaml
from typer.testing import CliRunner

from entsync import __version__
from entsync.cli.main import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, data_dir, database_url):
    path = tmp_path / "entsync.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "data_dir": str(data_dir),
                "database_url": database_url,
                "entity_id_pattern": "",
                "telemetry_enabled": True,
            }
        )
    )
    return path


class TestVersion:
    """Tests for the version command."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestSweep:
    """Tests for the sweep command."""

    def test_sweep_table(self, data_dir, config_file):
        (data_dir / "alice.json").write_text(json.dumps({"hp": 1}))

        result = runner.invoke(app, ["sweep", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Sweep Summary" in result.stdout

    def test_sweep_json(self, data_dir, config_file):
        (data_dir / "alice.json").write_text(json.dumps({"hp": 1, "stats": {"kills": 2}}))

        result = runner.invoke(app, ["sweep", "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        assert '"pushed_to_store": 1' in result.stdout
        assert '"stats_merged": 1' in result.stdout

    def test_sweep_dormant_exits_nonzero(self, tmp_path, database_url):
        path = tmp_path / "dormant.yaml"
        path.write_text(
            yaml.safe_dump({"data_dir": str(tmp_path / "missing"), "database_url": database_url})
        )

        result = runner.invoke(app, ["sweep", "--config", str(path)])

        assert result.exit_code == 1

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["sweep", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code != 0


class TestInspect:
    """Tests for the inspect command."""

    def test_inspect_file_only(self, data_dir, config_file):
        (data_dir / "alice.json").write_text(json.dumps({"stats": {"kills": 3}}))

        result = runner.invoke(app, ["inspect", "alice", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Entity alice" in result.stdout
        assert "push_file_to_store" in result.stdout
        assert "kills=3" in result.stdout

    def test_inspect_after_sweep(self, data_dir, config_file):
        (data_dir / "alice.json").write_text(json.dumps({"hp": 1}))
        runner.invoke(app, ["sweep", "--config", str(config_file)])

        result = runner.invoke(app, ["inspect", "alice", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "present" in result.stdout
        assert "push_store_to_file" in result.stdout


    def test_inspect_unsafe_id(self, config_file):
        result = runner.invoke(app, ["inspect", "../x", "--config", str(config_file)])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Unsafe entity id" in result.stdout


class TestConfig:
    """Tests for the config command."""

    def test_init_writes_loadable_yaml(self, tmp_path):
        path = tmp_path / "conf" / "entsync.yaml"

        result = runner.invoke(app, ["config", "--init", "--path", str(path)])

        assert result.exit_code == 0
        loaded = yaml.safe_load(path.read_text())
        assert loaded["entity_id_pattern"] == r"^\d{17}$"
        assert loaded["sync_interval"] == 60

    def test_show(self, config_file):
        result = runner.invoke(app, ["config", "--show", "--path", str(config_file)])
        assert result.exit_code == 0
        assert "sync_interval" in result.stdout
