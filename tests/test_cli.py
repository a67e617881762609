"""Tests for the CLI interface."""

from typer.testing import CliRunner

from pathrpc.cli.main import cli
from pathrpc.config import BatchingConfig, PathRpcConfig, set_config

runner = CliRunner()


class TestCLIStatus:
    def test_status_runs(self):
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "Batching Configuration" in result.output
        assert "Server Configuration" in result.output

    def test_status_shows_batching_state(self):
        result = runner.invoke(cli, ["status"])
        assert "enabled" in result.output
        assert "2048" in result.output


class TestCLIRoutes:
    def test_routes_table(self):
        result = runner.invoke(cli, ["routes", "sample_app:manifest"])
        assert result.exit_code == 0
        assert "users.get_user" in result.output
        assert "math.whoami" in result.output

    def test_routes_json(self):
        result = runner.invoke(cli, ["routes", "sample_app:manifest", "--json"])
        assert result.exit_code == 0
        assert '"path": "admin.audit.upload_logs"' in result.output
        assert '"upload": "multiple"' in result.output

    def test_routes_invalid_manifest(self):
        result = runner.invoke(cli, ["routes", "sample_app:broken_manifest"])
        assert result.exit_code == 1
        assert "Invalid manifest" in result.output

    def test_routes_bad_reference(self):
        result = runner.invoke(cli, ["routes", "sample_app"])
        assert result.exit_code != 0

    def test_routes_missing_module(self):
        result = runner.invoke(cli, ["routes", "no_such_module_here:manifest"])
        assert result.exit_code != 0


class TestCLIValidate:
    def test_validate_passes(self):
        result = runner.invoke(cli, ["validate", "sample_app:manifest"])
        assert result.exit_code == 0
        assert "All validation checks passed" in result.output

    def test_validate_fails(self):
        result = runner.invoke(cli, ["validate", "sample_app:broken_manifest"])
        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "Validation failed" in result.output


class TestCLIEncode:
    def test_encode_batch(self):
        result = runner.invoke(cli, ["encode", "users.get_user", "users.list_users", "--base-url", "http://api"])
        assert result.exit_code == 0
        assert "http://api/pathrpc?calls=1:users.get_user,2:users.list_users" in result.output
        assert "limit 2048" in result.output

    def test_encode_over_limit(self):
        set_config(PathRpcConfig(batching=BatchingConfig(max_url_size=30)))
        result = runner.invoke(cli, ["encode", "users.get_user", "--base-url", "http://api"])
        assert result.exit_code == 1
        assert "exceeds the limit of 30" in result.output

    def test_encode_invalid_path(self):
        result = runner.invoke(cli, ["encode", "users..get_user"])
        assert result.exit_code == 1
        assert "empty path segment" in result.output
