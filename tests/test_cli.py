from datetime import date
from unittest import mock

import pytest
from typer.testing import CliRunner

from production_tracker.cli import app
from production_tracker.config import ConfigError
from production_tracker.lifecycle import OrderLifecycle

runner = CliRunner()


@pytest.fixture
def cli_env(config, uow_factory):
    """Points the CLI at the in-memory test database."""
    with mock.patch('production_tracker.cli.AppConfig') as MockAppConfig, \
            mock.patch('production_tracker.cli._uow_factory', return_value=uow_factory):
        MockAppConfig.load.return_value = config
        yield MockAppConfig


def test_cli_explode(cli_env, fg1_catalogue):
    result = runner.invoke(app, ["explode", "FG1", "--as-of", "2024-05-01"])
    assert result.exit_code == 0, result.output
    assert "Structure of FG1" in result.output
    assert "1.5" in result.output


def test_cli_explode_without_structure(cli_env, fg1_catalogue):
    result = runner.invoke(app, ["explode", "NOPE"])
    assert result.exit_code == 0
    assert "No active structure found for NOPE" in result.output


def test_cli_orders(cli_env, fg1_catalogue, uow_factory):
    OrderLifecycle(uow_factory).create("FG1", "MAIN", 100, date(2024, 6, 30))
    result = runner.invoke(app, ["orders", "--status", "open", "--location", "MAIN"])
    assert result.exit_code == 0, result.output
    assert "Production Orders" in result.output
    assert "WO-1" in result.output


def test_cli_orders_none_match(cli_env, fg1_catalogue, uow_factory):
    OrderLifecycle(uow_factory).create("FG1", "MAIN", 100, date(2024, 6, 30))
    result = runner.invoke(app, ["orders", "--required-by", "2024-01-01"])
    assert result.exit_code == 0
    assert "No production orders match" in result.output


def test_cli_orders_invalid_status(cli_env):
    result = runner.invoke(app, ["orders", "--status", "pending"])
    assert result.exit_code != 0


def test_cli_show_order(cli_env, fg1_catalogue, uow_factory):
    OrderLifecycle(uow_factory).create("FG1", "MAIN", 100, date(2024, 6, 30))
    result = runner.invoke(app, ["show-order", "1"])
    assert result.exit_code == 0, result.output
    assert "Lines of WO-1" in result.output
    assert "200" in result.output


def test_cli_show_order_missing(cli_env, fg1_catalogue):
    result = runner.invoke(app, ["show-order", "99"])
    assert result.exit_code == 1
    assert "Work order 99 not found" in result.output


def test_cli_config_error(cli_env):
    cli_env.load.side_effect = ConfigError("PRODUCTION_DATABASE_URL not found")
    result = runner.invoke(app, ["orders"])
    assert result.exit_code == 1
    assert "Configuration error" in result.output


@mock.patch('production_tracker.cli.create_schema')
@mock.patch('production_tracker.cli.create_db_engine')
def test_cli_init_db(mock_create_engine, mock_create_schema, cli_env, config):
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0, result.output
    mock_create_engine.assert_called_once_with(config)
    mock_create_schema.assert_called_once_with(mock_create_engine.return_value)
    assert "Database schema is ready" in result.output
