"""Test the connect command group."""

import json

from click.testing import CliRunner

from sqlgate.cli import main


def test_list_empty() -> None:
    result = CliRunner().invoke(main, ["connect", "list"])
    assert result.exit_code == 0
    assert "No connections configured." in result.output


def test_add_list_remove(sqlgate_home) -> None:
    runner = CliRunner()
    result = runner.invoke(
        main,
        [
            "connect", "add", "wh", "postgres",
            "host=db", "user=reader", "database=wh", "password_env=WH_PW",
        ],
    )
    assert result.exit_code == 0
    assert "Saved connection 'wh'" in result.output
    assert (sqlgate_home / "connections.toml").exists()

    result = runner.invoke(main, ["connect", "list"])
    assert "wh (postgres): host=db, user=reader, database=wh, password_env=WH_PW" in result.output

    result = runner.invoke(main, ["connect", "remove", "wh"])
    assert result.exit_code == 0
    assert "Removed connection 'wh'." in result.output


def test_plaintext_password_warned_and_masked() -> None:
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["connect", "add", "shop", "mysql", "host=h", "user=u", "database=d", "password=hunter2"],
    )
    assert result.exit_code == 0
    assert "plaintext password" in result.output

    result = runner.invoke(main, ["connect", "list"])
    assert "password=****" in result.output
    assert "hunter2" not in result.output


def test_remove_missing() -> None:
    result = CliRunner().invoke(main, ["connect", "remove", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_add_rejects_bad_pair() -> None:
    result = CliRunner().invoke(main, ["connect", "add", "x", "sqlite", "path"])
    assert result.exit_code == 2


def test_add_rejects_unknown_type() -> None:
    result = CliRunner().invoke(main, ["connect", "add", "x", "oracle", "host=h"])
    assert result.exit_code == 2


def test_connect_test_sqlite(shop_url) -> None:
    result = CliRunner().invoke(main, ["connect", "test", shop_url])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["ok"] is True
    assert data["engine"] == "sqlite"
    assert data["data"]["server_info"].startswith("SQLite ")
    assert data["data"]["connected_database"] == "shop.db"


def test_connect_test_text(shop_url) -> None:
    result = CliRunner().invoke(main, ["connect", "test", shop_url, "--format", "text"])
    assert result.exit_code == 0
    assert result.output.startswith("ok: SQLite ")


def test_connect_test_unset_password_env(monkeypatch) -> None:
    monkeypatch.delenv("WH_PW", raising=False)
    runner = CliRunner()
    runner.invoke(
        main,
        [
            "connect", "add", "wh", "postgres",
            "host=db", "user=u", "database=d", "password_env=WH_PW",
        ],
    )
    result = runner.invoke(main, ["connect", "test", "wh"])
    assert result.exit_code == 1
    assert json.loads(result.output)["error"]["code"] == "CONFIG_ERROR"
