from click.testing import CliRunner

import database
from cli import TEST_CLIENTS, TEST_USERS, cli
from security import verify_password


def test_seed_commands_are_idempotent(db, monkeypatch):
    monkeypatch.setattr(database, "db", db)
    runner = CliRunner()

    result = runner.invoke(cli, ["seed-users", "--password", "letmein1"])
    assert result.exit_code == 0, result.output
    assert db["user"].count_documents({}) == len(TEST_USERS)
    admin = db["user"].find_one({"email": "john@example.com"})
    assert admin["role"] == "admin"
    assert verify_password("letmein1", admin["password_hash"])

    result = runner.invoke(cli, ["seed-clients"])
    assert result.exit_code == 0, result.output
    assert db["client"].count_documents({"status": "inactive"}) == len(TEST_CLIENTS)

    again = runner.invoke(cli, ["seed-clients"])
    assert "0 test clients created" in again.output


def test_create_user(db, monkeypatch):
    monkeypatch.setattr(database, "db", db)
    runner = CliRunner()
    args = ["create-user", "--name", "Ops Admin", "--email", "Ops@Example.com", "--password", "s3cret!", "--role", "admin"]
    result = runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert db["user"].find_one({"email": "ops@example.com"})["role"] == "admin"

    duplicate = runner.invoke(cli, args)
    assert duplicate.exit_code != 0
    assert "already exists" in duplicate.output


def test_commands_need_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    result = CliRunner().invoke(cli, ["ensure-indexes"])
    assert result.exit_code != 0
    assert "DATABASE_URL" in result.output
