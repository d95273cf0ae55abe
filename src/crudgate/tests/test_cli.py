"""
Tests for the crudgate command line.
"""

import json

import pytest
from click.testing import CliRunner

from crudgate.cli.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


# ============================================================================
# sql
# ============================================================================

class TestShowSql:

    def test_select(self, runner):
        result = runner.invoke(cli, ["sql", "products", "filter[status]=active&sort=-price&limit=10"])
        assert result.exit_code == 0
        sql, args = result.output.strip().splitlines()
        assert sql == "SELECT * FROM products WHERE status = $1 ORDER BY price DESC LIMIT 10 OFFSET 0"
        assert json.loads(args) == ["active"]

    def test_count(self, runner):
        result = runner.invoke(cli, ["sql", "products", "filter[price:gt]=5&page=3", "--count"])
        assert result.exit_code == 0
        sql, args = result.output.strip().splitlines()
        assert sql == "SELECT COUNT(*) FROM products WHERE price > $1"
        assert json.loads(args) == ["5"]

    def test_tree_follows_request_filters(self, runner):
        result = runner.invoke(cli, [
            "sql", "posts", "filter[status]=published", "--tree", '{"owner_id": "U1"}',
        ])
        assert result.exit_code == 0
        sql, args = result.output.strip().splitlines()
        assert "WHERE status = $1 AND (owner_id = $2)" in sql
        assert json.loads(args) == ["published", "U1"]

    def test_field_not_allowed(self, runner):
        result = runner.invoke(cli, ["sql", "products", "filter[secret]=x", "--fields", "id,name"])
        assert result.exit_code == 1
        assert "not allowed for filtering" in result.output

    def test_invalid_tree_json(self, runner):
        result = runner.invoke(cli, ["sql", "products", "", "--tree", "{nope"])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


# ============================================================================
# filter
# ============================================================================

class TestCompileFilter:

    def test_compile(self, runner):
        result = runner.invoke(cli, ["filter", '{"owner_id": "U1"}'])
        assert result.exit_code == 0
        sql, args = result.output.strip().splitlines()
        assert sql == "owner_id = $1"
        assert json.loads(args) == ["U1"]

    def test_offset(self, runner):
        result = runner.invoke(cli, ["filter", '{"owner_id": "U1"}', "--offset", "3"])
        assert result.exit_code == 0
        assert result.output.splitlines()[0] == "owner_id = $4"

    def test_invalid_json(self, runner):
        result = runner.invoke(cli, ["filter", "not json"])
        assert result.exit_code == 1


# ============================================================================
# policy
# ============================================================================

class TestPolicyCommands:

    @pytest.fixture(autouse=True)
    def sqlite_policies(self, monkeypatch, session_factory):
        monkeypatch.setattr("crudgate.cli.policy.get_session_factory", lambda: session_factory)

    def test_init_set_list_delete(self, runner):
        result = runner.invoke(cli, ["policy", "init"])
        assert result.exit_code == 0
        assert "crudgate_permissions is ready" in result.output

        result = runner.invoke(cli, [
            "policy", "set", "role-editor", "posts", "read",
            "--filter", '{"owner_id": "$USER_ID"}', "--fields", '{"denied": ["secret"]}',
        ])
        assert result.exit_code == 0
        policy_id = result.output.strip().split()[-1]

        result = runner.invoke(cli, ["policy", "list", "role-editor"])
        assert result.exit_code == 0
        assert policy_id in result.output
        assert '"$USER_ID"' in result.output

        result = runner.invoke(cli, ["policy", "delete", policy_id])
        assert result.exit_code == 0

        result = runner.invoke(cli, ["policy", "list", "role-editor"])
        assert result.output == ""

    def test_invalid_action(self, runner):
        result = runner.invoke(cli, ["policy", "set", "role-editor", "posts", "publish"])
        assert result.exit_code == 2

    def test_delete_missing(self, runner):
        runner.invoke(cli, ["policy", "init"])
        result = runner.invoke(cli, ["policy", "delete", "nope"])
        assert result.exit_code == 1
        assert "[404]" in result.output
