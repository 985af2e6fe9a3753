"""Unit tests for core/config.py -- EngineConfig and QueryConfig.

Covers:
- Unset and null templates resolve to "" (disabled)
- disabled() lists empty templates in declaration order
- Defaults for mode, timeout, strict_password_change
- SQLITE_AUTH_* environment variables fill options the host left unset
- Host-supplied values win over the environment
- Config is frozen after validation
- Wrongly typed options are rejected
- A numeric mode from older configs is ignored with a warning
"""

import logging

import pytest
from pydantic import ValidationError

from core.config import EngineConfig, QueryConfig


class TestQueryConfig:
    def test_unset_templates_are_empty(self):
        queries = QueryConfig()
        assert queries.auth_user == ""
        assert queries.add_user == ""
        assert queries.update_user == ""

    def test_null_template_is_empty(self):
        queries = QueryConfig(auth_user=None, add_user="INSERT 1")
        assert queries.auth_user == ""
        assert queries.add_user == "INSERT 1"

    def test_disabled_lists_empty_templates_in_order(self):
        queries = QueryConfig(add_user="INSERT 1")
        assert queries.disabled() == ["auth_user", "update_user"]

    def test_nothing_disabled_when_all_set(self):
        queries = QueryConfig(auth_user="a", add_user="b", update_user="c")
        assert queries.disabled() == []


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig(path="users.db")
        assert config.secret == ""
        assert config.mode == "rw"
        assert config.timeout_seconds == 5.0
        assert config.strict_password_change is False
        assert config.queries.disabled() == ["auth_user", "add_user", "update_user"]

    def test_nested_queries_from_mapping(self):
        config = EngineConfig(**{"path": "x.db", "queries": {"auth_user": "SELECT 1"}})
        assert config.queries.auth_user == "SELECT 1"
        assert config.queries.add_user == ""

    def test_null_secret_and_queries_block(self):
        config = EngineConfig(path="x.db", secret=None, queries=None)
        assert config.secret == ""
        assert config.queries == QueryConfig()

    def test_unknown_options_are_ignored(self):
        config = EngineConfig(path="x.db", max_users=100)
        assert not hasattr(config, "max_users")

    def test_environment_fills_unset_options(self, monkeypatch):
        monkeypatch.setenv("SQLITE_AUTH_SECRET", "from-env")
        monkeypatch.setenv("SQLITE_AUTH_QUERIES__AUTH_USER", "SELECT usergroups FROM users")
        config = EngineConfig(path="x.db")
        assert config.secret == "from-env"
        assert config.queries.auth_user == "SELECT usergroups FROM users"

    def test_host_value_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("SQLITE_AUTH_SECRET", "from-env")
        config = EngineConfig(path="x.db", secret="from-host")
        assert config.secret == "from-host"

    def test_config_is_frozen(self):
        config = EngineConfig(path="x.db")
        with pytest.raises(ValidationError):
            config.secret = "changed"

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(path="x.db", mode="memory")

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(path="x.db", timeout_seconds=0)

    def test_numeric_mode_falls_back_to_rw_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sqliteauth.config"):
            config = EngineConfig(path="x.db", mode=6)
        assert config.mode == "rw"
        assert "numeric mode 6 is ignored" in caplog.text

    def test_boolean_mode_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(path="x.db", mode=True)
