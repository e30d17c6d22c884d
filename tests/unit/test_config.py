"""
Configuration loading tests.

Packaged defaults, YAML overrides, INVENTORY_* environment overrides, and
the bridges that turn settings into kernel objects.
"""

import pytest
import yaml

from inventory_config import get_settings
from inventory_config.bridges import (
    build_balance_selector,
    build_coordinator,
    build_ledger_selector,
    build_product_directory,
    init_engine_from_settings,
    retry_policy_from_settings,
)
from inventory_config.loader import (
    DEFAULTS_PATH,
    apply_env_overrides,
    compute_checksum,
    load_yaml_file,
    merge_documents,
    parse_settings,
)
from inventory_config.schema import LedgerSettings


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults(self):
        settings = get_settings(environ={})
        assert settings.database_url == "sqlite:///inventory_ledger.db"
        assert settings.lock_mode == "optimistic"
        assert settings.max_attempts == 5
        assert settings.transaction_timeout_seconds == 10.0
        assert settings.default_page_limit == 10
        assert settings.max_page_limit == 100
        assert settings.expiring_window_days == 30
        assert settings.log_level == "INFO"
        assert settings.product_codes == ()

    def test_defaults_file_is_a_mapping(self):
        data = load_yaml_file(DEFAULTS_PATH)
        assert set(data) >= {"database", "movements", "queries", "logging", "products"}

    def test_settings_are_frozen(self):
        settings = get_settings(environ={})
        with pytest.raises(AttributeError):
            settings.max_attempts = 10


class TestOverrides:

    def test_yaml_file_merges_over_defaults(self, tmp_path):
        path = _write_yaml(tmp_path / "ledger.yaml", {
            "movements": {"max_attempts": 9, "lock_mode": "pessimistic"},
            "products": ["ZR001", "ZR002"],
        })
        settings = get_settings(path, environ={})
        assert settings.max_attempts == 9
        assert settings.lock_mode == "pessimistic"
        # Untouched keys of the same section keep their defaults
        assert settings.backoff_seconds == 0.02
        assert settings.product_codes == ("ZR001", "ZR002")

    def test_environment_wins_over_yaml(self, tmp_path):
        path = _write_yaml(tmp_path / "ledger.yaml", {"movements": {"max_attempts": 9}})
        settings = get_settings(path, environ={
            "INVENTORY_MAX_ATTEMPTS": "3",
            "INVENTORY_DATABASE_URL": "sqlite:///other.db",
            "INVENTORY_LOCK_MODE": "PESSIMISTIC",
            "INVENTORY_TRANSACTION_TIMEOUT": "2.5",
            "INVENTORY_LOG_LEVEL": "debug",
        })
        assert settings.max_attempts == 3
        assert settings.database_url == "sqlite:///other.db"
        assert settings.lock_mode == "pessimistic"
        assert settings.transaction_timeout_seconds == 2.5
        assert settings.log_level == "DEBUG"

    def test_unrelated_environment_is_ignored(self):
        settings = get_settings(environ={"INVENTORY_UNKNOWN": "x", "PATH": "/bin"})
        assert settings == get_settings(environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_settings(tmp_path / "absent.yaml", environ={})

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_merge_is_recursive_and_copies(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        merged = merge_documents(base, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}
        assert base == {"a": {"x": 1, "y": 2}, "b": 1}

    def test_env_overrides_do_not_mutate_input(self):
        data = {"database": {"url": "sqlite:///a.db"}}
        result = apply_env_overrides(data, {"INVENTORY_DATABASE_URL": "sqlite:///b.db"})
        assert result["database"]["url"] == "sqlite:///b.db"
        assert data["database"]["url"] == "sqlite:///a.db"


class TestParseSettings:

    def _doc(self, **sections):
        doc = load_yaml_file(DEFAULTS_PATH)
        return merge_documents(doc, sections)

    def test_missing_url(self):
        with pytest.raises(ValueError, match="database.url"):
            parse_settings(self._doc(database={"url": ""}))

    @pytest.mark.parametrize(
        "sections,match",
        [
            ({"movements": {"lock_mode": "sometimes"}}, "lock_mode"),
            ({"movements": {"max_attempts": 0}}, "max_attempts"),
            ({"movements": {"max_attempts": "many"}}, "max_attempts"),
            ({"movements": {"max_attempts": True}}, "max_attempts"),
            ({"movements": {"transaction_timeout_seconds": 0}}, "transaction_timeout_seconds"),
            ({"movements": {"backoff_seconds": -1}}, "backoff_seconds"),
            ({"queries": {"default_page_limit": 500}}, "default_page_limit"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"database": {"echo": "maybe"}}, "echo"),
            ({"products": "ZR001"}, "products"),
        ],
    )
    def test_invalid_values(self, sections, match):
        with pytest.raises(ValueError, match=match):
            parse_settings(self._doc(**sections))

    def test_string_booleans(self):
        settings = parse_settings(self._doc(database={"echo": "yes"}))
        assert settings.echo is True

    def test_checksum_is_deterministic(self):
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestBridges:

    def test_retry_policy(self):
        settings = LedgerSettings(
            database_url="sqlite:///x.db",
            max_attempts=7,
            backoff_seconds=0.1,
            max_backoff_seconds=1.0,
            transaction_timeout_seconds=3.0,
            lock_mode="pessimistic",
        )
        policy = retry_policy_from_settings(settings)
        assert policy.max_attempts == 7
        assert policy.backoff_seconds == 0.1
        assert policy.max_backoff_seconds == 1.0
        assert policy.transaction_timeout_seconds == 3.0
        assert policy.lock_mode == "pessimistic"

    def test_product_directory(self):
        settings = LedgerSettings(database_url="sqlite:///x.db", product_codes=("ZR001",))
        directory = build_product_directory(settings)
        assert directory.product_exists("ZR001")
        assert not directory.product_exists("ZR002")

    def test_builders_use_settings(self, db_engine, session):
        settings = LedgerSettings(
            database_url="sqlite:///unused.db",
            max_attempts=2,
            default_page_limit=5,
            max_page_limit=20,
            product_codes=("ZR001",),
        )
        coordinator = build_coordinator(settings)
        assert coordinator.retry_policy.max_attempts == 2
        coordinator.receive("ZR001", 4)

        balances = build_balance_selector(session, settings)
        assert balances.default_limit == 5
        assert balances.max_limit == 20
        assert balances.available_quantity("ZR001") == 4

        ledger = build_ledger_selector(session, settings)
        assert ledger.list_movements().limit == 5

    def test_sqlite_lock_wait_is_bounded_by_transaction_timeout(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "inventory_config.bridges.init_engine_from_url",
            lambda url, **kwargs: calls.append(kwargs),
        )
        monkeypatch.setattr("inventory_config.bridges.register_immutability_listeners", lambda: None)
        settings = LedgerSettings(database_url="sqlite:///x.db", transaction_timeout_seconds=2.5)

        init_engine_from_settings(settings)

        assert calls[0]["sqlite_busy_timeout"] == 2.5
