"""
Tests for configuration loading, environment binding and validation.

Run with: pytest tests/test_config.py -v
"""

import pytest

from certledger.access import hash_credential
from certledger.config import (
    CertLedgerConfig,
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    ConfigValue,
)


class TestConfigValue:
    """Tests for single configuration values."""

    def test_default(self):
        assert ConfigValue(default=5).get() == 5

    def test_set_and_reset(self):
        value = ConfigValue(default=5)
        value.set(7)
        assert value.get() == 7
        value.reset()
        assert value.get() == 5

    def test_string_coerced_to_int(self):
        value = ConfigValue(default=5)
        value.set("9")
        assert value.get() == 9

    def test_env_wins(self, monkeypatch):
        value = ConfigValue(default=5, env_var="CERTLEDGER_TEST_VALUE")
        value.set(7)
        monkeypatch.setenv("CERTLEDGER_TEST_VALUE", "11")
        assert value.get() == 11

    def test_validator(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ConfigValidationError):
            value.set(-1)


class TestConfigManager:
    """Tests for the manager and its sources."""

    def test_defaults(self):
        mgr = ConfigManager()
        assert mgr.get("ledger.path") == "certledger-ledger.json"
        assert mgr.get("access.admin_credential_hash") == ""
        assert mgr.get("lifecycle.validity_days") == 365
        assert mgr.get("observability.log_format") == "json"

    def test_instances_are_independent(self):
        first = ConfigManager()
        first.set("lifecycle.validity_days", 30)
        assert ConfigManager().get("lifecycle.validity_days") == 365

    def test_set_by_path(self):
        mgr = ConfigManager()
        mgr.set("lifecycle.validity_days", "730")
        assert mgr.get("lifecycle.validity_days") == 730

    def test_invalid_path(self):
        mgr = ConfigManager()
        with pytest.raises(ConfigError):
            mgr.get("lifecycle.nope")
        with pytest.raises(ConfigError):
            mgr.get("lifecycle")

    def test_env_binding(self, monkeypatch):
        monkeypatch.setenv("CERTLEDGER_LEDGER_PATH", "/var/lib/certledger/ledger.json")
        monkeypatch.setenv("CERTLEDGER_VALIDITY_DAYS", "90")
        mgr = ConfigManager()
        assert mgr.get("ledger.path") == "/var/lib/certledger/ledger.json"
        assert mgr.get("lifecycle.validity_days") == 90

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "certledger.yaml"
        path.write_text(
            "ledger:\n"
            "  path: data/ledger.json\n"
            "lifecycle:\n"
            "  validity_days: 180\n"
            "observability:\n"
            "  log_format: text\n",
            encoding="utf-8",
        )
        mgr = ConfigManager()
        mgr.load_from_file(path)

        assert mgr.get("ledger.path") == "data/ledger.json"
        assert mgr.get("lifecycle.validity_days") == 180
        assert mgr.get("observability.log_format") == "text"
        assert mgr.loaded_paths == [path]

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "certledger.yaml"
        path.write_text("lifecycle:\n  validity_days: 180\n", encoding="utf-8")
        monkeypatch.setenv("CERTLEDGER_VALIDITY_DAYS", "30")
        mgr = ConfigManager()
        mgr.load_from_file(path)
        assert mgr.get("lifecycle.validity_days") == 30

    def test_empty_file(self, tmp_path):
        path = tmp_path / "certledger.yaml"
        path.write_text("", encoding="utf-8")
        mgr = ConfigManager()
        mgr.load_from_file(path)
        assert mgr.get("lifecycle.validity_days") == 365

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(tmp_path / "absent.yaml")

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "certledger.yaml"
        path.write_text("ledger:\n  colour: blue\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "certledger.yaml"
        path.write_text("ledger: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigManager().load_from_file(path)

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "certledger.yaml"
        path.write_text("access:\n  admin_credential_hash: short\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError):
            ConfigManager().load_from_file(path)


class TestValidationAndExport:
    """Tests for validate, to_dict and export_schema."""

    def test_valid_defaults(self):
        assert ConfigManager().validate() == []

    def test_bad_env_values(self, monkeypatch):
        monkeypatch.setenv("CERTLEDGER_ADMIN_CREDENTIAL_HASH", "xyz")
        monkeypatch.setenv("CERTLEDGER_VALIDITY_DAYS", "soon")
        errors = ConfigManager().validate()

        assert len(errors) == 2
        assert any(e.startswith("access.admin_credential_hash") for e in errors)
        assert any(e.startswith("lifecycle.validity_days") for e in errors)
        assert not any("xyz" in e for e in errors)

    def test_to_dict_masks_secret(self, monkeypatch):
        monkeypatch.setenv("CERTLEDGER_ADMIN_CREDENTIAL_HASH", hash_credential("pw"))
        config = CertLedgerConfig()
        assert config.to_dict()["access"]["admin_credential_hash"] == "***"
        assert config.to_dict(reveal_secrets=True)["access"]["admin_credential_hash"] == hash_credential("pw")

    def test_to_dict_sections(self):
        assert set(CertLedgerConfig().to_dict()) == {"ledger", "access", "lifecycle", "observability"}

    def test_to_yaml(self):
        assert "validity_days: 365" in CertLedgerConfig().to_yaml()

    def test_export_schema(self):
        schema = ConfigManager().export_schema()
        access = schema["properties"]["access"]["admin_credential_hash"]
        assert access["env_var"] == "CERTLEDGER_ADMIN_CREDENTIAL_HASH"
        assert access["secret"] is True
        assert schema["properties"]["lifecycle"]["validity_days"]["type"] == "int"

    def test_invalid_env_value_rejected_on_get(self, monkeypatch):
        monkeypatch.setenv("CERTLEDGER_LOG_LEVEL", "verbose")
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigManager().get("observability.log_level")
        assert "CERTLEDGER_LOG_LEVEL" in str(exc_info.value)

    def test_invalid_secret_env_value_masked(self, monkeypatch):
        monkeypatch.setenv("CERTLEDGER_ADMIN_CREDENTIAL_HASH", "xyz")
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigManager().get("access.admin_credential_hash")
        assert "xyz" not in str(exc_info.value)
