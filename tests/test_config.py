"""
Tests for the configuration system.
"""

import pytest
import yaml

from agentcoord.config import (
    ConfigError,
    ConfigManager,
    ConfigValue,
    TESTNET_CHAIN_ID,
    get_config,
    get_config_manager,
)


class TestConfigValue:
    """Single configuration values."""

    def test_default(self):
        value = ConfigValue(default=5)
        assert value.get() == 5

    def test_set_coerces_strings(self):
        value = ConfigValue(default=5)
        value.set("0x10")
        assert value.get() == 16

    def test_validator(self):
        value = ConfigValue(default=5, validator=lambda x: x > 0)
        with pytest.raises(ConfigError):
            value.set(-1)

    def test_env_override(self, monkeypatch):
        value = ConfigValue(default=5, env_var="AGENTCOORD_TEST_VALUE")
        monkeypatch.setenv("AGENTCOORD_TEST_VALUE", "7")
        assert value.get() == 7

    def test_change_callback(self):
        seen = []
        value = ConfigValue(default="a")
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set("b")
        assert seen == [(None, "b")]


class TestConfigManager:
    """Singleton manager with files, paths and validation."""

    def test_singleton(self):
        assert ConfigManager() is get_config_manager()

    def test_defaults(self):
        config = get_config()
        assert config.domain.chain_id.get() == TESTNET_CHAIN_ID
        assert config.domain.name.get() == "ERC-8001-Agent-Coordination"
        assert config.domain.version.get() == "1"
        assert config.signatures.scheme.get() == "secp256k1"
        assert config.observability.log_format.get() == "json"

    def test_environment_wins(self, monkeypatch):
        mgr = get_config_manager()
        mgr.set("domain.chain_id", TESTNET_CHAIN_ID)
        monkeypatch.setenv("AGENTCOORD_CHAIN_ID", "1")
        assert mgr.get("domain.chain_id") == 1

    def test_set_and_get_by_path(self):
        mgr = get_config_manager()
        mgr.set("domain.verifying_context", "staging")
        assert mgr.get("domain.verifying_context") == "staging"

    def test_invalid_path(self):
        mgr = get_config_manager()
        with pytest.raises(ConfigError):
            mgr.set("domain.nope", 1)
        with pytest.raises(ConfigError):
            mgr.get("nope.value")
        with pytest.raises(ConfigError):
            mgr.set("domain", 1)

    def test_invalid_value(self):
        mgr = get_config_manager()
        with pytest.raises(ConfigError):
            mgr.set("signatures.scheme", "rsa")
        with pytest.raises(ConfigError):
            mgr.set("domain.chain_id", 0)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "agentcoord.yaml"
        path.write_text(yaml.safe_dump({
            "domain": {"chain_id": 1, "verifying_context": "prod"},
            "observability": {"log_level": "debug"},
        }))

        mgr = get_config_manager()
        mgr.load_from_file(path)

        assert mgr.get("domain.chain_id") == 1
        assert mgr.get("domain.verifying_context") == "prod"
        assert mgr.get("observability.log_level") == "debug"

    def test_load_defaults_project_file_wins(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        (home / ".agentcoord").mkdir(parents=True)
        (home / ".agentcoord" / "config.yaml").write_text(yaml.safe_dump({
            "domain": {"chain_id": 1, "verifying_context": "user"},
        }))
        project = tmp_path / "project"
        project.mkdir()
        (project / "agentcoord.yaml").write_text(yaml.safe_dump({
            "domain": {"verifying_context": "project"},
        }))
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.chdir(project)

        mgr = get_config_manager()
        mgr.load_defaults()

        assert mgr.get("domain.chain_id") == 1
        assert mgr.get("domain.verifying_context") == "project"

    def test_unknown_key_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"domain": {"chain": 1}}))
        with pytest.raises(ConfigError):
            get_config_manager().load_from_file(path)

    def test_missing_and_malformed_files(self, tmp_path):
        mgr = get_config_manager()
        with pytest.raises(ConfigError):
            mgr.load_from_file(tmp_path / "absent.yaml")

        broken = tmp_path / "broken.yaml"
        broken.write_text("domain: [unclosed")
        with pytest.raises(ConfigError):
            mgr.load_from_file(broken)

        listed = tmp_path / "list.yaml"
        listed.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            mgr.load_from_file(listed)

    def test_reload_notifies_watchers(self, tmp_path):
        path = tmp_path / "agentcoord.yaml"
        path.write_text(yaml.safe_dump({"domain": {"verifying_context": "one"}}))
        mgr = get_config_manager()
        mgr.load_from_file(path)

        seen = []
        mgr.watch(lambda config: seen.append(config.domain.verifying_context.get()))
        path.write_text(yaml.safe_dump({"domain": {"verifying_context": "two"}}))
        mgr.reload()

        assert seen == ["two"]

    def test_validate(self, monkeypatch):
        mgr = get_config_manager()
        assert mgr.validate() == []

        monkeypatch.setenv("AGENTCOORD_SIGNATURE_SCHEME", "rsa")
        errors = mgr.validate()
        assert len(errors) == 1
        assert errors[0].startswith("signatures.scheme")

    def test_validate_reports_uncoercible_env(self, monkeypatch):
        monkeypatch.setenv("AGENTCOORD_CHAIN_ID", "testnet")
        errors = get_config_manager().validate()
        assert any(e.startswith("domain.chain_id") for e in errors)

    def test_reset(self):
        mgr = get_config_manager()
        mgr.set("domain.chain_id", 1)
        mgr.reset()
        assert mgr.get("domain.chain_id") == TESTNET_CHAIN_ID

    def test_yaml_round_trip(self):
        data = yaml.safe_load(get_config().to_yaml())
        assert data["domain"]["chain_id"] == TESTNET_CHAIN_ID
        assert data["signatures"]["scheme"] == "secp256k1"

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        chain = schema["properties"]["domain"]["chain_id"]
        assert chain["type"] == "int"
        assert chain["env_var"] == "AGENTCOORD_CHAIN_ID"
