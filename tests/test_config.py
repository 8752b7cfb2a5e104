"""
Tests for configuration loading.

Covers:
- ServerDef parsing (string and list commands, env)
- ServerRegistry loading from dict, YAML and Claude Desktop config
- Settings defaults, validation and MCP_* environment overrides
"""

import json
import sys

import pytest

from mcpbridge import (
    ServerDef,
    ServerRegistry,
    Settings,
    default_server_registry,
    discover_claude_config,
)
from mcpbridge.config import claude_config_paths


# ── ServerDef Tests ─────────────────────────────────────────

class TestServerDef:
    def test_from_dict_string_command(self):
        server = ServerDef.from_dict("calendar", {
            "command": "node",
            "args": ["build/index.js"],
            "env": {"GOOGLE_OAUTH_CREDENTIALS": "./gcp-oauth.keys.json"},
        })
        assert server.argv == ["node", "build/index.js"]
        assert server.env == {"GOOGLE_OAUTH_CREDENTIALS": "./gcp-oauth.keys.json"}

    def test_from_dict_list_command(self):
        server = ServerDef.from_dict("echo", {
            "command": ["python", "-m", "mcpbridge.mcp.servers.echo"],
            "args": ["--verbose"],
        })
        assert server.command == "python"
        assert server.args == ["-m", "mcpbridge.mcp.servers.echo", "--verbose"]

    def test_env_values_become_strings(self):
        server = ServerDef.from_dict("s", {"command": "srv", "env": {"PORT": 8080}})
        assert server.env == {"PORT": "8080"}

    def test_missing_command_raises(self):
        with pytest.raises(ValueError, match="no command"):
            ServerDef.from_dict("broken", {"args": ["x"]})

    def test_empty_list_command_raises(self):
        with pytest.raises(ValueError, match="empty command"):
            ServerDef.from_dict("broken", {"command": []})

    def test_env_must_be_mapping(self):
        with pytest.raises(ValueError, match="env must be a mapping"):
            ServerDef.from_dict("broken", {"command": "srv", "env": ["A=1"]})


# ── ServerRegistry Tests ────────────────────────────────────

class TestServerRegistry:
    def test_register_and_get(self):
        registry = ServerRegistry()
        registry.register(ServerDef(name="test", command="echo", args=["hello"]))
        assert registry.get("test") is not None
        assert registry.get("test").args == ["hello"]
        assert registry.get("missing") is None
        assert registry.count == 1

    def test_load_from_dict(self):
        registry = ServerRegistry()
        count = registry.load_from_dict({
            "server_a": {"command": "python", "args": ["-m", "a"]},
            "server_b": {"command": "node", "args": ["b.js"], "description": "B server"},
        })
        assert count == 2
        assert registry.list_all() == ["server_a", "server_b"]
        assert registry.get("server_b").description == "B server"

    def test_load_from_dict_skips_entries_without_command(self, caplog):
        registry = ServerRegistry()
        count = registry.load_from_dict({
            "good": {"command": "srv"},
            "bad": {"args": ["nothing to run"]},
            "worse": "not a mapping",
        })
        assert count == 1
        assert registry.list_all() == ["good"]
        assert "has no command" in caplog.text

    def test_load_from_yaml(self, tmp_path):
        yaml_file = tmp_path / "servers.yaml"
        yaml_file.write_text(
            "calendar:\n"
            "  command: node\n"
            "  args: [build/index.js]\n"
            "echo:\n"
            "  command: [python, -m, mcpbridge.mcp.servers.echo]\n"
        )
        registry = ServerRegistry()
        assert registry.load_from_yaml(yaml_file) == 2
        assert registry.get("echo").argv == ["python", "-m", "mcpbridge.mcp.servers.echo"]

    def test_load_from_yaml_nested_under_mcp_servers(self, tmp_path):
        yaml_file = tmp_path / "servers.yaml"
        yaml_file.write_text("mcpServers:\n  strava:\n    command: strava-mcp\n")
        registry = ServerRegistry()
        assert registry.load_from_yaml(yaml_file) == 1
        assert registry.get("strava").command == "strava-mcp"

    def test_load_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ServerRegistry().load_from_yaml(tmp_path / "nope.yaml")

    def test_load_from_yaml_not_a_mapping(self, tmp_path):
        yaml_file = tmp_path / "servers.yaml"
        yaml_file.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            ServerRegistry().load_from_yaml(yaml_file)

    def test_load_from_claude_config(self, tmp_path):
        config = tmp_path / "claude_desktop_config.json"
        config.write_text(json.dumps({
            "mcpServers": {
                "calendar": {
                    "command": "node",
                    "args": ["/opt/google-calendar-mcp/build/index.js"],
                    "env": {"GOOGLE_OAUTH_CREDENTIALS": "/opt/gcp-oauth.keys.json"},
                },
            },
            "otherSetting": True,
        }))
        registry = ServerRegistry()
        assert registry.load_from_claude_config(config) == 1
        assert registry.get("calendar").env["GOOGLE_OAUTH_CREDENTIALS"] == "/opt/gcp-oauth.keys.json"

    def test_load_from_claude_config_without_servers(self, tmp_path):
        config = tmp_path / "claude_desktop_config.json"
        config.write_text(json.dumps({"theme": "dark"}))
        with pytest.raises(ValueError, match="No mcpServers section"):
            ServerRegistry().load_from_claude_config(config)

    def test_default_registry(self):
        registry = default_server_registry()
        echo = registry.get("echo")
        assert echo is not None
        assert echo.argv == [sys.executable, "-m", "mcpbridge.mcp.servers.echo"]


# ── Claude config discovery ─────────────────────────────────

class TestDiscoverClaudeConfig:
    def test_nothing_found(self, tmp_path):
        assert discover_claude_config(tmp_path) is None

    def test_first_existing_path_wins(self, tmp_path):
        linux_path, mac_path = claude_config_paths(tmp_path)
        mac_path.parent.mkdir(parents=True)
        mac_path.write_text("{}")
        assert discover_claude_config(tmp_path) == mac_path

        linux_path.parent.mkdir(parents=True)
        linux_path.write_text("{}")
        assert discover_claude_config(tmp_path) == linux_path


# ── Settings Tests ──────────────────────────────────────────

class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.request_timeout == 15.0
        assert settings.handshake_timeout == 60.0
        assert settings.connect_attempts == 2
        assert settings.max_pending is None
        assert settings.protocol_version == "2024-11-05"

    @pytest.mark.parametrize("field_name", ["request_timeout", "handshake_timeout", "connect_timeout"])
    def test_timeouts_must_be_positive(self, field_name):
        with pytest.raises(ValueError, match=field_name):
            Settings(**{field_name: 0})

    @pytest.mark.parametrize("field_name", ["kill_grace", "retry_delay"])
    def test_delays_must_not_be_negative(self, field_name):
        with pytest.raises(ValueError, match=field_name):
            Settings(**{field_name: -1})
        assert getattr(Settings(**{field_name: 0}), field_name) == 0

    def test_connect_attempts_must_be_at_least_one(self):
        with pytest.raises(ValueError, match="connect_attempts"):
            Settings(connect_attempts=0)

    def test_from_env(self):
        settings = Settings.from_env({
            "MCP_REQUEST_TIMEOUT": "2.5",
            "MCP_CONNECT_ATTEMPTS": "4",
            "MCP_MAX_PENDING": "",
            "UNRELATED": "x",
        })
        assert settings.request_timeout == 2.5
        assert settings.connect_attempts == 4
        assert settings.max_pending is None

    def test_overrides_beat_environment(self):
        settings = Settings.from_env({"MCP_RETRY_DELAY": "9"}, retry_delay=0.5)
        assert settings.retry_delay == 0.5

    def test_invalid_env_value(self):
        with pytest.raises(ValueError, match="MCP_REQUEST_TIMEOUT"):
            Settings.from_env({"MCP_REQUEST_TIMEOUT": "soon"})
