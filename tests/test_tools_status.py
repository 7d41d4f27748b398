"""Tests for tools.status module."""

from pathlib import Path
from unittest.mock import patch

from engine_relay_mcp.config import Config, EngineSettings
from engine_relay_mcp.tools.status import check_status


def fake_available(name, install_hint=""):
    if name == "kimi":
        return True, "kimi found at: /usr/bin/kimi"
    return False, f"{name} CLI not found in PATH. Install it via: {install_hint}"


class TestCheckStatus:
    """Tests for check_status() function."""

    def test_check_status_engines(self, clean_env):
        """UC-04.1: Статус каждого движка и загруженной конфигурации."""
        config = Config(max_permission_retries=2, config_file=Path("/etc/engines.yaml"))

        with patch("engine_relay_mcp.tools.status.check_binary_available", side_effect=fake_available), \
             patch("engine_relay_mcp.tools.status.get_config", return_value=config):
            result = check_status()

        assert result["engines"]["kimi"] == {
            "name": "Kimi CLI",
            "available": True,
            "message": "kimi found at: /usr/bin/kimi",
            "skipped": False,
        }
        assert result["engines"]["opencode"]["available"] is False
        assert "npm i -g opencode-ai@latest" in result["engines"]["opencode"]["message"]
        assert result["config_loaded"] is True
        assert result["config_error"] is None
        assert result["config_file"] == "/etc/engines.yaml"
        assert result["max_permission_retries"] == 2

    def test_check_status_configured_binary(self, clean_env):
        """UC-04.2: Проверяется бинарник из конфигурации и флаг пропуска."""
        config = Config(engines={
            "opencode": EngineSettings(binary="/opt/opencode", env={"ENGINE_RELAY_SKIP_OPENCODE": "1"}),
        })

        with patch("engine_relay_mcp.tools.status.check_binary_available", return_value=(True, "ok")) as mock_check, \
             patch("engine_relay_mcp.tools.status.get_config", return_value=config):
            result = check_status()

        checked = [call.args[0] for call in mock_check.call_args_list]
        assert checked == ["kimi", "/opt/opencode"]
        assert result["engines"]["opencode"]["skipped"] is True
        assert result["config_file"] is None

    def test_check_status_config_error(self, clean_env):
        """UC-04.3: Ошибка загрузки конфигурации отражается в статусе."""
        with patch("engine_relay_mcp.tools.status.check_binary_available", return_value=(True, "ok")), \
             patch("engine_relay_mcp.tools.status.get_config", side_effect=PermissionError("denied")):
            result = check_status()

        assert result["config_loaded"] is False
        assert "denied" in result["config_error"]
        assert result["max_permission_retries"] is None
        assert set(result["engines"]) == {"kimi", "opencode"}
