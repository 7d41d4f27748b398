"""Tests for pytest fixtures in conftest.py."""

import subprocess

from engine_relay_mcp.executor import logging, process
from engine_relay_mcp.permissions import mediator


class TestResetLoggerSingleton:
    """Tests for reset_logger_singleton fixture."""

    def test_reset_logger_singleton(self, reset_logger_singleton):
        """TC-UNIT-01: Проверка работы фикстуры reset_logger_singleton."""
        # Проверяем, что _logger сброшен в None перед тестом
        assert logging._logger is None

        import logging as std_logging
        test_logger = std_logging.getLogger("test")
        logging._logger = test_logger

        assert logging._logger is test_logger


class TestResetRegistrySingleton:
    """Tests for reset_registry_singleton fixture."""

    def test_reset_registry_singleton(self, reset_registry_singleton):
        """TC-UNIT-02: Проверка сброса реестра процессов."""
        assert process._registry is None

        registry = process.get_process_registry()
        assert process._registry is registry


class TestResetMediatorSingleton:
    """Tests for reset_mediator_singleton fixture."""

    def test_reset_mediator_singleton(self, reset_mediator_singleton):
        """TC-UNIT-03: Проверка сброса медиатора разрешений."""
        assert mediator._mediator is None

        instance = mediator.get_mediator()
        assert mediator.get_mediator() is instance


class TestTempConfigFile:
    """Tests for temp_config_file fixture."""

    def test_temp_config_file_created(self, temp_config_file):
        """TC-UNIT-05: Проверка создания временного файла конфигурации."""
        assert temp_config_file.exists()
        assert temp_config_file.name == "engines.yaml"

        content = temp_config_file.read_text(encoding="utf-8")
        assert "engines:" in content
        assert "kimi:" in content
        assert "opencode:" in content


class TestPythonChild:
    """Tests for python_child fixture."""

    def test_python_child_runs(self, python_child):
        """TC-UNIT-06: Проверка, что фабрика даёт запускаемую команду."""
        command, args = python_child("print('ok')")

        completed = subprocess.run([command, *args], capture_output=True, text=True, check=True)

        assert completed.stdout.strip() == "ok"
