"""Pytest fixtures for engine-relay-mcp tests."""

import sys

import pytest

from engine_relay_mcp.executor import logging, process
from engine_relay_mcp.permissions import mediator


@pytest.fixture
def reset_logger_singleton():
    """TC-UNIT-01: Фикстура для сброса singleton _logger между тестами.

    Сохраняет текущее значение logging._logger (может быть None),
    сбрасывает logging._logger в None перед тестом,
    восстанавливает оригинальное значение после теста.
    """
    original_value = logging._logger

    # Сброс перед тестом
    logging._logger = None

    yield

    # Восстановление после теста
    logging._logger = original_value


@pytest.fixture
def reset_registry_singleton():
    """TC-UNIT-02: Фикстура для сброса реестра живых процессов."""
    original_value = process._registry
    process._registry = None

    yield

    process._registry = original_value


@pytest.fixture
def reset_mediator_singleton():
    """TC-UNIT-03: Фикстура для сброса singleton медиатора разрешений."""
    original_value = mediator._mediator
    mediator._mediator = None

    yield

    mediator._mediator = original_value


@pytest.fixture
def clean_env(monkeypatch):
    """TC-UNIT-04: Убирает переменные окружения, влияющие на движки."""
    for key in (
        "ENGINE_RELAY_CONFIG",
        "ENGINE_RELAY_KIMI_MODE",
        "ENGINE_RELAY_KIMI_BINARY",
        "ENGINE_RELAY_OPENCODE_BINARY",
        "ENGINE_RELAY_OPENCODE_TIMEOUT_MS",
        "ENGINE_RELAY_PLAIN_LOGS",
        "ENGINE_RELAY_SKIP_KIMI",
        "ENGINE_RELAY_SKIP_OPENCODE",
        "KIMI_MCP_CONFIG_FILES",
        "KIMI_MODEL_NAME",
        "KIMI_BASE_URL",
        "KIMI_MODEL_MAX_CONTEXT_SIZE",
        "OPENCODE_PERMISSION",
        "OPENCODE_HOME",
        "OPENCODE_DISABLE_LSP_DOWNLOAD",
        "OPENCODE_DISABLE_DEFAULT_PLUGINS",
        "XDG_CONFIG_HOME",
        "XDG_CACHE_HOME",
        "XDG_DATA_HOME",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def temp_config_file(tmp_path):
    """TC-UNIT-05: Фикстура для создания временного файла конфигурации.

    Создаёт временный YAML файл engines.yaml в директории tmp_path,
    записывает базовое содержимое конфигурации,
    возвращает Path к файлу.
    """
    config_file = tmp_path / "engines.yaml"

    config_content = """max_permission_retries: 2
engines:
  kimi:
    mode: wire
    model: kimi-for-coding
    mcp_config_files:
      - /etc/kimi/mcp.json
  opencode:
    timeout: 600
    env:
      OPENCODE_HOME: /tmp/opencode-home
"""

    config_file.write_text(config_content, encoding="utf-8")

    return config_file


@pytest.fixture
def python_child():
    """TC-UNIT-06: Фабрика аргументов для дочернего процесса Python.

    Возвращает функцию, превращающую код в (command, args) для ProcessSpec.
    """
    def build(code: str) -> tuple[str, tuple[str, ...]]:
        return sys.executable, ("-c", code)

    return build
