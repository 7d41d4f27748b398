"""Tests for package __init__.py module."""

import inspect

import pytest


def test_version_exists():
    """TC-UNIT-01: Проверка наличия __version__ в __init__.py"""
    from engine_relay_mcp import __version__

    assert isinstance(__version__, str)
    assert __version__ == "0.1.0"


def test_init_file_minimal():
    """TC-UNIT-02: Проверка отсутствия ненужных экспортов"""
    import engine_relay_mcp

    for name in dir(engine_relay_mcp):
        if name.startswith("_"):
            continue
        attr = getattr(engine_relay_mcp, name)
        # Подпакеты допустимы, функции и классы нет
        if inspect.ismodule(attr):
            continue
        if callable(attr) or inspect.isclass(attr):
            pytest.fail(f"Unexpected export in __init__.py: {name} (type: {type(attr).__name__})")


def test_package_import():
    """Регрессионный тест: Проверка импорта пакета"""
    import engine_relay_mcp

    assert engine_relay_mcp is not None
