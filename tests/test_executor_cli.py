"""Tests for executor CLI functions."""

import os
from unittest.mock import patch

from engine_relay_mcp.executor.cli import check_binary_available, find_binary


class TestFindBinary:
    """Tests for find_binary() function."""

    def test_find_binary_in_path(self):
        """TC-UNIT-01: Проверка работы find_binary() когда бинарник в PATH."""
        with patch("shutil.which") as mock_which:
            mock_which.return_value = "/usr/bin/kimi"

            result = find_binary("kimi")

            assert result == "/usr/bin/kimi"
            mock_which.assert_called_once_with("kimi")

    def test_find_binary_in_local_bin(self):
        """TC-UNIT-02: Проверка работы find_binary() когда бинарник в ~/.local/bin."""
        expected_path = os.path.expanduser("~/.local/bin/kimi")
        with patch("shutil.which", return_value=None), \
             patch("os.path.isfile") as mock_isfile, \
             patch("os.access") as mock_access:

            mock_isfile.side_effect = lambda path: path == expected_path
            mock_access.side_effect = lambda path, mode: path == expected_path

            assert find_binary("kimi") == expected_path

    def test_find_binary_in_usr_local_bin(self):
        """Проверка работы find_binary() когда бинарник в /usr/local/bin."""
        with patch("shutil.which", return_value=None), \
             patch("os.path.isfile") as mock_isfile, \
             patch("os.access") as mock_access:

            mock_isfile.side_effect = lambda path: path == "/usr/local/bin/opencode"
            mock_access.side_effect = lambda path, mode: path == "/usr/local/bin/opencode"

            assert find_binary("opencode") == "/usr/local/bin/opencode"

    def test_find_binary_not_found(self):
        """TC-UNIT-03: Проверка возврата None, если бинарник не найден."""
        with patch("shutil.which", return_value=None), \
             patch("os.path.isfile", return_value=False):

            assert find_binary("kimi") is None

    def test_find_binary_explicit_path(self, tmp_path):
        """TC-UNIT-04: Путь с разделителем проверяется как есть."""
        binary = tmp_path / "kimi"
        binary.write_text("#!/bin/sh\n", encoding="utf-8")
        binary.chmod(0o755)

        assert find_binary(str(binary)) == str(binary)
        assert find_binary(str(tmp_path / "missing")) is None


class TestCheckBinaryAvailable:
    """Tests for check_binary_available() function."""

    def test_available(self):
        """TC-UNIT-05: Проверка сообщения при найденном бинарнике."""
        with patch("engine_relay_mcp.executor.cli.find_binary", return_value="/usr/bin/kimi"):
            available, message = check_binary_available("kimi")

            assert available is True
            assert "/usr/bin/kimi" in message

    def test_not_available_with_hint(self):
        """TC-UNIT-06: Сообщение содержит подсказку по установке."""
        with patch("engine_relay_mcp.executor.cli.find_binary", return_value=None):
            available, message = check_binary_available("kimi", "uv tool install kimi-cli")

            assert available is False
            assert "kimi CLI not found" in message
            assert "uv tool install kimi-cli" in message
