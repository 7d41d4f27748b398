"""Tests for server module."""

import inspect
from typing import Annotated, Optional, get_args, get_origin
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from engine_relay_mcp import server
from engine_relay_mcp.executor import ProcessRegistry


class TestMcpToolsRegistration:
    """Tests for MCP tools registration."""

    def test_mcp_tools_registration(self):
        """TC-UNIT-08.1: Проверка регистрации MCP инструментов."""
        assert server.mcp is not None
        assert server.mcp.name == "Engine Relay"
        assert callable(server.invoke_engine)
        assert callable(server.check_status)

    @pytest.mark.asyncio
    async def test_tools_listed(self):
        """Инструменты видны MCP клиенту."""
        tools = await server.mcp.list_tools()

        assert {tool.name for tool in tools} == {"invoke_engine", "check_status"}


class TestInvokeEngineMcp:
    """Tests for invoke_engine MCP tool."""

    @pytest.mark.asyncio
    async def test_invoke_engine_mcp(self):
        """TC-UNIT-08.2: Проверка вызова invoke_engine через MCP."""
        mock_result = {
            "success": True,
            "output": "Done",
            "error": None,
            "error_kind": None,
            "engine": "kimi",
            "model_used": "kimi-for-coding",
            "usage": None,
        }
        mock_impl = AsyncMock(return_value=mock_result)

        with patch("engine_relay_mcp.server.invoke_engine_impl", mock_impl):
            result = await server.invoke_engine(
                engine="kimi",
                prompt="Fix the tests",
                cwd="/tmp/project",
                model="kimi-k2",
                timeout=60.0,
            )

        assert result == mock_result
        mock_impl.assert_called_once_with(
            engine="kimi",
            prompt="Fix the tests",
            cwd="/tmp/project",
            model="kimi-k2",
            timeout=60.0,
        )

    def test_invoke_engine_parameter_annotations(self):
        """TC-UNIT-08.2-A1: Проверка аннотаций параметров invoke_engine."""
        sig = inspect.signature(server.invoke_engine)

        expected = {
            "engine": (str, inspect.Parameter.empty),
            "prompt": (str, inspect.Parameter.empty),
            "cwd": (str, inspect.Parameter.empty),
            "model": (Optional[str], None),
            "timeout": (Optional[float], None),
        }
        assert list(sig.parameters) == list(expected)
        for name, (annotation, default) in expected.items():
            param = sig.parameters[name]
            assert get_origin(param.annotation) is Annotated
            assert get_args(param.annotation)[0] == annotation
            assert param.default == default

        assert server.invoke_engine.__doc__


class TestCheckStatusMcp:
    """Tests for check_status MCP tool."""

    def test_check_status_mcp(self):
        """TC-UNIT-08.3: Проверка вызова check_status через MCP."""
        mock_result = {"engines": {}, "config_loaded": True}

        with patch("engine_relay_mcp.server.check_status_impl", return_value=mock_result):
            result = server.check_status()

        assert result == mock_result


class TestLifespan:
    """Tests for server lifespan."""

    @pytest.mark.asyncio
    async def test_lifespan_terminates_processes(self):
        """TC-UNIT-08.4: При остановке сервера живые процессы завершаются."""
        registry = MagicMock(spec=ProcessRegistry)
        registry.__len__.return_value = 1
        registry.terminate_all = AsyncMock()

        with patch("engine_relay_mcp.server.get_process_registry", return_value=registry):
            async with server.lifespan(server.mcp):
                registry.terminate_all.assert_not_awaited()

        registry.terminate_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lifespan_terminates_on_error(self):
        """Процессы завершаются и при ошибке внутри сервера."""
        registry = MagicMock(spec=ProcessRegistry)
        registry.__len__.return_value = 0
        registry.terminate_all = AsyncMock()

        with patch("engine_relay_mcp.server.get_process_registry", return_value=registry):
            with pytest.raises(RuntimeError):
                async with server.lifespan(server.mcp):
                    raise RuntimeError("boom")

        registry.terminate_all.assert_awaited_once()


class TestMain:
    """Tests for main() function."""

    def test_main(self):
        """TC-UNIT-08.5: Проверка функции main()."""
        mock_run = MagicMock()

        with patch.object(server.mcp, "run", mock_run):
            server.main()

        mock_run.assert_called_once()
