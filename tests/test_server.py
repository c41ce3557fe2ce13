"""Server 模块测试。

测试工具注册（调用方自己的 ask_* 工具被隐藏）和请求分发。
"""

from __future__ import annotations

import json
from importlib.metadata import version

import pytest
from mcp import types
from mcp.server import Server

from crew_mcp.config import Config
from crew_mcp.jobs import JobRegistry
from crew_mcp.runtime import ProcessSpawner
from crew_mcp.server import build_handlers, create_server
from crew_mcp.tool_schema import create_tool_schema


class TestBuildHandlers:
    """测试按调用方隐藏工具。"""

    @pytest.mark.parametrize("provider,hidden", [
        ("claude", "ask_claude"),
        ("codex", "ask_codex"),
        ("gemini", "ask_gemini"),
    ])
    def test_provider_tool_hidden(self, provider, hidden):
        handlers = build_handlers(Config(provider=provider))

        ask_tools = {"ask_codex", "ask_gemini", "ask_claude"}
        assert set(handlers) == (ask_tools - {hidden}) | {"wait_job", "check_job", "kill_job", "list_jobs"}

    def test_handler_names_match_keys(self):
        for name, handler in build_handlers(Config()).items():
            assert handler.name == name
            assert handler.description


class TestMcpCompatibility:
    """低层 Server API 测试。"""

    def test_supported_mcp_major_version(self):
        assert int(version("mcp").split(".")[0]) < 2

    def test_low_level_server_has_tool_decorators(self):
        server = Server("crew-mcp-test")
        assert callable(server.list_tools)
        assert callable(server.call_tool)


class TestToolSchema:
    """测试工具 schema。"""

    def test_ask_schema_requires_prompt(self):
        schema = create_tool_schema("ask_codex")
        assert schema["required"] == ["prompt"]
        assert "reasoning_effort" in schema["properties"]
        assert "directories" not in schema["properties"]

    def test_job_schema(self):
        schema = create_tool_schema("wait_job")
        assert schema["required"] == ["job_id"]
        assert schema["properties"]["timeout_ms"]["default"] == 300000

    @pytest.mark.parametrize("tool", ["ask_codex", "ask_gemini", "ask_claude"])
    def test_ask_tools_accept_output_file(self, tool):
        assert create_tool_schema(tool)["properties"]["output_file"]["type"] == "string"

    def test_list_jobs_status_argument(self):
        properties = create_tool_schema("list_jobs")["properties"]
        assert properties["status"]["enum"] == ["active", "completed", "failed", "all"]
        assert properties["status"]["default"] == "all"
        assert "status_filter" in properties

    def test_unknown_tool(self):
        with pytest.raises(ValueError):
            create_tool_schema("ask_copilot")


class TestServerDispatch:
    """通过 MCP 请求处理器测试分发。"""

    def _server(self, provider: str = "claude"):
        spawner = ProcessSpawner()
        jobs = JobRegistry(spawner.escalator)
        return create_server(spawner, jobs, Config(provider=provider))

    @pytest.mark.asyncio
    async def test_list_tools(self):
        server = self._server("codex")
        handler = server.request_handlers[types.ListToolsRequest]

        result = await handler(types.ListToolsRequest(method="tools/list"))

        names = {tool.name for tool in result.root.tools}
        assert "ask_codex" not in names
        assert {"ask_gemini", "ask_claude", "list_jobs"} <= names

    @pytest.mark.asyncio
    async def test_call_job_tool(self):
        server = self._server()
        handler = server.request_handlers[types.CallToolRequest]

        result = await handler(types.CallToolRequest(
            method="tools/call",
            params=types.CallToolRequestParams(name="list_jobs", arguments={}),
        ))

        data = json.loads(result.root.content[0].text)
        assert data == {"status": "all", "count": 0, "jobs": []}

    @pytest.mark.asyncio
    async def test_call_hidden_tool(self):
        server = self._server("claude")
        handler = server.request_handlers[types.CallToolRequest]

        result = await handler(types.CallToolRequest(
            method="tools/call",
            params=types.CallToolRequestParams(name="ask_claude", arguments={"prompt": "p"}),
        ))

        assert "not available to provider 'claude'" in result.root.content[0].text
