from __future__ import annotations

import unittest

from mcp.server.fastmcp import FastMCP

from bookmark_sync.sync.state import MemoryStateStore
from bookmark_sync.tools.sync_tools import register_sync_tools


class TestRegisterSyncTools(unittest.IsolatedAsyncioTestCase):
    async def test_tools_are_registered(self):
        mcp = FastMCP("test")

        def factory():
            raise AssertionError("engine should not be built while listing tools")

        register_sync_tools(mcp, factory, MemoryStateStore())
        names = {tool.name for tool in await mcp.list_tools()}

        self.assertEqual(
            names, {"incremental_sync", "full_resync", "compute_diff", "get_sync_status"}
        )
