"""
MCP Server Binding

Advertises the broker tool set over the Model Context Protocol and routes
every tools/call to the broker host. Only the four broker tools are ever
listed.
"""

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from toolbroker import config
from toolbroker.broker.host import BrokerHost
from toolbroker.logger import info


class EnvelopeError(Exception):
    """Carries the text of an error envelope; the server answers it with isError set."""


def create_server(host: BrokerHost) -> Server:
    """Build an MCP server whose tool list and tool calls are served by ``host``."""
    server = Server(config.BROKER_SERVER_NAME, version=config.BROKER_VERSION)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return host.toolset.tools

    # argument checking is the broker's job so callers get structured errors
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict) -> list:
        envelope = await host.handle(name, arguments)
        if envelope.is_error:
            raise EnvelopeError(envelope.text)
        return envelope.content

    return server


async def serve_stdio(host: BrokerHost) -> None:
    """Serve the broker over stdin/stdout until the client disconnects."""
    server = create_server(host)
    info("MCP server listening on stdio",
         server=config.BROKER_SERVER_NAME,
         categories=len(host.toolset.categories),
         operations=host.registry.total_operations())
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
