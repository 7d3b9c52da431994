"""Tool entry points shared by the MCP server and the CLI."""
