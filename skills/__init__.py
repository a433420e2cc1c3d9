"""Skills – catalog, agent tools, MCP server and command-line entry point."""
