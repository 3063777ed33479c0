"""MCP server front end."""
