"""MCP servers for the SupportDesk agent."""
