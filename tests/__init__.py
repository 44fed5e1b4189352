"""Test suite for the SupportDesk agent.

This package contains tests for the retrieval pipeline, the escalation
judge, the dataset stores, the MCP tool-provider, the protocol bridge and
its local fallback, and the HTTP API.
"""
