"""SpecManager MCP tests.

Everything runs in-process: the specmanager.ai API is faked with
httpx.MockTransport and the HTTP gateway is driven through httpx.ASGITransport.

Test Structure:
- test_client.py - SpecManagerClient requests, error mapping, project scope
- test_config.py - ServerConfig environment loading
- test_git_util.py - git remote parsing and repository detection
- test_tool_dispatch.py - validation, routing, rendering and tool texts
- test_session_registry.py - session creation, lookup and teardown
- test_http_gateway.py - /mcp and /health over ASGI
- test_launcher.py - lifecycle controller, stdio adapter and CLI exit codes

Usage:
    pytest tests/ -v
    pytest tests/test_http_gateway.py -v
"""
