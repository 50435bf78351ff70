#!/usr/bin/env python3
"""
MO5 RAG MCP Wrapper
-------------------
Entry script for MCP hosts (Claude Desktop, etc.). Speaks JSON-RPC on
stdout/stdin and forwards requests to the RAG search service at RAG_BASE_URL.
Diagnostics go to stderr, or to MO5_RAG_LOG_FILE when set.
"""

from mo5_rag.mcp.server import main

if __name__ == "__main__":
    main()
