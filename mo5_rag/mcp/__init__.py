"""
MO5 RAG MCP bridge: stdio JSON-RPC server, request router and backend calls.
"""
