from mo5_rag.mcp.server import main

main()
