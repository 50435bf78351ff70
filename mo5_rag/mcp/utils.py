import sys
import logging

from mo5_rag.core.config import BridgeConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: BridgeConfig, *, stream=None) -> logging.Logger:
    """Route diagnostics to stderr or a log file; stdout carries the MCP protocol."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level))
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("Mo5Rag")


def build_initialize_instructions(base_url: str) -> str:
    return (
        "MO5 RAG MCP server. Use semantic_search to query the Thomson MO5 documentation, "
        f"and the documents:// resources to browse it. Backend: {base_url}."
    )