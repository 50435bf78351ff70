from mo5_rag.core.config import BridgeConfig

__all__ = ["BridgeConfig"]
