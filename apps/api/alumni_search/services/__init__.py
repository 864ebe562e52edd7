from .search import SearchOrchestrator

__all__ = ["SearchOrchestrator"]
