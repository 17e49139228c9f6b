from .router import create_orchestration_router

__all__ = ["create_orchestration_router"]
