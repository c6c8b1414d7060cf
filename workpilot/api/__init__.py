from workpilot.api.router import create_app, router

__all__ = ["create_app", "router"]
