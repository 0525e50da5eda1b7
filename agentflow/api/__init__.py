"""
API package - FastAPI routes and schemas.
"""

from agentflow.api.routes import credentials, flows

__all__ = ["credentials", "flows"]
