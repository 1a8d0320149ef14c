"""Gateway layer package: request routing and API-key gate."""

from .auth import API_KEY_HEADER, AuthDecision, AuthGate
from .router import GatewayRouter, gateway_join_path

__all__ = ["API_KEY_HEADER", "AuthDecision", "AuthGate", "GatewayRouter", "gateway_join_path"]
