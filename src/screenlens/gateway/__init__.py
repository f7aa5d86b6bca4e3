"""Model gateway: provider resolution, prompt construction and the chat client."""

from screenlens.gateway.client import ModelGatewayClient
from screenlens.gateway.provider import ProviderConfig, resolve_provider_config

__all__ = ["ModelGatewayClient", "ProviderConfig", "resolve_provider_config"]
