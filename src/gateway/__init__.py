"""HTTP bridge to the exchange SDK sidecar."""

from gateway.bridge_client import BridgeClient, BridgeError, BridgeRejected, BridgeUnavailable

__all__ = ["BridgeClient", "BridgeError", "BridgeRejected", "BridgeUnavailable"]
