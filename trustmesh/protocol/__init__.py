"""
Protocol module: security protocol suggestions.
"""

from trustmesh.protocol.generator import GeneratedSecurityProtocol, ProtocolFile, ProtocolGenerator

__all__ = [
    "GeneratedSecurityProtocol",
    "ProtocolFile",
    "ProtocolGenerator",
]
