"""Network transport and SOAP protocol layer."""

from __future__ import annotations

from .protocol import AuthMode, ChannelBinding, ChannelFactory, DsspChannel
from .soap_transport import SoapChannelFactory, SoapDsspChannel

__all__ = [
    "AuthMode",
    "ChannelBinding",
    "ChannelFactory",
    "DsspChannel",
    "SoapChannelFactory",
    "SoapDsspChannel",
]
