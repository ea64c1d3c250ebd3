"""Transport boundary: reserve source fetches and on-chain reads."""

from .reserve_sources import fetch_connector, fetch_reserve
from .onchain import OnchainReader, RpcError

__all__ = [
    "fetch_connector",
    "fetch_reserve",
    "OnchainReader",
    "RpcError",
]
