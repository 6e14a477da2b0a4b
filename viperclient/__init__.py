"""Models, signing, JSON-RPC forwarding, Viper Network relays, database access and Starlette middleware."""

__version__ = "0.1.0"