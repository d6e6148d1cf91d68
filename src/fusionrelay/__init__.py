"""Fusion Relay - atomic EVM <-> Cosmos swap relayer."""

__version__ = "0.1.0"
