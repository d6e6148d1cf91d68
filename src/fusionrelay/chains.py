"""EVM chain registry and asset decimals.

Decimals used to encode intent amounts are looked up here from the source
asset address and never taken from the user: wrapped native assets use 18,
stable/quote assets use 6.
"""

from dataclasses import dataclass, field
from typing import Optional

# Stand-in taker asset for orders whose destination lives on a non-EVM ledger
NON_EVM_ASSET_SENTINEL = "0xdA0000d4000015A526378bb6faFc650Cea5966F8"

# Cosmos bank denoms (uosmo, ibc/...) use 6 decimals
COSMOS_DECIMALS = 6

DEFAULT_ASSET_DECIMALS = 6
WRAPPED_NATIVE_DECIMALS = 18


@dataclass
class EvmChainConfig:
    """Configuration for an EVM chain."""

    name: str
    chain_id: int
    wrapped_native: str
    usdc_address: Optional[str] = None
    # Tokens whose decimals differ from the 6-decimal default
    token_decimals: dict[str, int] = field(default_factory=dict)

    def decimals_for(self, asset: str) -> int:
        """Get encoding decimals for an asset address on this chain."""
        normalized = asset.lower()
        if normalized == self.wrapped_native.lower():
            return WRAPPED_NATIVE_DECIMALS
        for token, decimals in self.token_decimals.items():
            if token.lower() == normalized:
                return decimals
        return DEFAULT_ASSET_DECIMALS


# ======================
# Chain Configurations
# ======================

EVM_CHAINS: dict[int, EvmChainConfig] = {
    1: EvmChainConfig(
        name="Ethereum",
        chain_id=1,
        wrapped_native="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        usdc_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    ),
    10: EvmChainConfig(
        name="Optimism",
        chain_id=10,
        wrapped_native="0x4200000000000000000000000000000000000006",
        usdc_address="0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
    ),
    56: EvmChainConfig(
        name="BNB Smart Chain",
        chain_id=56,
        wrapped_native="0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        usdc_address="0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d",
        token_decimals={"0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d": 18},
    ),
    137: EvmChainConfig(
        name="Polygon",
        chain_id=137,
        wrapped_native="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        usdc_address="0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
    ),
    8453: EvmChainConfig(
        name="Base",
        chain_id=8453,
        wrapped_native="0x4200000000000000000000000000000000000006",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    ),
    42161: EvmChainConfig(
        name="Arbitrum One",
        chain_id=42161,
        wrapped_native="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        usdc_address="0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
    ),
    43114: EvmChainConfig(
        name="Avalanche",
        chain_id=43114,
        wrapped_native="0xB31f66AA3C1e785363F0875A1B74E27b85FD66c7",
        usdc_address="0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
    ),
    # Testnets
    84532: EvmChainConfig(
        name="Base Sepolia",
        chain_id=84532,
        wrapped_native="0x4200000000000000000000000000000000000006",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    ),
    421614: EvmChainConfig(
        name="Arbitrum Sepolia",
        chain_id=421614,
        wrapped_native="0x980B62Da83eFf3D4576C647993b0c1D7faf17c73",
        usdc_address="0x75faf114eafb1BDbe2F0316DF893fd58CE46AA4d",
    ),
    11155111: EvmChainConfig(
        name="Sepolia",
        chain_id=11155111,
        wrapped_native="0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14",
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
    ),
}


def get_chain_config(chain_id: int) -> Optional[EvmChainConfig]:
    """Get configuration for an EVM chain id."""
    return EVM_CHAINS.get(chain_id)


def is_evm_chain(chain_id: int) -> bool:
    """Check whether a chain id belongs to a known EVM chain."""
    return chain_id in EVM_CHAINS


def asset_decimals(chain_id: int, asset: str) -> int:
    """Get encoding decimals for an asset, as a function of chain and address only."""
    config = get_chain_config(chain_id)
    if config is None:
        return DEFAULT_ASSET_DECIMALS
    return config.decimals_for(asset)


@dataclass(frozen=True)
class ResolverConfig:
    """Contracts of the resolver deployment on one EVM chain."""

    chain_id: int
    resolver: str
    escrow_factory: str
    limit_order: str
