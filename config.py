"""
Configuration module for USDC Speedtest.
Single source of truth for networks & constants.
"""
import dataclasses
import typing as t
from dataclasses import dataclass

# Payload
USDC_DECIMALS: int = 6
USDC_CENT: int = 10_000  # $0.01 in 6-decimal units
TRANSFER_GAS_LIMIT: int = 100_000  # fixed, skips eth_estimateGas
GAS_PRICE_MULTIPLIER: float = 1.2  # headroom over the price read at start

# Retry policy for transient RPC errors
MAX_RETRIES: int = 3
RETRY_BASE_S: float = 0.5

# Receipt polling bounds
MIN_POLL_INTERVAL_S: float = 0.05
MAX_POLL_INTERVAL_S: float = 1.0
POLL_INITIAL_FRACTION: float = 0.8

# Weight of the newest observation in the confirmation-time moving average
LATENCY_EMA_WEIGHT: float = 0.3

# WebSocket block subscription
WS_CONNECT_TIMEOUT_S: float = 5.0

# HTTP connection pooling
HTTP_POOL_SIZE: int = 256
HTTP_RETRIES: int = 3
HTTP_BACKOFF_FACTOR: float = 0.5
HTTP_TIMEOUT_S: int = 30

# Pre-flight
BALANCE_CHECK_CONCURRENCY: int = 10
MIN_COST_PER_TX_WEI: int = 5_000_000_000_000  # 0.000005 ETH, covers L2 data fees
GAS_PER_ERC20_TRANSFER: int = 65_000
GAS_PER_ETH_TRANSFER: int = 21_000
FUNDING_BUFFER_PERCENT: int = 120

# Run defaults
DEFAULT_NETWORK: str = "baseSepolia"
DEFAULT_PARALLEL: int = 5
DEFAULT_DURATION_S: int = 60
LOGS_DIR: str = "logs"


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    rpc_url: str
    usdc_address: str
    estimated_block_time_ms: int
    ws_url: t.Optional[str] = None
    block_explorer_url: t.Optional[str] = None
    immediate_receipt: bool = False
    supported: bool = True


NETWORKS: t.Dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        name="Ethereum Mainnet",
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        usdc_address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        estimated_block_time_ms=12_000,
        block_explorer_url="https://etherscan.io",
    ),
    "sepolia": NetworkConfig(
        name="Ethereum Sepolia",
        chain_id=11155111,
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        estimated_block_time_ms=12_000,
        block_explorer_url="https://sepolia.etherscan.io",
    ),
    "base": NetworkConfig(
        name="Base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        estimated_block_time_ms=2_000,
        block_explorer_url="https://basescan.org",
    ),
    "baseSepolia": NetworkConfig(
        name="Base Sepolia",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        estimated_block_time_ms=2_000,
        block_explorer_url="https://sepolia.basescan.org",
    ),
    "radius": NetworkConfig(
        name="Radius",
        chain_id=0,
        rpc_url="",
        usdc_address="",
        estimated_block_time_ms=500,
        immediate_receipt=True,
        supported=False,
    ),
    "radiusTestnet": NetworkConfig(
        name="Radius Testnet",
        chain_id=0,
        rpc_url="",
        usdc_address="",
        estimated_block_time_ms=500,
        immediate_receipt=True,
        supported=False,
    ),
}


def get_network(name: str) -> NetworkConfig:
    """
    Look up a network by its registry key.

    Raises:
        ValueError: if the name is unknown; the message lists the known names.
    """
    config = NETWORKS.get(name)
    if config is None:
        available = ", ".join(get_network_names())
        raise ValueError(f'Unknown network "{name}". Available: {available}')
    return config


def get_network_names() -> t.List[str]:
    return list(NETWORKS.keys())


def apply_overrides(
    config: NetworkConfig,
    rpc: t.Optional[str] = None,
    ws: t.Optional[str] = None,
    usdc_address: t.Optional[str] = None,
    chain_id: t.Optional[int] = None,
    immediate_receipt: t.Optional[bool] = None,
) -> NetworkConfig:
    """
    Return a copy of `config` with the given fields replaced.

    A network becomes supported once it has an RPC URL, a USDC address and a
    chain id, so placeholder entries can be completed from the command line.
    """
    changes: t.Dict[str, t.Any] = {}
    if rpc:
        changes["rpc_url"] = rpc
    if ws:
        changes["ws_url"] = ws
    if usdc_address:
        changes["usdc_address"] = usdc_address
    if chain_id:
        changes["chain_id"] = chain_id
    if immediate_receipt is not None:
        changes["immediate_receipt"] = immediate_receipt

    result = dataclasses.replace(config, **changes)
    if result.rpc_url and result.usdc_address and result.chain_id:
        result = dataclasses.replace(result, supported=True)
    return result
