"""
Global configuration for chain RPC endpoints.
Manages which node each chain's transactions are submitted to.
"""
from typing import Dict, Optional, Union
from dataclasses import dataclass, asdict
import json
import logging
import os

from .interfaces import Chain

logger = logging.getLogger(__name__)

COMMITMENTS = ("processed", "confirmed", "finalized")


@dataclass
class NetworkConfig:
    """Configuration for a single chain's RPC endpoint."""
    rpc_url: str
    commitment: str = "confirmed"
    timeout_s: float = 30.0
    name: Optional[str] = None

    def __post_init__(self):
        if not self.rpc_url:
            raise ValueError("RPC URL cannot be empty")
        if self.commitment not in COMMITMENTS:
            raise ValueError(f"Invalid commitment: {self.commitment!r}")
        if self.timeout_s <= 0:
            raise ValueError(f"Invalid timeout: {self.timeout_s}")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'NetworkConfig':
        """Create from dictionary."""
        return cls(**data)


DEFAULT_NETWORKS = {
    Chain.SOLANA_MAINNET: NetworkConfig(
        rpc_url="https://api.mainnet-beta.solana.com",
        name="Solana Mainnet Beta",
    ),
    Chain.SOLANA_DEVNET: NetworkConfig(
        rpc_url="https://api.devnet.solana.com",
        name="Solana Devnet",
    ),
    Chain.SOLANA_TESTNET: NetworkConfig(
        rpc_url="https://api.testnet.solana.com",
        name="Solana Testnet",
    ),
    Chain.SOLANA_LOCALNET: NetworkConfig(
        rpc_url="http://127.0.0.1:8899",
        name="Local Validator",
    ),
}


class Config:
    """
    Global configuration singleton for chain network settings.
    Loads from config.json when it exists, otherwise starts from the public
    cluster endpoints.

    Usage:
        config = Config()
        config.add_network(Chain.SOLANA_DEVNET, NetworkConfig(rpc_url="https://..."))
        rpc = config.get_rpc_url(Chain.SOLANA_DEVNET)
    """

    _instance = None
    DEFAULT_CONFIG_PATH = "config.json"

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._networks: Dict[Chain, NetworkConfig] = {}
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._initialized = True

        if os.path.exists(self.config_path):
            self.load_from_json()
        else:
            self.load_default_networks(save=False)

    @classmethod
    def reset(cls):
        """Drop the singleton so the next Config() starts fresh."""
        cls._instance = None

    def add_network(self, chain: Union[Chain, str], network_config: NetworkConfig, save: bool = True):
        """
        Add or update a chain's network configuration.

        Args:
            chain: Chain the endpoint serves
            network_config: NetworkConfig with endpoint details
            save: Whether to save to config.json immediately (default: True)
        """
        self._networks[Chain.parse(chain)] = network_config

        if save:
            self.save_to_json()

    def get_network(self, chain: Union[Chain, str]) -> NetworkConfig:
        """
        Get network configuration for a chain.

        Raises:
            KeyError: If the chain is not configured
        """
        chain = Chain.parse(chain)
        if chain not in self._networks:
            raise KeyError(f"Network for '{chain.value}' not configured")
        return self._networks[chain]

    def get_rpc_url(self, chain: Union[Chain, str]) -> str:
        """Get RPC URL for a chain."""
        return self.get_network(chain).rpc_url

    def has_network(self, chain: Union[Chain, str]) -> bool:
        """Check if a chain is configured."""
        return Chain.parse(chain) in self._networks

    def list_networks(self) -> list:
        """List all configured chains."""
        return list(self._networks.keys())

    def remove_network(self, chain: Union[Chain, str], save: bool = True):
        chain = Chain.parse(chain)
        if chain in self._networks:
            del self._networks[chain]

            if save:
                self.save_to_json()

    # ============================================
    # JSON Persistence
    # ============================================

    def save_to_json(self, path: Optional[str] = None):
        """
        Save configuration to JSON file.

        Args:
            path: Custom path (uses self.config_path if not provided)
        """
        save_path = path or self.config_path

        config_data = {
            'networks': {
                chain.value: network.to_dict()
                for chain, network in self._networks.items()
            }
        }

        with open(save_path, 'w') as f:
            json.dump(config_data, f, indent=2)

    def load_from_json(self, path: Optional[str] = None):
        """
        Load configuration from JSON file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            UnsupportedChain: If the file names a chain this package doesn't know
        """
        load_path = path or self.config_path

        if not os.path.exists(load_path):
            raise FileNotFoundError(f"Config file not found: {load_path}")

        with open(load_path, 'r') as f:
            config_data = json.load(f)

        self._networks.clear()

        for chain_name, network_data in config_data.get('networks', {}).items():
            self._networks[Chain.parse(chain_name)] = NetworkConfig.from_dict(network_data)

        logger.debug("Loaded %d network(s) from %s", len(self._networks), load_path)

    def load_default_networks(self, save: bool = True):
        """
        Load the public cluster endpoints.

        Args:
            save: Whether to save to config.json after loading
        """
        for chain, network in DEFAULT_NETWORKS.items():
            self.add_network(chain, NetworkConfig.from_dict(network.to_dict()), save=False)

        if save:
            self.save_to_json()

    def __repr__(self):
        return f"<Config networks={[c.value for c in self._networks]} path={self.config_path}>"
