"""Rate source backed by a deployed rate-oracle contract."""

from typing import TYPE_CHECKING, Any

from tranche_economics.constants import DEFAULT_TIMEOUT, RATE_ORACLE_MIN_ABI
from tranche_economics.errors import ConfigurationError

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


class OnchainRateSource:
    """Reads ``targetRate()`` from a rate oracle. Only called on an explicit rate sync."""

    def __init__(self, contract: Any, *, block_identifier: int | str = "latest") -> None:
        self.contract = contract
        self.block_identifier = block_identifier

    @classmethod
    def from_address(cls, w3: "Web3", oracle_address: str, **kwargs: Any) -> "OnchainRateSource":
        """Bind to the oracle at ``oracle_address``."""
        contract = w3.eth.contract(
            address=w3.to_checksum_address(oracle_address),
            abi=RATE_ORACLE_MIN_ABI,
        )
        return cls(contract, **kwargs)

    def target_rate(self) -> int:
        """Target protected rate in bps."""
        rate = int(self.contract.functions.targetRate().call(block_identifier=self.block_identifier))
        if rate < 0:
            raise ConfigurationError(f"oracle returned a negative rate: {rate}")
        return rate


def connect_rate_source(rpc_url: str, oracle_address: str, *, timeout: int = DEFAULT_TIMEOUT) -> OnchainRateSource:
    """Connect to ``rpc_url`` and bind the rate oracle at ``oracle_address``."""
    from web3 import Web3  # pylint: disable=import-outside-toplevel

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    if not w3.is_connected():
        raise ConnectionError(f"failed to connect to RPC at {rpc_url}")
    return OnchainRateSource.from_address(w3, oracle_address)
