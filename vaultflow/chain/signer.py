"""Wallet context handed to the deposit orchestrator."""

from dataclasses import dataclass
from typing import Optional

from vaultflow.chain.abi import is_address


@dataclass(frozen=True)
class SignerContext:
    """
    The connected wallet for one deposit request.

    Passed explicitly into the orchestrator; there is no process-wide
    "current wallet".  ``address`` is ``None`` when no wallet is connected.
    """

    address: Optional[str]
    chain_id: int

    @property
    def is_connected(self) -> bool:
        return is_address(self.address)
