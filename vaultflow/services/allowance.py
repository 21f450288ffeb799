"""Token allowance check used to skip redundant approval transactions."""

import logging

from vaultflow.chain.abi import decode_uint256, encode_allowance, is_address
from vaultflow.chain.gateway import ChainGateway

logger = logging.getLogger(__name__)


class AllowanceInspector:
    """
    Decides whether ``approve`` must be sent before a deposit.

    Errs on the side of approving: if the allowance cannot be read for any
    reason the answer is "approval needed".  An extra approval costs gas; a
    skipped one makes the deposit revert.
    """

    def __init__(self, gateway: ChainGateway, token_address: str):
        self._gateway = gateway
        self._token_address = token_address

    async def needs_approval(self, owner: str, spender: str, amount: int) -> bool:
        if not is_address(owner) or not is_address(spender):
            raise ValueError("owner and spender must be 0x-prefixed 20-byte addresses")
        if not isinstance(amount, int) or amount < 0:
            raise ValueError("amount must be a non-negative integer in base units")

        try:
            raw = await self._gateway.call(self._token_address, encode_allowance(owner, spender))
            allowance = decode_uint256(raw)
        except Exception as exc:
            logger.warning(
                "Allowance check failed for owner=%s spender=%s, assuming approval needed: %s",
                owner,
                spender,
                exc,
            )
            return True

        needed = allowance < amount
        logger.debug("Allowance %d vs required %d (approval needed: %s)", allowance, amount, needed)
        return needed
