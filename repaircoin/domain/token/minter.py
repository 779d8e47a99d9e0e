"""
Client for the token issuing API (thirdweb Engine compatible).

When minting is disabled the platform keeps balances off-chain and every call
succeeds without a transaction hash.
"""

import logging
from typing import Optional

import httpx
from fastapi import HTTPException

from ...config import (
    ENABLE_BLOCKCHAIN_MINTING,
    RCN_CONTRACT_ADDRESS,
    TOKEN_API_ACCESS_TOKEN,
    TOKEN_API_BACKEND_WALLET,
    TOKEN_API_URL,
    TOKEN_CHAIN,
)

logger = logging.getLogger(__name__)


class TokenMinter:
    """Mint and read RCN balances through the token API"""

    def __init__(self):
        self.enabled = bool(
            ENABLE_BLOCKCHAIN_MINTING
            and TOKEN_API_URL
            and TOKEN_API_ACCESS_TOKEN
            and RCN_CONTRACT_ADDRESS
        )
        self.base_url = (TOKEN_API_URL or "").rstrip("/")
        self.timeout = 30.0
        if self.enabled:
            logger.info(f"✅ Token minting enabled on {TOKEN_CHAIN}")
        else:
            logger.info("ℹ️ Token minting disabled - balances tracked off-chain")

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {TOKEN_API_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }
        if TOKEN_API_BACKEND_WALLET:
            headers["x-backend-wallet-address"] = TOKEN_API_BACKEND_WALLET
        return headers

    async def mint_to(self, address: str, amount: float, reason: str = "") -> Optional[str]:
        """
        Mint RCN to a wallet.

        Returns:
            Transaction hash/queue id, or None when minting is disabled

        Raises:
            HTTPException 503 if the token API fails
        """
        if not self.enabled:
            logger.debug(f"Off-chain credit of {amount} RCN to {address} ({reason})")
            return None

        url = f"{self.base_url}/contract/{TOKEN_CHAIN}/{RCN_CONTRACT_ADDRESS}/erc20/mint-to"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    headers=self._headers(),
                    json={"toAddress": address, "amount": str(amount)},
                )
            if response.status_code >= 400:
                logger.error(
                    f"❌ Token API mint failed: HTTP {response.status_code} {response.text[:200]}"
                )
                raise HTTPException(
                    status_code=503, detail="Token minting service unavailable"
                )
            result = response.json().get("result", {})
            tx_hash = result.get("transactionHash") or result.get("queueId")
            logger.info(f"🪙 Minted {amount} RCN to {address} (tx: {tx_hash})")
            return tx_hash
        except httpx.HTTPError as e:
            logger.error(f"❌ Token API unreachable: {e}")
            raise HTTPException(status_code=503, detail="Token minting service unavailable") from e

    async def get_balance(self, address: str) -> Optional[float]:
        """On-chain balance, or None when disabled or unreachable"""
        if not self.enabled:
            return None

        url = f"{self.base_url}/contract/{TOKEN_CHAIN}/{RCN_CONTRACT_ADDRESS}/erc20/balance-of"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    url, headers=self._headers(), params={"wallet_address": address}
                )
            if response.status_code >= 400:
                logger.warning(f"⚠️ Token API balance lookup failed: HTTP {response.status_code}")
                return None
            return float(response.json().get("result", {}).get("displayValue", 0))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Token API balance lookup error: {e}")
            return None


# Global instance
token_minter = TokenMinter()


def get_token_minter() -> TokenMinter:
    return token_minter
