"""
x402 (HTTP 402 payments) for Crustocean agents.

Use this when an agent or its backend calls paid APIs (LLM inference,
market data, ...) that answer ``402 Payment Required``. The payer signs
an EIP-3009 ``TransferWithAuthorization`` for USDC on Base and the
request is sent once more with an ``X-PAYMENT`` header. Supported
networks: ``base`` (eip155:8453) and ``base-sepolia`` (eip155:84532).

Requires the ``x402`` extra: ``pip install crustocean-sdk[x402]``.

Usage::

    from crustocean_sdk.x402 import create_x402_client

    async with create_x402_client(os.environ["X402_PAYER_PRIVATE_KEY"]) as http:
        response = await http.post(
            "https://paid-api.example.com/inference", json={"prompt": "Hello"}
        )
        data = response.json()

``X402PaymentAuth`` can also be passed as ``auth=`` to an existing
``httpx`` client or to a single request.

See https://x402.org
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Generator

import httpx

from crustocean_sdk.errors import PaymentError

logger = logging.getLogger(__name__)

X402_VERSION = 1
PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


@dataclass(frozen=True)
class Network:
    name: str
    caip2: str
    chain_id: int


NETWORKS = {
    "base": Network("base", "eip155:8453", 8453),
    "base-sepolia": Network("base-sepolia", "eip155:84532", 84532),
}

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ]
}

# Fields a payment option must carry before we sign anything
REQUIRED_FIELDS = ("maxAmountRequired", "payTo", "asset")

# validAfter is backdated by this much
_VALID_AFTER_SKEW_SEC = 60


def _resolve_network(network: str) -> Network:
    for entry in NETWORKS.values():
        if network in (entry.name, entry.caip2):
            return entry
    raise ValueError(f"Unsupported x402 network: {network!r} (use 'base' or 'base-sepolia')")


def _load_account(private_key: str) -> Any:
    if not private_key or not isinstance(private_key, str):
        raise ValueError("x402 payments require a private_key (hex string with 0x prefix)")
    try:
        from eth_account import Account
    except ImportError:
        raise RuntimeError(
            "eth-account not installed, install with: pip install crustocean-sdk[x402]"
        )
    key = private_key if private_key.startswith("0x") else f"0x{private_key}"
    return Account.from_key(key)


class X402PaymentAuth(httpx.Auth):
    """httpx auth flow that answers one 402 challenge with a USDC payment.

    Args:
        account: An ``eth_account`` local account holding USDC on ``network``.
        network: ``"base"`` or ``"base-sepolia"`` (CAIP-2 ids also accepted).
        max_amount: Optional cap in the asset's atomic units (USDC: 6 decimals).
            Challenges above it raise :class:`PaymentError` instead of paying.
    """

    requires_response_body = True

    def __init__(self, account: Any, network: str = "base", max_amount: int | None = None) -> None:
        self._account = account
        self.network = _resolve_network(network)
        self.max_amount = max_amount

    @classmethod
    def from_private_key(
        cls, private_key: str, network: str = "base", max_amount: int | None = None
    ) -> X402PaymentAuth:
        return cls(_load_account(private_key), network=network, max_amount=max_amount)

    @property
    def address(self) -> str:
        """Payer wallet address."""
        return self._account.address

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        response = yield request
        if response.status_code != 402:
            return

        requirements = self.select_requirements(response)
        request.headers[PAYMENT_HEADER] = self.build_payment_header(requirements)
        logger.info(
            "Paying %s atomic units to %s on %s for %s",
            requirements["maxAmountRequired"],
            requirements["payTo"],
            self.network.name,
            request.url,
        )
        yield request

    def select_requirements(self, response: httpx.Response) -> dict[str, Any]:
        """Pick the first ``exact`` payment option for our network."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        accepts = body.get("accepts") if isinstance(body, dict) else None

        for option in accepts or []:
            if not isinstance(option, dict) or option.get("scheme") != "exact":
                continue
            if option.get("network") not in (self.network.name, self.network.caip2):
                continue
            missing = [f for f in REQUIRED_FIELDS if not option.get(f)]
            if missing:
                raise PaymentError(
                    f"Unusable x402 payment option: missing {', '.join(missing)}",
                    status_code=402,
                    body=body,
                )
            try:
                amount = int(option["maxAmountRequired"])
            except (TypeError, ValueError):
                raise PaymentError(
                    f"Unusable x402 payment option: bad maxAmountRequired "
                    f"{option['maxAmountRequired']!r}",
                    status_code=402,
                    body=body,
                ) from None
            if self.max_amount is not None and amount > self.max_amount:
                raise PaymentError(
                    f"Payment of {amount} exceeds max_amount {self.max_amount}",
                    status_code=402,
                    body=body,
                )
            return option

        raise PaymentError(
            f"No x402 payment option for network {self.network.name}",
            status_code=402,
            body=body,
        )

    def build_payment_header(self, requirements: dict[str, Any]) -> str:
        """Sign a transfer authorization and encode it for ``X-PAYMENT``."""
        from eth_account.messages import encode_typed_data
        from eth_utils import to_checksum_address

        now = int(time.time())
        nonce = os.urandom(32)
        try:
            pay_to = to_checksum_address(requirements["payTo"])
            asset = to_checksum_address(requirements["asset"])
        except (TypeError, ValueError) as e:
            raise PaymentError(f"Unusable x402 payment option: {e}", status_code=402) from e
        value = int(requirements["maxAmountRequired"])
        valid_after = now - _VALID_AFTER_SKEW_SEC
        valid_before = now + int(requirements.get("maxTimeoutSeconds") or 60)

        extra = requirements.get("extra") or {}
        domain_data = {
            "name": extra.get("name", "USD Coin"),
            "version": extra.get("version", "2"),
            "chainId": self.network.chain_id,
            "verifyingContract": asset,
        }
        message_data = {
            "from": self._account.address,
            "to": pay_to,
            "value": value,
            "validAfter": valid_after,
            "validBefore": valid_before,
            "nonce": nonce,
        }
        signable = encode_typed_data(
            domain_data=domain_data,
            message_types=TRANSFER_WITH_AUTHORIZATION_TYPES,
            message_data=message_data,
        )
        signed = self._account.sign_message(signable)

        sig_hex = signed.signature.hex()
        if not sig_hex.startswith("0x"):
            sig_hex = "0x" + sig_hex

        payment = {
            "x402Version": X402_VERSION,
            "scheme": "exact",
            "network": requirements["network"],
            "payload": {
                "signature": sig_hex,
                "authorization": {
                    "from": self._account.address,
                    "to": pay_to,
                    "value": str(value),
                    "validAfter": str(valid_after),
                    "validBefore": str(valid_before),
                    "nonce": "0x" + nonce.hex(),
                },
            },
        }
        return base64.b64encode(json.dumps(payment, separators=(",", ":")).encode()).decode()


def decode_payment_response(value: str) -> dict[str, Any]:
    """Decode an ``X-PAYMENT-RESPONSE`` header (settlement receipt)."""
    return json.loads(base64.b64decode(value))


def create_x402_client(
    private_key: str,
    network: str = "base",
    max_amount: int | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` that pays for HTTP 402 responses.

    Args:
        private_key: Hex private key of the payer wallet. Must hold USDC.
        network: ``"base"`` (mainnet) or ``"base-sepolia"`` (testnet).
        max_amount: Optional per-request payment cap in atomic units.
        **client_kwargs: Passed through to ``httpx.AsyncClient``.
    """
    auth = X402PaymentAuth.from_private_key(private_key, network=network, max_amount=max_amount)
    return httpx.AsyncClient(auth=auth, **client_kwargs)
