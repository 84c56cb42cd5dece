# src/zkjwt/services/onchain.py
"""Client for the on-chain verifier and bookkeeping contracts."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Sequence
from pathlib import Path
from typing import Any, Protocol, TypeVar

import aiohttp
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import ContractCustomError, ContractLogicError, TimeExhausted, Web3Exception

from zkjwt.core.errors import (
    ConfigurationError,
    OnChainRejection,
    OnChainTimeout,
    ProofLengthWrong,
    PublicInputsLengthWrong,
    ShpleminiFailed,
    SumcheckFailed,
    UnclassifiedOnChainFailure,
)
from zkjwt.core.settings import settings
from zkjwt.services.circuit_inputs import LIMB_BITS, LIMB_COUNT
from zkjwt.services.public_inputs import StructuredPublicInputs
from zkjwt.utils.fields import split_limbs, to_word

logger = logging.getLogger(__name__)

T = TypeVar("T")

KNOWN_REVERT_SELECTORS: dict[str, type[OnChainRejection]] = {
    "0xd0e50be7": ProofLengthWrong,
    "0x2e815f18": PublicInputsLengthWrong,
    "0xff63caf8": SumcheckFailed,
    "0xb96ecf7f": ShpleminiFailed,
}

VERIFIER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "bytes", "name": "_proof", "type": "bytes"},
            {"internalType": "bytes32[]", "name": "_publicInputs", "type": "bytes32[]"},
        ],
        "name": "verify",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    }
]

MANAGER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "bytes", "name": "proof", "type": "bytes"},
            {"internalType": "bytes32[]", "name": "publicInputs", "type": "bytes32[]"},
            {
                "components": [
                    {"internalType": "bytes32[]", "name": "pubkeyModulusLimbs", "type": "bytes32[]"},
                    {"internalType": "bytes", "name": "domain", "type": "bytes"},
                    {"internalType": "uint256", "name": "ephemeralPubkey", "type": "uint256"},
                    {"internalType": "uint256", "name": "ephemeralPubkeyExpiry", "type": "uint256"},
                ],
                "internalType": "struct PublicInput",
                "name": "publicInput",
                "type": "tuple",
            },
        ],
        "name": "recordPublicInputsOfZkJwtProof",
        "outputs": [{"internalType": "uint256", "name": "id", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]


def load_abi(artifact_path: str | Path) -> list[dict[str, Any]]:
    """Read the ABI from a compiled contract artifact (``{"abi": [...]}``) or a bare ABI list."""
    with open(artifact_path, encoding="utf-8") as handle:
        raw = json.load(handle)
    abi = raw.get("abi") if isinstance(raw, dict) else raw
    if not isinstance(abi, list):
        raise ConfigurationError(f"{artifact_path} does not contain an ABI")
    return abi


def _selector_of(data: Any) -> str | None:
    if isinstance(data, bytes | bytearray):
        return "0x" + bytes(data[:4]).hex() if len(data) >= 4 else None
    if isinstance(data, str):
        text = data.strip().lower()
        if not text.startswith("0x"):
            text = "0x" + text
        if len(text) >= 10:
            return text[:10]
    return None


def classify_revert(data: Any, message: str | None = None) -> OnChainRejection:
    """Map revert data to the matching rejection; unknown selectors are unclassified."""
    selector = _selector_of(data)
    error_type = KNOWN_REVERT_SELECTORS.get(selector or "")
    if error_type is not None:
        return error_type(message or f"verifier reverted with {error_type.__name__}", selector=selector)
    return UnclassifiedOnChainFailure(
        message or f"verifier reverted with unknown selector {selector}",
        selector=selector,
    )


def structured_argument(structured: StructuredPublicInputs) -> tuple[list[bytes], bytes, int, int]:
    """The ``PublicInput`` struct argument of the bookkeeping contract."""
    limbs = split_limbs(structured.issuer_modulus, LIMB_BITS, LIMB_COUNT)
    return (
        [to_word(limb) for limb in limbs],
        structured.domain.encode("utf-8"),
        structured.ephemeral_pubkey,
        structured.expiry,
    )


class OnChainVerifier(Protocol):
    async def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool: ...

    async def record(
        self,
        proof: bytes,
        public_inputs: Sequence[bytes],
        structured: StructuredPublicInputs,
    ) -> int | None: ...


class Web3OnChainVerifier:
    """Calls ``verify`` on the verifier contract and records through the manager contract."""

    def __init__(
        self,
        rpc_url: str | None,
        verifier_address: str,
        *,
        manager_address: str | None = None,
        verifier_abi: list[dict[str, Any]] | None = None,
        manager_abi: list[dict[str, Any]] | None = None,
        signer_private_key: str | None = None,
        timeout_seconds: float = 30.0,
        gas_limit: int = 8_000_000,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        if web3 is None:
            if not rpc_url:
                raise ConfigurationError("RPC_URL is required for on-chain verification")
            web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._w3 = web3
        self._verifier = web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(verifier_address),
            abi=verifier_abi or VERIFIER_ABI,
        )
        self._manager = (
            web3.eth.contract(
                address=AsyncWeb3.to_checksum_address(manager_address),
                abi=manager_abi or MANAGER_ABI,
            )
            if manager_address
            else None
        )
        self._account = Account.from_key(signer_private_key) if signer_private_key else None
        self._timeout = timeout_seconds
        self._gas_limit = gas_limit

    @classmethod
    def from_settings(cls) -> Web3OnChainVerifier:
        if not settings.verifier_address:
            raise ConfigurationError("VERIFIER_ADDRESS is required for on-chain verification")
        return cls(
            settings.rpc_url,
            settings.verifier_address,
            manager_address=settings.manager_address,
            verifier_abi=load_abi(settings.verifier_artifact_path) if settings.verifier_artifact_path else None,
            manager_abi=load_abi(settings.manager_artifact_path) if settings.manager_artifact_path else None,
            signer_private_key=settings.signer_private_key,
            timeout_seconds=settings.onchain_timeout_seconds,
            gas_limit=settings.onchain_gas_limit,
        )

    @property
    def records_on_chain(self) -> bool:
        return self._manager is not None

    async def verify(self, proof: bytes, public_inputs: Sequence[bytes]) -> bool:
        call = self._verifier.functions.verify(bytes(proof), [bytes(word) for word in public_inputs]).call()
        result = await self._guarded(call, "verify")
        logger.info("On-chain verifier returned %s for %d-byte proof", bool(result), len(proof))
        return bool(result)

    async def record(
        self,
        proof: bytes,
        public_inputs: Sequence[bytes],
        structured: StructuredPublicInputs,
    ) -> int | None:
        """Send the bookkeeping transaction and return the contract's record id.

        Returns ``None`` when no manager contract is configured.
        """
        if self._manager is None:
            return None
        if self._account is None:
            raise ConfigurationError("SIGNER_PRIVATE_KEY is required to record proofs on-chain")

        function = self._manager.functions.recordPublicInputsOfZkJwtProof(
            bytes(proof),
            [bytes(word) for word in public_inputs],
            structured_argument(structured),
        )
        sender = self._account.address
        record_id = await self._guarded(function.call({"from": sender}), "record (dry run)")

        nonce = await self._guarded(self._w3.eth.get_transaction_count(sender), "nonce lookup")
        chain_id = await self._guarded(self._w3.eth.chain_id, "chain id lookup")
        transaction = await self._guarded(
            function.build_transaction(
                {"from": sender, "nonce": nonce, "gas": self._gas_limit, "chainId": chain_id}
            ),
            "build transaction",
        )
        signed = self._account.sign_transaction(transaction)
        tx_hash = await self._guarded(self._w3.eth.send_raw_transaction(signed.raw_transaction), "send")
        receipt = await self._guarded(
            self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._timeout),
            "receipt",
        )
        if receipt["status"] != 1:
            raise OnChainRejection(f"record transaction {tx_hash.hex()} reverted")
        logger.info("Recorded proof on-chain as id %s in tx %s", record_id, tx_hash.hex())
        return int(record_id)

    async def _guarded(self, awaitable: Awaitable[T], action: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (TimeoutError, TimeExhausted) as exc:
            logger.warning("On-chain %s timed out after %ss", action, self._timeout)
            raise OnChainTimeout(f"on-chain {action} exceeded {self._timeout}s") from exc
        except ContractCustomError as exc:
            rejection = classify_revert(exc.data)
            logger.warning("On-chain %s reverted: %s (%s)", action, type(rejection).__name__, rejection.selector)
            raise rejection from exc
        except ContractLogicError as exc:
            rejection = classify_revert(exc.data, str(exc))
            logger.warning("On-chain %s reverted: %s", action, exc)
            raise rejection from exc
        except Web3Exception as exc:
            raise OnChainRejection(f"on-chain {action} failed: {exc}", retryable=True) from exc
        except aiohttp.ClientError as exc:
            logger.warning("RPC node failed during %s: %s", action, exc)
            raise OnChainRejection(f"RPC node failed during {action}: {exc}", retryable=True) from exc
        except OSError as exc:
            raise OnChainRejection(f"RPC transport failed during {action}: {exc}", retryable=True) from exc
