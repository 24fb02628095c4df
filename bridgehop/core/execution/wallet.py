"""
Wallet collaborators consumed by the bridge adapters.

Two execution paths exist: an externally-owned account that signs and sends
each transaction, and an ERC-4337 smart account that batches calls into one
user operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable


def _parse_quantity(value: Union[int, str, None]) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    if text.startswith("0x"):
        return int(text, 16)
    return int(text)


@dataclass
class Call:
    """Single call inside a batched user operation."""

    to: str
    data: str = "0x"
    value: int = 0

    @classmethod
    def from_tx_data(cls, data: Dict[str, Any]) -> "Call":
        return cls(
            to=data["to"],
            data=data.get("data") or "0x",
            value=_parse_quantity(data.get("value")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"to": self.to, "data": self.data, "value": self.value}


@dataclass
class TransactionRequest:
    """Transaction handed to an EOA signer. Values are in wei."""

    to: str
    data: str = "0x"
    value: int = 0
    chain_id: Optional[int] = None
    gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @classmethod
    def from_tx_data(cls, data: Dict[str, Any]) -> "TransactionRequest":
        gas = data.get("gas") or data.get("gasLimit")
        max_fee = data.get("maxFeePerGas")
        priority = data.get("maxPriorityFeePerGas")
        chain_id = data.get("chainId")
        return cls(
            to=data["to"],
            data=data.get("data") or "0x",
            value=_parse_quantity(data.get("value")),
            chain_id=int(chain_id) if chain_id is not None else None,
            gas=_parse_quantity(gas) if gas is not None else None,
            max_fee_per_gas=_parse_quantity(max_fee) if max_fee is not None else None,
            max_priority_fee_per_gas=_parse_quantity(priority) if priority is not None else None,
        )


@dataclass
class TransactionReceipt:
    transaction_hash: str
    success: bool
    block_number: Optional[int] = None


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


@runtime_checkable
class WalletSigner(Protocol):
    address: str

    async def send_transaction(self, tx: TransactionRequest) -> str:
        ...

    async def wait_for_transaction_receipt(self, tx_hash: str) -> TransactionReceipt:
        ...


@runtime_checkable
class SmartAccountClient(Protocol):
    address: str

    async def send_user_operation(self, calls: List[Call]) -> str:
        ...

    async def wait_for_user_operation_receipt(self, user_op_hash: str, timeout: float) -> UserOpReceipt:
        ...


@dataclass
class WalletContext:
    """Which account executes a quote. A smart account takes precedence."""

    signer: Optional[WalletSigner] = None
    smart_account: Optional[SmartAccountClient] = None

    @property
    def is_smart_account(self) -> bool:
        return self.smart_account is not None

    @property
    def address(self) -> Optional[str]:
        if self.smart_account is not None:
            return self.smart_account.address
        if self.signer is not None:
            return self.signer.address
        return None
