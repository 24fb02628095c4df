"""
Calldata encoding for the ERC-20 calls made around a bridge transfer.
"""

from typing import Dict

from eth_utils import to_checksum_address

# Minimal ABI selectors
ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = to_checksum_address(address).lower()[2:]
    return addr.zfill(64)


def encode_erc20_approve(spender: str, amount: int) -> str:
    return ERC20_APPROVE_SELECTOR + _encode_address(spender) + _encode_uint256(amount)


def encode_erc20_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)


def build_erc20_approve_tx(token: str, spender: str, amount: int) -> Dict[str, str]:
    """Approval call in the same shape as a quote item's ``data``."""

    return {
        "to": to_checksum_address(token),
        "data": encode_erc20_approve(spender, amount),
        "value": "0",
    }
