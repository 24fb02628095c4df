"""
Wallet-facing execution helpers.

- Wallet protocols for the EOA and ERC-4337 smart-account paths
- ERC-20 approval/allowance calldata encoding
"""

from .tx_builder import build_erc20_approve_tx, encode_erc20_allowance, encode_erc20_approve
from .wallet import (
    Call,
    SmartAccountClient,
    TransactionReceipt,
    TransactionRequest,
    UserOpReceipt,
    WalletContext,
    WalletSigner,
)

__all__ = [
    "Call",
    "SmartAccountClient",
    "TransactionReceipt",
    "TransactionRequest",
    "UserOpReceipt",
    "WalletContext",
    "WalletSigner",
    "build_erc20_approve_tx",
    "encode_erc20_allowance",
    "encode_erc20_approve",
]
