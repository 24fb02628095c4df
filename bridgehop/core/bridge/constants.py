"""Chain identifiers and token metadata used by the bridge engine."""

from typing import FrozenSet, Tuple

# Chains modelled uniformly inside the engine but represented differently by some backends
SOLANA_CHAIN_ID = 792703809
BUNGEE_SOLANA_CHAIN_ID = 89999
TRON_CHAIN_ID = 728126428
HYPEREVM_CHAIN_ID = 999
HYPERLIQUID_CHAIN_ID = 1337

BASE_CHAIN_ID = 8453
POLYGON_CHAIN_ID = 137

# Hyperliquid settles into an 8-decimal USDC at the zero-prefixed address
HYPERLIQUID_USDC_ADDRESS = "0x00000000000000000000000000000000"

BASE_USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
USDC_DECIMALS = 6

NATIVE_PLACEHOLDER = "0x0000000000000000000000000000000000000000"

SPECIAL_CHAINS: FrozenSet[int] = frozenset(
    {SOLANA_CHAIN_ID, TRON_CHAIN_ID, HYPEREVM_CHAIN_ID, HYPERLIQUID_CHAIN_ID}
)

BUNGEE_SUPPORTED_CHAINS: Tuple[int, ...] = (
    137,         # Polygon
    1,           # Ethereum
    100,         # Gnosis
    42161,       # Arbitrum One
    250,         # Fantom
    10,          # Optimism
    43114,       # Avalanche
    56,          # BSC
    1313161554,  # Aurora
    1101,        # Polygon zkEVM
    324,         # zkSync Era
    7777777,     # Zora
    8453,        # Base
    59144,       # Linea
    5000,        # Mantle
    534352,      # Scroll
    81457,       # Blast
    34443,       # Mode
    57073,       # Avail
    BUNGEE_SOLANA_CHAIN_ID,
    42220,       # Celo
    1088,        # Metis
    8008,        # Polygon Hermez
    25,          # Cronos
    128,         # Huobi ECO
    106,         # Velas
    40,          # Telos
    288,         # Boba
    66,          # OKExChain
    321,         # KCC
    4689,        # IoTeX
    888,         # Wanchain
    2020,        # Ronin
    592,         # Astar
    30,          # RSK
    199,         # BitTorrent Chain
    336,         # Shiden
    1284,        # Moonbeam
    1285,        # Moonriver
    2001,        # Milkomeda C1
    9001,        # Evmos
    1313161555,  # Aurora testnet
    80001,       # Polygon Mumbai
    421611,      # Arbitrum Rinkeby
    69,          # Optimism Kovan
    97,          # BSC testnet
    84531,       # Base Goerli
    84532,       # Base Sepolia
)

RELAY_SUPPORTED_CHAINS: Tuple[int, ...] = BUNGEE_SUPPORTED_CHAINS + (
    SOLANA_CHAIN_ID,
    TRON_CHAIN_ID,
    HYPEREVM_CHAIN_ID,
    HYPERLIQUID_CHAIN_ID,
    480,         # World Chain
    1301,        # Unichain
    33139,       # Ape Chain
    80084,       # Berachain bArtio
    8333,        # B3
)

RELAY_TERMINAL_STATUSES: FrozenSet[str] = frozenset({"success", "failure", "refund"})

# Extra gas reserved by Relay for the user-operation wrapper
SMART_ACCOUNT_GAS_OVERHEAD = 500_000
EOA_GAS_OVERHEAD = 300_000

DEFAULT_REFERRER = "bridgehop"
