"""
Static tables: venues, Jito endpoints and tip accounts, fee accounts and
well-known program ids.
"""

from typing import List

from solders.pubkey import Pubkey

LAMPORTS_PER_SOL = 1_000_000_000

# Venues accepted by the aggregator's `dexes` filter
DEXES: List[str] = [
    "Cropper",
    "Raydium",
    "Openbook",
    "StableWeightedSwap",
    "Guacswap",
    "OpenBookV2",
    "Aldrin",
    "MeteoraDLMM",
    "Saber(Decimals)",
    "SanctumInfinity",
    "Whirlpool",
    "StepN",
    "Dexlab",
    "RaydiumCP",
    "Mercurial",
    "LifinityV2",
    "ObricV2",
    "Meteora",
    "Phoenix",
    "TokenSwap",
    "HeliumNetwork",
    "Sanctum",
    "Moonshot",
    "StableStableSwap",
    "GooseFX",
    "Penguin",
    "AldrinV2",
    "OrcaV2",
    "LifinityV1",
    "1DEX",
    "CropperLegacy",
    "SolFi",
    "Oasis",
    "Saber",
    "Crema",
    "Pump.fun",
    "RaydiumCLMM",
    "Bonkswap",
    "Perps",
    "Fox",
    "Saros",
    "OrcaV1",
    "FluxBeam",
    "Invariant",
]

# Jito tip accounts (JitoTip 1~8)
JITO_ACCOUNTS: List[Pubkey] = [
    Pubkey.from_string("96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5"),
    Pubkey.from_string("HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe"),
    Pubkey.from_string("Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY"),
    Pubkey.from_string("ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49"),
    Pubkey.from_string("DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh"),
    Pubkey.from_string("ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt"),
    Pubkey.from_string("DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL"),
    Pubkey.from_string("3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT"),
]

# Block engine bundle endpoints
JITO_URLS: List[str] = [
    "https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://slc.mainnet.block-engine.jito.wtf/api/v1/bundles",
]

# Protocol fee accounts (Jup Fee 1, 2)
FEE_ACCOUNT_1 = Pubkey.from_string("BsJVUnreMP9x3hieTGNvfFkgtGWMT5dL2tkNeerY2x6X")
FEE_ACCOUNT_2 = Pubkey.from_string("HkwQG47SYLprat3A2a7zm2PhA4EiqXe4BRGeZFuBJLGB")

WSOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")
AMM_PROGRAM_ID = Pubkey.from_string("ammm1g4BXHiRCo3XtUxdTxm4jm5tzqSV6nMK1K52H6W")

JUPITER_API_URL = "https://quote-api.jup.ag/v4"
DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

# Compute budget: fixed limit, unit price derived from a 10k lamport budget
COMPUTE_UNIT_LIMIT = 600_000
COMPUTE_UNIT_PRICE = (10_000 * 1_000_000) // COMPUTE_UNIT_LIMIT  # micro-lamports

# Funding program command tags
FUND_MANY_COMMAND = 0
FUND_ONE_COMMAND = 3
MAKERS_PER_BUNDLE = 4

DEFAULT_MAKER_TIP_LAMPORTS = 100_000      # 0.0001 SOL
DEFAULT_VOLUME_TIP_LAMPORTS = 1_000_000   # 0.001 SOL
DEFAULT_SLIPPAGE_BPS = 1000
DEFAULT_MAKER_PROBE_AMOUNT = 1

# Blockhash staleness
MAKER_BLOCKHASH_REFRESH_BUNDLES = 10
VOLUME_BLOCKHASH_REFRESH_MS = 60_000

RETRY_DELAY_SECONDS = 5.0
