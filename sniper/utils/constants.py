"""Shared chain constants and defaults."""

LAMPORTS_PER_SOL = 1_000_000_000
MICRO_LAMPORTS_PER_LAMPORT = 1_000_000

# Wrapped SOL mint, used as the base-currency side of every swap
WSOL_MINT = "So11111111111111111111111111111111111111112"

# Signature fee charged per transaction regardless of priority
BASE_FEE_LAMPORTS = 5000

# Hard cap on compute units per transaction
MAX_COMPUTE_UNIT_LIMIT = 1_400_000

VALID_SPEEDS = ["standard", "fast", "ultra"]

# Public Jito tip accounts (round-robin when no account is configured)
JITO_TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]
