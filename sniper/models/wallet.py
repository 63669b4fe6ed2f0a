"""Wallet model: custodial Solana keypair with a Fernet-encrypted secret."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Wallet(SQLModel, table=True):
    __tablename__ = "wallet"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    public_key: str = Field(unique=True, index=True)
    private_key_encrypted: str = ""  # Fernet-encrypted base58 keypair
    wallet_name: str = "Main Wallet"
    is_primary: bool = True
    balance_sol: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: datetime | None = None
