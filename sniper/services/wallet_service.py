"""Custodial wallet store: keypair generation, signer retrieval, balances."""

import logging
from datetime import datetime, timezone

from solders.keypair import Keypair
from sqlmodel import Session, select

from sniper.database import engine
from sniper.errors import NotFound
from sniper.models.wallet import Wallet
from sniper.services.encryption import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)


def create_wallet(user_id: int, wallet_name: str = "Main Wallet") -> Wallet:
    """Generate a new keypair for the user and store its secret encrypted.

    The first wallet a user creates becomes their primary wallet.
    """
    keypair = Keypair()
    with Session(engine) as session:
        has_wallet = session.exec(
            select(Wallet).where(Wallet.user_id == user_id)
        ).first() is not None

        wallet = Wallet(
            user_id=user_id,
            public_key=str(keypair.pubkey()),
            private_key_encrypted=encrypt_secret(str(keypair)),
            wallet_name=wallet_name,
            is_primary=not has_wallet,
        )
        session.add(wallet)
        session.commit()
        session.refresh(wallet)

    logger.info(f"Created wallet {wallet.id} ({wallet.public_key}) for user {user_id}")
    return wallet


def get_wallet(wallet_id: int, user_id: int) -> Wallet:
    with Session(engine) as session:
        wallet = session.exec(
            select(Wallet).where(Wallet.id == wallet_id, Wallet.user_id == user_id)
        ).first()
    if wallet is None:
        raise NotFound(f"Wallet {wallet_id} not found for user {user_id}")
    return wallet


def get_wallet_keypair(wallet_id: int, user_id: int) -> Keypair:
    """Decrypt and return the signer for a wallet owned by the user."""
    with Session(engine) as session:
        wallet = session.exec(
            select(Wallet).where(Wallet.id == wallet_id, Wallet.user_id == user_id)
        ).first()
        if wallet is None:
            raise NotFound(f"Wallet {wallet_id} not found for user {user_id}")

        keypair = Keypair.from_base58_string(decrypt_secret(wallet.private_key_encrypted))
        wallet.last_used_at = datetime.now(timezone.utc)
        session.add(wallet)
        session.commit()

    return keypair


def record_balance(wallet_id: int, balance_sol: float) -> None:
    with Session(engine) as session:
        wallet = session.get(Wallet, wallet_id)
        if wallet is None:
            raise NotFound(f"Wallet {wallet_id} not found")
        wallet.balance_sol = balance_sol
        session.add(wallet)
        session.commit()
