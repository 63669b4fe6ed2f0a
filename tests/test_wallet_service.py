"""Tests for custodial wallet storage and signer retrieval."""

import pytest
from sqlalchemy import inspect, text
from sqlmodel import Session, SQLModel

from sniper.database import _run_migrations, engine
from sniper.errors import NotFound
from sniper.models.wallet import Wallet
from sniper.services.encryption import SecretUnreadable, decrypt_secret
from sniper.services.wallet_service import (
    create_wallet,
    get_wallet,
    get_wallet_keypair,
    record_balance,
)


class TestWallets:
    def test_keypair_matches_public_key(self, user, wallet):
        keypair = get_wallet_keypair(wallet.id, user.id)
        assert str(keypair.pubkey()) == wallet.public_key

    def test_secret_encrypted_at_rest(self, user, wallet):
        keypair = get_wallet_keypair(wallet.id, user.id)
        assert str(keypair) not in wallet.private_key_encrypted
        assert decrypt_secret(wallet.private_key_encrypted) == str(keypair)

    def test_other_user_cannot_load_signer(self, user, wallet):
        with pytest.raises(NotFound):
            get_wallet_keypair(wallet.id, user.id + 1)
        with pytest.raises(NotFound):
            get_wallet(wallet.id, user.id + 1)

    def test_first_wallet_is_primary(self, user, wallet):
        second = create_wallet(user.id, "Sniping")
        assert wallet.is_primary is True
        assert second.is_primary is False
        assert second.public_key != wallet.public_key

    def test_last_used_recorded(self, user, wallet):
        assert wallet.last_used_at is None
        get_wallet_keypair(wallet.id, user.id)
        assert get_wallet(wallet.id, user.id).last_used_at is not None

    def test_record_balance(self, user, wallet):
        record_balance(wallet.id, 3.25)
        with Session(engine) as session:
            assert session.get(Wallet, wallet.id).balance_sol == 3.25

    def test_record_balance_missing_wallet(self):
        with pytest.raises(NotFound):
            record_balance(404, 1.0)

    def test_corrupt_secret_is_unreadable(self, user, wallet):
        with Session(engine) as session:
            row = session.get(Wallet, wallet.id)
            row.private_key_encrypted = "not-a-fernet-token"
            session.add(row)
            session.commit()
        with pytest.raises(SecretUnreadable):
            get_wallet_keypair(wallet.id, user.id)


class TestMigrations:
    def test_speed_columns_added_to_old_table(self):
        SQLModel.metadata.drop_all(engine)
        with engine.connect() as conn:
            conn.execute(text(
                "CREATE TABLE sniper_config (id INTEGER PRIMARY KEY, user_id INTEGER, "
                "mev_protection BOOLEAN DEFAULT FALSE)"
            ))
            conn.execute(text("INSERT INTO sniper_config (id, user_id, mev_protection) VALUES (1, 1, 1)"))
            conn.execute(text("INSERT INTO sniper_config (id, user_id, mev_protection) VALUES (2, 2, 0)"))
            conn.commit()

        _run_migrations()

        columns = {c["name"] for c in inspect(engine).get_columns("sniper_config")}
        assert {"transaction_speed", "jito_tip_lamports", "compute_unit_limit", "use_private_rpc"} <= columns
        with engine.connect() as conn:
            speeds = dict(conn.execute(text("SELECT id, transaction_speed FROM sniper_config")).all())
        assert speeds == {1: "fast", 2: "standard"}

    def test_migrations_idempotent(self):
        _run_migrations()
        _run_migrations()

    def test_position_close_claim_column_added(self):
        SQLModel.metadata.drop_all(engine)
        with engine.connect() as conn:
            conn.execute(text("CREATE TABLE position (id INTEGER PRIMARY KEY, status VARCHAR)"))
            conn.commit()

        _run_migrations()

        columns = {c["name"] for c in inspect(engine).get_columns("position")}
        assert "closing_started_at" in columns
