import pytest

from backend.core.exceptions import InsufficientFundsError, NotFoundError
from backend.services import wallet


def test_debit_moves_coins_from_available_to_spent(db, make_wallet) -> None:
    make_wallet('buyer-1', available_coins=150)

    wallet.debit(db, 'buyer-1', 150)
    db.commit()

    stored = wallet.get_wallet(db, 'buyer-1')
    assert (stored.available_coins, stored.spent_coins) == (0, 150)


def test_debit_refuses_to_overdraw(db, make_wallet) -> None:
    make_wallet('buyer-1', available_coins=99)

    with pytest.raises(InsufficientFundsError):
        wallet.debit(db, 'buyer-1', 100)

    assert wallet.get_wallet(db, 'buyer-1').available_coins == 99


def test_refund_reverses_a_debit(db, make_wallet) -> None:
    make_wallet('buyer-1', available_coins=400, spent_coins=100)

    wallet.refund(db, 'buyer-1', 100)

    stored = wallet.get_wallet(db, 'buyer-1')
    assert (stored.available_coins, stored.spent_coins) == (500, 0)


def test_credit_earnings_tracks_earned_coins(db, make_wallet) -> None:
    make_wallet('seller-1', available_coins=5)

    wallet.credit_earnings(db, 'seller-1', 100)

    stored = wallet.get_wallet(db, 'seller-1')
    assert (stored.available_coins, stored.earned_coins) == (105, 100)


def test_credit_earnings_requires_wallet(db) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        wallet.credit_earnings(db, 'nobody', 10)

    assert exception_info.value.message == 'Wallet not found for user nobody'
