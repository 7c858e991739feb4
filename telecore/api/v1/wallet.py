"""
Wallet API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from telecore.api.deps import DatabaseSession, LockManager
from telecore.schemas.wallet import (
    BalanceResponse,
    CreditRequest,
    ThresholdRequest,
    WalletEntryResponse,
    WalletTransactionResponse,
)
from telecore.services.wallet.ledger import WalletLedger

router = APIRouter(prefix="/wallet", tags=["wallet"])


async def _balance_response(ledger: WalletLedger, user_id: UUID) -> BalanceResponse:
    balance = await ledger.get_balance(user_id)
    threshold = await ledger.get_threshold(user_id)
    return BalanceResponse(
        user_id=user_id,
        balance=balance,
        threshold=threshold,
        is_low=balance < threshold,
    )


@router.get("/{user_id}", response_model=BalanceResponse, summary="Get wallet balance")
async def get_wallet_balance(
    user_id: UUID, db: DatabaseSession, locks: LockManager
) -> BalanceResponse:
    return await _balance_response(WalletLedger(db, locks=locks), user_id)


@router.post(
    "/{user_id}/credit",
    response_model=WalletEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Top up a wallet",
)
async def credit_wallet(
    user_id: UUID, request: CreditRequest, db: DatabaseSession, locks: LockManager
) -> WalletEntryResponse:
    entry = await WalletLedger(db, locks=locks).credit(
        user_id, request.amount, request.description
    )
    return WalletEntryResponse.model_validate(entry, from_attributes=True)


@router.put(
    "/{user_id}/threshold",
    response_model=BalanceResponse,
    summary="Set low-balance threshold",
)
async def set_wallet_threshold(
    user_id: UUID, request: ThresholdRequest, db: DatabaseSession, locks: LockManager
) -> BalanceResponse:
    ledger = WalletLedger(db, locks=locks)
    await ledger.set_threshold(user_id, request.threshold)
    return await _balance_response(ledger, user_id)


@router.get(
    "/{user_id}/transactions",
    response_model=list[WalletTransactionResponse],
    summary="List wallet transactions",
)
async def list_wallet_transactions(
    user_id: UUID,
    db: DatabaseSession,
    locks: LockManager,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[WalletTransactionResponse]:
    transactions = await WalletLedger(db, locks=locks).list_transactions(
        user_id, limit=limit, offset=offset
    )
    return [WalletTransactionResponse.model_validate(t) for t in transactions]
