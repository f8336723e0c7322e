"""
Wallet API Routes

Wallet creation, gated by the subscription tier's wallet limit.
"""

from fastapi import APIRouter, Depends, status

from walletwise.api.dependencies import CurrentUserId, get_wallet_service
from walletwise.domain.wallet import CreateWalletRequest, WalletResponse
from walletwise.infrastructure.services import WalletService


router = APIRouter()


@router.post("/wallets", response_model=WalletResponse, status_code=status.HTTP_201_CREATED)
async def create_wallet(
    request: CreateWalletRequest,
    user_id: CurrentUserId,
    service: WalletService = Depends(get_wallet_service),
):
    """
    Create a wallet.

    403 with TrialExpiredError when an expired Pro trial is over the free
    limit, 403 with WalletLimitError when the free limit is reached, 409 on
    a duplicate name.
    """
    wallet = await service.create_wallet(
        user_id,
        name=request.name,
        balance=request.balance,
        currency=request.currency,
    )
    return WalletResponse(
        id=str(wallet.id),
        name=wallet.name,
        balance=wallet.balance,
        currency=wallet.currency,
        created_at=wallet.created_at,
    )
