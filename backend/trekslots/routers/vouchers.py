from fastapi import APIRouter, Depends

from ..deps import get_current_identity, get_voucher_ledger
from ..domain.identity import UserIdentity
from ..schemas import VoucherCheck, VoucherQuoteRead
from ..usecases.vouchers import VoucherLedger

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@router.post("/check", response_model=VoucherQuoteRead)
async def check_voucher(
    payload: VoucherCheck,
    ledger: VoucherLedger = Depends(get_voucher_ledger),
    identity: UserIdentity = Depends(get_current_identity),
) -> VoucherQuoteRead:
    quote = await ledger.check(payload.code, user_id=identity.id, amount=payload.amount)
    return VoucherQuoteRead.from_quote(quote)
