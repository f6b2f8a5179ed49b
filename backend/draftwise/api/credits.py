"""
Credit API endpoints
"""
import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from draftwise.api.auth import get_current_user_from_token, require_admin
from draftwise.config import OPERATION_COSTS
from draftwise.database import get_db
from draftwise.models.database import User
from draftwise.schemas.requests import UpdateCreditsRequest
from draftwise.schemas.responses import (
    CreditAdjustmentResponse,
    CreditBalanceResponse,
    CreditTransactionResponse,
)
from draftwise.services.credit_service import get_credit_service
from draftwise.services.exceptions import AccountNotFoundError, ConcurrentAdjustmentError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CreditBalanceResponse)
def get_credits(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Current balance, lifetime usage and what each operation costs"""
    account = get_credit_service(db).get_account(current_user.id)
    return CreditBalanceResponse(
        credits=account["credits"],
        total_credits_used=account["total_credits_used"],
        operation_costs=OPERATION_COSTS,
    )


@router.get("/transactions", response_model=List[CreditTransactionResponse])
def get_transactions(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Most recent credit log entries of the caller"""
    return get_credit_service(db).list_transactions(current_user.id, limit=limit)


@router.put("/admin/users/{user_id}", response_model=CreditAdjustmentResponse)
def update_user_credits(
    user_id: int,
    request: UpdateCreditsRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Set, add or subtract a user's credits (admin only)"""
    try:
        adjustment = get_credit_service(db).adjust(
            user_id,
            request.action,
            request.credits,
            request.reason or f"Admin {request.action} by {current_user.email}",
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrentAdjustmentError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return CreditAdjustmentResponse(
        user_id=user_id,
        old_credits=adjustment.old_balance,
        new_credits=adjustment.new_balance,
        difference=adjustment.difference,
    )
