"""
SharedAssetLedger - FastAPI Web Backend

This module exposes the proration engine over HTTP. The API is stateless:
every request carries the full member/item snapshot for one group and the
response is computed from that snapshot alone. Nothing is stored.

Features:
    - Input validation and normalization at the boundary (pydantic + items.py)
    - Per-member balances with per-item breakdowns
    - Leave refunds, buy-in settlements and group analytics

Endpoints:
    POST /balances                          - Balances for every member
    POST /members/{member_id}/balance       - Balance for one member
    POST /members/{member_id}/refund        - Refund due on leaving
    POST /settlements                       - Buy-in transfers and netted settlements
    POST /analytics                         - Group analytics and warnings
    POST /items/normalize                   - Canonical form of an item payload
    GET  /health                            - Health check

Usage:
    uvicorn main:app --reload
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from allocation import calculate_balances, calculate_leave_refund, calculate_member_balance
from analytics import generate_analytics
from items import MAX_DEPRECIATION_DAYS, infer_edit_period, items_from_payloads, normalize_item_payload
from members import members_from_dicts
from settings import configure_logging, get_settings
from settlement import buy_in_transfers, optimize_settlements
from utils import explain_all_members, explain_member_balance, round_currency

configure_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models for Request/Response Validation
# =============================================================================

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class MemberIn(BaseModel):
    """Member snapshot as sent by the caller."""
    member_id: str = Field(..., min_length=1, description="Unique member identifier")
    name: str = Field("", description="Display name")
    email: Optional[str] = Field(None, description="Optional contact address")
    join_date: str = Field(..., pattern=DATE_PATTERN, description="Join date (YYYY-MM-DD)")
    leave_date: Optional[str] = Field(None, pattern=DATE_PATTERN, description="Leave date (YYYY-MM-DD) or null")


class ItemIn(BaseModel):
    """
    Item snapshot as sent by the caller.

    Extra fields are kept so legacy depreciation names (depreciationDays,
    depreciation_years, period_type/period_value, ...) reach the normalizer.
    """
    model_config = ConfigDict(extra="allow")

    item_id: str = Field(..., min_length=1, description="Unique item identifier")
    name: str = Field("", description="Display name")
    price: Decimal = Field(..., ge=0, description="Purchase price")
    purchase_date: Optional[str] = Field(None, pattern=DATE_PATTERN, description="Purchase date (YYYY-MM-DD)")
    depreciation_days: Optional[int] = Field(
        None, ge=1, le=MAX_DEPRECIATION_DAYS, description="Depreciation length in days"
    )


class SnapshotRequest(BaseModel):
    """Request model carrying one group's snapshot."""
    members: list[MemberIn] = Field(..., description="Every member of the group")
    items: list[ItemIn] = Field(default_factory=list, description="Every shared item")
    as_of: Optional[date] = Field(None, description="Today (defaults to the server date)")
    cutoff: Optional[date] = Field(None, description="Optional last day of usage for every member")


class BalancesResponse(BaseModel):
    """Response model for group balances."""
    as_of: date
    cutoff: Optional[date] = None
    balances: dict
    explanations: list


class MemberBalanceResponse(BaseModel):
    """Response model for one member's balance."""
    as_of: date
    cutoff: Optional[date] = None
    balance: dict
    explanation: dict


class RefundResponse(BaseModel):
    """Response model for a leave refund."""
    member_id: str
    leave_date: Optional[date]
    refund: Optional[float]


class SettlementsResponse(BaseModel):
    """Response model for buy-in settlements."""
    transfers: list
    settlements: list


class AnalyticsResponse(BaseModel):
    """Response model for analytics."""
    as_of: date
    analytics: dict
    warnings: list


class NormalizeResponse(BaseModel):
    """Response model for item normalization."""
    item: dict
    edit_period: dict


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Shared Asset Ledger",
    description="Prorated cost splitting of depreciating shared items for changing groups",
    version="1.0.0"
)


# =============================================================================
# Helper Functions
# =============================================================================

def _resolve_as_of(request: SnapshotRequest) -> date:
    """Today for the engine: as_of, defaulting to the server date."""
    return request.as_of or date.today()


def _report_date(request: SnapshotRequest) -> date:
    """Day a report stops at: as_of, capped by cutoff if given."""
    as_of = _resolve_as_of(request)
    if request.cutoff is not None and request.cutoff < as_of:
        return request.cutoff
    return as_of


def _load_snapshot(request: SnapshotRequest):
    """
    Convert request models into validated engine snapshots.

    Raises:
        ValueError: If any member or item is invalid.
    """
    settings = get_settings()
    members = members_from_dicts([m.model_dump() for m in request.members])
    items = items_from_payloads(
        [i.model_dump(exclude_none=True) for i in request.items],
        default_days=settings.default_depreciation_days,
    )
    return members, items, _resolve_as_of(request)


def _find_member(members, member_id: str):
    for member in members:
        if member.member_id == member_id:
            return member
    raise HTTPException(status_code=404, detail=f"Member {member_id} not found in snapshot")


# =============================================================================
# API Endpoints
# =============================================================================

@app.post("/balances", response_model=BalancesResponse)
async def get_balances(request: SnapshotRequest):
    """
    Calculate balances for every member.

    Request flow:
        1. Validate and normalize the snapshot
        2. Calculate balances (allocation.py)
        3. Generate explanations (utils.py)
        4. Return rounded results
    """
    try:
        members, items, as_of = _load_snapshot(request)
        balances = calculate_balances(members, items, as_of, cutoff=request.cutoff)
        symbol = get_settings().currency_symbol

        return BalancesResponse(
            as_of=as_of,
            cutoff=request.cutoff,
            balances={mid: b.to_dict(rounded=True) for mid, b in balances.items()},
            explanations=explain_all_members(balances, items, symbol),
        )

    except ValueError as e:
        logger.warning("Rejected snapshot: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Balance calculation failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/members/{member_id}/balance", response_model=MemberBalanceResponse)
async def get_member_balance(member_id: str, request: SnapshotRequest):
    """Calculate one member's balance with per-item breakdown."""
    try:
        members, items, as_of = _load_snapshot(request)
        member = _find_member(members, member_id)
        balance = calculate_member_balance(member, items, members, as_of, cutoff=request.cutoff)
        items_by_id = {item.item_id: item for item in items}

        return MemberBalanceResponse(
            as_of=as_of,
            cutoff=request.cutoff,
            balance=balance.to_dict(rounded=True),
            explanation=explain_member_balance(balance, items_by_id, get_settings().currency_symbol),
        )

    except ValueError as e:
        logger.warning("Rejected snapshot: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Member balance calculation failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/members/{member_id}/refund", response_model=RefundResponse)
async def get_leave_refund(member_id: str, request: SnapshotRequest):
    """
    Refund due to (positive) or from (negative) a member on leaving.

    refund is null while the member has no leave date.
    """
    try:
        members, items, _ = _load_snapshot(request)
        member = _find_member(members, member_id)
        refund = calculate_leave_refund(member, items, members)

        return RefundResponse(
            member_id=member_id,
            leave_date=member.leave_date,
            refund=round_currency(refund) if refund is not None else None,
        )

    except ValueError as e:
        logger.warning("Rejected snapshot: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Refund calculation failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/settlements", response_model=SettlementsResponse)
async def get_settlements(request: SnapshotRequest):
    """List buy-in transfers and the netted settlement transactions."""
    try:
        members, items, _ = _load_snapshot(request)
        transfers = buy_in_transfers(members, items)

        return SettlementsResponse(
            transfers=[{**t, "amount": round_currency(t["amount"])} for t in transfers],
            settlements=optimize_settlements(transfers),
        )

    except ValueError as e:
        logger.warning("Rejected snapshot: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Settlement calculation failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/analytics", response_model=AnalyticsResponse)
async def get_analytics(request: SnapshotRequest):
    """Group analytics and rule-based warnings."""
    try:
        members, items, _ = _load_snapshot(request)
        as_of = _report_date(request)
        settings = get_settings()
        result = generate_analytics(
            members,
            items,
            as_of,
            expiry_warning_days=settings.expiry_warning_days,
            symbol=settings.currency_symbol,
        )

        return AnalyticsResponse(
            as_of=as_of,
            analytics=result["analytics"],
            warnings=result["warnings"],
        )

    except ValueError as e:
        logger.warning("Rejected snapshot: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Analytics failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/items/normalize", response_model=NormalizeResponse)
async def normalize_item(payload: dict):
    """
    Resolve an item payload in any accepted shape to canonical fields.

    Also returns the unit/value an edit form should display.
    """
    try:
        normalized = normalize_item_payload(payload, default_days=get_settings().default_depreciation_days)
        period_type, period_value = infer_edit_period(payload)

        return NormalizeResponse(
            item=normalized,
            edit_period={"period_type": period_type, "period_value": period_value},
        )

    except ValueError as e:
        logger.warning("Rejected item payload: %s", e)
        raise HTTPException(status_code=400, detail=str(e))


# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint to verify API is running."""
    return {"status": "healthy", "service": "Shared Asset Ledger"}


# =============================================================================
# Run with: python main.py
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
