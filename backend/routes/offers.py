# backend/routes/offers.py
from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log
from utils.timeutils import utcnow, to_naive_utc
from models.users import User
from models.offer import Offer
from schemas.offer import (
    CouponValidateRequest, CouponValidateResponse, OfferCreate, OfferUpdate, OfferOut,
)
from services.coupons import normalize_code, validate_coupon
from services.errors import ConflictError, InvalidInputError, OfferNotFoundError

router = APIRouter(prefix="/offers", tags=["Offers"])

def _get_offer(db: Session, offer_id: int) -> Offer:
    offer = db.query(Offer).filter(Offer.id == offer_id, Offer.deleted_at == None).first()  # noqa: E711
    if not offer:
        raise OfferNotFoundError("Offer not found")
    return offer

def _check_dates(start, end) -> None:
    if to_naive_utc(end) <= to_naive_utc(start):
        raise InvalidInputError("End date must be after start date")

# Quote a coupon against the cart value; never consumes a use
@router.post("/validate", response_model=CouponValidateResponse)
def validate_offer(
    payload: CouponValidateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    quote = validate_coupon(db, payload.code, payload.cart_value)
    return CouponValidateResponse(discount=float(quote.discount), offer_code=quote.code)

@router.post("", response_model=OfferOut, status_code=status.HTTP_201_CREATED)
def create_offer(
    payload: OfferCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    _check_dates(payload.start_date, payload.end_date)
    code = normalize_code(payload.code)
    if db.query(Offer).filter(Offer.code == code).first():
        raise ConflictError(f"Offer code {code} already exists")

    data = payload.model_dump()
    data.update(
        code=code,
        start_date=to_naive_utc(payload.start_date),
        end_date=to_naive_utc(payload.end_date),
    )
    # Already expired offers are stored switched off
    if data["end_date"] < utcnow():
        data["is_active"] = False
    offer = Offer(**data, usage_count=0)
    db.add(offer)
    db.commit()
    db.refresh(offer)

    write_log(db, user_id=current_user.id, action="OFFER_CREATE", resource="offers", request=request,
              meta={"code": offer.code, "type": offer.type, "value": offer.value})
    return offer

@router.get("", response_model=List[OfferOut])
def list_offers(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    return db.query(Offer).filter(Offer.deleted_at == None).order_by(Offer.created_at.desc(), Offer.id.desc()).all()  # noqa: E711

@router.patch("/{offer_id}", response_model=OfferOut)
def update_offer(
    offer_id: int,
    payload: OfferUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    offer = _get_offer(db, offer_id)
    changes = payload.model_dump(exclude_unset=True)
    for key in ("start_date", "end_date"):
        if changes.get(key) is not None:
            changes[key] = to_naive_utc(changes[key])
    for key, value in changes.items():
        setattr(offer, key, value)
    _check_dates(offer.start_date, offer.end_date)
    if "is_active" not in changes and changes.get("end_date") is not None:
        offer.is_active = offer.end_date > utcnow()

    db.commit()
    db.refresh(offer)
    write_log(db, user_id=current_user.id, action="OFFER_UPDATE", resource="offers", request=request,
              meta={"code": offer.code, "fields": sorted(changes)})
    return offer

# Soft delete: usage history keeps pointing at the row
@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_offer(
    offer_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    offer = _get_offer(db, offer_id)
    offer.is_active = False
    offer.deleted_at = utcnow()
    db.commit()
    write_log(db, user_id=current_user.id, action="OFFER_DELETE", resource="offers", request=request,
              meta={"code": offer.code})
