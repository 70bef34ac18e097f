# backend/routes/returns.py
from typing import List, Optional
from fastapi import APIRouter, Depends, Request, Query, status
from sqlalchemy.orm import Session, selectinload
import logging

from database import get_db
from config import settings
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log
from utils.shiprocket_client import shiprocket_client
from models.users import User
from models.return_request import ReturnRequest, ReturnStatus
from schemas.returns import ReturnCreate, ReturnProcess, ReturnOut
from services import returns as return_service
from services.errors import InvalidTransitionError, ReturnNotFoundError
from services.shipping import build_return_payload

router = APIRouter(prefix="/returns", tags=["Returns"])
logger = logging.getLogger(__name__)

def _get_request(db: Session, return_id: int) -> ReturnRequest:
    request = db.query(ReturnRequest).filter(ReturnRequest.id == return_id).first()
    if not request:
        raise ReturnNotFoundError("Return request not found")
    return request

# Customer opens a return or exchange on a delivered order
@router.post("", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    payload: ReturnCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    lines = [
        return_service.ReturnLine(
            order_item_id=it.order_item_id, quantity=it.quantity, reason=it.reason, condition=it.condition,
        )
        for it in payload.items
    ]
    created = return_service.request_return(
        db,
        order_ref=payload.order_id,
        user_id=current_user.id,
        items=lines,
        reason=payload.reason,
        type=payload.type,
        exchange_size=payload.exchange_size,
    )
    write_log(
        db, user_id=current_user.id, action="RETURN_CREATE", resource="returns", request=request,
        meta={"return_id": created.request_id, "order_id": created.order_id, "refund_amount": created.refund_amount},
    )
    return created

@router.get("/mine", response_model=List[ReturnOut])
def list_my_returns(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return db.query(ReturnRequest).options(selectinload(ReturnRequest.items)).filter(
        ReturnRequest.user_id == current_user.id
    ).order_by(ReturnRequest.id.desc()).all()

@router.get("", response_model=List[ReturnOut])
def list_returns(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    q = db.query(ReturnRequest).options(selectinload(ReturnRequest.items))
    if status_filter:
        q = q.filter(ReturnRequest.status == status_filter)
    return q.order_by(ReturnRequest.id.desc()).all()

# Admin decision / progress update
@router.patch("/{return_id}", response_model=ReturnOut)
def process_return(
    return_id: int,
    payload: ReturnProcess,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    updated = return_service.process_return(db, return_id, payload.status, payload.admin_comments)
    write_log(
        db, user_id=current_user.id, action="RETURN_STATUS_CHANGE", resource="returns", request=request,
        meta={"return_id": updated.request_id, "status": updated.status},
    )
    return updated

# Book the reverse pickup with the carrier for an approved return
@router.post("/{return_id}/pickup", response_model=ReturnOut)
async def schedule_pickup(
    return_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    return_request = _get_request(db, return_id)
    if return_request.status != ReturnStatus.APPROVED.value:
        raise InvalidTransitionError("Only approved returns can be scheduled for pickup")

    order = return_request.order
    payload = build_return_payload(
        db, return_request, order,
        email=order.user.email if order.user else "",
        pickup_location=settings.SHIPROCKET_PICKUP_LOCATION,
    )
    carrier_response = await shiprocket_client.create_return_order(payload)
    return_service.schedule_pickup(return_request, carrier_response)
    db.commit()
    db.refresh(return_request)
    logger.info("Pickup for return %s booked as carrier order %s",
                return_request.request_id, return_request.pickup_shiprocket_order_id)

    write_log(
        db, user_id=current_user.id, action="RETURN_PICKUP", resource="returns", request=request,
        meta={"return_id": return_request.request_id, "carrier_order_id": return_request.pickup_shiprocket_order_id},
    )
    return return_request
