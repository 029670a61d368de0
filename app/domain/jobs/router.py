"""Cron endpoints, authorised with the CRON_SECRET bearer token"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...webhook_security import verify_cron_secret
from .service import auto_cancel_unpaid_bookings, cleanup_pending_bookings, expire_credits

router = APIRouter(prefix="/jobs", tags=["Jobs"], dependencies=[Depends(verify_cron_secret)])


@router.post("/cleanup-pending")
async def run_cleanup_pending(db: Session = Depends(get_db)):
    return {"success": True, **cleanup_pending_bookings(db)}


@router.post("/auto-cancel")
async def run_auto_cancel(db: Session = Depends(get_db)):
    return {"success": True, **auto_cancel_unpaid_bookings(db)}


@router.post("/expire-credits")
async def run_expire_credits(db: Session = Depends(get_db)):
    return {"success": True, **expire_credits(db)}
