"""
Ticket scanner API endpoints used at the venue door.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas.scanner import ScanRequest, ScanResult
from ..services.scanner_service import ScannerService
from ..utils.dependencies import get_current_organizer_user


router = APIRouter(prefix="/ticketing/scanner", tags=["scanner"])


def get_scanner_service(db: AsyncSession = Depends(get_db)) -> ScannerService:
    return ScannerService(db)


@router.post("/scan", response_model=ScanResult)
async def scan_ticket(
    payload: ScanRequest,
    scanner: User = Depends(get_current_organizer_user),
    service: ScannerService = Depends(get_scanner_service)
):
    """
    Validate a ticket and check the holder in.

    Refused tickets still answer 200 with ``valid: false`` and a reason code
    so door staff always get a readable result.
    """
    return await service.scan_ticket(
        scanner,
        ticket_code=payload.ticket_code,
        qr_payload=payload.qr_payload,
        event_id=payload.event_id,
        location=payload.location,
    )


@router.post("/check", response_model=ScanResult)
async def check_ticket(
    payload: ScanRequest,
    scanner: User = Depends(get_current_organizer_user),
    service: ScannerService = Depends(get_scanner_service)
):
    """Run the scan checks without checking the ticket in."""
    return await service.check_ticket(
        scanner,
        ticket_code=payload.ticket_code,
        qr_payload=payload.qr_payload,
        event_id=payload.event_id,
    )
