import logging

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import Business

logger = logging.getLogger(__name__)


async def get_current_business(
    x_business_id: int = Header(..., alias="X-Business-Id"),
    db: Session = Depends(get_db),
) -> Business:
    """Resolve the tenant a request acts on from the X-Business-Id header"""
    business = db.query(Business).filter(Business.id == x_business_id).first()
    if not business:
        logger.warning(f"⚠️ Request for unknown business {x_business_id}")
        raise HTTPException(status_code=404, detail="Business not found")
    return business
