from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import DomainException
from app.schemas.session import ProviderReputationResponse
from app.services import session_service

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("/{provider_id}/reputation", response_model=ProviderReputationResponse)
def get_provider_reputation(
    provider_id: int,
    db: Session = Depends(get_db)
):
    """Public reputation summary for a provider."""
    try:
        summary = session_service.get_provider_reputation(db, provider_id=provider_id)
    except DomainException as e:
        raise e.to_http_exception()
    return ProviderReputationResponse(**summary)
