from typing import Optional

from sqlalchemy.orm import Session

from app import models


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_provider(db: Session, provider_id: int) -> Optional[models.User]:
    """Provider account by id, active or not."""
    return db.query(models.User).filter(
        models.User.id == provider_id,
        models.User.role == models.ActorRole.PROVIDER.value,
    ).first()
