# app/services/rating_aggregator.py
"""
Rating Aggregator

Recomputes a provider's reputation from their sessions. Nothing here keeps
running totals: every refresh reads the provider's rated/completed sessions
inside the caller's transaction and overwrites the reputation row, so the row
can always be rebuilt from scratch.

The reputation row is read ``FOR UPDATE`` and carries a version counter
(``version_id_col``). A concurrent writer that slips past the lock (e.g. on
SQLite) makes the flush raise ``StaleDataError``; the session service retries
the whole unit of work in that case.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.session import Session as SessionModel, SessionStatus
from app.models.user import ProviderReputation
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def round_rating(total: int, count: int) -> float:
    """Mean of ``count`` ratings summing to ``total``, rounded half-up to one decimal."""
    if count == 0:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def get_or_create_reputation(db: Session, provider_id: int, *, lock: bool = False) -> ProviderReputation:
    query = db.query(ProviderReputation).filter(
        ProviderReputation.provider_id == provider_id
    )
    if lock:
        query = query.with_for_update().populate_existing()
    reputation = query.first()

    if not reputation:
        reputation = ProviderReputation(
            provider_id=provider_id,
            average_rating=0.0,
            total_ratings=0,
            total_sessions=0,
            completed_sessions=0,
        )
        db.add(reputation)
        db.flush()

    return reputation


def calculate_rating_stats(db: Session, provider_id: int) -> Tuple[int, int]:
    """
    Sum and count of every non-null rating the provider received.

    Returns:
        Tuple of (rating_sum, rating_count)
    """
    result = db.query(
        func.coalesce(func.sum(SessionModel.rating), 0).label("rating_sum"),
        func.count(SessionModel.rating).label("rating_count"),
    ).filter(
        SessionModel.provider_id == provider_id,
        SessionModel.rating.isnot(None),
    ).one()
    return (int(result.rating_sum or 0), int(result.rating_count or 0))


def calculate_session_counts(db: Session, provider_id: int) -> Tuple[int, int]:
    """
    Returns:
        Tuple of (total_sessions, completed_sessions)
    """
    total = db.query(func.count(SessionModel.id)).filter(
        SessionModel.provider_id == provider_id
    ).scalar() or 0
    completed = db.query(func.count(SessionModel.id)).filter(
        SessionModel.provider_id == provider_id,
        SessionModel.status == SessionStatus.COMPLETED,
    ).scalar() or 0
    return (int(total), int(completed))


def recompute_provider_reputation(db: Session, provider_id: int) -> ProviderReputation:
    """
    Rebuild the provider's reputation row from their sessions.

    Must be called inside the transaction that changed the sessions; the
    caller commits.
    """
    db.flush()
    reputation = get_or_create_reputation(db, provider_id, lock=True)

    rating_sum, rating_count = calculate_rating_stats(db, provider_id)
    total_sessions, completed_sessions = calculate_session_counts(db, provider_id)

    reputation.average_rating = round_rating(rating_sum, rating_count)
    reputation.total_ratings = rating_count
    reputation.total_sessions = total_sessions
    reputation.completed_sessions = completed_sessions
    reputation.updated_at = utcnow()

    db.flush()
    logger.info(
        "Provider %s reputation: avg=%.1f ratings=%s sessions=%s completed=%s",
        provider_id,
        reputation.average_rating,
        rating_count,
        total_sessions,
        completed_sessions,
    )
    return reputation


def get_rating_distribution(db: Session, provider_id: int) -> Dict[int, int]:
    distribution = {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}

    results = db.query(
        SessionModel.rating,
        func.count(SessionModel.id).label("count"),
    ).filter(
        SessionModel.provider_id == provider_id,
        SessionModel.rating.isnot(None),
    ).group_by(
        SessionModel.rating
    ).all()

    for rating, count in results:
        distribution[rating] = count

    return distribution


def get_reputation_summary(db: Session, provider_id: int) -> Dict[str, Any]:
    """Reputation figures plus the per-star distribution, for display."""
    reputation = db.query(ProviderReputation).filter(
        ProviderReputation.provider_id == provider_id
    ).first()
    if reputation is None:
        # Nothing booked yet; report an empty reputation without writing one.
        return {
            "provider_id": provider_id,
            "average_rating": 0.0,
            "total_ratings": 0,
            "total_sessions": 0,
            "completed_sessions": 0,
            "rating_distribution": get_rating_distribution(db, provider_id),
            "updated_at": None,
        }
    return {
        "provider_id": provider_id,
        "average_rating": reputation.average_rating,
        "total_ratings": reputation.total_ratings,
        "total_sessions": reputation.total_sessions,
        "completed_sessions": reputation.completed_sessions,
        "rating_distribution": get_rating_distribution(db, provider_id),
        "updated_at": reputation.updated_at,
    }
