import logging
import sys
from typing import Optional

from app.config import settings
from app.database import SessionLocal
from app.services.session_service import complete_elapsed_sessions


def close_elapsed_sessions(limit: Optional[int] = None) -> int:
    """Complete every approved session whose scheduled window has ended."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        db = SessionLocal()
        try:
            completed = complete_elapsed_sessions(
                db,
                limit=limit if limit is not None else settings.SWEEP_BATCH_LIMIT,
            )
            print(f"Completed {len(completed)} elapsed session(s): {completed}")
            return 0
        finally:
            db.close()
    except Exception as exc:
        print(f"Elapsed session sweep failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(close_elapsed_sessions())
