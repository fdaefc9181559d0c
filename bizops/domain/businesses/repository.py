"""Business repository - tenant enumeration for background schedulers"""

from sqlalchemy.orm import Session

from ...models import Business


class BusinessRepository:
    """Repository for business database operations"""

    @staticmethod
    def list_active_businesses(db: Session) -> list[int]:
        """IDs of all active businesses"""
        rows = (
            db.query(Business.id)
            .filter(Business.is_active.is_(True))
            .order_by(Business.id.asc())
            .all()
        )
        return [row.id for row in rows]
