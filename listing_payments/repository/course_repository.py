# listing_payments/repository/course_repository.py
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from listing_payments.models.course_model import Course, COURSE_STATUS_ACTIVE, COURSE_STATUS_INACTIVE
from listing_payments.repository.base_repository import BaseRepository

INACTIVE_STATUSES = (COURSE_STATUS_INACTIVE, COURSE_STATUS_INACTIVE.lower())


def parse_course_ids(raw_ids: Iterable) -> List[uuid.UUID]:
    """Keeps syntactically valid ids, collapsing duplicates while preserving order."""
    parsed: List[uuid.UUID] = []
    for raw in raw_ids or []:
        if isinstance(raw, uuid.UUID):
            value = raw
        elif isinstance(raw, str) and raw.strip():
            try:
                value = uuid.UUID(raw.strip())
            except ValueError:
                continue
        else:
            continue
        if value not in parsed:
            parsed.append(value)
    return parsed


class CourseRepository(BaseRepository[Course]):
    def __init__(self):
        super().__init__(Course)

    def _eligible_filter(self, institution_id: int, category: Optional[str]):
        clauses = [
            Course.institution_id == institution_id,
            Course.status.in_(INACTIVE_STATUSES),
        ]
        if category:
            clauses.append(Course.category == category)
        return clauses

    async def find_eligible_ids(
        self,
        db: AsyncSession,
        institution_id: int,
        course_ids: List[uuid.UUID],
        category: Optional[str] = None,
    ) -> List[uuid.UUID]:
        if not course_ids:
            return []
        stmt = select(Course.id).where(
            Course.id.in_(course_ids),
            *self._eligible_filter(institution_id, category),
        )
        result = await db.execute(stmt)
        found = set(result.scalars().all())
        return [course_id for course_id in course_ids if course_id in found]

    async def count_inactive(self, db: AsyncSession, institution_id: int, category: Optional[str] = None) -> int:
        stmt = select(func.count(Course.id)).where(*self._eligible_filter(institution_id, category))
        return (await db.execute(stmt)).scalar_one()

    async def activate_courses(
        self,
        db: AsyncSession,
        institution_id: int,
        course_ids: List[uuid.UUID],
        listing_type: str,
        start_date: datetime,
        end_date: datetime,
        category: Optional[str] = None,
    ) -> int:
        """Activates the still-inactive subset of course_ids. Already active rows are left untouched."""
        if not course_ids:
            return 0
        stmt = (
            update(Course)
            .where(Course.id.in_(course_ids), *self._eligible_filter(institution_id, category))
            .values(
                status=COURSE_STATUS_ACTIVE,
                listing_type=listing_type,
                subscription_start_date=start_date,
                subscription_end_date=end_date,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount or 0

course_repository = CourseRepository()
