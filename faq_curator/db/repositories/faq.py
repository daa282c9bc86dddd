"""FAQ repository."""

from sqlalchemy import func, or_, select

from faq_curator.db.models import FAQ
from faq_curator.db.repositories.base import BaseRepository


class FAQRepository(BaseRepository[FAQ]):
    model = FAQ

    def list_filtered(
        self,
        category: str | None = None,
        status: str | None = None,
        search: str | None = None,
        min_confidence: float | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[FAQ], int]:
        """Newest-first page of FAQs matching the filters, with the total count."""
        conditions = []
        if category:
            conditions.append(FAQ.category == category)
        if status:
            conditions.append(FAQ.status == status)
        if min_confidence is not None:
            conditions.append(FAQ.confidence_score >= min_confidence)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(FAQ.question.ilike(pattern), FAQ.answer.ilike(pattern)))

        stmt = (
            select(FAQ)
            .where(*conditions)
            .order_by(FAQ.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = self.db.scalar(select(func.count()).select_from(FAQ).where(*conditions)) or 0
        return list(self.db.scalars(stmt).all()), total

    def list_oldest_first(self) -> list[FAQ]:
        """All FAQs by creation time, oldest first (duplicate cleanup order)."""
        stmt = select(FAQ).order_by(FAQ.created_at.asc(), FAQ.id.asc())
        return list(self.db.scalars(stmt).all())

    def count_by_status(self) -> dict[str, int]:
        stmt = select(FAQ.status, func.count()).group_by(FAQ.status)
        return {status: count for status, count in self.db.execute(stmt).all()}

    def count_by_category(self) -> dict[str, int]:
        stmt = select(FAQ.category, func.count()).group_by(FAQ.category)
        return {category: count for category, count in self.db.execute(stmt).all()}

    def average_confidence(self) -> float:
        return float(self.db.scalar(select(func.avg(FAQ.confidence_score))) or 0.0)
