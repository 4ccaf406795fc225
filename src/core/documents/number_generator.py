from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence
from src.shared.utils.dates import utc_now


def format_document_number(prefix: str, day: date, counter: int) -> str:
    """TXN, 2024-01-19, 7 -> TXN-20240119-0007. Counters past 9999 grow wider."""
    return f"{prefix}-{day:%Y%m%d}-{counter:04d}"


class DocumentNumberGenerator:
    """Daily counters per prefix, persisted in ``document_sequences``.

    A counter never goes backwards, so a number is handed out at most once
    even when documents are back-dated into a day that already has some.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _locked_sequence(self, prefix: str, period: str) -> DocumentSequence | None:
        result = await self.session.execute(
            select(DocumentSequence)
            .where(DocumentSequence.prefix == prefix, DocumentSequence.period == period)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def next_value(self, prefix: str, period: str) -> int:
        sequence = await self._locked_sequence(prefix, period)
        if sequence is None:
            self.session.add(DocumentSequence(prefix=prefix, period=period, last_number=0))
            await self.session.flush()
            sequence = await self._locked_sequence(prefix, period)

        sequence.last_number += 1
        await self.session.flush()
        return sequence.last_number

    async def generate(self, prefix: str, day: date | None = None) -> str:
        day = day or utc_now().date()
        counter = await self.next_value(prefix, f"{day:%Y%m%d}")
        return format_document_number(prefix, day, counter)


async def get_document_number(session: AsyncSession, prefix: str, day: date | None = None) -> str:
    return await DocumentNumberGenerator(session).generate(prefix, day)
