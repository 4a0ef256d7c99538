"""
Person tier: civil registry lookups for the national id found on a plate.

This is the last tier of the cascade. A completed lookup closes its chain
through the relationship builder.
"""

from __future__ import annotations

from typing import Any

from cascade.domain.models import PersonJob, PersonRecord, Priority, Tier, WaitingChain
from cascade.infrastructure.audit_store import RecordKind, persist_record
from cascade.relationships import RelationshipBuilder
from cascade.tiers.abstract import TierDispatcher
from cascade.utils.logging import get_logger

log = get_logger(__name__)


class PersonDispatcher(TierDispatcher[PersonJob, PersonRecord]):
    tier = Tier.PERSON

    def __init__(self, *, builder: RelationshipBuilder, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.builder = builder

    async def offer_from_plate(
        self,
        national_id: str,
        *,
        origin_plate: str,
        origin_request_id: str,
        priority: Priority = Priority.NORMAL,
    ) -> bool:
        """
        Queue a lookup for `national_id`, or join the chain right away when the
        person is already cached. When a lookup for the same person is already
        open, the chain waits on it and is joined when that lookup completes.
        Returns whether a new job was queued.
        """
        person = self.cache.persons.get(national_id)
        if person is not None:
            log.info(
                f"[PERSON CACHED] {national_id} already fetched, joining chain",
                extra={"plate": origin_plate, "origin_request_id": origin_request_id},
            )
            await self.builder.join(
                person=person, origin_plate=origin_plate, origin_request_id=origin_request_id
            )
            return False

        now = self._clock()
        job = PersonJob(
            national_id=national_id,
            origin_plate=origin_plate,
            origin_request_id=origin_request_id,
            priority=priority,
            max_attempts=self.retry_policy.max_attempts,
            created_at=now,
            available_at=now + self.rate.min_delay(self.tier),
        )
        return self._admit(job)

    def _attach(self, holder: PersonJob, job: PersonJob) -> bool:
        if holder.is_terminal:
            return False
        chain = WaitingChain(origin=job.origin_plate, origin_request_id=job.origin_request_id)
        own = WaitingChain(origin=holder.origin_plate, origin_request_id=holder.origin_request_id)
        if chain == own or chain in holder.waiting_chains:
            return False
        holder.waiting_chains.append(chain)
        return True

    def _is_cached(self, job: PersonJob) -> bool:
        return self.cache.persons.has(job.national_id)

    async def _extract(self, job: PersonJob) -> PersonRecord:
        result = await self.agent.extract_person(job.national_id)
        if isinstance(result, PersonRecord):
            return result
        return PersonRecord.model_validate(result)

    async def _complete(self, job: PersonJob, result: PersonRecord, latency_ms: int) -> None:
        person = result.model_copy(
            update={
                "origin_plate": job.origin_plate,
                "latency_ms": result.latency_ms if result.latency_ms is not None else latency_ms,
            }
        )
        await persist_record(
            self.store, RecordKind.PERSON, person.model_dump(mode="json"), job.origin_request_id
        )
        self.cache.persons.put(job.national_id, person)
        await self._join_chains(job, person)

    async def _complete_from_cache(self, job: PersonJob) -> None:
        person = self.cache.persons.get(job.national_id)
        if person is not None:
            await self._join_chains(job, person)

    async def _join_chains(self, job: PersonJob, person: PersonRecord) -> None:
        await self.builder.join(
            person=person, origin_plate=job.origin_plate, origin_request_id=job.origin_request_id
        )
        for chain in list(job.waiting_chains):
            await self.builder.join(
                person=person, origin_plate=chain.origin, origin_request_id=chain.origin_request_id
            )


__all__ = ["PersonDispatcher"]
