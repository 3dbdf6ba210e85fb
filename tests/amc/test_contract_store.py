"""
Tests for the contract store: persistence round trips, optimistic
concurrency, reference checks and lazy expiry on load.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
import uuid

from amc_engine.services.amc import (
    ContractExpired,
    ContractNotFound,
    ContractRenewed,
    ContractStatus,
    IssueSeverity,
    ReferentialIntegrityViolation,
    RenewalRequest,
    StaleContractVersion,
    VisitCompletion,
    VisitIssue,
    VisitStatus,
    add_ad_hoc_visit,
    assign_visit,
    complete_visit,
    plan_renewal,
    transition_status,
)
from amc_engine.services.contract_store import ContractStore
from tests.factories import ContractFactory, OTHER_CUSTOMER_ID

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class TestAddAndGet:
    @pytest.mark.asyncio
    async def test_add_assigns_identity_and_version(self, store: ContractStore):
        stored = await store.add(ContractFactory())

        assert stored.version == 1
        assert isinstance(stored.contract.contract_id, uuid.UUID)
        assert stored.contract.contract_number == "AMC-2025-0001"

    @pytest.mark.asyncio
    async def test_contract_numbers_are_sequential(self, store: ContractStore):
        first = await store.add(ContractFactory())
        second = await store.add(ContractFactory(customer_id=OTHER_CUSTOMER_ID))

        assert first.contract.contract_number == "AMC-2025-0001"
        assert second.contract.contract_number == "AMC-2025-0002"

    @pytest.mark.asyncio
    async def test_custom_number_prefix(self, test_db, clock, customers, users):
        store = ContractStore(test_db, clock, customers, users, number_prefix="CAMC")

        stored = await store.add(ContractFactory())

        assert stored.contract.contract_number == "CAMC-2025-0001"

    @pytest.mark.asyncio
    async def test_numbering_continues_past_four_digits(self, store: ContractStore):
        """AMC-2025-10000 sorts before AMC-2025-9999 as text; the next number must still be 10001."""
        await store.add(ContractFactory(contract_number="AMC-2025-9999"))
        await store.add(ContractFactory(contract_number="AMC-2025-10000"))

        first = await store.add(ContractFactory())
        second = await store.add(ContractFactory())

        assert first.contract.contract_number == "AMC-2025-10001"
        assert second.contract.contract_number == "AMC-2025-10002"

    @pytest.mark.asyncio
    async def test_numbering_is_per_prefix_and_year(self, store: ContractStore):
        await store.add(ContractFactory(contract_number="AMC-2024-0042"))
        await store.add(ContractFactory(contract_number="CAMC-2025-0007"))

        stored = await store.add(ContractFactory())

        assert stored.contract.contract_number == "AMC-2025-0001"

    @pytest.mark.asyncio
    async def test_round_trip(self, store: ContractStore):
        contract = ContractFactory(contract_value=Decimal("98765.43"), terms="Quarterly service")
        complete_visit(
            contract,
            0,
            VisitCompletion(
                service_report="Filters replaced",
                completed_date=datetime(2025, 3, 30, 14, 0, tzinfo=timezone.utc),
                issues=[VisitIssue(description="Exhaust soot", severity=IssueSeverity.MEDIUM, follow_up_required=True)],
                customer_signature="A. Iyer",
            ),
            NOW,
        )
        stored = await store.add(contract)

        loaded = await store.get(stored.contract.contract_id)

        assert loaded.version == 1
        assert loaded.contract.contract_value == Decimal("98765.43")
        assert loaded.contract.terms == "Quarterly service"
        assert loaded.contract.completed_visits == 1
        assert loaded.contract.next_visit_date == date(2025, 7, 1)
        visit = loaded.contract.visit_schedule[0]
        assert visit.status == VisitStatus.COMPLETED
        assert visit.completed_date == datetime(2025, 3, 30, 14, 0, tzinfo=timezone.utc)
        assert visit.issues[0].severity == IssueSeverity.MEDIUM
        assert visit.issues[0].follow_up_required is True
        assert visit.customer_signature == "A. Iyer"
        assert [v.scheduled_date for v in loaded.contract.visit_schedule] == [
            v.scheduled_date for v in contract.visit_schedule
        ]

    @pytest.mark.asyncio
    async def test_get_unknown(self, store: ContractStore):
        with pytest.raises(ContractNotFound):
            await store.get(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_get_many_skips_unknown(self, store: ContractStore):
        stored = await store.add(ContractFactory())

        found = await store.get_many([stored.contract.contract_id, uuid.uuid4()])

        assert [s.contract.contract_id for s in found] == [stored.contract.contract_id]
        assert await store.get_many([]) == []


class TestOptimisticConcurrency:
    @pytest.mark.asyncio
    async def test_save_bumps_version(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        complete_visit(stored.contract, 0, VisitCompletion(service_report="ok"), NOW)

        saved = await store.save(stored.contract, stored.version)

        assert saved.version == 2
        reloaded = await store.get(stored.contract.contract_id)
        assert reloaded.version == 2
        assert reloaded.contract.completed_visits == 1

    @pytest.mark.asyncio
    async def test_second_writer_on_same_version_is_rejected(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        contract_id = stored.contract.contract_id

        first = await store.get(contract_id)
        second = await store.get(contract_id)
        complete_visit(first.contract, 0, VisitCompletion(service_report="first"), NOW)
        complete_visit(second.contract, 1, VisitCompletion(service_report="second"), NOW)

        await store.save(first.contract, first.version)
        with pytest.raises(StaleContractVersion) as exc_info:
            await store.save(second.contract, second.version)

        assert exc_info.value.retryable is True
        current = await store.get(contract_id)
        assert current.version == 2
        assert current.contract.visit_schedule[0].status == VisitStatus.COMPLETED
        assert current.contract.visit_schedule[1].status == VisitStatus.PENDING

    @pytest.mark.asyncio
    async def test_retry_after_reread_succeeds(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        contract_id = stored.contract.contract_id
        stale = await store.get(contract_id)

        fresh = await store.get(contract_id)
        add_ad_hoc_visit(fresh.contract, date(2025, 2, 1), "Breakdown")
        await store.save(fresh.contract, fresh.version)

        with pytest.raises(StaleContractVersion):
            await store.save(stale.contract, stale.version)

        retry = await store.get(contract_id)
        complete_visit(retry.contract, 0, VisitCompletion(service_report="ok"), NOW)
        saved = await store.save(retry.contract, retry.version)

        assert saved.version == 3
        assert saved.contract.ad_hoc_visit_count == 1

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_rejected_write_leaves_contract_status_alone(self, store: ContractStore, clock):
        stored = await store.add(ContractFactory())
        contract_id = stored.contract.contract_id
        stale = await store.get(contract_id)
        fresh = await store.get(contract_id)
        await store.save(fresh.contract, fresh.version)

        clock.set(datetime(2026, 1, 2, tzinfo=timezone.utc))
        with pytest.raises(StaleContractVersion):
            await store.save(stale.contract, stale.version)

        assert stale.contract.status == ContractStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_save_unknown_contract(self, store: ContractStore):
        contract = ContractFactory()
        contract.contract_id = uuid.uuid4()

        with pytest.raises(ContractNotFound):
            await store.save(contract, 1)


class TestReferences:
    @pytest.mark.asyncio
    async def test_unknown_customer(self, store: ContractStore):
        with pytest.raises(ReferentialIntegrityViolation) as exc_info:
            await store.add(ContractFactory(customer_id="CUST-9999"))

        assert exc_info.value.kind == "customer"

    @pytest.mark.asyncio
    async def test_unknown_technician(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        add_ad_hoc_visit(stored.contract, date(2025, 2, 1), "Breakdown", assigned_to="tech-999")

        with pytest.raises(ReferentialIntegrityViolation) as exc_info:
            await store.save(stored.contract, stored.version)

        assert exc_info.value.kind == "user"
        assert (await store.get(stored.contract.contract_id)).version == 1

    @pytest.mark.asyncio
    async def test_known_technician(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        add_ad_hoc_visit(stored.contract, date(2025, 2, 1), "Breakdown", assigned_to="tech-001")

        saved = await store.save(stored.contract, stored.version)

        assert saved.contract.visit_schedule[-1].assigned_to == "tech-001"


    @pytest.mark.asyncio
    async def test_planned_visit_assignee_is_checked(self, store: ContractStore):
        stored = await store.add(ContractFactory())
        assign_visit(stored.contract, 0, "tech-999")

        with pytest.raises(ReferentialIntegrityViolation) as exc_info:
            await store.save(stored.contract, stored.version)

        assert exc_info.value.identifier == "tech-999"


class TestLazyExpiry:
    @pytest.mark.asyncio
    async def test_status_is_derived_on_load(self, store: ContractStore, clock):
        stored = await store.add(ContractFactory())
        clock.set(datetime(2026, 1, 2, tzinfo=timezone.utc))

        loaded = await store.get(stored.contract.contract_id)

        assert loaded.contract.status == ContractStatus.EXPIRED
        assert loaded.expired == ContractExpired(contract_id=stored.contract.contract_id)
        assert loaded.version == 1

    @pytest.mark.asyncio
    async def test_expired_status_is_persisted_on_next_write(self, store: ContractStore, clock):
        stored = await store.add(ContractFactory())
        clock.set(datetime(2026, 1, 2, tzinfo=timezone.utc))

        saved = await store.save(stored.contract, stored.version)

        assert saved.contract.status == ContractStatus.EXPIRED
        assert saved.expired is not None
        clock.set(NOW)
        reloaded = await store.get(stored.contract.contract_id)
        assert reloaded.contract.status == ContractStatus.EXPIRED
        assert reloaded.expired is None

    @pytest.mark.asyncio
    async def test_add_of_lapsed_active_contract(self, store: ContractStore):
        contract = ContractFactory(
            start_date=date(2023, 1, 1),
            end_date=date(2024, 1, 1),
            now=datetime(2023, 1, 1, tzinfo=timezone.utc),
        )

        stored = await store.add(contract)

        assert stored.contract.status == ContractStatus.EXPIRED
        assert stored.expired is not None


class TestDashboards:
    @pytest.mark.asyncio
    async def test_list_expiring(self, store: ContractStore):
        soon = await store.add(ContractFactory(
            start_date=date(2024, 1, 20), end_date=date(2025, 1, 20),
            now=datetime(2024, 1, 20, tzinfo=timezone.utc),
        ))
        await store.add(ContractFactory())
        await store.add(ContractFactory(
            start_date=date(2024, 1, 10), end_date=date(2025, 1, 10),
            status=ContractStatus.DRAFT, now=datetime(2024, 1, 10, tzinfo=timezone.utc),
        ))

        expiring = await store.list_expiring(30)

        assert [s.contract.contract_id for s in expiring] == [soon.contract.contract_id]

    @pytest.mark.asyncio
    async def test_list_visits_due(self, store: ContractStore):
        due = await store.add(ContractFactory(
            start_date=date(2024, 10, 3), end_date=date(2025, 10, 3),
            now=datetime(2024, 10, 3, tzinfo=timezone.utc),
        ))
        await store.add(ContractFactory())

        visits_due = await store.list_visits_due(7)

        assert [s.contract.contract_id for s in visits_due] == [due.contract.contract_id]
        assert visits_due[0].contract.next_visit_date == date(2025, 1, 3)

    @pytest.mark.asyncio
    async def test_overdue_visits_are_due(self, store: ContractStore):
        overdue = await store.add(ContractFactory(
            start_date=date(2024, 9, 1), end_date=date(2025, 9, 1),
            now=datetime(2024, 9, 1, tzinfo=timezone.utc),
        ))

        visits_due = await store.list_visits_due(0)

        assert [s.contract.contract_id for s in visits_due] == [overdue.contract.contract_id]


class TestRenewal:
    @pytest.mark.asyncio
    async def test_add_renewal_links_successor(self, store: ContractStore):
        source = await store.add(ContractFactory(
            start_date=date(2024, 1, 1), end_date=date(2025, 1, 1),
            now=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ))
        successor = plan_renewal(source.contract, RenewalRequest(), NOW)

        record = await store.add_renewal(source.contract, successor)

        assert record.renewed == ContractRenewed(
            source_id=source.contract.contract_id,
            new_contract_id=record.stored.contract.contract_id,
        )
        loaded = await store.get(record.stored.contract.contract_id)
        assert loaded.contract.renewed_from_id == source.contract.contract_id
        assert loaded.contract.start_date == date(2025, 1, 1)
        assert (await store.get(source.contract.contract_id)).version == 1


class TestList:
    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, store: ContractStore):
        for _ in range(3):
            await store.add(ContractFactory())

        first = await store.list(page=1, page_size=2)
        second = await store.list(page=2, page_size=2)

        assert first.total == 3
        assert [s.contract.contract_number for s in first.items] == ["AMC-2025-0003", "AMC-2025-0002"]
        assert [s.contract.contract_number for s in second.items] == ["AMC-2025-0001"]

    @pytest.mark.asyncio
    async def test_search_matches_number_serial_and_terms(self, store: ContractStore):
        by_serial = await store.add(ContractFactory(engine_serial_number="ENG-7788-QSKZ"))
        by_terms = await store.add(ContractFactory(terms="Includes coolant top-up"))
        await store.add(ContractFactory())

        assert [s.contract.contract_id for s in (await store.list(search="7788-qskz")).items] == [
            by_serial.contract.contract_id
        ]
        assert [s.contract.contract_id for s in (await store.list(search="COOLANT")).items] == [
            by_terms.contract.contract_id
        ]
        assert (await store.list(search="2025-0002")).total == 1

    @pytest.mark.asyncio
    async def test_customer_and_start_date_filters(self, store: ContractStore):
        mine = await store.add(ContractFactory(customer_id=OTHER_CUSTOMER_ID))
        await store.add(ContractFactory(
            start_date=date(2024, 6, 1), end_date=date(2025, 6, 1),
            now=datetime(2024, 6, 1, tzinfo=timezone.utc),
        ))

        by_customer = await store.list(customer_id=OTHER_CUSTOMER_ID)
        by_start = await store.list(start_from=date(2025, 1, 1), start_to=date(2025, 12, 31))

        assert [s.contract.contract_id for s in by_customer.items] == [mine.contract.contract_id]
        assert [s.contract.contract_id for s in by_start.items] == [mine.contract.contract_id]

    @pytest.mark.asyncio
    async def test_status_filter_uses_derived_status(self, store: ContractStore, clock):
        lapsed = await store.add(ContractFactory(
            start_date=date(2024, 1, 20), end_date=date(2025, 1, 20),
            now=datetime(2024, 1, 20, tzinfo=timezone.utc),
        ))
        current = await store.add(ContractFactory())
        clock.set(datetime(2025, 2, 1, tzinfo=timezone.utc))

        expired = await store.list(status=ContractStatus.EXPIRED)
        active = await store.list(status=ContractStatus.ACTIVE)

        assert [s.contract.contract_id for s in expired.items] == [lapsed.contract.contract_id]
        assert [s.contract.contract_id for s in active.items] == [current.contract.contract_id]


class TestStats:
    @pytest.mark.asyncio
    async def test_empty_portfolio(self, store: ContractStore):
        stats = await store.stats(30)

        assert stats.total == 0
        assert set(stats.by_status.values()) == {0}
        assert stats.active_value_total == Decimal("0")
        assert stats.active_value_average == Decimal("0")
        assert stats.visit_completion_rate == 0

    @pytest.mark.asyncio
    async def test_counts_value_and_completion(self, store: ContractStore):
        first = await store.add(ContractFactory(contract_value=Decimal("100000.00")))
        complete_visit(first.contract, 0, VisitCompletion(service_report="ok"), NOW)
        await store.save(first.contract, first.version)
        await store.add(ContractFactory(
            contract_value=Decimal("50000.00"),
            number_of_visits=2,
            start_date=date(2024, 1, 20), end_date=date(2025, 1, 20),
            now=datetime(2024, 1, 20, tzinfo=timezone.utc),
        ))
        await store.add(ContractFactory(
            contract_value=Decimal("999.00"),
            start_date=date(2023, 12, 1), end_date=date(2024, 12, 1),
            now=datetime(2023, 12, 1, tzinfo=timezone.utc),
        ))
        draft = await store.add(ContractFactory(status=ContractStatus.DRAFT))
        transition_status(draft.contract, ContractStatus.CANCELLED, NOW)
        await store.save(draft.contract, draft.version)

        stats = await store.stats(30)

        assert stats.total == 4
        assert stats.by_status["active"] == 2
        assert stats.by_status["expired"] == 1
        assert stats.by_status["cancelled"] == 1
        assert stats.expiring_soon == 1
        assert stats.active_value_total == Decimal("150000.00")
        assert stats.active_value_average == Decimal("75000.00")
        # 1 of 6 planned visits across the two live contracts
        assert stats.visit_completion_rate == 17
