"""Tests for PlanningLedger."""

from decimal import Decimal

import pytest

from rollout.domain.entities import MonthEntry, Phase, PlanningResults, Provenance
from rollout.domain.errors import NotFoundError, PartialBatchFailure, ValidationError
from rollout.domain.planning import PlanningLedger, merge_month

PHASES = [
    {"name": "Preparation", "tasks": ["Meet the mayor", "Pick hub location"]},
    {"name": "Launch", "actions": [{"description": "Deploy fleet"}]},
]


class TestMergeMonth:
    """Tests for the month merge rule."""

    def test_other_months_are_kept(self):
        """Test writing one month leaves the others alone."""
        results = PlanningResults(
            city_id=1,
            projected={"2026-02": MonthEntry(Decimal("10"))},
            realized={"2026-02": MonthEntry(Decimal("5"))},
        )
        merged = merge_month(results, "2026-01", projected=Decimal("20"))
        assert list(merged.projected) == ["2026-01", "2026-02"]
        assert merged.realized == results.realized

    def test_fallback_does_not_replace_real_realized(self):
        """Test a fallback write keeps a transactions-backed realized month."""
        results = PlanningResults(
            city_id=1,
            realized={"2026-01": MonthEntry(Decimal("900"), Provenance.TRANSACTIONS)},
        )
        merged = merge_month(
            results, "2026-01", realized=Decimal("961"), provenance=Provenance.FALLBACK
        )
        assert merged.realized["2026-01"] == MonthEntry(Decimal("900"), Provenance.TRANSACTIONS)

    def test_real_replaces_fallback(self):
        """Test transactions data upgrades a fallback realized month."""
        results = PlanningResults(
            city_id=1,
            realized={"2026-01": MonthEntry(Decimal("961"), Provenance.FALLBACK)},
        )
        merged = merge_month(
            results, "2026-01", realized=Decimal("1200"), provenance=Provenance.TRANSACTIONS
        )
        assert merged.realized["2026-01"] == MonthEntry(Decimal("1200"), Provenance.TRANSACTIONS)


class TestPlans:
    """Tests for plan details."""

    def test_upsert_plan_creates_and_replaces(self, ledger, sample_cities):
        """Test a plan is created and then replaced whole."""
        city_id = sample_cities["Apiacás"].id

        plan = ledger.upsert_plan(city_id, PHASES, "2026-01")
        assert [p.name for p in plan.phases] == ["Preparation", "Launch"]
        assert plan.phases[1].tasks == ("Deploy fleet",)

        ledger.upsert_plan(city_id, [Phase(name="Only phase")], "2026-03")
        stored = ledger.get_plan(city_id)
        assert [p.name for p in stored.phases] == ["Only phase"]
        assert stored.start_date == "2026-03"

    def test_upsert_plan_missing_city(self, ledger):
        """Test a plan for an unknown city raises NotFoundError."""
        with pytest.raises(NotFoundError):
            ledger.upsert_plan(999, PHASES, "2026-01")

    def test_upsert_plan_invalid_phase(self, ledger, sample_cities):
        """Test a phase without a name raises ValidationError."""
        with pytest.raises(ValidationError, match="Invalid phases"):
            ledger.upsert_plan(sample_cities["Apiacás"].id, [{"tasks": []}], "2026-01")

    def test_get_plan_none(self, ledger, sample_cities):
        """Test get_plan returns None when no plan exists."""
        assert ledger.get_plan(sample_cities["Apiacás"].id) is None


class TestRecordMonth:
    """Tests for merge-writing monthly figures."""

    def test_earlier_month_after_later_keeps_both(self, ledger, sample_cities):
        """Test recording 2026-02 then 2026-01 retains both months."""
        city_id = sample_cities["Apiacás"].id
        ledger.record_month(city_id, "2026-02", projected=100)
        ledger.record_month(city_id, "2026-01", projected=50)

        results = ledger.get_results(city_id)
        assert list(results.projected) == ["2026-01", "2026-02"]
        assert results.projected["2026-02"].amount == Decimal("100")

    def test_only_given_map_is_written(self, ledger, sample_cities):
        """Test a realized write leaves the projected map untouched."""
        city_id = sample_cities["Apiacás"].id
        ledger.record_month(city_id, "2026-01", projected="961.50")
        ledger.record_month(city_id, "2026-01", realized="800.25")

        projected, realized = ledger.get_month(city_id, "2026-01")
        assert projected.amount == Decimal("961.50")
        assert realized.amount == Decimal("800.25")
        assert realized.provenance == Provenance.MANUAL

    def test_month_count_never_decreases(self, ledger, sample_cities):
        """Test the number of stored months grows or stays the same."""
        city_id = sample_cities["Apiacás"].id
        counts = []
        for month, value in [("2026-01", 1), ("2026-01", 2), ("2026-03", 3), ("2025-12", 4)]:
            counts.append(ledger.record_month(city_id, month, projected=value).month_count())
        assert counts == sorted(counts)
        assert counts[-1] == 3

    def test_precision_is_kept(self, ledger, sample_cities):
        """Test amounts survive storage with full precision."""
        city_id = sample_cities["Apiacás"].id
        ledger.record_month(city_id, "2026-01", realized=Decimal("1234.5678"))
        _, realized = ledger.get_month(city_id, "2026-01")
        assert realized.amount == Decimal("1234.5678")

    def test_nothing_to_record(self, ledger, sample_cities):
        """Test a call without any amount raises ValidationError."""
        with pytest.raises(ValidationError, match="Nothing to record"):
            ledger.record_month(sample_cities["Apiacás"].id, "2026-01")

    def test_invalid_month(self, ledger, sample_cities):
        """Test a malformed month key raises ValidationError."""
        with pytest.raises(ValidationError):
            ledger.record_month(sample_cities["Apiacás"].id, "2026-13", projected=1)

    def test_missing_city(self, ledger):
        """Test recording for an unknown city raises NotFoundError."""
        with pytest.raises(NotFoundError):
            ledger.record_month(999, "2026-01", projected=1)

    def test_get_month_without_results(self, ledger, sample_cities):
        """Test get_month returns (None, None) when nothing is stored."""
        assert ledger.get_month(sample_cities["Apiacás"].id, "2026-01") == (None, None)

    def test_concurrent_writes_are_not_lost(self, memory_db, sample_memory_cities):
        """Test parallel writes to different months of one city all land."""
        from concurrent.futures import ThreadPoolExecutor

        ledger = PlanningLedger(memory_db)
        city_id = sample_memory_cities["Apiacás"].id
        months = [f"2026-{m:02d}" for m in range(1, 13)]

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(lambda m: ledger.record_month(city_id, m, projected=1), months))

        assert list(ledger.get_results(city_id).projected) == months


class TestResultsStartDate:
    """Tests for the planning results start date."""

    def test_set_start_date_keeps_months(self, ledger, sample_cities):
        """Test setting the start date keeps recorded months."""
        city_id = sample_cities["Apiacás"].id
        ledger.record_month(city_id, "2026-01", projected=10)

        results = ledger.set_results_start_date(city_id, "2025-11")
        assert results.start_date == "2025-11"
        assert "2026-01" in ledger.get_results(city_id).projected


class TestSyncMonths:
    """Tests for batch projected sync."""

    def test_sync_reports_per_city(self, ledger, sample_cities):
        """Test a bad city is reported while the others are written."""
        good = sample_cities["Apiacás"].id
        report = ledger.sync_months(
            {
                good: {"2026-01": 10, "2026-02": "20.5"},
                999: {"2026-01": 1},
            }
        )
        assert report.changed == 1
        assert report.successes == [good]
        assert [f.key for f in report.failures] == ["999"]
        assert ledger.get_results(good).projected["2026-02"].amount == Decimal("20.5")

        with pytest.raises(PartialBatchFailure, match="1 of 2 batch units failed"):
            report.raise_for_failures()
