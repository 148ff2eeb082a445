"""Tests for rollout CLI commands."""

import json
from datetime import datetime
from decimal import Decimal

from rollout.cli.main import cli
from rollout.database.models import Transaction
from rollout.domain.entities import CityStatus, Provenance
from rollout.domain.planning import PlanningLedger


def _invoke(cli_runner, temp_db, *args, **kwargs):
    return cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "--log-level", "ERROR", *args], **kwargs
    )


def _write_fallback(tmp_path):
    path = tmp_path / "fallback.csv"
    path.write_text(
        "city,amount\nNova Bandeirantes,961\nNova Monte Verde,1529\nApiacás,48\nParanaíta,57\n",
        encoding="utf-8",
    )
    return str(path)


def _add_topup(temp_db, city, amount, timestamp):
    with temp_db.session_factory() as session:
        session.add(
            Transaction(city=city, type="CREDIT", description="Recarga", amount=Decimal(amount), timestamp=timestamp)
        )
        session.commit()


class TestCityCommands:
    """Tests for city commands."""

    def test_city_list(self, cli_runner, temp_db, sample_cities):
        """Test listing cities."""
        result = _invoke(cli_runner, temp_db, "city", "list", "--status", "expansion")
        assert result.exit_code == 0
        assert "Nova Bandeirantes" in result.output
        assert "Apiacás" not in result.output

    def test_city_list_empty(self, cli_runner, temp_db):
        """Test listing with no cities."""
        result = _invoke(cli_runner, temp_db, "city", "list")
        assert result.exit_code == 0
        assert "No cities found" in result.output

    def test_city_show_partial_name(self, cli_runner, temp_db, sample_cities):
        """Test showing a city by an unambiguous partial name."""
        result = _invoke(cli_runner, temp_db, "city", "show", "monte")
        assert result.exit_code == 0
        assert "City: Nova Monte Verde (ID: 5106216)" in result.output
        assert "Status: EXPANSION" in result.output

    def test_city_show_ambiguous(self, cli_runner, temp_db, sample_cities):
        """Test an ambiguous name exits with an error."""
        result = _invoke(cli_runner, temp_db, "city", "show", "Nova")
        assert result.exit_code == 1
        assert "matches 2 cities" in result.output

    def test_city_find(self, cli_runner, temp_db, sample_cities):
        """Test finding cities by partial name."""
        result = _invoke(cli_runner, temp_db, "city", "find", "nova")
        assert result.exit_code == 0
        assert "Nova Bandeirantes" in result.output
        assert "Nova Monte Verde" in result.output

    def test_city_advance(self, cli_runner, temp_db, sample_cities):
        """Test advancing a city and repeating the advance."""
        result = _invoke(cli_runner, temp_db, "city", "advance", "Apiacás", "EXPANSION")
        assert result.exit_code == 0
        assert "Advanced 'Apiacás' to EXPANSION" in result.output
        assert temp_db.get_city(sample_cities["Apiacás"].id).implementation_start_date is not None

        result = _invoke(cli_runner, temp_db, "city", "advance", "Apiacás", "EXPANSION")
        assert result.exit_code == 0
        assert "nothing to do" in result.output

    def test_city_advance_skip(self, cli_runner, temp_db, sample_cities):
        """Test skipping a stage fails."""
        result = _invoke(cli_runner, temp_db, "city", "advance", "Apiacás", "CONSOLIDATED")
        assert result.exit_code == 1
        assert "Cannot move from PLANNING to CONSOLIDATED" in result.output

    def test_city_advance_check_denied(self, cli_runner, temp_db, sample_cities):
        """Test --check refuses when the gate denies."""
        result = _invoke(cli_runner, temp_db, "city", "advance", "Apiacás", "EXPANSION", "--check")
        assert result.exit_code == 1
        assert "no plan phases" in result.output
        assert temp_db.get_city(sample_cities["Apiacás"].id).status == CityStatus.PLANNING

    def test_batch_advance(self, cli_runner, temp_db, sample_cities):
        """Test batch advance reports the changed count and unmatched names."""
        result = _invoke(
            cli_runner, temp_db, "city", "batch-advance", "CONSOLIDATED", "Nova Bandeirantes", "Nova Monte Verdi"
        )
        assert result.exit_code == 0
        assert "Changed 1 of 2 cities" in result.output
        assert "No city named 'Nova Monte Verdi'" in result.output

    def test_force_consolidate(self, cli_runner, temp_db, sample_cities):
        """Test the override asks for confirmation and then consolidates."""
        result = _invoke(cli_runner, temp_db, "city", "force-consolidate", "Apiacás", input="y\n")
        assert result.exit_code == 0
        assert "Consolidated 1 of 1 cities" in result.output
        assert temp_db.get_city(sample_cities["Apiacás"].id).status == CityStatus.CONSOLIDATED

    def test_can_advance(self, cli_runner, temp_db, sample_cities):
        """Test the gate check exit codes."""
        ledger = PlanningLedger(temp_db)
        city_id = sample_cities["Nova Bandeirantes"].id
        ledger.upsert_plan(city_id, [{"name": "Launch"}], "2026-01")
        ledger.record_month(city_id, "2026-01", realized=961, provenance=Provenance.FALLBACK)

        result = _invoke(cli_runner, temp_db, "city", "can-advance", "Nova Bandeirantes", "CONSOLIDATED")
        assert result.exit_code == 1
        assert "No:" in result.output

        result = _invoke(cli_runner, temp_db, "city", "can-advance", "Apiacás", "EXPANSION")
        assert result.exit_code == 1


class TestPlanCommands:
    """Tests for plan commands."""

    def test_plan_set_and_show(self, cli_runner, temp_db, sample_cities, tmp_path):
        """Test saving a plan from JSON and showing it."""
        phases = tmp_path / "phases.json"
        phases.write_text(
            json.dumps({"phases": [{"name": "Preparation", "tasks": ["Meet the mayor"]}]}),
            encoding="utf-8",
        )
        result = _invoke(
            cli_runner, temp_db, "plan", "set", "Apiacás", "--phases-file", str(phases), "--start-date", "2026-01"
        )
        assert result.exit_code == 0
        assert "with 1 phases starting 2026-01" in result.output

        result = _invoke(cli_runner, temp_db, "plan", "show", "Apiacás")
        assert result.exit_code == 0
        assert "1. Preparation" in result.output
        assert "- Meet the mayor" in result.output
        assert "No monthly figures." in result.output

    def test_plan_record_and_month(self, cli_runner, temp_db, sample_cities):
        """Test recording both maps and reading a month back."""
        result = _invoke(cli_runner, temp_db, "plan", "record", "Apiacás", "2026-02", "--projected", "1.000,50")
        assert result.exit_code == 0
        result = _invoke(cli_runner, temp_db, "plan", "record", "Apiacás", "2026-01", "--realized", "48")
        assert result.exit_code == 0
        assert "(2 months stored)" in result.output

        result = _invoke(cli_runner, temp_db, "plan", "month", "Apiacás", "2026-02")
        assert result.exit_code == 0
        assert "Projected: 1000.50 (manual)" in result.output
        assert "Realized:  -" in result.output

    def test_plan_record_requires_amount(self, cli_runner, temp_db, sample_cities):
        """Test recording with no amount fails."""
        result = _invoke(cli_runner, temp_db, "plan", "record", "Apiacás", "2026-01")
        assert result.exit_code == 1
        assert "Nothing to record" in result.output

    def test_plan_show_no_plan(self, cli_runner, temp_db, sample_cities):
        """Test showing a city without a plan."""
        result = _invoke(cli_runner, temp_db, "plan", "show", "Apiacás")
        assert result.exit_code == 0
        assert "No plan for 'Apiacás'." in result.output


class TestReconcileCommands:
    """Tests for reconcile commands."""

    def test_total_with_fallbacks(self, cli_runner, temp_db, sample_cities, tmp_path):
        """Test the four-city fallback total displays as 2.6k."""
        result = _invoke(
            cli_runner,
            temp_db,
            "reconcile",
            "total",
            "2026-01",
            "Nova Bandeirantes",
            "Nova Monte Verde",
            "Apiacás",
            "Paranaíta",
            "--fallback-file",
            _write_fallback(tmp_path),
        )
        assert result.exit_code == 0
        assert "Total 2026-01: 2595.00 (2.6k)" in result.output
        assert PlanningLedger(temp_db).get_results(sample_cities["Apiacás"].id) is None

    def test_run_records_realized(self, cli_runner, temp_db, sample_cities, tmp_path):
        """Test a run records transactions and fallback figures."""
        _add_topup(temp_db, "Nova Bandeirantes", "1200.00", datetime(2026, 1, 12))

        result = _invoke(
            cli_runner,
            temp_db,
            "reconcile",
            "run",
            "2026-01",
            "Nova Bandeirantes",
            "Apiacás",
            "--fallback-file",
            _write_fallback(tmp_path),
        )
        assert result.exit_code == 0
        assert "Reconciled 2 of 2 cities for 2026-01" in result.output

        ledger = PlanningLedger(temp_db)
        _, realized = ledger.get_month(sample_cities["Nova Bandeirantes"].id, "2026-01")
        assert realized.amount == Decimal("1200.00")
        assert realized.provenance == Provenance.TRANSACTIONS
        _, realized = ledger.get_month(sample_cities["Apiacás"].id, "2026-01")
        assert realized.provenance == Provenance.FALLBACK

    def test_run_invalid_month(self, cli_runner, temp_db, sample_cities):
        """Test a malformed month fails before touching the feed."""
        result = _invoke(cli_runner, temp_db, "reconcile", "run", "2026-1")
        assert result.exit_code == 1
        assert "Invalid month" in result.output

    def test_series_json(self, cli_runner, temp_db, sample_cities, tmp_path):
        """Test the revenue series is printed as a JSON envelope."""
        _add_topup(temp_db, "Apiacás", "60", datetime(2026, 2, 3))

        result = _invoke(
            cli_runner,
            temp_db,
            "reconcile",
            "series",
            "Apiacás",
            "--from",
            "2026-01",
            "--to",
            "2026-02",
            "--fallback-file",
            _write_fallback(tmp_path),
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "success": True,
            "data": {"2026-01": 48.0, "2026-02": 60.0},
        }
