"""Tests for SQLite, in-memory and JSON-file storage."""

import sqlite3
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from lead_router.core.errors import ProposalNotFoundError
from lead_router.core.models import AgentProfile, Confidence, LeadRecord
from lead_router.decision import ProposalStatus, RoutingProposal, approve, mark_applied
from lead_router.explain import ExplanationMode, RoutingExplanation
from lead_router.rules import FixedScore, Operator, ScoringRule, SimpleCondition
from lead_router.storage import (
    ApplyGuardResult,
    InMemoryApplyGuard,
    InMemoryProposalStore,
    RoutingConfigManager,
    RoutingDatabase,
)
from lead_router.storage.migrations import pending_migrations, run_migrations

NOW = datetime(2024, 6, 5, 12, 0)


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def db(temp_dir):
    return RoutingDatabase(temp_dir / "routing.db")


def make_proposal(proposal_id="p1", lead_id="lead-1", created_at=NOW, **kwargs):
    defaults = dict(
        id=proposal_id,
        org_id="org1",
        lead_id=lead_id,
        idempotency_key=f"default:{lead_id}:1:1",
        explanation=RoutingExplanation(
            lead_id=lead_id,
            lead_summary="Legal",
            confidence=Confidence.HIGH,
            decision_mode=ExplanationMode.SCORED,
            summary="Agent A was identified as the optimal candidate",
        ),
        recommended_agent_id="a",
        recommended_agent_name="Agent A",
        score=100,
        confidence=Confidence.HIGH,
        created_at=created_at,
        updated_at=created_at,
    )
    defaults.update(kwargs)
    return RoutingProposal(**defaults)


class TestDatabaseProposals:
    """Tests for proposal persistence in SQLite."""

    def test_create_and_get(self, db):
        """A new proposal is created and can be read back."""
        stored, created = db.create_if_absent(make_proposal())
        assert created
        assert db.get("org1", "p1") == stored

    def test_create_is_idempotent(self, db):
        """A second proposal with the same key returns the first, unchanged."""
        db.create_if_absent(make_proposal())
        stored, created = db.create_if_absent(make_proposal("p2", recommended_agent_id="b"))

        assert not created
        assert stored.id == "p1"
        assert stored.recommended_agent_id == "a"
        assert len(db.list_proposals("org1")) == 1

    def test_recreate_over_applied(self, db):
        """Re-creating over an applied proposal returns it untouched."""
        db.create_if_absent(make_proposal(
            status=ProposalStatus.APPLIED,
            applied_agent_id="a",
            applied_at=NOW,
            applied_success=True,
            apply_attempts=1,
        ))
        stored, created = db.create_if_absent(make_proposal("p2", recommended_agent_id="b"))

        assert not created
        assert stored.id == "p1"
        assert stored.status is ProposalStatus.APPLIED
        assert stored.applied_success is True
        assert stored.applied_agent_id == "a"
        assert db.get("org1", "p1").status is ProposalStatus.APPLIED

    def test_same_key_other_org(self, db):
        """Idempotency keys are scoped per org."""
        db.create_if_absent(make_proposal())
        _, created = db.create_if_absent(make_proposal("p2", org_id="org2"))
        assert created

    def test_get_missing(self, db):
        """Missing proposals raise ProposalNotFoundError."""
        with pytest.raises(ProposalNotFoundError):
            db.get("org1", "nope")

    def test_update(self, db):
        """Transitions are persisted."""
        db.create_if_absent(make_proposal())
        db.update(approve(db.get("org1", "p1"), "manager", NOW))
        assert db.get("org1", "p1").status is ProposalStatus.APPROVED

    def test_update_missing(self, db):
        """Updating an unknown proposal raises."""
        with pytest.raises(ProposalNotFoundError):
            db.update(make_proposal("ghost"))

    def test_list_filters_and_orders(self, db):
        """Listing filters by status and returns newest first."""
        db.create_if_absent(make_proposal("p1", "lead-1", NOW))
        db.create_if_absent(make_proposal("p2", "lead-2", NOW + timedelta(minutes=5)))
        db.create_if_absent(make_proposal("p3", "lead-3", NOW + timedelta(minutes=10),
                                          status=ProposalStatus.REJECTED))

        assert [p.id for p in db.list_proposals("org1")] == ["p3", "p2", "p1"]
        assert [p.id for p in db.list_proposals("org1", ProposalStatus.PROPOSED)] == ["p2", "p1"]
        assert len(db.list_proposals("org1", limit=1)) == 1

    def test_list_without_limit(self, db):
        """A limit of None returns every proposal."""
        for i in range(105):
            db.create_if_absent(make_proposal(f"p{i}", f"lead-{i}", NOW + timedelta(seconds=i)))

        assert len(db.list_proposals("org1")) == 100
        assert len(db.list_proposals("org1", limit=None)) == 105

    def test_store_mark_applied(self, db):
        """The store records writeback outcomes on stored proposals."""
        db.create_if_absent(make_proposal())
        db.update(approve(db.get("org1", "p1"), "manager", NOW))
        applied = db.mark_applied("org1", "p1", True)
        assert applied.status is ProposalStatus.APPLIED
        assert db.get("org1", "p1").applied_success is True

    def test_discard_failed(self, db):
        """Only failed proposals can be discarded, freeing the key."""
        db.create_if_absent(make_proposal())
        assert not db.discard_failed("org1", "p1")

        failed = mark_applied(approve(db.get("org1", "p1"), "manager", NOW), False, "boom", NOW)
        db.update(failed)
        assert db.discard_failed("org1", "p1")

        _, created = db.create_if_absent(make_proposal("p2"))
        assert created

    def test_stats(self, db):
        """Stats count proposals by status."""
        db.create_if_absent(make_proposal("p1", "lead-1"))
        db.create_if_absent(make_proposal("p2", "lead-2", status=ProposalStatus.REJECTED))
        assert db.get_stats("org1") == {"PROPOSED": 1, "REJECTED": 1}


class TestDatabaseApplyGuard:
    """Tests for the at-most-once apply claim."""

    def test_begin_once(self, db):
        """The first claim begins, later ones see ALREADY."""
        assert db.begin("org1", "p1") is ApplyGuardResult.BEGIN
        assert db.begin("org1", "p1") is ApplyGuardResult.ALREADY

    def test_remove_allows_retry(self, db):
        """Removing a claim lets a retry begin."""
        db.begin("org1", "p1")
        db.remove("org1", "p1")
        assert db.begin("org1", "p1") is ApplyGuardResult.BEGIN

    def test_complete_keeps_claim(self, db):
        """Completed claims still block new applies."""
        db.begin("org1", "p1")
        db.mark_complete("org1", "p1")
        assert db.begin("org1", "p1") is ApplyGuardResult.ALREADY

    def test_concurrent_begin(self, db):
        """Exactly one of many concurrent callers begins."""
        results = []
        lock = threading.Lock()

        def claim():
            result = db.begin("org1", "p1")
            with lock:
                results.append(result)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(ApplyGuardResult.BEGIN) == 1
        assert results.count(ApplyGuardResult.ALREADY) == 7


class TestDatabaseHistory:
    """Tests for lead history and profiles."""

    def test_list_leads(self, db):
        """Leads are filtered by agent, status and entry time."""
        db.add_lead("org1", LeadRecord("l1", "a", "won", "Legal", 5000, entered_at=NOW - timedelta(days=2)))
        db.add_lead("org1", LeadRecord("l2", "a", "open", entered_at=NOW - timedelta(days=40)))
        db.add_lead("org1", LeadRecord("l3", "b", "won", entered_at=NOW))

        assert {lead.lead_id for lead in db.list_leads("org1", "a")} == {"l1", "l2"}
        assert [lead.lead_id for lead in db.list_leads("org1", "a", statuses=["won"])] == ["l1"]
        assert [lead.lead_id for lead in db.list_leads("org1", "a", since=NOW - timedelta(days=30))] == ["l1"]
        assert db.list_leads("org1", "a", statuses=[]) == []
        assert db.count_leads("org1", "a") == 2
        assert db.list_agent_ids("org1") == ["a", "b"]

        lead = db.list_leads("org1", "a", statuses=["won"])[0]
        assert lead.industry == "Legal"
        assert lead.deal_amount == 5000
        assert lead.entered_at == NOW - timedelta(days=2)

    def test_assignment_times(self, db):
        """Assignment times come from applied proposals."""
        db.create_if_absent(make_proposal())
        db.update(mark_applied(approve(db.get("org1", "p1"), "manager", NOW), True, now=NOW))

        assert db.list_assignment_times("org1", "a") == [NOW]
        assert db.list_assignment_times("org1", "a", since=NOW + timedelta(hours=1)) == []
        assert db.list_assignment_times("org1", "b") == []

    def test_profiles(self, db):
        """Profiles round-trip and eligible_only drops unavailable agents."""
        db.save_profile("org1", AgentProfile("a", "Agent A", conversion_rate=0.3, availability=0.5))
        db.save_profile("org1", AgentProfile("b", "Agent B", conversion_rate=0.6, availability=0.5))
        db.save_profile("org1", AgentProfile("c", "Agent C", availability=0))

        assert [p.agent_id for p in db.list_profiles("org1")] == ["a", "b", "c"]
        assert [p.agent_id for p in db.list_profiles("org1", eligible_only=True)] == ["b", "a"]
        assert db.get_profile("org1", "a").conversion_rate == 0.3
        assert db.get_profile("org1", "zzz") is None


class TestMigrations:
    """Tests for the migration runner."""

    def test_runs_once(self, db):
        """Migrations apply once and are skipped afterwards."""
        assert run_migrations(str(db.db_path)) == 1
        assert run_migrations(str(db.db_path)) == 0

    def test_pending(self, db):
        """Pending versions are listed until applied."""
        assert pending_migrations(str(db.db_path)) == ["001_proposal_indexes"]
        run_migrations(str(db.db_path))
        assert pending_migrations(str(db.db_path)) == []

    def test_failed_migration_rolls_back(self, db, temp_dir):
        """A failing file leaves no partial changes and stays pending."""
        migrations_dir = temp_dir / "migrations"
        migrations_dir.mkdir()
        (migrations_dir / "001_ok.sql").write_text(
            "CREATE INDEX IF NOT EXISTS idx_ok ON proposals(org_id);\n"
        )
        (migrations_dir / "002_bad.sql").write_text(
            "-- second statement targets a missing table\n"
            "CREATE INDEX idx_partial ON proposals(lead_id);\n"
            "CREATE INDEX idx_missing ON no_such_table(id);\n"
        )

        with pytest.raises(sqlite3.OperationalError):
            run_migrations(str(db.db_path), migrations_dir)

        assert pending_migrations(str(db.db_path), migrations_dir) == ["002_bad"]
        conn = sqlite3.connect(str(db.db_path))
        try:
            names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
        finally:
            conn.close()
        assert "idx_ok" in names
        assert "idx_partial" not in names


class TestInMemoryStorage:
    """Tests for the in-process store and guard."""

    def test_create_if_absent(self):
        """The in-memory store is idempotent per org and key."""
        store = InMemoryProposalStore()
        first, created = store.create_if_absent(make_proposal())
        second, created_again = store.create_if_absent(make_proposal("p2"))
        assert created and not created_again
        assert second is first

    def test_recreate_over_applied(self):
        """Re-creating over an applied proposal returns it untouched."""
        store = InMemoryProposalStore()
        store.create_if_absent(make_proposal(status=ProposalStatus.APPLIED, applied_agent_id="a",
                                             applied_success=True))
        stored, created = store.create_if_absent(make_proposal("p2", recommended_agent_id="b"))

        assert not created
        assert stored.id == "p1"
        assert stored.status is ProposalStatus.APPLIED
        assert stored.applied_agent_id == "a"

    def test_discard_failed(self):
        """Discarding frees the idempotency key."""
        store = InMemoryProposalStore()
        store.create_if_absent(make_proposal(status=ProposalStatus.WRITEBACK_FAILED))
        assert store.discard_failed("org1", "p1")
        with pytest.raises(ProposalNotFoundError):
            store.get("org1", "p1")
        assert store.create_if_absent(make_proposal("p2"))[1]

    def test_guard(self):
        """The in-memory guard behaves like the SQLite one."""
        guard = InMemoryApplyGuard()
        assert guard.begin("org1", "p1") is ApplyGuardResult.BEGIN
        assert guard.begin("org1", "p1") is ApplyGuardResult.ALREADY
        guard.mark_complete("org1", "p1")
        assert guard.is_complete("org1", "p1")
        guard.remove("org1", "p1")
        assert guard.begin("org1", "p1") is ApplyGuardResult.BEGIN


class TestRoutingConfigManager:
    """Tests for the JSON configuration file."""

    def test_defaults(self, temp_dir):
        """A missing file yields the default configuration."""
        manager = RoutingConfigManager(temp_dir / "config.json")
        assert manager.get_kpi_weights("org1")["conversionHistorical"] == 25
        assert len(manager.get_rules("org1")) == 8
        assert manager.config.versions.rules_version == "1"

    def test_set_weights_persists(self, temp_dir):
        """Weights are normalized, saved, and bump the rules version."""
        path = temp_dir / "config.json"
        manager = RoutingConfigManager(path)
        stored = manager.set_kpi_weights({"workload": 30, "industryMatch": 30})

        assert stored == {"workload": 50, "industryMatch": 50}
        reloaded = RoutingConfigManager(path)
        assert reloaded.get_kpi_weights() == {"workload": 50, "industryMatch": 50}
        assert reloaded.config.versions.rules_version == "2"
        assert [r.id for r in reloaded.get_rules()] == ["kpi_workload", "kpi_industry_match"]

    def test_reset(self, temp_dir):
        """Reset restores the default weights."""
        manager = RoutingConfigManager(temp_dir / "config.json")
        manager.set_kpi_weights({"workload": 100})
        manager.reset_kpi_weights()
        assert manager.get_kpi_weights()["hotStreak"] == 5
        assert manager.config.rules_version == 3

    def test_custom_rules(self, temp_dir):
        """Custom rules replace KPI rules and are normalized."""
        path = temp_dir / "config.json"
        cond = SimpleCondition("agent.availability", Operator.GREATER_THAN, 0, "greaterThan")
        RoutingConfigManager(path).set_custom_rules([ScoringRule("flat", "Flat", 40, cond, FixedScore())])

        rules = RoutingConfigManager(path).get_rules()
        assert [r.id for r in rules] == ["flat"]
        assert rules[0].weight == 100

    def test_update_decision(self, temp_dir):
        """Decision settings persist; unknown keys are refused."""
        path = temp_dir / "config.json"
        manager = RoutingConfigManager(path)
        manager.update_decision(auto_approve_threshold=70)
        assert RoutingConfigManager(path).config.decision.auto_approve_threshold == 70
        with pytest.raises(AttributeError):
            manager.update_decision(nonsense=True)

    def test_corrupt_file(self, temp_dir):
        """An unreadable file falls back to defaults."""
        path = temp_dir / "config.json"
        path.write_text("{not json")
        assert RoutingConfigManager(path).get_kpi_weights()["workload"] == 20
