"""SQLite persistence for proposals, apply claims, lead history and profiles."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Iterable, List, Optional, Tuple

from ..core.config import DEFAULT_HOME
from ..core.errors import ProposalNotFoundError
from ..core.models import AgentProfile, LeadRecord
from ..decision.proposals import ProposalStatus, RoutingProposal
from .base import (
    AgentProfileProvider,
    ApplyGuard,
    ApplyGuardResult,
    LeadHistoryProvider,
    ProposalStore,
    filter_eligible,
)

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RoutingDatabase(ProposalStore, ApplyGuard, LeadHistoryProvider, AgentProfileProvider):
    """SQLite database backing every storage interface."""

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 10.0):
        """Initialize database connection."""
        if db_path is None:
            db_path = DEFAULT_HOME / "routing.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

        self._init_db()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS proposals (
                    id TEXT PRIMARY KEY,
                    org_id TEXT NOT NULL,
                    lead_id TEXT NOT NULL,
                    idempotency_key TEXT NOT NULL,
                    status TEXT NOT NULL,
                    recommended_agent_id TEXT,
                    applied_agent_id TEXT,
                    applied_at TIMESTAMP,
                    data_json TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                    UNIQUE(org_id, idempotency_key)
                )
            """)

            # One row per claimed apply; the unique constraint is the mutex
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS apply_guard (
                    org_id TEXT NOT NULL,
                    proposal_id TEXT NOT NULL,
                    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    completed_at TIMESTAMP,

                    UNIQUE(org_id, proposal_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS lead_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    org_id TEXT NOT NULL,
                    lead_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'open',
                    industry TEXT,
                    deal_amount REAL,
                    entered_at TIMESTAMP,
                    first_touch_at TIMESTAMP,
                    closed_at TIMESTAMP,
                    updated_at TIMESTAMP,

                    UNIQUE(org_id, lead_id, agent_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS agent_profiles (
                    org_id TEXT NOT NULL,
                    agent_id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    computed_at TIMESTAMP,

                    UNIQUE(org_id, agent_id)
                )
            """)

    # ========================================================================
    # ProposalStore
    # ========================================================================

    def _row_to_proposal(self, row: sqlite3.Row) -> RoutingProposal:
        return RoutingProposal.from_dict(json.loads(row["data_json"]))

    def create_if_absent(self, proposal: RoutingProposal) -> Tuple[RoutingProposal, bool]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO proposals
                    (id, org_id, lead_id, idempotency_key, status, recommended_agent_id,
                     applied_agent_id, applied_at, data_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    proposal.id,
                    proposal.org_id,
                    proposal.lead_id,
                    proposal.idempotency_key,
                    proposal.status.value,
                    proposal.recommended_agent_id,
                    proposal.applied_agent_id,
                    _iso(proposal.applied_at),
                    json.dumps(proposal.to_dict()),
                    _iso(proposal.created_at),
                    _iso(proposal.updated_at),
                ),
            )
            created = cursor.rowcount == 1
            row = conn.execute(
                "SELECT data_json FROM proposals WHERE org_id = ? AND idempotency_key = ?",
                (proposal.org_id, proposal.idempotency_key),
            ).fetchone()

        stored = self._row_to_proposal(row)
        if not created:
            logger.debug(f"Proposal for {proposal.idempotency_key} exists ({stored.status.value})")
        return stored, created

    def get(self, org_id: str, proposal_id: str) -> RoutingProposal:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data_json FROM proposals WHERE org_id = ? AND id = ?",
                (org_id, proposal_id),
            ).fetchone()
        if row is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found", proposal_id)
        return self._row_to_proposal(row)

    def update(self, proposal: RoutingProposal) -> RoutingProposal:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE proposals
                SET status = ?, recommended_agent_id = ?, applied_agent_id = ?,
                    applied_at = ?, data_json = ?, updated_at = ?
                WHERE org_id = ? AND id = ?
                """,
                (
                    proposal.status.value,
                    proposal.recommended_agent_id,
                    proposal.applied_agent_id,
                    _iso(proposal.applied_at),
                    json.dumps(proposal.to_dict()),
                    _iso(proposal.updated_at),
                    proposal.org_id,
                    proposal.id,
                ),
            )
            if cursor.rowcount == 0:
                raise ProposalNotFoundError(f"Proposal {proposal.id} not found", proposal.id)
        return proposal

    def list_proposals(
        self,
        org_id: str,
        status: Optional[ProposalStatus] = None,
        limit: Optional[int] = 100,
    ) -> List[RoutingProposal]:
        query = "SELECT data_json FROM proposals WHERE org_id = ?"
        params: list = [org_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_proposal(row) for row in rows]

    def discard_failed(self, org_id: str, proposal_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM proposals WHERE org_id = ? AND id = ? AND status = ?",
                (org_id, proposal_id, ProposalStatus.WRITEBACK_FAILED.value),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Discarded failed proposal {proposal_id}")
        return deleted

    # ========================================================================
    # ApplyGuard
    # ========================================================================

    def begin(self, org_id: str, proposal_id: str) -> ApplyGuardResult:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT INTO apply_guard (org_id, proposal_id, started_at) VALUES (?, ?, ?)",
                    (org_id, proposal_id, datetime.now().isoformat()),
                )
        except sqlite3.IntegrityError:
            logger.info(f"Apply already started for proposal {proposal_id}")
            return ApplyGuardResult.ALREADY
        return ApplyGuardResult.BEGIN

    def remove(self, org_id: str, proposal_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM apply_guard WHERE org_id = ? AND proposal_id = ?",
                (org_id, proposal_id),
            )

    def mark_complete(self, org_id: str, proposal_id: str):
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE apply_guard SET completed_at = ? WHERE org_id = ? AND proposal_id = ?",
                (datetime.now().isoformat(), org_id, proposal_id),
            )

    # ========================================================================
    # LeadHistoryProvider
    # ========================================================================

    def add_lead(self, org_id: str, lead: LeadRecord):
        """Insert or replace a historical lead."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO lead_history
                    (org_id, lead_id, agent_id, status, industry, deal_amount,
                     entered_at, first_touch_at, closed_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    org_id,
                    lead.lead_id,
                    lead.agent_id,
                    lead.status,
                    lead.industry,
                    lead.deal_amount,
                    _iso(lead.entered_at),
                    _iso(lead.first_touch_at),
                    _iso(lead.closed_at),
                    _iso(lead.updated_at),
                ),
            )

    def _row_to_lead(self, row: sqlite3.Row) -> LeadRecord:
        return LeadRecord.from_dict(dict(row))

    def list_leads(
        self,
        org_id: str,
        agent_id: str,
        statuses: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> List[LeadRecord]:
        query = "SELECT * FROM lead_history WHERE org_id = ? AND agent_id = ?"
        params: list = [org_id, agent_id]
        if statuses is not None:
            statuses = list(statuses)
            if not statuses:
                return []
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(statuses)
        if since is not None:
            query += " AND entered_at >= ?"
            params.append(since.isoformat())

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_lead(row) for row in rows]

    def list_agent_ids(self, org_id: str) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT agent_id FROM lead_history WHERE org_id = ? ORDER BY agent_id",
                (org_id,),
            ).fetchall()
        return [row["agent_id"] for row in rows]

    def list_assignment_times(self, org_id: str, agent_id: str, since: Optional[datetime] = None) -> List[datetime]:
        """Times of successful assignments recorded on applied proposals."""
        query = """
            SELECT applied_at FROM proposals
            WHERE org_id = ? AND applied_agent_id = ? AND status = ? AND applied_at IS NOT NULL
        """
        params: list = [org_id, agent_id, ProposalStatus.APPLIED.value]
        if since is not None:
            query += " AND applied_at >= ?"
            params.append(since.isoformat())

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [datetime.fromisoformat(row["applied_at"]) for row in rows]

    # ========================================================================
    # AgentProfileProvider
    # ========================================================================

    def save_profile(self, org_id: str, profile: AgentProfile):
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO agent_profiles (org_id, agent_id, data_json, computed_at)
                VALUES (?, ?, ?, ?)
                """,
                (org_id, profile.agent_id, json.dumps(profile.to_dict()), _iso(profile.computed_at)),
            )

    def list_profiles(self, org_id: str, eligible_only: bool = False) -> List[AgentProfile]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT data_json FROM agent_profiles WHERE org_id = ? ORDER BY agent_id",
                (org_id,),
            ).fetchall()
        profiles = [AgentProfile.from_dict(json.loads(row["data_json"])) for row in rows]
        return filter_eligible(profiles) if eligible_only else profiles

    def get_profile(self, org_id: str, agent_id: str) -> Optional[AgentProfile]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data_json FROM agent_profiles WHERE org_id = ? AND agent_id = ?",
                (org_id, agent_id),
            ).fetchone()
        return AgentProfile.from_dict(json.loads(row["data_json"])) if row else None

    def get_stats(self, org_id: str) -> dict:
        """Proposal counts by status."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM proposals WHERE org_id = ? GROUP BY status",
                (org_id,),
            ).fetchall()
        return {row["status"]: row["count"] for row in rows}
