"""Writing assignments back to the system the leads came from."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from ..core.errors import WritebackError
from ..decision.proposals import RoutingProposal

logger = logging.getLogger(__name__)


class Writeback(ABC):
    """Applies an assignment to the external system."""

    @abstractmethod
    def apply(self, proposal: RoutingProposal, agent_id: str):
        """Assign the proposal's lead to agent_id. Raises WritebackError on failure."""
        pass


class JsonFileWriteback(Writeback):
    """Append assignments to a JSON file, for local runs without a CRM."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> List[Dict]:
        if not self.path.exists():
            return []
        with open(self.path, 'r') as f:
            return json.load(f)

    def apply(self, proposal: RoutingProposal, agent_id: str):
        try:
            assignments = self._load()
            assignments.append({
                "proposal_id": proposal.id,
                "org_id": proposal.org_id,
                "lead_id": proposal.lead_id,
                "agent_id": agent_id,
                "assigned_at": datetime.now().isoformat(),
            })
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(assignments, f, indent=2)
        except (OSError, ValueError) as e:
            raise WritebackError(f"Could not record assignment in {self.path}: {e}") from e

        logger.info(f"Assigned lead {proposal.lead_id} to {agent_id}")

    def assignments(self) -> List[Dict]:
        return self._load()
