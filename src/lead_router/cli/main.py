"""Main CLI entry point for the leadrouter command."""

import json
import logging
import click
from pathlib import Path
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from typing import Optional

from ..core.config import reset_settings, settings
from ..core.errors import RoutingError
from ..core.models import AgentProfile, LeadRecord, NormalizedLead
from ..decision.proposals import ProposalStatus, RoutingProposal
from ..explain.explainer import explain as explain_result, format_explanation_for_display
from ..profiling.availability import CapacityCalculator
from ..rules.models import rules_from_list
from ..rules.weights import KPI_KEYS
from ..routing.service import RoutingService
from ..routing.writeback import JsonFileWriteback
from ..scoring.engine import evaluate
from ..storage.database import RoutingDatabase
from ..storage.json_config import RoutingConfigManager
from ..storage.memory import InMemoryRuleConfig

console = Console()

STATUS_COLORS = {
    "PROPOSED": "yellow",
    "APPROVED": "cyan",
    "OVERRIDDEN": "magenta",
    "APPLIED": "green",
    "WRITEBACK_FAILED": "red",
    "REJECTED": "dim",
    "EXPIRED": "dim",
}


def get_db(db_path: Optional[str] = None) -> RoutingDatabase:
    """Get database instance."""
    return RoutingDatabase(Path(db_path) if db_path else settings.db_path)


def get_config(config_path: Optional[str] = None) -> RoutingConfigManager:
    """Get routing config manager."""
    return RoutingConfigManager(Path(config_path) if config_path else settings.config_path)


def get_service(db: RoutingDatabase, config: RoutingConfigManager, rules=None) -> RoutingService:
    """Wire a routing service over the local database and config file."""
    return RoutingService(
        profiles=db,
        rules=rules or config,
        store=db,
        guard=db,
        writeback=JsonFileWriteback(settings.assignments_path),
        gating_config=config.config.gating,
        decision_config=config.config.decision,
        versions=config.config.versions,
        capacity=CapacityCalculator(db, config.config.capacity),
    )


def _read_input(path: str) -> dict:
    with open(path, 'r') as f:
        data = json.load(f)
    if "lead" not in data:
        raise click.BadParameter("input must contain a 'lead' object", param_hint="INPUT")
    return data


def _fail(message: str):
    console.print(f"[red]{message}[/red]")
    raise SystemExit(1)


def _print_proposal(proposal: RoutingProposal):
    color = STATUS_COLORS.get(proposal.status.value, "")
    agent = proposal.override_agent_name or proposal.recommended_agent_name or proposal.target_agent_id or "none"
    lines = [
        f"[bold]Proposal:[/bold] {proposal.id}",
        f"[bold]Lead:[/bold] {proposal.lead_id}",
        f"[bold]Status:[/bold] [{color}]{proposal.status.value}[/{color}]" if color else
        f"[bold]Status:[/bold] {proposal.status.value}",
        f"[bold]Agent:[/bold] {agent}",
        f"[bold]Score:[/bold] {proposal.score:g} ({proposal.confidence.value} confidence)",
        f"[bold]Decision:[/bold] {proposal.decision_reason}",
    ]
    if proposal.applied_error:
        lines.append(f"[bold]Writeback error:[/bold] [red]{proposal.applied_error}[/red]")
    console.print(Panel("\n".join(lines), title="Routing Proposal"))


@click.group()
@click.version_option(version="1.0.0", prog_name="leadrouter")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Lead Router - Explainable lead-to-agent routing.

    \b
    Quick Start:
      leadrouter init                          # Initialize database
      leadrouter route lead.json               # Score and propose an agent
      leadrouter proposals --status pending    # Review open proposals
      leadrouter approve <proposal-id>         # Approve and assign
    """
    reset_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ============================================================================
# SETUP
# ============================================================================

@cli.command()
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def init(db_path: Optional[str], config_path: Optional[str]):
    """Initialize the routing database and config."""
    from ..storage.migrations import run_migrations

    db = get_db(db_path)
    count = run_migrations(str(db.db_path))
    config = get_config(config_path)
    config.save_config()

    console.print(Panel.fit(
        f"[green]✓ Database ready at {db.db_path}[/green]\n"
        f"[green]✓ Config saved to {config.config_path}[/green]\n"
        f"[dim]Applied {count} migration(s)[/dim]\n\n"
        f"[bold]Decision mode:[/bold] {config.config.decision.mode.value}\n\n"
        "[dim]Run 'leadrouter route lead.json' to route a lead[/dim]",
        title="Lead Router"
    ))


# ============================================================================
# ROUTING
# ============================================================================

@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True))
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def route(input_path: str, org: Optional[str], db_path: Optional[str], config_path: Optional[str]):
    """Route a lead from a JSON file.

    \b
    INPUT holds:
      lead      lead attributes (required)
      agents    agent profiles, stored before routing
      history   past lead records for capacity counts
      rules     explicit rules instead of the configured KPI weights
    """
    org_id = org or settings.default_org
    data = _read_input(input_path)
    db = get_db(db_path)
    config = get_config(config_path)

    for item in data.get("agents", []):
        db.save_profile(org_id, AgentProfile.from_dict(item))
    for item in data.get("history", []):
        db.add_lead(org_id, LeadRecord.from_dict(item))

    rules = InMemoryRuleConfig(rules_from_list(data["rules"])) if data.get("rules") else None
    service = get_service(db, config, rules)
    lead = NormalizedLead.from_dict(data["lead"])

    try:
        decision = service.route_lead(org_id, lead)
    except RoutingError as e:
        _fail(f"Routing failed: {e}")

    proposal = decision.proposal
    console.print(Panel(format_explanation_for_display(proposal.explanation), title=f"Lead {lead.lead_id}"))
    _print_proposal(proposal)


@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Print the explanation as JSON")
@click.option("--config", "config_path", help="Custom routing config path")
def explain(input_path: str, as_json: bool, config_path: Optional[str]):
    """Score a lead and print the explanation without saving anything."""
    data = _read_input(input_path)
    config = get_config(config_path)

    lead = NormalizedLead.from_dict(data["lead"])
    agents = [AgentProfile.from_dict(item) for item in data.get("agents", [])]
    rules = rules_from_list(data["rules"]) if data.get("rules") else None
    provider = InMemoryRuleConfig(rules) if rules else config

    result = evaluate(lead, agents, provider.get_rules(settings.default_org), config.config.gating)
    explanation = explain_result(lead, result, agents)

    if as_json:
        click.echo(json.dumps(explanation.to_dict(), indent=2))
        return

    console.print(Panel(format_explanation_for_display(explanation), title=f"Lead {lead.lead_id}"))

    table = Table(title="Ranking")
    table.add_column("Rank", justify="right", style="dim")
    table.add_column("Agent", style="cyan")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Eligible", justify="center")
    for score in result.scores:
        table.add_row(
            str(score.rank),
            score.agent_name or score.agent_id,
            f"{score.normalized_score:.1f}",
            "✓" if score.eligible else f"[dim]{score.ineligibility_reason or '✗'}[/dim]",
        )
    console.print(table)


# ============================================================================
# PROPOSALS
# ============================================================================

@cli.command()
@click.option("--status", "-s", help="Filter by status (PENDING is an alias for PROPOSED)")
@click.option("--limit", "-n", default=20, help="Number of proposals to show")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
def proposals(status: Optional[str], limit: int, org: Optional[str], db_path: Optional[str]):
    """List routing proposals, newest first."""
    try:
        status_filter = ProposalStatus.parse(status) if status else None
    except ValueError:
        raise click.BadParameter(f"unknown status '{status}'", param_hint="--status")

    db = get_db(db_path)
    items = db.list_proposals(org or settings.default_org, status_filter, limit)

    if not items:
        console.print("[yellow]No proposals found matching criteria.[/yellow]")
        return

    table = Table(title=f"Proposals ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Lead")
    table.add_column("Agent", style="cyan")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Confidence", justify="center")
    table.add_column("Status", justify="center")
    table.add_column("Created")

    for proposal in items:
        color = STATUS_COLORS.get(proposal.status.value, "")
        table.add_row(
            proposal.id,
            proposal.lead_id,
            proposal.override_agent_name or proposal.recommended_agent_name or "-",
            f"{proposal.score:g}",
            proposal.confidence.value,
            f"[{color}]{proposal.status.value}[/{color}]",
            proposal.created_at.strftime('%Y-%m-%d %H:%M'),
        )

    console.print(table)


@cli.command()
@click.argument("proposal_id")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
def show(proposal_id: str, org: Optional[str], db_path: Optional[str]):
    """Show a proposal and its explanation."""
    db = get_db(db_path)
    try:
        proposal = db.get(org or settings.default_org, proposal_id)
    except RoutingError as e:
        _fail(str(e))

    console.print(Panel(format_explanation_for_display(proposal.explanation), title=f"Lead {proposal.lead_id}"))
    _print_proposal(proposal)


@cli.command()
@click.argument("proposal_id")
@click.option("--actor", default="cli", help="Who is approving")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def approve(proposal_id: str, actor: str, org: Optional[str], db_path: Optional[str], config_path: Optional[str]):
    """Approve a proposal and assign the recommended agent."""
    service = get_service(get_db(db_path), get_config(config_path))
    try:
        proposal = service.approve_and_apply(org or settings.default_org, proposal_id, actor)
    except RoutingError as e:
        _fail(f"Cannot approve: {e}")
    _print_proposal(proposal)


@cli.command()
@click.argument("proposal_id")
@click.option("--reason", "-r", default="", help="Why the proposal was rejected")
@click.option("--actor", default="cli", help="Who is rejecting")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def reject(proposal_id: str, reason: str, actor: str, org: Optional[str], db_path: Optional[str],
           config_path: Optional[str]):
    """Reject a proposal."""
    service = get_service(get_db(db_path), get_config(config_path))
    try:
        proposal = service.reject_proposal(org or settings.default_org, proposal_id, actor, reason)
    except RoutingError as e:
        _fail(f"Cannot reject: {e}")
    _print_proposal(proposal)


@cli.command()
@click.argument("proposal_id")
@click.argument("agent_id")
@click.option("--no-apply", is_flag=True, help="Record the override without assigning")
@click.option("--actor", default="cli", help="Who is overriding")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def override(proposal_id: str, agent_id: str, no_apply: bool, actor: str, org: Optional[str],
             db_path: Optional[str], config_path: Optional[str]):
    """Assign a different agent than the one recommended."""
    service = get_service(get_db(db_path), get_config(config_path))
    try:
        proposal = service.override_and_apply(
            org or settings.default_org, proposal_id, actor, agent_id, apply_now=not no_apply
        )
    except RoutingError as e:
        _fail(f"Cannot override: {e}")
    _print_proposal(proposal)


@cli.command()
@click.argument("proposal_id")
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def apply(proposal_id: str, org: Optional[str], db_path: Optional[str], config_path: Optional[str]):
    """Write an approved proposal's assignment (retries failed writebacks)."""
    service = get_service(get_db(db_path), get_config(config_path))
    try:
        proposal = service.apply_proposal(org or settings.default_org, proposal_id)
    except RoutingError as e:
        _fail(f"Cannot apply: {e}")
    _print_proposal(proposal)


@cli.command()
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
@click.option("--config", "config_path", help="Custom routing config path")
def expire(org: Optional[str], db_path: Optional[str], config_path: Optional[str]):
    """Expire proposals nobody acted on in time."""
    service = get_service(get_db(db_path), get_config(config_path))
    expired = service.expire_stale(org or settings.default_org)
    if expired:
        console.print(f"[green]Expired {len(expired)} proposal(s)[/green]")
    else:
        console.print("[dim]No stale proposals[/dim]")


@cli.command()
@click.option("--org", help="Organization id")
@click.option("--db", "db_path", help="Custom database path")
def stats(org: Optional[str], db_path: Optional[str]):
    """Show proposal counts by status."""
    counts = get_db(db_path).get_stats(org or settings.default_org)

    table = Table(title="Proposals by Status")
    table.add_column("Status")
    table.add_column("Count", justify="right", style="bold")
    for status in ProposalStatus:
        color = STATUS_COLORS.get(status.value, "")
        table.add_row(f"[{color}]{status.value}[/{color}]", str(counts.get(status.value, 0)))
    console.print(table)


# ============================================================================
# KPI WEIGHTS
# ============================================================================

@cli.group()
def weights():
    """Manage KPI weights used to score agents."""
    pass


def _print_weights(values: dict):
    table = Table(title="KPI Weights")
    table.add_column("KPI", style="cyan")
    table.add_column("Weight", justify="right", style="bold")
    for key in KPI_KEYS:
        table.add_row(key, f"{values.get(key, 0):g}")
    table.add_row("[dim]total[/dim]", f"[dim]{sum(values.values()):g}[/dim]")
    console.print(table)


@weights.command("show")
@click.option("--config", "config_path", help="Custom routing config path")
def weights_show(config_path: Optional[str]):
    """Show current KPI weights."""
    config = get_config(config_path)
    _print_weights(config.get_kpi_weights())
    console.print(f"[dim]Rules version {config.config.rules_version}[/dim]")


@weights.command("set")
@click.argument("assignments", nargs=-1, required=True)
@click.option("--config", "config_path", help="Custom routing config path")
def weights_set(assignments, config_path: Optional[str]):
    """Set KPI weights, e.g. workload=30 hotStreak=0.

    Unnamed KPIs keep their current weight; the result is rescaled to 100.
    """
    config = get_config(config_path)
    values = config.get_kpi_weights()
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or key not in KPI_KEYS:
            raise click.BadParameter(f"expected KPI=WEIGHT with KPI one of {', '.join(KPI_KEYS)}",
                                     param_hint=item)
        try:
            values[key] = float(raw)
        except ValueError:
            raise click.BadParameter("weight must be a number", param_hint=item)
        if values[key] < 0:
            raise click.BadParameter("weight must not be negative", param_hint=item)

    stored = config.set_kpi_weights(values)
    console.print("[green]✓ Weights updated[/green]")
    _print_weights(stored)


@weights.command("reset")
@click.option("--config", "config_path", help="Custom routing config path")
def weights_reset(config_path: Optional[str]):
    """Restore the default KPI weights."""
    config = get_config(config_path)
    config.reset_kpi_weights()
    console.print("[green]✓ Weights reset to defaults[/green]")
    _print_weights(config.get_kpi_weights())


if __name__ == "__main__":
    cli()
