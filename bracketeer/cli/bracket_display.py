"""
Rich-based CLI consumer for TournamentEvent objects.

Lifecycle events are printed as one-line updates; bracket generation,
disputes and the championship get panels and tables.  render_bracket()
draws a BracketView round by round.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bracketeer.events import (
    BracketGeneratedEvent,
    MatchAwaitingResultEvent,
    MatchCompletedEvent,
    MatchDisputedEvent,
    MatchReadyEvent,
    MatchScheduledEvent,
    MatchUnscheduledEvent,
    ParticipantRegisteredEvent,
    ResultSubmittedEvent,
    TimeProposedEvent,
    TournamentCompletedEvent,
    TournamentCreatedEvent,
    TournamentDeletedEvent,
    TournamentEvent,
    TournamentReadyEvent,
)
from bracketeer.views import BracketView, MatchView

console = Console(legacy_windows=False)

_TIME_FMT = "%Y-%m-%d %H:%M %Z"

_STATUS_STYLE = {
    "pending": "dim",
    "scheduling": "cyan",
    "scheduled": "bright_blue",
    "awaiting_result": "yellow",
    "completed": "green",
}


def display_event(event: TournamentEvent) -> None:
    """Dispatch a TournamentEvent to the appropriate display function."""
    match event:
        case TournamentCreatedEvent():
            _tournament_created(event)
        case ParticipantRegisteredEvent():
            console.print(
                f"  [green]+[/] [bold]{event.display_name}[/] registered "
                f"[dim]({event.participant_count}/{event.capacity})[/]"
            )
        case TournamentReadyEvent():
            reason = "closed early by an admin" if event.forced else "full"
            console.print(f"\n[bold]Registration {reason}[/] with {event.participant_count} teams")
        case BracketGeneratedEvent():
            _bracket_generated(event)
        case MatchReadyEvent():
            console.print(
                f"[cyan]●[/] {event.label}  [bold]{event.team_a}[/] vs "
                f"[bold]{event.team_b}[/] [dim]ready for scheduling[/]"
            )
        case TimeProposedEvent():
            console.print(
                f"  [dim]{event.proposer_id} proposed "
                f"{event.proposed_time.strftime(_TIME_FMT)}[/]"
            )
        case MatchScheduledEvent():
            console.print(
                f"  [bright_blue]⏱[/] {event.label} scheduled for "
                f"{event.scheduled_time.strftime(_TIME_FMT)}"
            )
        case MatchUnscheduledEvent():
            console.print(f"  [yellow]↺[/] {event.label} back to negotiation")
        case MatchAwaitingResultEvent():
            console.print(
                f"  [yellow]…[/] {event.label} awaiting results from "
                f"{', '.join(event.scopes)}"
            )
        case ResultSubmittedEvent():
            waiting = ", ".join(event.missing_scopes) or "nobody"
            console.print(
                f"  [dim]{event.submission.scope} host reported; waiting on {waiting}[/]"
            )
        case MatchDisputedEvent():
            _match_disputed(event)
        case MatchCompletedEvent():
            _match_completed(event)
        case TournamentCompletedEvent():
            _tournament_completed(event)
        case TournamentDeletedEvent():
            console.print(
                f"[red]✗[/] Tournament {event.tournament_id} deleted by {event.deleted_by} "
                f"[dim]({event.participants} teams, {event.matches} matches, "
                f"{event.proposals} proposals)[/]"
            )


# --------------------------------------------------------------------------- #
# Display functions                                                            #
# --------------------------------------------------------------------------- #

def _tournament_created(event: TournamentCreatedEvent) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold]{event.game}[/]\n\n"
            f"[dim]Capacity: {event.capacity}  •  "
            f"{event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}[/]",
            title="[bold green] Bracketeer Tournament [/]",
            border_style="green",
            expand=False,
        )
    )


def _bracket_generated(event: BracketGeneratedEvent) -> None:
    console.print()
    console.rule(
        f"[bold]Bracket: {event.total_rounds} rounds, {event.match_count} matches[/]",
        style="bright_blue",
    )
    console.print()

    table = Table(show_header=True, header_style="bold", border_style="dim", show_lines=False)
    table.add_column("Match", style="dim", width=8)
    table.add_column("Team A", min_width=20)
    table.add_column("", width=3, justify="center")
    table.add_column("Team B", min_width=20)

    for label, team_a, team_b in event.pairings:
        table.add_row(label, f"[bold]{team_a}[/]", "vs", f"[bold]{team_b}[/]")
    for name in event.byes:
        table.add_row("", f"[bold]{name}[/]", "→", "[dim]BYE[/]")

    console.print(table)
    console.print()


def _match_disputed(event: MatchDisputedEvent) -> None:
    claims = "\n".join(
        f"{s.scope}: [bold]{s.claimed_winner_id}[/] [dim]({s.reporter_id})[/]"
        for s in event.submissions
    )
    console.print(
        Panel(
            f"Hosts disagree on {event.label}\n\n{claims}\n\n"
            "[dim]An admin must force the result.[/]",
            title="[bold red] Disputed [/]",
            border_style="red",
            expand=False,
        )
    )


def _match_completed(event: MatchCompletedEvent) -> None:
    how = {"report": "reported", "consensus": "hosts agreed", "forced": "admin decision"}
    score = f" {event.score_a}-{event.score_b}" if event.score_a is not None else ""
    console.print(
        f"\n  [green]✓[/] {event.label}: [bold]{event.winner_name}[/] beats "
        f"{event.loser_name}{score} [dim]({how.get(event.decided_by, event.decided_by)})[/]"
    )


def _tournament_completed(event: TournamentCompletedEvent) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]★  {event.winner_name}[/]\n"
            f"[dim]Runner-up: {event.runner_up_name}[/]\n\n"
            f"[dim]{event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}[/]",
            title=f"[bold green] {event.game} Champion [/]",
            border_style="yellow",
            expand=False,
        )
    )


# --------------------------------------------------------------------------- #
# Bracket view                                                                 #
# --------------------------------------------------------------------------- #

def render_bracket(view: BracketView) -> None:
    for rnd in view.rounds:
        table = Table(
            title=f"Round {rnd.number} ({rnd.tag})",
            show_header=True,
            header_style="bold",
            border_style="dim",
            show_lines=False,
        )
        table.add_column("Match", style="dim", width=8)
        table.add_column("Team A", min_width=18)
        table.add_column("Team B", min_width=18)
        table.add_column("Status", width=16)
        table.add_column("Score", width=7, justify="center")
        table.add_column("Winner", min_width=18)

        for m in rnd.matches:
            table.add_row(
                m.label,
                _team_cell(m, m.team_a),
                _team_cell(m, m.team_b),
                _status_cell(m),
                f"{m.score_a}-{m.score_b}" if m.score_a is not None else "",
                m.winner or "",
            )
        if rnd.bye:
            table.add_row("", f"[bold]{rnd.bye}[/]", "[dim]BYE[/]", "", "", "")

        console.print()
        console.print(table)

    if view.winner:
        console.print(f"\n[bold yellow]★ Champion: {view.winner}[/]\n")


def _team_cell(m: MatchView, name: str) -> str:
    if m.winner and name == m.winner:
        return f"[bold green]{name}[/]"
    if name.startswith("Winner of"):
        return f"[dim]{name}[/]"
    return name


def _status_cell(m: MatchView) -> str:
    if m.disputed:
        return "[red]disputed[/]"
    style = _STATUS_STYLE.get(m.status, "")
    text = m.status.replace("_", " ")
    if m.forced_by:
        text += " (forced)"
    return f"[{style}]{text}[/]"
