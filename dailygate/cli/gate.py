from __future__ import annotations

import datetime
import time

import dailygate.lib.cli as click
from dailygate.core import di
from dailygate.gate.gate import AssessmentGate
from dailygate.gate.sweeper import SessionSweeper, sweep_expired_sessions
from dailygate.model import OrganizationID, Progress, Question, UserID


@click.group()
def gate(): ...


@gate.command(name="check")
@click.argument("organization_id", type=click.KeyParamType(OrganizationID))
@click.argument("user_id", type=click.KeyParamType(UserID))
@click.option("-t", "--task-type", default=None)
@di.inject
def gate_check(
    organization_id: OrganizationID,
    user_id: UserID,
    task_type: str | None,
    gate: AssessmentGate = di.Provide["gate.gate"],
) -> None:
    """Ask whether USER_ID may use AI-assisted capabilities right now."""
    decision = gate.can_proceed(user_id, organization_id, task_type)
    click.echo(decision.model_dump_json(indent=2))
    if not decision.allowed:
        raise SystemExit(1)


@gate.command(name="state")
@click.argument("organization_id", type=click.KeyParamType(OrganizationID))
@click.argument("user_id", type=click.KeyParamType(UserID))
@di.inject
def gate_state(
    organization_id: OrganizationID,
    user_id: UserID,
    gate: AssessmentGate = di.Provide["gate.gate"],
) -> None:
    """Print the stored assessment state of USER_ID."""
    click.echo(gate.get_state(user_id, organization_id).model_dump_json(indent=2))


@gate.command(name="assess")
@click.argument("organization_id", type=click.KeyParamType(OrganizationID))
@click.argument("user_id", type=click.KeyParamType(UserID))
@di.inject
def gate_assess(
    organization_id: OrganizationID,
    user_id: UserID,
    gate: AssessmentGate = di.Provide["gate.gate"],
) -> None:
    """Take today's assessment for USER_ID at the terminal."""

    def ask(question: Question) -> str:
        click.echo()
        click.echo(click.style(question.prompt, bold=True))
        for i, choice in enumerate(question.choices, start=1):
            click.echo(f"  {i}. {choice}")
        if question.choices:
            picked = click.prompt("answer", type=click.IntRange(1, len(question.choices)))
            return question.choices[picked - 1]
        return click.prompt("answer")

    def progress(p: Progress) -> None:
        total = f"/{p.total}" if p.total else ""
        click.echo(click.style(f"[{p.answered}{total}]", fg="cyan"))

    handle = gate.start_assessment(user_id, organization_id)
    state = gate.conduct_assessment(handle, ask, progress)
    click.echo()
    click.echo(f"State: {state.state.value}")
    if state.last_result is not None:
        click.echo(f"  Passed: {state.last_result.passed}")


@gate.command(name="sweep")
@click.option("--loop", is_flag=True, default=False, help="keep sweeping at the configured interval")
@di.inject
def gate_sweep(
    loop: bool,
    gate: AssessmentGate = di.Provide["gate.gate"],
    sweeper: SessionSweeper = di.Provide["gate.sweeper"],
) -> None:
    """Expire assessment sessions that have run past their maximum duration."""
    if not loop:
        expired = sweep_expired_sessions(gate)
        click.echo(f"Expired {len(expired)} session(s)")
        for organization_id, user_id in expired:
            click.echo(f"  {organization_id} {user_id}")
        return

    sweeper.start()
    try:
        while sweeper.running:
            time.sleep(1)
    finally:
        sweeper.stop(timeout=datetime.timedelta(seconds=5))
