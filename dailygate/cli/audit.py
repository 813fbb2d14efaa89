from __future__ import annotations

import datetime

import dailygate.lib.cli as click
from dailygate.audit import AuditLogger
from dailygate.core import di
from dailygate.model import AuditEventType, AuditFilters, OrganizationID, UserID


@click.group()
def audit(): ...


@audit.command(name="verify")
@click.argument("organization_id", type=click.KeyParamType(OrganizationID))
@click.argument("user_id", type=click.KeyParamType(UserID))
@di.inject
def audit_verify(
    organization_id: OrganizationID,
    user_id: UserID,
    audit: AuditLogger = di.Provide["gate.audit"],
) -> None:
    """Check the hash chain of USER_ID's audit log for tampering."""
    result = audit.verify_chain(user_id, organization_id)
    if result.valid:
        click.echo(f"OK: {result.checked} entries verified")
        return

    click.echo(click.style("TAMPERED", fg="red"), nl=False, err=True)
    click.echo(f": {len(result.invalid_entries)} of {result.checked} entries invalid", err=True)
    click.echo(f"  First invalid: {result.first_invalid}", err=True)
    raise SystemExit(1)


@audit.command(name="query")
@click.option("-u", "--user-id", type=click.KeyParamType(UserID), default=None)
@click.option("-g", "--organization-id", type=click.KeyParamType(OrganizationID), default=None)
@click.option("-e", "--event-type", type=click.EnumType(AuditEventType), default=None)
@click.option("--since", type=click.DateTime(), default=None)
@click.option("--until", type=click.DateTime(), default=None)
@click.option("-n", "--limit", type=click.IntRange(min=1), default=50)
@di.inject
def audit_query(
    user_id: UserID | None,
    organization_id: OrganizationID | None,
    event_type: AuditEventType | None,
    since: datetime.datetime | None,
    until: datetime.datetime | None,
    limit: int,
    audit: AuditLogger = di.Provide["gate.audit"],
) -> None:
    """Print audit log entries, oldest first, one JSON document per line.

    Naive --since/--until values are taken as UTC.
    """
    filters = AuditFilters(
        user_id=user_id,
        organization_id=organization_id,
        event_type=event_type,
        since=since.replace(tzinfo=since.tzinfo or datetime.UTC) if since else None,
        until=until.replace(tzinfo=until.tzinfo or datetime.UTC) if until else None,
        limit=limit,
    )
    for entry in audit.query(filters):
        click.echo(entry.model_dump_json())
