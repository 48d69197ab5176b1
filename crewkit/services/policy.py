"""Authorization policy.

Route-level role allow-lists live in ``crewkit.deps.require_roles``; every
rule that depends on who owns a resource, or on its state, is answered here
by :func:`can` so it can be tested without a request.
"""
from datetime import date
from typing import Any, Optional

from crewkit.error import Forbidden
from crewkit.models import (
    Assembly,
    AssemblyStatus,
    AssemblyUsageLog,
    EndOfDayReport,
    Role,
    Team,
    User,
)
from crewkit.services import clock

ROLE_RANK = {
    Role.FIELD: 0,
    Role.MANAGER: 1,
    Role.ADMIN: 2,
    Role.SUPERUSER: 3,
}

MANAGERS = (Role.MANAGER, Role.ADMIN, Role.SUPERUSER)
ADMINS = (Role.ADMIN, Role.SUPERUSER)


def at_least(user: User, role: Role) -> bool:
    return ROLE_RANK[user.role] >= ROLE_RANK[role]


def is_admin(user: User) -> bool:
    return user.role in ADMINS


def _owns(user: User, owner_id: Optional[int]) -> bool:
    return owner_id is not None and owner_id == user.id


def _usage_delete(user: User, log: AssemblyUsageLog, today: Optional[date]) -> bool:
    if is_admin(user):
        return True
    if not _owns(user, log.user_id):
        return False
    if user.role == Role.FIELD:
        today = today or clock.today()
        return clock.local_date(log.date) == today
    return True


def _assembly_edit(user: User, assembly: Assembly) -> bool:
    if at_least(user, Role.MANAGER):
        return True
    return _owns(user, assembly.created_by_id) and assembly.status in (
        AssemblyStatus.DRAFT,
        AssemblyStatus.REJECTED,
    )


def _assembly_delete(user: User, assembly: Assembly) -> bool:
    if at_least(user, Role.MANAGER):
        return True
    return _owns(user, assembly.created_by_id) and assembly.status == AssemblyStatus.DRAFT


def _assembly_set_status(user: User, status: Optional[AssemblyStatus]) -> bool:
    if status in (AssemblyStatus.APPROVED, AssemblyStatus.REJECTED):
        return is_admin(user)
    if user.role == Role.FIELD:
        return status in (None, AssemblyStatus.DRAFT, AssemblyStatus.PENDING_APPROVAL)
    return True


def _team_view(user: User, team: Team) -> bool:
    if is_admin(user):
        return True
    return user.role == Role.MANAGER and user.team_id is not None and user.team_id == team.id


def _report_view(user: User, report: EndOfDayReport) -> bool:
    if is_admin(user):
        return True
    return user.role == Role.MANAGER and user.team_id is not None and user.team_id == report.team_id


def _user_manage(user: User, target: User) -> bool:
    if not is_admin(user):
        return False
    if target.role == Role.SUPERUSER:
        return user.role == Role.SUPERUSER
    if target.role == Role.ADMIN and user.role == Role.ADMIN:
        return target.id == user.id
    return True


def _user_assign_role(user: User, role: Optional[Role]) -> bool:
    if role in (Role.ADMIN, Role.SUPERUSER):
        return user.role == Role.SUPERUSER
    return is_admin(user)


def _user_delete(user: User, target: User) -> bool:
    if target.id == user.id:
        return False
    return _user_manage(user, target)


_RULES = {
    "usage:delete": _usage_delete,
    "assembly:edit": lambda user, assembly, today: _assembly_edit(user, assembly),
    "assembly:delete": lambda user, assembly, today: _assembly_delete(user, assembly),
    "assembly:set_status": lambda user, status, today: _assembly_set_status(user, status),
    "team:view": lambda user, team, today: _team_view(user, team),
    "report:view": lambda user, report, today: _report_view(user, report),
    "user:manage": lambda user, target, today: _user_manage(user, target),
    "user:assign_role": lambda user, role, today: _user_assign_role(user, role),
    "user:delete": lambda user, target, today: _user_delete(user, target),
    "settings:update": lambda user, _resource, today: user.role == Role.SUPERUSER,
}


def can(user: User, action: str, resource: Any = None, *, today: Optional[date] = None) -> bool:
    """Decide whether ``user`` may perform ``action`` on ``resource``.

    ``today`` overrides the local calendar day used by same-day rules.
    Unknown actions are denied.
    """
    rule = _RULES.get(action)
    if rule is None:
        return False
    return bool(rule(user, resource, today))


def authorize(
    user: User,
    action: str,
    resource: Any = None,
    *,
    message: str = "Access denied",
    today: Optional[date] = None,
) -> None:
    if not can(user, action, resource, today=today):
        raise Forbidden(message)
