"""Audience scope selection: which projects and employees an aggregate covers."""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

from app.models.records import AssignmentRecord, EmployeeRecord, ProjectRecord
from app.services.errors import InvalidRequestError
from app.services.profile_resolver import Profile, resolve_profile

SCOPE_GLOBAL = "global"
SCOPE_TEAM = "team"
SCOPE_ME = "me"
SCOPES = (SCOPE_GLOBAL, SCOPE_TEAM, SCOPE_ME)


@dataclass(frozen=True)
class ScopeSelection:
    scope: str
    project_ids: FrozenSet[str]
    # None means no employee restriction
    allowed_employee_ids: Optional[FrozenSet[str]] = None
    profile: Optional[Profile] = None


def validate_scope(scope: str) -> str:
    if scope not in SCOPES:
        raise InvalidRequestError(f"scope must be one of {list(SCOPES)}, got '{scope}'")
    return scope


def resolve_scope(
    scope: str,
    requester_id: str,
    requester_team: Optional[str],
    projects: Iterable[ProjectRecord],
    employees: Iterable[EmployeeRecord],
    assignments: Iterable[AssignmentRecord],
    team: Optional[str] = None,
) -> ScopeSelection:
    """
    Compute the included project ids and allowed employee ids.

    ``team`` overrides the requester's own team for the team scope.
    Archived projects are excluded whatever the scope.
    """
    validate_scope(scope)
    active_ids = {p.id for p in projects if not p.is_archived}

    if scope == SCOPE_GLOBAL:
        return ScopeSelection(scope=scope, project_ids=frozenset(active_ids))

    if scope == SCOPE_TEAM:
        profile = resolve_profile(team if team else requester_team)
        members = frozenset(e.id for e in employees if resolve_profile(e.team) == profile)
        assigned = {a.project_id for a in assignments if a.employee_id in members}
        return ScopeSelection(
            scope=scope,
            project_ids=frozenset(assigned & active_ids),
            allowed_employee_ids=members,
            profile=profile,
        )

    assigned = {a.project_id for a in assignments if a.employee_id == requester_id}
    return ScopeSelection(
        scope=scope,
        project_ids=frozenset(assigned & active_ids),
        allowed_employee_ids=frozenset({requester_id}),
    )
