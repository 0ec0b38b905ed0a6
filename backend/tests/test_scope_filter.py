"""
test_scope_filter.py — global / team / me selections.
"""

import pytest

from app.services.errors import InvalidRequestError
from app.services.profile_resolver import Profile
from app.services.scope_filter import resolve_scope, validate_scope


def _resolve(scope, requester, team_of_requester, projects, employees, assignments, team=None):
    return resolve_scope(scope, requester, team_of_requester, projects, employees, assignments, team=team)


class TestResolveScope:

    def test_global_is_every_active_project(self, projects, employees, assignments):
        sel = _resolve("global", "e1", "Dev", projects, employees, assignments)
        assert sel.project_ids == {"p1", "p2", "p4"}
        assert sel.allowed_employee_ids is None

    def test_team_members_share_the_profile(self, projects, employees, assignments):
        """e1 (Dev) and e4 (Développement) both resolve to dev; p3 is archived."""
        sel = _resolve("team", "e1", "Dev", projects, employees, assignments)
        assert sel.profile is Profile.DEV
        assert sel.allowed_employee_ids == {"e1", "e4"}
        assert sel.project_ids == {"p1", "p4"}

    def test_team_without_label_is_conception(self, projects, employees, assignments):
        sel = _resolve("team", "e3", None, projects, employees, assignments)
        assert sel.profile is Profile.CONCEPTION
        assert sel.allowed_employee_ids == {"e3"}
        assert sel.project_ids == {"p2"}

    def test_team_override(self, projects, employees, assignments):
        sel = _resolve("team", "e1", "Dev", projects, employees, assignments, team="Créa")
        assert sel.allowed_employee_ids == {"e2"}
        assert sel.project_ids == {"p1", "p2"}

    def test_me_is_own_assignments(self, projects, employees, assignments):
        sel = _resolve("me", "e2", "Créa", projects, employees, assignments)
        assert sel.project_ids == {"p1", "p2"}
        assert sel.allowed_employee_ids == {"e2"}

    def test_me_without_assignments_is_empty(self, projects, employees, assignments):
        sel = _resolve("me", "nobody", None, projects, employees, assignments)
        assert sel.project_ids == frozenset()


class TestValidateScope:

    @pytest.mark.parametrize("scope", ["global", "team", "me"])
    def test_known_scopes(self, scope):
        assert validate_scope(scope) == scope

    @pytest.mark.parametrize("scope", ["all", "", "Global", None])
    def test_unknown_scope_rejected(self, scope):
        with pytest.raises(InvalidRequestError):
            validate_scope(scope)
