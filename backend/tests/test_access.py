# tests/test_access.py — Policy table and evaluator
import pytest

from access import (
    POLICIES, Policy, Relation, AccessGrant,
    check_plan, check_role, relation_holds, evaluate,
)
from auth import CurrentUser
from errors import Forbidden, NotFound, UpgradeRequired
from models import Project, ProjectCollaborator, Task, UserRole, SubscriptionPlan
from plans import meets_plan
from tests.conftest import make_project, add_collaborator


def _user(id=1, role=UserRole.USER, plan=SubscriptionPlan.FREE):
    return CurrentUser(id=id, username=f"user{id}", role=role, plan=plan)


OWNER_ID = 1
OTHER_ID = 2
PROJECT = Project(id=10, name="P", user_id=OWNER_ID)


def _collab(role):
    return ProjectCollaborator(project_id=PROJECT.id, user_id=OTHER_ID, role=role)


class TestPlanOrder:
    @pytest.mark.parametrize("min_plan,user_plan,expected", [
        ("free", "free", True),
        ("free", "enterprise", True),
        ("pro", "free", False),
        ("pro", "pro", True),
        ("pro", "enterprise", True),
        ("enterprise", "pro", False),
    ])
    def test_meets_plan(self, min_plan, user_plan, expected):
        assert meets_plan(min_plan, user_plan) is expected


class TestRelations:
    def test_owner_satisfies_every_relation(self):
        for relation in Relation:
            assert relation_holds(relation, OWNER_ID, PROJECT)

    def test_stranger_satisfies_only_none(self):
        assert relation_holds(Relation.NONE, OTHER_ID, PROJECT)
        for relation in (Relation.MEMBER, Relation.EDITOR, Relation.PARTICIPANT, Relation.OWNER):
            assert not relation_holds(relation, OTHER_ID, PROJECT)

    @pytest.mark.parametrize("role", ["member", "editor", "owner", "admin"])
    def test_any_collaborator_is_member(self, role):
        assert relation_holds(Relation.MEMBER, OTHER_ID, PROJECT, _collab(role))
        assert relation_holds(Relation.PARTICIPANT, OTHER_ID, PROJECT, _collab(role))

    @pytest.mark.parametrize("role,expected", [
        ("editor", True),
        ("member", False),
        ("owner", False),
        ("admin", False),
        ("Editor", False),
    ])
    def test_only_exact_editor_role_is_editor(self, role, expected):
        assert relation_holds(Relation.EDITOR, OTHER_ID, PROJECT, _collab(role)) is expected

    def test_collaborators_never_owner(self):
        assert not relation_holds(Relation.OWNER, OTHER_ID, PROJECT, _collab("editor"))

    def test_task_creator_and_assignee_are_participants(self):
        created = Task(id=5, project_id=PROJECT.id, created_by_id=OTHER_ID, assigned_to_id=None)
        assigned = Task(id=6, project_id=PROJECT.id, created_by_id=OWNER_ID, assigned_to_id=OTHER_ID)
        unrelated = Task(id=7, project_id=PROJECT.id, created_by_id=OWNER_ID, assigned_to_id=3)
        assert relation_holds(Relation.PARTICIPANT, OTHER_ID, PROJECT, task=created)
        assert relation_holds(Relation.PARTICIPANT, OTHER_ID, PROJECT, task=assigned)
        assert not relation_holds(Relation.PARTICIPANT, OTHER_ID, PROJECT, task=unrelated)
        # Creator/assignee does not extend to other relations
        assert not relation_holds(Relation.MEMBER, OTHER_ID, PROJECT, task=assigned)


class TestPolicyTable:
    def test_admin_policies(self):
        for action in ("users:list", "users:read", "users:update_plan", "users:update_role", "analytics:admin"):
            assert POLICIES[action].role == UserRole.ADMIN
            assert POLICIES[action].resource is None

    def test_owner_only_actions(self):
        for action in ("project:delete", "task:delete", "collaborators:add", "collaborators:remove"):
            assert POLICIES[action].relation == Relation.OWNER

    def test_editor_actions(self):
        assert POLICIES["project:update"].relation == Relation.EDITOR
        assert POLICIES["project_tags:add"].relation == Relation.EDITOR

    def test_collaborator_add_requires_pro(self):
        assert POLICIES["collaborators:add"].min_plan == SubscriptionPlan.PRO

    def test_check_role(self):
        check_role(POLICIES["users:list"], _user(role=UserRole.ADMIN))
        with pytest.raises(Forbidden) as exc:
            check_role(POLICIES["users:list"], _user())
        assert exc.value.message == "Admin access required"

    def test_check_plan(self):
        policy = Policy(min_plan=SubscriptionPlan.PRO)
        check_plan(policy, _user(plan=SubscriptionPlan.ENTERPRISE))
        with pytest.raises(UpgradeRequired) as exc:
            check_plan(policy, _user(plan=SubscriptionPlan.FREE))
        assert exc.value.to_dict() == {"message": "Upgrade required", "requiredPlan": "pro"}


@pytest.mark.asyncio
class TestEvaluate:
    async def test_grant_carries_project(self, storage, db_session, test_user):
        project = await make_project(db_session, test_user)
        grant = await evaluate("project:read", _user(test_user.id), storage, project.id)
        assert isinstance(grant, AccessGrant)
        assert grant.project.id == project.id
        assert grant.collaboration is None

    async def test_missing_project_is_404(self, storage, test_user):
        with pytest.raises(NotFound):
            await evaluate("project:read", _user(test_user.id), storage, 9999)

    async def test_missing_task_is_404(self, storage, test_user):
        with pytest.raises(NotFound) as exc:
            await evaluate("task:update", _user(test_user.id), storage, 9999)
        assert exc.value.message == "Task not found"

    async def test_plan_checked_before_resource_lookup(self, storage, test_user):
        # A free user gets the upgrade prompt even for a project that does not exist
        with pytest.raises(UpgradeRequired):
            await evaluate("collaborators:add", _user(test_user.id), storage, 9999)

    async def test_resource_lookup_before_relationship(self, storage, other_user):
        with pytest.raises(NotFound):
            await evaluate("project:delete", _user(other_user.id), storage, 9999)

    async def test_member_collaborator(self, storage, db_session, test_user, other_user):
        project = await make_project(db_session, test_user)
        await add_collaborator(db_session, project, other_user, role="member")
        user = _user(other_user.id)

        grant = await evaluate("project:read", user, storage, project.id)
        assert grant.collaboration.role == "member"
        with pytest.raises(Forbidden) as exc:
            await evaluate("project:update", user, storage, project.id)
        assert exc.value.message == "Unauthorized to update this project"
