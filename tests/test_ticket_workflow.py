"""
Support desk tests — ticket filing, visibility, claiming, operator updates,
message threads and the stats/analytics gates.
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import (
    AlreadyAssignedError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models import db
from app.models.audit import AuditLog
from app.models.support import DEFAULT_DEPARTMENTS, Department, SupportTicket
from app.services import ticket_service as tks
from app.services.roles import RoleContext
from app.utils.helpers import as_utc


def _ctx(user, acting_role=None):
    role = user.profile.global_role if user.profile else "user"
    return RoleContext(user_id=user.id, persisted_role=role, acting_role=acting_role)


@pytest.fixture()
def customer(make_user):
    return make_user("customer@example.com", full_name="Casey Customer")


# ═════════════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════════════


class TestDepartments:
    def test_seed_is_idempotent(self):
        assert tks.seed_departments() == len(DEFAULT_DEPARTMENTS)
        assert tks.seed_departments() == 0
        assert Department.query.count() == len(DEFAULT_DEPARTMENTS)

    def test_listed_by_name(self, make_department):
        make_department("Technical")
        make_department("Billing")
        assert [d["name"] for d in tks.list_departments()] == ["Billing", "Technical"]


# ═════════════════════════════════════════════════════════════════════════════
# Filing & visibility
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateTicket:
    def test_defaults(self, customer):
        ticket = tks.create_ticket(_ctx(customer), {"subject": " Login broken ", "description": "500 on submit"})
        assert ticket["subject"] == "Login broken"
        assert ticket["status"] == "open"
        assert ticket["priority"] == "medium"
        assert ticket["department_id"] is None
        assert ticket["assigned_to_user_id"] is None
        assert ticket["submitter_id"] == customer.id

    def test_subject_and_description_required(self, customer):
        with pytest.raises(ValidationError) as exc:
            tks.create_ticket(_ctx(customer), {"subject": "", "description": " "})
        assert set(exc.value.details) == {"subject", "description"}
        assert SupportTicket.query.count() == 0

    def test_unknown_priority(self, customer):
        with pytest.raises(ValidationError):
            tks.create_ticket(_ctx(customer), {"subject": "S", "description": "D", "priority": "asap"})

    def test_unknown_department(self, customer):
        with pytest.raises(ValidationError):
            tks.create_ticket(_ctx(customer), {"subject": "S", "description": "D", "department_id": 99})


class TestVisibility:
    def test_users_only_see_their_own(self, customer, make_user, make_ticket):
        other = make_user("other@example.com")
        mine = make_ticket(customer.id, subject="Mine")
        theirs = make_ticket(other.id, subject="Theirs")
        listed = [t["subject"] for t in tks.list_tickets(_ctx(customer))]
        assert listed == ["Mine"]
        assert tks.get_ticket(mine.id, _ctx(customer))["subject"] == "Mine"
        with pytest.raises(NotFoundError):
            tks.get_ticket(theirs.id, _ctx(customer))

    def test_operator_sees_everything(self, operator, customer, make_user, make_ticket):
        make_ticket(customer.id)
        make_ticket(make_user("other@example.com").id)
        assert len(tks.list_tickets(_ctx(operator))) == 2

    def test_assumed_role_loses_operator_view(self, operator, customer, make_ticket):
        make_ticket(customer.id)
        assert tks.list_tickets(_ctx(operator, acting_role="developer")) == []

    def test_filters_and_search(self, operator, customer, make_ticket):
        make_ticket(customer.id, subject="Invoice missing", priority="high")
        make_ticket(customer.id, subject="Cannot log in", priority="low", status="resolved")
        ctx = _ctx(operator)
        assert [t["subject"] for t in tks.list_tickets(ctx, priority="high")] == ["Invoice missing"]
        assert [t["subject"] for t in tks.list_tickets(ctx, status="resolved")] == ["Cannot log in"]
        assert [t["subject"] for t in tks.list_tickets(ctx, search="invoice")] == ["Invoice missing"]

    def test_views(self, operator, customer, make_ticket):
        make_ticket(customer.id, subject="Mine to fix", assigned_to_user_id=operator.id)
        make_ticket(customer.id, subject="Nobody's")
        ctx = _ctx(operator)
        assert [t["subject"] for t in tks.list_tickets(ctx, view="assigned")] == ["Mine to fix"]
        assert [t["subject"] for t in tks.list_tickets(ctx, view="unassigned")] == ["Nobody's"]

    def test_unknown_view(self, operator):
        with pytest.raises(ValidationError):
            tks.list_tickets(_ctx(operator), view="starred")


# ═════════════════════════════════════════════════════════════════════════════
# Operator workflow
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignToSelf:
    def test_claim_moves_open_ticket_to_in_progress(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id)
        result = tks.assign_to_self(ticket.id, _ctx(operator))
        assert result["assigned_to_user_id"] == operator.id
        assert result["status"] == "in_progress"
        log = AuditLog.query.filter_by(action="ticket.assign_to_self").one()
        assert log.entity_type == "ticket"

    def test_claim_keeps_non_open_status(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, status="resolved")
        assert tks.assign_to_self(ticket.id, _ctx(operator))["status"] == "resolved"

    def test_second_claim_fails(self, operator, customer, make_user, make_ticket):
        second = make_user("ops2@example.com", role="super_admin")
        ticket = make_ticket(customer.id)
        tks.assign_to_self(ticket.id, _ctx(operator))
        with pytest.raises(AlreadyAssignedError) as exc:
            tks.assign_to_self(ticket.id, _ctx(second))
        assert exc.value.assignee_id == operator.id
        assert db.session.get(SupportTicket, ticket.id).assigned_to_user_id == operator.id

    def test_regular_user_cannot_claim(self, customer, make_ticket):
        ticket = make_ticket(customer.id)
        with pytest.raises(PermissionDenied):
            tks.assign_to_self(ticket.id, _ctx(customer))

    def test_missing_ticket(self, operator):
        with pytest.raises(NotFoundError):
            tks.assign_to_self(12345, _ctx(operator))


class TestAdminUpdate:
    def test_routing_open_ticket_starts_work(self, operator, customer, make_department):
        dept = make_department("Technical")
        ticket = tks.create_ticket(
            _ctx(customer), {"subject": "Site down", "description": "All pages 502", "priority": "urgent"},
        )
        assert ticket["status"] == "open" and ticket["department_id"] is None

        result = tks.admin_update(ticket["id"], _ctx(operator), department_id=dept.id)
        assert result["department_id"] == dept.id
        assert result["department"] == "Technical"
        assert result["status"] == "in_progress"
        assert result["priority"] == "urgent"

    def test_explicit_status_wins_over_routing(self, operator, customer, make_ticket, make_department):
        dept = make_department()
        ticket = make_ticket(customer.id)
        result = tks.admin_update(ticket.id, _ctx(operator), department_id=dept.id, status="resolved")
        assert result["status"] == "resolved"

    def test_resolved_at_set_and_cleared(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, status="in_progress")
        resolved = tks.admin_update(ticket.id, _ctx(operator), status="resolved")
        assert resolved["resolved_at"] is not None
        reopened = tks.admin_update(ticket.id, _ctx(operator), status="in_progress")
        assert reopened["resolved_at"] is None

    def test_close_from_any_state(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, status="open")
        assert tks.admin_update(ticket.id, _ctx(operator), status="closed")["status"] == "closed"

    def test_invalid_transition(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, status="closed")
        with pytest.raises(InvalidTransitionError):
            tks.admin_update(ticket.id, _ctx(operator), status="resolved")

    def test_clearing_department(self, operator, customer, make_ticket, make_department):
        dept = make_department()
        ticket = make_ticket(customer.id, status="in_progress", department_id=dept.id)
        result = tks.admin_update(ticket.id, _ctx(operator), department_id=None)
        assert result["department_id"] is None
        assert result["status"] == "in_progress"

    def test_update_is_audited_with_diff(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, priority="low")
        tks.admin_update(ticket.id, _ctx(operator), priority="high")
        log = AuditLog.query.filter_by(action="ticket.admin_update").one()
        assert log.diff == {"priority": {"old": "low", "new": "high"}}

    def test_no_change_writes_nothing(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id, priority="low")
        tks.admin_update(ticket.id, _ctx(operator), priority="low")
        assert AuditLog.query.count() == 0

    def test_regular_user_rejected(self, customer, make_ticket):
        ticket = make_ticket(customer.id)
        with pytest.raises(PermissionDenied):
            tks.admin_update(ticket.id, _ctx(customer), status="closed")


# ═════════════════════════════════════════════════════════════════════════════
# Messages
# ═════════════════════════════════════════════════════════════════════════════


class TestMessages:
    def test_submitter_reply_does_not_count_as_response(self, customer, make_ticket):
        ticket = make_ticket(customer.id)
        tks.post_message(ticket.id, _ctx(customer), "Any news?")
        assert db.session.get(SupportTicket, ticket.id).first_response_at is None

    def test_first_operator_reply_stamps_first_response(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id)
        ticket_id = ticket.id
        tks.post_message(ticket_id, _ctx(operator), "Looking into it")
        first = db.session.get(SupportTicket, ticket_id).first_response_at
        assert first is not None
        tks.post_message(ticket_id, _ctx(operator), "Fixed now")
        assert db.session.get(SupportTicket, ticket_id).first_response_at == first

    def test_reply_touches_ticket(self, operator, customer, make_ticket):
        stale = datetime(2024, 1, 1, tzinfo=timezone.utc)
        ticket_id = make_ticket(customer.id, updated_at=stale).id
        tks.post_message(ticket_id, _ctx(operator), "On it")
        assert as_utc(db.session.get(SupportTicket, ticket_id).updated_at) > stale

    def test_thread_in_order(self, operator, customer, make_ticket):
        ticket = make_ticket(customer.id)
        tks.post_message(ticket.id, _ctx(customer), "first")
        tks.post_message(ticket.id, _ctx(operator), "second")
        assert [m["content"] for m in tks.list_messages(ticket.id, _ctx(customer))] == ["first", "second"]

    def test_empty_message_rejected(self, customer, make_ticket):
        ticket = make_ticket(customer.id)
        with pytest.raises(ValidationError):
            tks.post_message(ticket.id, _ctx(customer), "   ")

    def test_others_thread_hidden(self, customer, make_user, make_ticket):
        ticket = make_ticket(make_user("other@example.com").id)
        with pytest.raises(NotFoundError):
            tks.list_messages(ticket.id, _ctx(customer))


# ═════════════════════════════════════════════════════════════════════════════
# Stats
# ═════════════════════════════════════════════════════════════════════════════


class TestStats:
    def test_counts_scoped_to_caller(self, operator, customer, make_user, make_ticket):
        make_ticket(customer.id, priority="high")
        make_ticket(customer.id, status="closed")
        make_ticket(make_user("other@example.com").id)
        mine = tks.ticket_stats(_ctx(customer))
        assert mine["total"] == 2
        assert mine["by_status"] == {"open": 1, "in_progress": 0, "resolved": 0, "closed": 1}
        assert mine["by_priority"]["high"] == 1
        assert tks.ticket_stats(_ctx(operator))["total"] == 3

    def test_analytics_operator_only(self, customer):
        with pytest.raises(PermissionDenied):
            tks.ticket_analytics(_ctx(customer))

    def test_analytics_for_operator(self, operator, customer, make_ticket):
        make_ticket(customer.id)
        report = tks.ticket_analytics(_ctx(operator))
        assert report["total"] == 1
        assert set(report) >= {"trends", "departments", "response_times"}
