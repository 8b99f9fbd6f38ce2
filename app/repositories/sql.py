"""
SQL implementation of the backend interface on Flask-SQLAlchemy.

Each write commits on its own. Conditional writes (``update`` with a filter
on the current value) are single UPDATE statements, so two operators racing
for the same row cannot both match.
"""

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, or_, select
from sqlalchemy import update as sa_update

from app.models import db
from app.models.audit import AuditLog
from app.models.auth import AuthSession, Profile, User
from app.models.project import Project, ProjectMember
from app.models.support import Department, SupportTicket, TicketMessage
from app.models.task import Task, TaskComment
from app.repositories.base import Backend, Repository
from app.repositories.resilience import backend_call


class SqlRepository(Repository):
    def __init__(self, model):
        self.model = model
        self.resource = model.__name__

    def _column(self, name):
        try:
            return getattr(self.model, name)
        except AttributeError:
            raise ValueError(f"{self.resource} has no field {name!r}") from None

    def _where(self, stmt, filter_equals):
        for name, value in (filter_equals or {}).items():
            col = self._column(name)
            if value is None:
                stmt = stmt.where(col.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(col.in_(list(value)))
            else:
                stmt = stmt.where(col == value)
        return stmt

    def _order(self, stmt, order_by):
        for key in order_by or ():
            col = self._column(key.lstrip("-"))
            stmt = stmt.order_by(col.desc() if key.startswith("-") else col.asc())
        return stmt

    @backend_call
    def select(self, filter_equals=None, *, order_by=None, limit=None, search=None):
        stmt = self._where(select(self.model), filter_equals)
        if search:
            fields, text = search
            text = (text or "").strip()
            if text:
                pattern = f"%{text}%"
                stmt = stmt.where(or_(*[self._column(f).ilike(pattern) for f in fields]))
        stmt = self._order(stmt, order_by)
        if limit:
            stmt = stmt.limit(limit)
        return list(db.session.execute(stmt).scalars().all())

    @backend_call
    def get(self, record_id):
        return db.session.get(self.model, record_id)

    @backend_call
    def insert(self, record):
        obj = self.model(**record)
        db.session.add(obj)
        db.session.commit()
        return obj

    @backend_call
    def update(self, filter_equals, patch):
        if not filter_equals:
            raise ValueError("update() requires a filter")
        stmt = (
            self._where(sa_update(self.model), filter_equals)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount

    @backend_call
    def delete(self, filter_equals):
        if not filter_equals:
            raise ValueError("delete() requires a filter")
        stmt = self._where(sa_delete(self.model), filter_equals).execution_options(
            synchronize_session=False
        )
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount

    @backend_call
    def max_value(self, field, filter_equals=None):
        stmt = self._where(select(func.max(self._column(field))), filter_equals)
        return db.session.execute(stmt).scalar()

    @backend_call
    def count(self, filter_equals=None):
        stmt = self._where(select(func.count()).select_from(self.model), filter_equals)
        return db.session.execute(stmt).scalar() or 0


def build_sql_backend() -> Backend:
    return Backend(
        users=SqlRepository(User),
        profiles=SqlRepository(Profile),
        sessions=SqlRepository(AuthSession),
        projects=SqlRepository(Project),
        members=SqlRepository(ProjectMember),
        tasks=SqlRepository(Task),
        comments=SqlRepository(TaskComment),
        departments=SqlRepository(Department),
        tickets=SqlRepository(SupportTicket),
        messages=SqlRepository(TicketMessage),
        audit=SqlRepository(AuditLog),
    )
