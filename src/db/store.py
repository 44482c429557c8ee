"""Persistence adapter: the only component that talks to the database.

Every public method opens its own short session and commits on success,
unless the caller passes ``session=`` from ``Store.transaction()`` — then the
method joins that unit of work and the caller owns commit/rollback.  This is
how multi-step operations (cart add, checkout, task mutation + audit) stay
atomic.

Database errors are logged with their traceback and re-raised as
``StoreError`` so tools can turn them into a polite failure envelope without
leaking SQL to the user.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import create_engine, delete, func, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import (
    AgentAction,
    AgentTask,
    Base,
    CartItem,
    ChatSession,
    Invoice,
    InvoiceItem,
    KBArticle,
    Message,
    NavModule,
    NavPath,
    Priority,
    Product,
    SupportTicket,
    TaskStatus,
    TicketStatus,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)

# Attempts at claiming a free sequence number before giving up
MAX_SEQUENCE_ATTEMPTS = 5

TASK_FILTERS = (
    "all", "todo", "in_progress", "completed", "archived", "high_priority", "overdue",
)
_CLOSED_STATUSES = (TaskStatus.completed.value, TaskStatus.archived.value)


class StoreError(Exception):
    """Raised when a store operation fails at the database layer."""


class Store:
    """Named query/mutation operations over the relational backend."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, pool_timeout: int = 30) -> Store:
        """Build a store for *url*.

        In-memory SQLite shares one connection across threads (``StaticPool``)
        so the FastAPI worker thread and tests see the same database.
        """
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": pool_timeout}
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine = create_engine(
                    url, connect_args=connect_args, poolclass=StaticPool, echo=echo,
                )
            else:
                engine = create_engine(url, connect_args=connect_args, echo=echo)
        else:
            engine = create_engine(
                url, pool_pre_ping=True, pool_timeout=pool_timeout, echo=echo,
            )
        return cls(engine)

    def create_all(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    # ── Session scopes ───────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One atomic unit of work: everything commits or nothing does."""
        with self._session_factory() as session:
            try:
                yield session
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Store transaction failed")
                raise StoreError("Database transaction failed") from exc
            except Exception:
                session.rollback()
                raise

    @contextmanager
    def _scope(self, operation: str, session: Session | None = None) -> Iterator[Session]:
        if session is not None:
            # Joined an outer transaction: it owns commit/rollback
            yield session
            return

        with self._session_factory() as own:
            try:
                yield own
                own.commit()
            except SQLAlchemyError as exc:
                own.rollback()
                logger.exception("Store operation %s failed", operation)
                raise StoreError(f"Database operation '{operation}' failed") from exc

    # ── Users ────────────────────────────────────────────────────────

    def get_user(self, user_id: str) -> User | None:
        with self._scope("get_user") as session:
            return session.get(User, user_id)

    def get_user_by_external_id(self, external_id: str) -> User | None:
        with self._scope("get_user_by_external_id") as session:
            return session.scalars(
                select(User).where(User.external_id == external_id)
            ).first()

    def upsert_user(
        self,
        external_id: str,
        *,
        email: str | None = None,
        full_name: str | None = None,
    ) -> User:
        """Insert or refresh the local user for *external_id*.

        ``last_active_at`` is bumped on every call.
        """
        with self._scope("upsert_user") as session:
            user = session.scalars(
                select(User).where(User.external_id == external_id)
            ).first()
            if user is None:
                user = User(external_id=external_id)
                session.add(user)
            if email:
                user.email = email
            if full_name:
                user.full_name = full_name
            user.is_anonymous = False
            user.user_status = "registered"
            user.last_active_at = utc_now()
            session.flush()
            return user

    # ── Conversation sessions ────────────────────────────────────────

    def create_session(self, user_id: str, agent_type: str, agent_name: str) -> ChatSession:
        with self._scope("create_session") as session:
            chat = ChatSession(
                user_id=user_id, agent_type=agent_type, agent_name=agent_name, is_active=True,
            )
            session.add(chat)
            session.flush()
            return chat

    def get_session(self, session_id: str) -> ChatSession | None:
        with self._scope("get_session") as session:
            return session.get(ChatSession, session_id)

    def update_session_metadata(
        self,
        session_id: str,
        *,
        last_user_message: str,
        last_ai_message: str,
    ) -> None:
        with self._scope("update_session_metadata") as session:
            session.execute(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values(
                    last_message_at=utc_now(),
                    last_user_message=last_user_message,
                    last_ai_message=last_ai_message,
                )
            )

    # ── Messages ─────────────────────────────────────────────────────

    def count_messages(self, session_id: str) -> int:
        with self._scope("count_messages") as session:
            return self._count_messages(session, session_id)

    @staticmethod
    def _count_messages(session: Session, session_id: str) -> int:
        return session.scalar(
            select(func.count(Message.id)).where(Message.session_id == session_id)
        ) or 0

    def _next_sequence(self, session: Session, session_id: str) -> int:
        return self._count_messages(session, session_id) + 1

    def append_message(self, session_id: str, user_id: str, role: str, content: str) -> Message:
        """Append to the session log with the next free ``sequence_number``.

        Two concurrent writers may read the same count; the unique
        constraint rejects the loser, which re-reads and tries again.
        """
        for attempt in range(1, MAX_SEQUENCE_ATTEMPTS + 1):
            with self._session_factory() as session:
                try:
                    message = Message(
                        session_id=session_id,
                        user_id=user_id,
                        role=role,
                        content=content,
                        sequence_number=self._next_sequence(session, session_id),
                    )
                    session.add(message)
                    session.commit()
                    return message
                except IntegrityError:
                    session.rollback()
                    logger.warning(
                        "Sequence collision on session %s (attempt %d/%d), retrying",
                        session_id, attempt, MAX_SEQUENCE_ATTEMPTS,
                    )
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.exception("Store operation append_message failed")
                    raise StoreError("Database operation 'append_message' failed") from exc

        raise StoreError(
            f"Could not assign a sequence number after {MAX_SEQUENCE_ATTEMPTS} attempts"
        )

    def list_messages(self, session_id: str) -> list[Message]:
        with self._scope("list_messages") as session:
            return list(session.scalars(
                select(Message)
                .where(Message.session_id == session_id)
                .order_by(Message.sequence_number)
            ))

    # ── Products ─────────────────────────────────────────────────────

    def list_products(self) -> list[Product]:
        with self._scope("list_products") as session:
            return list(session.scalars(select(Product).order_by(Product.category, Product.name)))

    def find_products_by_name(self, query: str) -> list[Product]:
        """Candidate products whose name, category or description mention
        the query or any of its words (case-insensitive).  Store order."""
        terms = {query.strip()} | {w for w in query.split() if len(w) > 2}
        terms.discard("")
        if not terms:
            return []

        clauses = []
        for term in terms:
            pattern = f"%{term}%"
            clauses.extend([
                Product.name.ilike(pattern),
                Product.category.ilike(pattern),
                Product.description.ilike(pattern),
            ])
        with self._scope("find_products_by_name") as session:
            return list(session.scalars(
                select(Product).where(or_(*clauses)).order_by(Product.category, Product.name)
            ))

    def get_product(
        self,
        product_id: str,
        *,
        for_update: bool = False,
        session: Session | None = None,
    ) -> Product | None:
        with self._scope("get_product", session) as s:
            stmt = select(Product).where(Product.id == product_id)
            if for_update:
                stmt = stmt.with_for_update()
            return s.scalars(stmt).first()

    # ── Cart ─────────────────────────────────────────────────────────

    def get_cart_items(self, user_id: str, *, session: Session | None = None) -> list[CartItem]:
        with self._scope("get_cart_items", session) as s:
            return list(s.scalars(
                select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.created_at)
            ))

    def get_cart_item(
        self,
        user_id: str,
        product_id: str,
        *,
        session: Session | None = None,
    ) -> CartItem | None:
        with self._scope("get_cart_item", session) as s:
            return s.scalars(
                select(CartItem).where(
                    CartItem.user_id == user_id, CartItem.product_id == product_id,
                )
            ).first()

    def upsert_cart_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        *,
        session: Session | None = None,
    ) -> CartItem:
        """Set the cart line for (*user_id*, *product_id*) to *quantity*."""
        with self._scope("upsert_cart_item", session) as s:
            item = s.scalars(
                select(CartItem).where(
                    CartItem.user_id == user_id, CartItem.product_id == product_id,
                )
            ).first()
            if item is None:
                item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
                s.add(item)
            else:
                item.quantity = quantity
            s.flush()
            return item

    def delete_cart_item(
        self,
        user_id: str,
        product_id: str,
        *,
        session: Session | None = None,
    ) -> int:
        with self._scope("delete_cart_item", session) as s:
            result = s.execute(
                delete(CartItem).where(
                    CartItem.user_id == user_id, CartItem.product_id == product_id,
                )
            )
            return result.rowcount

    def delete_cart_items(self, user_id: str, *, session: Session | None = None) -> int:
        with self._scope("delete_cart_items", session) as s:
            result = s.execute(delete(CartItem).where(CartItem.user_id == user_id))
            return result.rowcount

    # ── Invoices ─────────────────────────────────────────────────────

    def create_invoice(
        self,
        user_id: str,
        *,
        subtotal: Decimal,
        tax_total: Decimal,
        total_amount: Decimal,
        billing_email: str | None,
        currency: str = "USD",
        session: Session | None = None,
    ) -> Invoice:
        with self._scope("create_invoice", session) as s:
            last_number = s.scalar(select(func.max(Invoice.invoice_number))) or 0
            now = utc_now()
            invoice = Invoice(
                invoice_number=last_number + 1,
                user_id=user_id,
                status="paid",
                currency=currency,
                subtotal=subtotal,
                tax_total=tax_total,
                total_amount=total_amount,
                billing_email=billing_email,
                paid_at=now,
                created_at=now,
            )
            s.add(invoice)
            s.flush()
            return invoice

    def create_invoice_items(
        self,
        invoice_id: str,
        lines: list[dict[str, Any]],
        *,
        session: Session | None = None,
    ) -> list[InvoiceItem]:
        with self._scope("create_invoice_items", session) as s:
            items = [InvoiceItem(invoice_id=invoice_id, **line) for line in lines]
            s.add_all(items)
            s.flush()
            return items

    def list_invoices(self, user_id: str) -> list[Invoice]:
        with self._scope("list_invoices") as session:
            return list(session.scalars(
                select(Invoice).where(Invoice.user_id == user_id).order_by(Invoice.invoice_number)
            ))

    # ── Tasks ────────────────────────────────────────────────────────

    def list_tasks(
        self,
        user_id: str,
        task_filter: str = "all",
        *,
        now: datetime | None = None,
    ) -> list[AgentTask]:
        """Tasks for *user_id*, newest first, narrowed by one of ``TASK_FILTERS``."""
        if task_filter not in TASK_FILTERS:
            raise ValueError(f"Unknown task filter: {task_filter!r}")

        stmt = select(AgentTask).where(AgentTask.user_id == user_id)
        if task_filter in ("todo", "in_progress", "completed", "archived"):
            stmt = stmt.where(AgentTask.status == task_filter)
        elif task_filter == "high_priority":
            stmt = stmt.where(AgentTask.priority.in_([Priority.high.value, Priority.urgent.value]))
        elif task_filter == "overdue":
            stmt = stmt.where(
                AgentTask.due_at.is_not(None),
                AgentTask.due_at < (now or utc_now()),
                AgentTask.status.not_in(_CLOSED_STATUSES),
            )

        with self._scope("list_tasks") as session:
            return list(session.scalars(stmt.order_by(AgentTask.created_at.desc())))

    def get_task(
        self,
        user_id: str,
        task_id: str,
        *,
        session: Session | None = None,
    ) -> AgentTask | None:
        """Return the task only if it belongs to *user_id*."""
        with self._scope("get_task", session) as s:
            return s.scalars(
                select(AgentTask).where(AgentTask.id == task_id, AgentTask.user_id == user_id)
            ).first()

    def create_task(
        self,
        user_id: str,
        *,
        title: str,
        description: str | None,
        priority: str,
        due_at: datetime | None,
        session: Session | None = None,
    ) -> AgentTask:
        with self._scope("create_task", session) as s:
            now = utc_now()
            task = AgentTask(
                user_id=user_id,
                title=title,
                description=description,
                priority=priority,
                due_at=due_at,
                status=TaskStatus.todo.value,
                created_at=now,
                updated_at=now,
            )
            s.add(task)
            s.flush()
            return task

    def update_task(
        self,
        task_id: str,
        changes: dict[str, Any],
        *,
        session: Session | None = None,
    ) -> AgentTask | None:
        with self._scope("update_task", session) as s:
            task = s.get(AgentTask, task_id)
            if task is None:
                return None
            for field, value in changes.items():
                setattr(task, field, value)
            task.updated_at = utc_now()
            s.flush()
            return task

    def delete_task(self, task_id: str, *, session: Session | None = None) -> bool:
        """Hard-delete a task, detaching (not deleting) its audit rows."""
        with self._scope("delete_task", session) as s:
            s.execute(
                update(AgentAction).where(AgentAction.task_id == task_id).values(task_id=None)
            )
            result = s.execute(delete(AgentTask).where(AgentTask.id == task_id))
            return result.rowcount > 0

    def create_audit_log_entry(
        self,
        *,
        task_ref: str,
        user_id: str,
        action_type: str,
        previous_state: dict[str, Any] | None,
        new_state: dict[str, Any] | None,
        attached: bool = True,
        session: Session | None = None,
    ) -> AgentAction:
        with self._scope("create_audit_log_entry", session) as s:
            entry = AgentAction(
                task_id=task_ref if attached else None,
                task_ref=task_ref,
                user_id=user_id,
                action_type=action_type,
                previous_state=previous_state,
                new_state=new_state,
            )
            s.add(entry)
            s.flush()
            return entry

    def list_audit_log(self, task_ref: str) -> list[AgentAction]:
        with self._scope("list_audit_log") as session:
            return list(session.scalars(
                select(AgentAction)
                .where(AgentAction.task_ref == task_ref)
                .order_by(AgentAction.created_at)
            ))

    # ── Support ──────────────────────────────────────────────────────

    def create_support_ticket(
        self,
        user_id: str,
        *,
        subject: str,
        message: str,
        priority: str,
        referenced_kb_id: str | None,
    ) -> SupportTicket:
        with self._scope("create_support_ticket") as session:
            ticket = SupportTicket(
                user_id=user_id,
                subject=subject,
                message=message,
                priority=priority,
                status=TicketStatus.open.value,
                referenced_kb_id=referenced_kb_id,
            )
            session.add(ticket)
            session.flush()
            return ticket

    def get_kb_article(self, article_id: str) -> KBArticle | None:
        with self._scope("get_kb_article") as session:
            return session.get(KBArticle, article_id)

    def list_kb_articles(self) -> list[KBArticle]:
        """Active articles in display order (with their category loaded)."""
        with self._scope("list_kb_articles") as session:
            return list(session.scalars(
                select(KBArticle)
                .where(KBArticle.is_active.is_(True))
                .order_by(KBArticle.display_order)
            ))

    # ── Navigation ───────────────────────────────────────────────────

    def list_nav_modules(self) -> list[NavModule]:
        with self._scope("list_nav_modules") as session:
            return list(session.scalars(select(NavModule).order_by(NavModule.display_order)))

    def list_nav_paths(self, module_slug: str | None = None) -> list[NavPath]:
        stmt = select(NavPath).join(NavModule)
        if module_slug:
            stmt = stmt.where(NavModule.slug == module_slug)
        stmt = stmt.order_by(NavModule.display_order, NavPath.display_order)
        with self._scope("list_nav_paths") as session:
            return list(session.scalars(stmt))

    def get_nav_path(self, path: str) -> NavPath | None:
        with self._scope("get_nav_path") as session:
            return session.scalars(select(NavPath).where(NavPath.path == path)).first()

    # ── Housekeeping ─────────────────────────────────────────────────

    def is_catalog_empty(self) -> bool:
        with self._scope("is_catalog_empty") as session:
            return not session.scalar(select(func.count(Product.id)))
