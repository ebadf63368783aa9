"""
SQLAlchemy-backed media library: attachments, attachment metadata,
label taxonomy terms and attachment search.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint, and_, create_engine, delete, or_, select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.sql import ColumnElement

from .config import settings
from .logging import get_logger
from .models import AttachmentInfo


Base = declarative_base()


class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=False, default="")  # caption / description body
    file_path = Column(String(1024), nullable=False)     # local path, s3:// or http(s):// URI
    mime_type = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow)


class AttachmentMeta(Base):
    __tablename__ = "attachment_meta"
    __table_args__ = (UniqueConstraint("attachment_id", "meta_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    attachment_id = Column(Integer, ForeignKey("attachments.id", ondelete="CASCADE"), nullable=False, index=True)
    meta_key = Column(String(255), nullable=False, index=True)
    meta_value = Column(Text)
    serialized = Column(Boolean, nullable=False, default=False)  # JSON-encoded non-string value


class Term(Base):
    __tablename__ = "terms"
    __table_args__ = (UniqueConstraint("taxonomy", "name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    taxonomy = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)


class TermRelationship(Base):
    __tablename__ = "term_relationships"

    attachment_id = Column(Integer, ForeignKey("attachments.id", ondelete="CASCADE"), primary_key=True)
    term_id = Column(Integer, ForeignKey("terms.id", ondelete="CASCADE"), primary_key=True)


class ScheduledEvent(Base):
    __tablename__ = "scheduled_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hook = Column(String(255), nullable=False, index=True)
    args = Column(Text, nullable=False, default="[]")  # JSON list
    timestamp = Column(Float, nullable=False, index=True)


@dataclass
class SearchQuery:
    """A media-library listing request."""
    search: str = ""
    mime_type_prefix: Optional[str] = "image/"
    limit: int = 50
    offset: int = 0


@dataclass
class SearchClauses:
    """Structured pieces of a listing query, open to modification by clause filters."""
    conditions: List[ColumnElement] = field(default_factory=list)
    joins: List[Tuple[Any, ColumnElement]] = field(default_factory=list)
    group_by: List[Any] = field(default_factory=list)
    order_by: List[Any] = field(default_factory=list)


PreQueryHook = Callable[["MediaLibrary", SearchQuery], None]
ClausesFilter = Callable[[SearchClauses], SearchClauses]


LIKE_ESCAPE = "\\"


def escape_like(word: str) -> str:
    """Make LIKE wildcards in a search word match literally."""
    return word.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


def mime_type_condition(mime_type_prefix: str) -> ColumnElement:
    """Attachments of the given type family, or of unrecorded type."""
    return or_(Attachment.mime_type.is_(None), Attachment.mime_type.like(f"{mime_type_prefix}%"))


def search_conditions(search: str) -> List[ColumnElement]:
    """Build one condition per search word: title or content match, or exclusion for '-word'."""
    conditions = []
    for word in search.split():
        exclude = word.startswith("-") and len(word) > 1
        if exclude:
            word = word[1:]
        pattern = f"%{escape_like(word)}%"
        if exclude:
            conditions.append(and_(
                Attachment.title.not_like(pattern, escape=LIKE_ESCAPE),
                Attachment.content.not_like(pattern, escape=LIKE_ESCAPE),
            ))
        else:
            conditions.append(or_(
                Attachment.title.like(pattern, escape=LIKE_ESCAPE),
                Attachment.content.like(pattern, escape=LIKE_ESCAPE),
            ))
    return conditions


class MediaLibrary:
    """Attachment, metadata and taxonomy store."""

    def __init__(self, database_url: Optional[str] = None, engine=None):
        self.logger = get_logger("storage")
        self.engine = engine if engine is not None else create_engine(database_url or settings.database_url)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._pre_query_hooks: List[PreQueryHook] = []
        self._clauses_filters: List[ClausesFilter] = []

    def create_schema(self):
        """Create all tables if they do not exist."""
        Base.metadata.create_all(self.engine)

    def session(self) -> Session:
        return self.session_factory()

    # Attachments

    def add_attachment(
        self,
        file_path: str,
        title: str = "",
        content: str = "",
        mime_type: Optional[str] = None
    ) -> int:
        with self.session() as session:
            attachment = Attachment(file_path=file_path, title=title, content=content, mime_type=mime_type)
            session.add(attachment)
            session.commit()
            self.logger.debug(f"Added attachment {attachment.id}: {file_path}")
            return attachment.id

    def get_attachment(self, attachment_id: int) -> Optional[AttachmentInfo]:
        with self.session() as session:
            attachment = session.get(Attachment, attachment_id)
            return _to_info(attachment) if attachment else None

    def get_attached_file(self, attachment_id: int) -> Optional[str]:
        with self.session() as session:
            return session.scalar(select(Attachment.file_path).where(Attachment.id == attachment_id))

    def list_attachment_ids_without_meta(self, meta_key: str, mime_type_prefix: str = "image/") -> List[int]:
        """Attachments with no value stored under the given metadata key."""
        has_meta = select(AttachmentMeta.attachment_id).where(AttachmentMeta.meta_key == meta_key)
        stmt = select(Attachment.id).where(Attachment.id.not_in(has_meta)).order_by(Attachment.id)
        if mime_type_prefix:
            stmt = stmt.where(mime_type_condition(mime_type_prefix))
        with self.session() as session:
            return list(session.scalars(stmt))

    # Metadata

    def get_meta(self, attachment_id: int, key: str, default: Any = None) -> Any:
        with self.session() as session:
            row = session.scalar(
                select(AttachmentMeta).where(
                    AttachmentMeta.attachment_id == attachment_id,
                    AttachmentMeta.meta_key == key,
                )
            )
            if row is None:
                return default
            return json.loads(row.meta_value) if row.serialized else row.meta_value

    def get_all_meta(self, attachment_id: int) -> Dict[str, Any]:
        with self.session() as session:
            rows = session.scalars(
                select(AttachmentMeta)
                .where(AttachmentMeta.attachment_id == attachment_id)
                .order_by(AttachmentMeta.meta_key)
            )
            return {
                row.meta_key: json.loads(row.meta_value) if row.serialized else row.meta_value
                for row in rows
            }

    def update_meta(self, attachment_id: int, key: str, value: Any) -> None:
        """Insert or replace the value stored under key."""
        serialized = not isinstance(value, str)
        stored = json.dumps(value) if serialized else value
        with self.session() as session:
            row = session.scalar(
                select(AttachmentMeta).where(
                    AttachmentMeta.attachment_id == attachment_id,
                    AttachmentMeta.meta_key == key,
                )
            )
            if row is None:
                session.add(AttachmentMeta(
                    attachment_id=attachment_id, meta_key=key, meta_value=stored, serialized=serialized
                ))
            else:
                row.meta_value = stored
                row.serialized = serialized
            session.commit()

    def delete_meta(self, attachment_id: int, key: str) -> bool:
        with self.session() as session:
            result = session.execute(
                delete(AttachmentMeta).where(
                    AttachmentMeta.attachment_id == attachment_id,
                    AttachmentMeta.meta_key == key,
                )
            )
            session.commit()
            return result.rowcount > 0

    # Taxonomy

    def attach_terms(self, attachment_id: int, taxonomy: str, names: List[str], append: bool = True) -> List[int]:
        """Attach named terms to an attachment, creating terms as needed.

        With append=True existing relationships are kept and a term already
        attached is not attached twice. With append=False the attachment's
        terms in this taxonomy are replaced.
        """
        wanted = []
        for name in names:
            name = (name or "").strip()
            if name and name not in wanted:
                wanted.append(name)

        with self.session() as session:
            term_ids = [self._get_or_create_term(session, taxonomy, name) for name in wanted]

            current = set(session.scalars(
                select(TermRelationship.term_id)
                .join(Term, Term.id == TermRelationship.term_id)
                .where(TermRelationship.attachment_id == attachment_id, Term.taxonomy == taxonomy)
            ))

            if not append:
                stale = current - set(term_ids)
                if stale:
                    session.execute(
                        delete(TermRelationship).where(
                            TermRelationship.attachment_id == attachment_id,
                            TermRelationship.term_id.in_(stale),
                        )
                    )

            for term_id in term_ids:
                if term_id not in current:
                    session.add(TermRelationship(attachment_id=attachment_id, term_id=term_id))
            session.commit()
            return term_ids

    def _get_or_create_term(self, session: Session, taxonomy: str, name: str) -> int:
        term_id = session.scalar(select(Term.id).where(Term.taxonomy == taxonomy, Term.name == name))
        if term_id is None:
            term = Term(taxonomy=taxonomy, name=name)
            session.add(term)
            session.flush()
            term_id = term.id
        return term_id

    def get_terms(self, attachment_id: int, taxonomy: str) -> List[str]:
        with self.session() as session:
            return list(session.scalars(
                select(Term.name)
                .join(TermRelationship, TermRelationship.term_id == Term.id)
                .where(TermRelationship.attachment_id == attachment_id, Term.taxonomy == taxonomy)
                .order_by(Term.id)
            ))

    # Queries

    def add_pre_query_hook(self, hook: PreQueryHook) -> None:
        if hook not in self._pre_query_hooks:
            self._pre_query_hooks.append(hook)

    def add_clauses_filter(self, clauses_filter: ClausesFilter) -> None:
        if clauses_filter not in self._clauses_filters:
            self._clauses_filters.append(clauses_filter)

    def remove_clauses_filter(self, clauses_filter: ClausesFilter) -> None:
        if clauses_filter in self._clauses_filters:
            self._clauses_filters.remove(clauses_filter)

    def has_clauses_filter(self, clauses_filter: ClausesFilter) -> bool:
        return clauses_filter in self._clauses_filters

    def query(self, query: SearchQuery) -> List[AttachmentInfo]:
        """List attachments matching a search query."""
        for hook in list(self._pre_query_hooks):
            hook(self, query)

        clauses = SearchClauses(
            conditions=search_conditions(query.search),
            order_by=[Attachment.created_at.desc(), Attachment.id.desc()],
        )
        if query.mime_type_prefix:
            clauses.conditions.append(mime_type_condition(query.mime_type_prefix))

        # Filters may remove themselves while running
        for clauses_filter in list(self._clauses_filters):
            clauses = clauses_filter(clauses)

        stmt = select(Attachment)
        for target, onclause in clauses.joins:
            stmt = stmt.outerjoin(target, onclause)
        if clauses.conditions:
            stmt = stmt.where(*clauses.conditions)
        if clauses.group_by:
            stmt = stmt.group_by(*clauses.group_by)
        stmt = stmt.order_by(*clauses.order_by).limit(query.limit).offset(query.offset)

        with self.session() as session:
            return [_to_info(attachment) for attachment in session.scalars(stmt)]

    def ping(self) -> bool:
        """Check that the database is reachable."""
        try:
            with self.session() as session:
                session.execute(select(1))
            return True
        except Exception as e:
            self.logger.debug(f"Database ping failed: {e}")
            return False

    def close(self):
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _to_info(attachment: Attachment) -> AttachmentInfo:
    return AttachmentInfo(
        id=attachment.id,
        title=attachment.title or "",
        content=attachment.content or "",
        file_path=attachment.file_path,
        mime_type=attachment.mime_type,
        created_at=attachment.created_at,
    )
