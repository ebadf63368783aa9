"""
Widens media-library searches to match stored Rekognition keywords.
"""

from sqlalchemy import and_, or_
from sqlalchemy.orm import aliased
from sqlalchemy.sql import operators
from sqlalchemy.sql.elements import BinaryExpression
from sqlalchemy.sql.visitors import replacement_traverse

from .logging import get_logger
from .normalizer import KEYWORDS_META_KEY
from .storage import Attachment, AttachmentMeta, MediaLibrary, SearchClauses, SearchQuery


logger = get_logger("search")


def _is_content_match(element, operator) -> bool:
    if not isinstance(element, BinaryExpression) or element.operator is not operator:
        return False
    column = element.left
    return getattr(column, "key", None) == "content" and getattr(column, "table", None) is Attachment.__table__


def add_keyword_clauses(clauses: SearchClauses) -> SearchClauses:
    """Join the keyword blob and match it wherever the content body is matched.

    `content LIKE p` becomes `content LIKE p OR keywords LIKE p`; an excluded
    word additionally requires the keywords not to match. Rows are grouped by
    attachment so the join never duplicates results.
    """
    keywords = aliased(AttachmentMeta, name="rekognition_keywords")
    clauses.joins.append((
        keywords,
        and_(Attachment.id == keywords.attachment_id, keywords.meta_key == KEYWORDS_META_KEY),
    ))
    clauses.group_by = [Attachment.id]

    def widen(element):
        if _is_content_match(element, operators.like_op):
            return or_(element, keywords.meta_value.like(element.right, escape=element.modifiers.get("escape")))
        if _is_content_match(element, operators.not_like_op):
            keyword_miss = keywords.meta_value.not_like(element.right, escape=element.modifiers.get("escape"))
            return and_(element, or_(keywords.meta_value.is_(None), keyword_miss))
        return None

    clauses.conditions = [replacement_traverse(condition, {}, widen) for condition in clauses.conditions]
    return clauses


class KeywordClausesFilter:
    """Single-use clauses filter: removes itself from the library when it fires."""

    def __init__(self, library: MediaLibrary):
        self.library = library

    def __call__(self, clauses: SearchClauses) -> SearchClauses:
        self.library.remove_clauses_filter(self)
        return add_keyword_clauses(clauses)


class KeywordSearch:
    """Pre-query hook arming the keyword filter for attachment searches."""

    def __init__(self, library: MediaLibrary):
        self.library = library
        self.clauses_filter = KeywordClausesFilter(library)

    def __call__(self, library: MediaLibrary, query: SearchQuery) -> None:
        if not query.search.strip():
            return
        library.add_clauses_filter(self.clauses_filter)
        logger.debug(f"Keyword search armed for '{query.search}'")


def install_keyword_search(library: MediaLibrary) -> KeywordSearch:
    keyword_search = KeywordSearch(library)
    library.add_pre_query_hook(keyword_search)
    return keyword_search
