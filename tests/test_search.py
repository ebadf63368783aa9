import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from rekognition_tagger.normalizer import KEYWORDS_META_KEY
from rekognition_tagger.search import install_keyword_search
from rekognition_tagger.storage import MediaLibrary, SearchQuery


def ids(results):
    return sorted(attachment.id for attachment in results)


@pytest.fixture
def photos(library):
    cat = library.add_attachment("s3://media/cat.jpg", title="Sofa", mime_type="image/jpeg")
    library.update_meta(cat, KEYWORDS_META_KEY, "Cat\nAnimal\nSofa")
    dog = library.add_attachment("s3://media/dog.jpg", title="Park", content="A sunny afternoon", mime_type="image/jpeg")
    library.update_meta(dog, KEYWORDS_META_KEY, "Dog\nAnimal")
    bare = library.add_attachment("s3://media/bare.jpg", title="Animal shelter", mime_type="image/jpeg")
    return {"cat": cat, "dog": dog, "bare": bare}


def test_keywords_widen_content_matches(library, photos):
    assert ids(library.query(SearchQuery(search="cat"))) == [photos["cat"]]


def test_title_and_keyword_matches_appear_once(library, photos):
    results = library.query(SearchQuery(search="animal"))

    assert ids(results) == [photos["cat"], photos["dog"], photos["bare"]]
    assert len(results) == len({attachment.id for attachment in results})


def test_every_word_must_match(library, photos):
    assert ids(library.query(SearchQuery(search="animal sunny"))) == [photos["dog"]]


def test_excluded_word_also_checks_keywords(library, photos):
    results = library.query(SearchQuery(search="animal -dog"))

    assert ids(results) == [photos["cat"], photos["bare"]]


def test_exclusion_keeps_attachments_without_keywords(library, photos):
    assert ids(library.query(SearchQuery(search="-cat"))) == [photos["dog"], photos["bare"]]


def test_filter_only_applies_to_one_query(library, photos):
    keyword_search = next(hook for hook in library._pre_query_hooks)

    library.query(SearchQuery(search="cat"))

    assert not library.has_clauses_filter(keyword_search.clauses_filter)


def test_empty_search_lists_images_without_join(library, photos):
    keyword_search = next(hook for hook in library._pre_query_hooks)
    library.add_attachment("docs/readme.txt", mime_type="text/plain")

    results = library.query(SearchQuery(search="   "))

    assert ids(results) == sorted(photos.values())
    assert not library.has_clauses_filter(keyword_search.clauses_filter)


def test_plain_library_ignores_keywords():
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    plain = MediaLibrary(engine=engine)
    plain.create_schema()
    cat = plain.add_attachment("cat.jpg", mime_type="image/jpeg")
    plain.update_meta(cat, KEYWORDS_META_KEY, "Cat")

    assert plain.query(SearchQuery(search="cat")) == []

    install_keyword_search(plain)
    assert ids(plain.query(SearchQuery(search="cat"))) == [cat]


def test_wildcards_in_search_words_match_literally(library):
    percent = library.add_attachment("a.jpg", title="100% cotton", mime_type="image/jpeg")
    library.add_attachment("b.jpg", title="Cotton shirt", mime_type="image/jpeg")
    literal = library.add_attachment("c.jpg", mime_type="image/jpeg")
    library.update_meta(literal, KEYWORDS_META_KEY, "snake_case")
    lookalike = library.add_attachment("d.jpg", mime_type="image/jpeg")
    library.update_meta(lookalike, KEYWORDS_META_KEY, "snakeXcase")

    assert ids(library.query(SearchQuery(search="%"))) == [percent]
    assert ids(library.query(SearchQuery(search="snake_case"))) == [literal]
    assert ids(library.query(SearchQuery(search="snake -snake_case"))) == [lookalike]


def test_unknown_mime_type_is_searchable_and_backfilled(library):
    unknown = library.add_attachment("s3://media/upload", title="Harbour")
    library.add_attachment("docs/harbour.txt", title="Harbour notes", mime_type="text/plain")

    assert ids(library.query(SearchQuery(search="harbour"))) == [unknown]
    assert library.list_attachment_ids_without_meta(KEYWORDS_META_KEY) == [unknown]
