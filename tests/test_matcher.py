import pytest

from chatbot.identity import ANONYMOUS, Authenticated
from chatbot.matcher import (
    PropertySearchParams,
    TrainingDataMatcher,
    boost_identity,
    has_identity_content,
    is_identity_query,
    similarity,
)
from chatbot.models import DocumentItem, PropertyRecord, QAItem
from storage.memory_store import InMemoryStore

from conftest import ACCOUNT_ID


@pytest.fixture()
def matcher(store, settings):
    return TrainingDataMatcher(store, settings)


def test_similarity_is_positive_and_case_insensitive():
    query = "what is your address"
    candidate = "Our office address is 123 Main St"
    score = similarity(query, candidate)
    assert score > 0
    assert similarity(query.upper(), candidate.lower()) == score


def test_similarity_ignores_short_words():
    assert similarity("is it ok", "it is ok") == 0.0


def test_identity_boost_is_monotonic_and_capped():
    assert is_identity_query("who are you")
    raw = similarity("who are you", "We are a family agency on the coast")
    boosted = boost_identity(raw)
    assert boosted >= raw
    for score in (0.0, 0.3, 0.7, 0.9, 1.0):
        assert boost_identity(score) <= 1.0


def test_business_profile_outranks_better_raw_match_for_identity_questions(settings):
    store = InMemoryStore()
    store.add_qa(ACCOUNT_ID, "Please tell me your opening hours", "We open 9 to 5.", category="General", priority=9)
    store.add_qa(ACCOUNT_ID, "Company profile", "Family agency since 1998.", category="About Us", priority=1)
    query = "tell me about your company please"

    result = TrainingDataMatcher(store, settings).match(Authenticated(ACCOUNT_ID), query)
    first, second = result.qa_matches[:2]
    assert first.item.question == "Company profile"
    assert has_identity_content(first.item.category, first.item.text)
    assert similarity(query, "Company profile") == pytest.approx(0.5)
    assert first.similarity == pytest.approx(0.75)
    assert second.item.question == "Please tell me your opening hours"
    assert not has_identity_content(second.item.category, second.item.text)
    assert second.similarity == pytest.approx(0.6)


def test_exact_question_ranks_first(matcher):
    result = matcher.match(Authenticated(ACCOUNT_ID), "what are your office hours?")
    best = result.qa_matches[0]
    assert isinstance(best.item, QAItem)
    assert best.item.answer == "9-5 CET"
    assert best.similarity == pytest.approx(1.0)
    assert not best.low_confidence
    scores = [m.similarity for m in result.qa_matches]
    assert scores == sorted(scores, reverse=True)


def test_anonymous_gets_nothing(matcher):
    assert matcher.match(ANONYMOUS, "what are your office hours?").is_empty()


def test_documents_are_scored(matcher):
    result = matcher.match(Authenticated(ACCOUNT_ID), "can I book viewings on saturday?", include_qa=False)
    assert result.qa_matches == []
    assert isinstance(result.file_matches[0].item, DocumentItem)
    assert result.file_matches[0].item.source_label == "policies.docx"


def test_sections_can_be_switched_off(matcher):
    result = matcher.match(
        Authenticated(ACCOUNT_ID),
        "villas in marbella",
        include_qa=False,
        include_files=False,
        include_properties=False,
    )
    assert result.is_empty()


def test_property_filters(matcher):
    result = matcher.match(Authenticated(ACCOUNT_ID), "Show me villas in Marbella with a pool")
    titles = [m.item.title for m in result.property_matches]
    # The sold villa is not an active listing.
    assert titles == ["Villa Azul"]


def test_property_price_ceiling(matcher):
    result = matcher.match(Authenticated(ACCOUNT_ID), "apartments under 400k")
    assert [m.item.title for m in result.property_matches] == ["Apartment Sol"]


def test_browsing_without_filters_lists_featured_first(matcher):
    result = matcher.match(Authenticated(ACCOUNT_ID), "what properties do you have?")
    records = [m.item for m in result.property_matches]
    assert all(isinstance(r, PropertyRecord) for r in records)
    assert records[0].title == "Villa Azul"
    assert "Villa Vendida" not in [r.title for r in records]


def test_no_property_lookup_for_unrelated_questions(matcher):
    assert matcher.match(Authenticated(ACCOUNT_ID), "what are your office hours?").property_matches == []


def test_search_params_parse():
    params = PropertySearchParams.parse("3 bedroom villa in Estepona under 800k")
    assert params.location == "estepona"
    assert params.property_type == "villa"
    assert params.max_price == 800_000
    assert params.bedrooms == 3


def test_room_count_is_not_a_price():
    params = PropertySearchParams.parse("max 3 bedrooms please")
    assert params.max_price is None
    assert params.bedrooms == 3


def test_partial_failure_keeps_other_sections(matcher, store, monkeypatch):
    def boom(account_id):
        raise ConnectionError("documents table unavailable")

    monkeypatch.setattr(store, "list_training_documents", boom)
    result = matcher.match(Authenticated(ACCOUNT_ID), "what are your office hours?")
    assert result.file_matches == []
    assert result.qa_matches[0].item.answer == "9-5 CET"


def test_identity_question_falls_back_to_priority(settings):
    store = InMemoryStore()
    store.add_qa(ACCOUNT_ID, "Opening times", "Mon-Fri", priority=2)
    store.add_qa(ACCOUNT_ID, "Parking", "Free parking available", priority=6)
    result = TrainingDataMatcher(store, settings).match(Authenticated(ACCOUNT_ID), "who are you?")
    assert [m.item.question for m in result.qa_matches] == ["Parking", "Opening times"]
    assert all(m.low_confidence for m in result.qa_matches)


def test_wire_shape(matcher):
    wire = matcher.match(Authenticated(ACCOUNT_ID), "what are your office hours?").to_wire()
    assert set(wire) == {"qa_matches", "file_content", "property_listings"}
    top = wire["qa_matches"][0]
    assert top["answer"] == "9-5 CET"
    assert top["priority"] == 9
    assert 0.0 <= top["similarity"] <= 1.0
