from chatbot import lead_extractor
from chatbot.lead_extractor import EmailStrategy, LeadExtractor
from chatbot.models import VisitorInfo


def test_name_and_budget_from_introduction():
    message = "Hi, I'm John Smith, my budget is $500,000"
    first = lead_extractor.extract(message)
    second = lead_extractor.extract(message)
    assert first == {"name": "John Smith", "budget": "$500,000"}
    assert first == second


def test_contact_details():
    found = lead_extractor.extract("You can reach me at jane.doe@example.com or 555-123-4567")
    assert found["email"] == "jane.doe@example.com"
    assert found["phone"] == "555-123-4567"
    assert "name" not in found


def test_intent_requires_property_noun():
    assert lead_extractor.extract("I want to sell my house")["propertyInterest"] == "Selling"
    assert lead_extractor.extract("Looking for a home to rent near the beach")["propertyInterest"] == "Renting"
    assert lead_extractor.extract("We would like to buy a property")["propertyInterest"] == "Buying"
    assert "propertyInterest" not in lead_extractor.extract("I want to sell my car")


def test_browsing_request_is_not_selling():
    found = lead_extractor.extract("Can you list the houses you have in Marbella?")
    assert found.get("propertyInterest") != "Selling"
    assert lead_extractor.extract("We'd like to list our home with you")["propertyInterest"] == "Selling"


def test_not_a_name_after_i_am():
    assert "name" not in lead_extractor.extract("I'm Looking for a villa")


def test_no_signal_is_empty():
    assert lead_extractor.extract("How much does the Pro plan cost?") == {}
    assert lead_extractor.extract("") == {}


def test_budget_range_in_euros():
    found = lead_extractor.extract("Our budget is between 300k - 450k EUR")
    assert found["budget"] == "300k - 450k EUR"


def test_failing_strategy_is_skipped():
    class Broken:
        field = "name"

        def extract(self, text):
            raise RuntimeError("boom")

    extractor = LeadExtractor([Broken(), EmailStrategy()])
    assert extractor.extract("mail me: a@b.com") == {"email": "a@b.com"}


def test_merge_never_clears_fields():
    visitor = VisitorInfo(visitor_id="visitor_1", email="a@b.com")
    merged = visitor.merge({"phone": "555-1234"})
    assert merged.email == "a@b.com"
    assert merged.phone == "555-1234"
    assert merged.merge({"email": "", "name": None}) == merged
    assert visitor.phone is None
