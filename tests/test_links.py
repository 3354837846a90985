from chatbot.links import format_property_link, rewrite_links
from chatbot.models import PropertyRecommendation

BASE = "https://app.homebot.test"


def test_same_origin_markdown_link_becomes_relative():
    text = "See [Villa Azul](https://app.homebot.test/properties/villa-azul?ref=chat) for details."
    assert rewrite_links(text, BASE) == "See [Villa Azul](/properties/villa-azul?ref=chat) for details."


def test_foreign_links_are_untouched():
    text = "Read [the guide](https://example.com/guide) or https://example.com/faq."
    assert rewrite_links(text, BASE) == text


def test_bare_same_origin_url_becomes_markdown_link():
    text = "Book a viewing at https://APP.homebot.test/contact#form, thanks!"
    assert rewrite_links(text, BASE) == "Book a viewing at [/contact#form](/contact#form), thanks!"


def test_without_base_url_nothing_changes():
    text = "Visit https://app.homebot.test/properties/1"
    assert rewrite_links(text, None) == text


def test_property_link_falls_back_to_property_page():
    rec = PropertyRecommendation(id="villa-azul", title="Villa Azul", price="€1,250,000")
    assert format_property_link(rec) == "[Villa Azul](/properties/villa-azul)"


def test_property_link_uses_relative_canonical_url():
    rec = PropertyRecommendation(
        id="1", title="Penthouse Luna", price="€890,000", url="https://app.homebot.test/listings/luna"
    )
    assert format_property_link(rec, BASE) == "[Penthouse Luna](/listings/luna)"
