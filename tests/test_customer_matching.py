"""
Fuzzy customer-name matching.

The layered strategy is easy to regress silently, so each layer gets its
own case.
"""
from app.services.customer_matching import names_match, normalize_name, suggest_customers


def test_normalize_name():
    assert normalize_name("  Air-Culinaire,  Inc. ") == "air culinaire inc"


def test_exact_after_normalization():
    assert names_match("AIR CULINAIRE", "Air Culinaire")


def test_substring_either_direction():
    assert names_match("Air Culinaire", "Air Culinaire Worldwide")
    assert names_match("Air Culinaire Worldwide", "Air Culinaire")


def test_significant_words_overlap():
    assert names_match("Culinaire Air", "Air Culinaire Worldwide")


def test_space_stripped():
    assert names_match("AirCulinaire", "Air Culinaire")
    assert names_match("Air Culinaire", "AirCulinaire Worldwide")


def test_different_customers_do_not_match():
    assert not names_match("Sendoso", "VistaJet")
    assert not names_match("Air Culinary", "Air Culinaire Worldwide")


def test_tiny_queries_do_not_match_everything():
    assert not names_match("a", "Acme")
    assert not names_match("", "Acme")


def test_suggestions_ranked_and_distinct():
    names = ["Air Culinaire Worldwide", "Acme", "Air Culinaire Worldwide", "Sendoso"]
    suggestions = suggest_customers("Air Culinary", names)
    assert suggestions[0] == "Air Culinaire Worldwide"
    assert suggestions.count("Air Culinaire Worldwide") == 1
    assert "Sendoso" not in suggestions
