from services.niche import (
    GENERAL_NICHE,
    KeywordNicheClassifier,
    classify_item,
    extract_hashtags,
    matches_niche,
)


def test_gym_text_classifies_as_fitness_only():
    classifier = KeywordNicheClassifier()
    assert classifier.classify("Ultimate gym workout and fitness transformation") == {"fitness"}


def test_text_can_match_several_niches():
    classifier = KeywordNicheClassifier()
    niches = classifier.classify("Quick kitchen recipe tutorial for your travel vlog")
    assert {"food", "education", "travel", "lifestyle"} <= niches


def test_unmatched_or_empty_text_falls_back_to_general():
    classifier = KeywordNicheClassifier()
    assert classifier.classify("zzz qqq") == {GENERAL_NICHE}
    assert classifier.classify("") == {GENERAL_NICHE}


def test_custom_keyword_table_is_case_insensitive():
    classifier = KeywordNicheClassifier({"gaming": ["Speedrun", "Esports"]})
    assert classifier.classify("New SPEEDRUN record") == {"gaming"}
    assert classifier.classify("workout") == {GENERAL_NICHE}


def test_classify_item_orders_niches_by_table():
    classifier = KeywordNicheClassifier()
    niches = classify_item(classifier, "Tech review", "My daily gym routine")
    assert niches == ["fitness", "tech", "lifestyle"]


def test_matches_niche_uses_case_insensitive_substrings():
    assert matches_niche(["fitness", "lifestyle"], "FIT") is True
    assert matches_niche(["fitness"], ["food", "fitness"]) is True
    assert matches_niche(["food"], "travel") is False
    assert matches_niche(["food"], None) is True
    assert matches_niche(["food"], ["  "]) is True


def test_extract_hashtags():
    assert extract_hashtags("Morning vibes #routine #aesthetic_life!") == ["routine", "aesthetic_life"]
    assert extract_hashtags(None) == []
