from app.domain.normalize import normalize_aggregator_ad
from app.domain.states import filter_by_state, matches_state_filter, normalize_state_to_category


def test_raw_state_to_category():
    assert normalize_state_to_category("Programme neuf") == "neuf"
    assert normalize_state_to_category("VEFA") == "vefa"
    assert normalize_state_to_category("") is None
    assert normalize_state_to_category("inconnu") is None


def test_matches_state_filter():
    assert matches_state_filter(None, None) is True
    assert matches_state_filter(None, ["neuf"]) is False
    assert matches_state_filter("gros travaux", ["travaux"]) is True
    assert matches_state_filter("neuf", ["ancien"]) is False


def test_filter_uses_provider_state_then_text(make_ad):
    with_state = normalize_aggregator_ad(make_ad(1, state="Neuf", description="ancien"))
    text_only = normalize_aggregator_ad(make_ad(2, title="Maison à rénover", description=""))
    unrelated = normalize_aggregator_ad(make_ad(3, title="Appartement", description="Lumineux"))

    kept = filter_by_state([with_state, text_only, unrelated], ["ancien"])
    # provider state "neuf" beats the word "ancien" in the description
    assert kept == [text_only]

    assert filter_by_state([with_state, unrelated], None) == [with_state, unrelated]
