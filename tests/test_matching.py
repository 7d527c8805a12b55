from solar_roi.matching import (
    EXACT,
    FUZZY,
    PARTIAL,
    containment_score,
    levenshtein_distance,
    match_name_to_meter,
    match_names_to_meters,
    normalize_name,
    similarity,
)
from tests.conftest import make_meter


def test_normalize_strips_extension_suffix_and_date():
    assert normalize_name('Woolworths_Food_export_2024-01-31.csv') == 'woolworths food'
    assert normalize_name('PICK-N-PAY.xlsx') == 'pick n pay'
    assert normalize_name('') == ''


def test_levenshtein_and_similarity():
    assert levenshtein_distance('kitten', 'sitting') == 3
    assert similarity('abc', 'abc') == 100
    assert similarity('', 'abc') == 0
    assert similarity('kitten', 'sitting') == 57


def test_containment_scores():
    assert containment_score('clicks pharmacy', 'clicks') >= 70
    assert containment_score('spar', 'superspar') >= 65
    assert containment_score('ocean basket', 'mugg and bean') == 0


def test_exact_match_wins():
    meters = [make_meter('a', shop_name='Clicks'), make_meter('b', shop_name='Pick n Pay')]
    result = match_name_to_meter('pick_n_pay_export.csv', meters)
    assert result.meter_id == 'b'
    assert result.match_type == EXACT
    assert result.confidence == 100


def test_partial_and_fuzzy_matches():
    meters = [make_meter('a', shop_name='Clicks'), make_meter('b', shop_name='Woolworths')]
    partial = match_name_to_meter('Clicks Pharmacy Shop 12', meters)
    assert partial.meter_id == 'a'
    assert partial.match_type == PARTIAL

    fuzzy = match_name_to_meter('Wolworths', meters)
    assert fuzzy.meter_id == 'b'
    assert fuzzy.match_type in (FUZZY, 'normalized')


def test_no_match_returns_none():
    meters = [make_meter('a', shop_name='Clicks')]
    assert match_name_to_meter('Zzzzzzzz', meters) is None


def test_each_meter_assigned_once():
    meters = [make_meter('a', shop_name='Spar'), make_meter('b', shop_name='Tops')]
    results = match_names_to_meters(['Spar', 'Spar Tops'], meters)
    assigned = [r.meter_id for r in results.values() if r]
    assert len(assigned) == len(set(assigned))
