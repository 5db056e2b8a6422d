from datetime import UTC, date, datetime

import pytest
from helpers.chain import ADDRESS, COIN, OTHER_ADDRESS, make_tx, txid

from vesting_tracker.cache import InMemoryScoreCache, ScoreCache, score_key
from vesting_tracker.models import DEFAULT_ANNOTATION_CONFIG, AnnotationConfig
from vesting_tracker.schedule import generate_expected_grants
from vesting_tracker.scoring import MatchScorer, amount_score, date_score, match_score

GRANT = generate_expected_grants("2023-01-01", 1.0, 1)[0]


def test_exact_match_scores_one():
    tx = make_tx(txid(1), "2023-01-01", COIN)
    assert match_score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == pytest.approx(1.0)


def test_date_score_decays_linearly_from_midnight_utc():
    expected = date(2023, 1, 1)
    assert date_score(datetime(2023, 1, 1, tzinfo=UTC), expected, 180) == 1.0
    assert date_score(datetime(2023, 1, 1, 12, tzinfo=UTC), expected, 180) == pytest.approx(
        1 - 0.5 / 180
    )
    assert date_score(datetime(2023, 3, 2, tzinfo=UTC), expected, 180) == pytest.approx(
        1 - 60 / 180
    )
    assert date_score(datetime(2022, 12, 2, tzinfo=UTC), expected, 180) == pytest.approx(
        1 - 30 / 180
    )
    assert date_score(datetime(2023, 6, 30, tzinfo=UTC), expected, 180) == 0.0  # 180 days
    assert date_score(datetime(2023, 7, 1, tzinfo=UTC), expected, 180) == 0.0  # 181 days


def test_amount_score_decays_linearly():
    assert amount_score(COIN, COIN, 25) == 1.0
    assert amount_score(90_000_000, COIN, 25) == pytest.approx(0.6)
    assert amount_score(110_000_000, COIN, 25) == pytest.approx(0.6)
    assert amount_score(75_000_000, COIN, 25) == pytest.approx(0.0)
    assert amount_score(70_000_000, COIN, 25) == 0.0
    assert amount_score(COIN, 0, 25) == 0.0


def test_score_is_zero_outside_both_tolerances():
    tx = make_tx(txid(1), "2023-07-01", 50_000_000)
    assert match_score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == 0.0


def test_gap_beyond_tolerance_scores_zero_even_with_perfect_other_dimension():
    # Exact amount, date one day beyond the 180-day window.
    late = make_tx(txid(1), "2023-07-01", COIN)
    assert match_score(late, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == 0.0
    # Exact date, amount 26% off against a 25% window.
    short = make_tx(txid(2), "2023-01-01", 74_000_000)
    assert match_score(short, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == 0.0


def test_gap_at_tolerance_boundary_keeps_other_dimension():
    # 180 days is inside the window; the date contributes 0 and the amount its full weight.
    tx = make_tx(txid(1), "2023-06-30", COIN)
    score = match_score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)
    assert score == pytest.approx(DEFAULT_ANNOTATION_CONFIG.amount_weight)


def test_score_uses_received_outputs_only():
    to_other = make_tx(txid(1), "2023-01-01", COIN, to=OTHER_ADDRESS)
    assert match_score(to_other, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == 0.0

    split = make_tx(txid(2), "2023-01-01", 60_000_000, extra_outputs=[(ADDRESS, 40_000_000)])
    assert match_score(split, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == pytest.approx(1.0)


def test_weights_follow_config():
    cfg = AnnotationConfig(date_weight=1.0, amount_weight=0.0)
    tx = make_tx(txid(1), "2023-01-01", 80_000_000)
    assert match_score(tx, GRANT, ADDRESS, cfg) == pytest.approx(1.0)


def test_scores_stay_in_unit_interval():
    for day in ("2022-07-05", "2022-12-31", "2023-01-01", "2023-01-02", "2023-06-29"):
        for sats in (1, 80_000_000, COIN, 120_000_000, 10 * COIN):
            tx = make_tx(txid(1), day, sats)
            s = match_score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)
            assert 0.0 <= s <= 1.0


def test_cached_scorer_matches_uncached_and_counts_hits():
    cache = InMemoryScoreCache()
    assert isinstance(cache, ScoreCache)
    scorer = MatchScorer(cache)
    tx = make_tx(txid(1), "2023-01-20", 95_000_000)

    first = scorer.score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)
    second = scorer.score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)

    assert first == second == match_score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)
    stats = cache.stats()
    assert (stats.size, stats.hits, stats.misses) == (1, 1, 1)
    assert stats.hit_rate == 0.5

    cache.clear()
    assert len(cache) == 0
    assert scorer.score(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG) == first


def test_cache_key_changes_with_config_and_grant_parameters():
    tx = make_tx(txid(1), "2023-01-01", COIN)
    base = score_key(tx, GRANT, ADDRESS, DEFAULT_ANNOTATION_CONFIG)
    other_cfg = AnnotationConfig(match_threshold=0.7)
    assert score_key(tx, GRANT, ADDRESS, other_cfg) != base

    other_grant = generate_expected_grants("2023-01-01", 2.0, 1)[0]
    assert score_key(tx, other_grant, ADDRESS, DEFAULT_ANNOTATION_CONFIG) != base
    assert score_key(tx, GRANT, ADDRESS, AnnotationConfig()) == base
