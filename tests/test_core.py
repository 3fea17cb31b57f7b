"""Unit tests for core models, config normalization and utilities."""

import unittest
from datetime import datetime, timezone

from core.models import AppConfig, LevelConfig, WordItem, normalize_config, normalize_word
from core.utils import clamp_int, elapsed_ms, parse_iso, to_iso
from core.config import MAX_INTERVAL_DAYS, MAX_PROMOTE_AFTER, MAX_STREAK, MAX_TOTAL_COUNT

from fakes import START


class TestClampInt(unittest.TestCase):
    """Tests for clamp_int utility function."""

    def test_within_bounds(self):
        self.assertEqual(clamp_int(5, 0, 10), 5)

    def test_truncates_floats(self):
        self.assertEqual(clamp_int(4.9, 0, 10), 4)

    def test_clamps_to_bounds(self):
        self.assertEqual(clamp_int(-3, 0, 10), 0)
        self.assertEqual(clamp_int(42, 0, 10), 10)

    def test_garbage_becomes_low(self):
        self.assertEqual(clamp_int('abc', 1, 99), 1)
        self.assertEqual(clamp_int(None, 1, 99), 1)
        self.assertEqual(clamp_int(float('nan'), 1, 99), 1)

    def test_infinity(self):
        self.assertEqual(clamp_int(float('inf'), 0, 3650), 3650)
        self.assertEqual(clamp_int(float('-inf'), 0, 3650), 0)

    def test_numeric_string(self):
        self.assertEqual(clamp_int('7', 0, 10), 7)


class TestTimeUtils(unittest.TestCase):

    def test_parse_iso_with_z_suffix(self):
        parsed = parse_iso('2026-03-10T15:30:00Z')
        self.assertEqual(parsed, START)

    def test_parse_iso_naive_is_utc(self):
        parsed = parse_iso('2026-03-10T15:30:00')
        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_parse_iso_passes_datetime_through(self):
        self.assertIs(parse_iso(START), START)

    def test_parse_iso_garbage(self):
        self.assertIsNone(parse_iso('not a date'))
        self.assertIsNone(parse_iso(''))
        self.assertIsNone(parse_iso(None))

    def test_to_iso_roundtrip(self):
        self.assertEqual(parse_iso(to_iso(START)), START)
        self.assertIsNone(to_iso(None))

    def test_elapsed_ms(self):
        later = datetime(2026, 3, 10, 15, 30, 2, 500000, tzinfo=timezone.utc)
        self.assertEqual(elapsed_ms(to_iso(START), later), 2500)

    def test_elapsed_ms_never_negative(self):
        earlier = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
        self.assertEqual(elapsed_ms(START, earlier), 0)

    def test_elapsed_ms_unset_start(self):
        self.assertEqual(elapsed_ms(None, START), 0)


class TestNormalizeConfig(unittest.TestCase):
    """Tests for scheduler config normalization."""

    def test_default_ladder(self):
        config = AppConfig.default()
        self.assertEqual(config.level_ids, [1, 2, 3])
        self.assertEqual([l.promote_after_correct for l in config.levels], [3, 2, 1])
        self.assertEqual([l.interval_days for l in config.levels], [1, 7, 30])
        self.assertTrue(config.wrong_makes_immediately_due)
        self.assertTrue(config.wrong_resets_streak)

    def test_sorts_levels_by_id(self):
        config = normalize_config({'levels': [
            {'id': 3, 'name': 'C', 'promote_after_correct': 1, 'interval_days': 30},
            {'id': 1, 'name': 'A', 'promote_after_correct': 3, 'interval_days': 1},
        ]})
        self.assertEqual(config.level_ids, [1, 3])

    def test_drops_duplicate_ids(self):
        config = normalize_config({'levels': [
            {'id': 1, 'name': 'First', 'promote_after_correct': 2, 'interval_days': 1},
            {'id': 1, 'name': 'Second', 'promote_after_correct': 5, 'interval_days': 9},
        ]})
        self.assertEqual(len(config.levels), 1)
        self.assertEqual(config.levels[0].name, 'First')

    def test_empty_ladder_uses_default(self):
        config = normalize_config({'levels': []})
        self.assertEqual(config.level_ids, [1, 2, 3])

    def test_garbage_input_never_raises(self):
        for data in (None, 'nope', 42, {'levels': 'bad'}, {'levels': [None, 'x']}):
            config = normalize_config(data)
            self.assertTrue(config.levels)

    def test_clamps_level_fields(self):
        config = normalize_config({'levels': [
            {'id': 1, 'name': 'L', 'promote_after_correct': 500, 'interval_days': 99999},
            {'id': 2, 'name': 'M', 'promote_after_correct': 0, 'interval_days': -4},
        ]})
        self.assertEqual(config.levels[0].promote_after_correct, MAX_PROMOTE_AFTER)
        self.assertEqual(config.levels[0].interval_days, MAX_INTERVAL_DAYS)
        self.assertEqual(config.levels[1].promote_after_correct, 1)
        self.assertEqual(config.levels[1].interval_days, 0)

    def test_accepts_camel_case(self):
        config = normalize_config({
            'levels': [{'id': 1, 'name': 'L', 'promoteAfterCorrect': 4, 'intervalDays': 2}],
            'wrongMakesImmediatelyDue': True,
            'wrongResetsStreak': False
        })
        self.assertEqual(config.levels[0].promote_after_correct, 4)
        self.assertEqual(config.levels[0].interval_days, 2)
        self.assertTrue(config.wrong_makes_immediately_due)
        self.assertFalse(config.wrong_resets_streak)

    def test_roundtrip(self):
        config = AppConfig.default()
        restored = AppConfig.from_dict(config.to_dict())
        self.assertEqual(restored.to_dict(), config.to_dict())


class TestLevelLadder(unittest.TestCase):
    """Tests for level lookup helpers."""

    def setUp(self):
        self.config = normalize_config({'levels': [
            {'id': 1, 'name': 'A', 'promote_after_correct': 3, 'interval_days': 1},
            {'id': 3, 'name': 'C', 'promote_after_correct': 2, 'interval_days': 7},
            {'id': 5, 'name': 'E', 'promote_after_correct': 1, 'interval_days': 30},
        ]})

    def test_clamp_known_id(self):
        self.assertEqual(self.config.clamp_level_id(3), 3)

    def test_clamp_below_and_above(self):
        self.assertEqual(self.config.clamp_level_id(-7), 1)
        self.assertEqual(self.config.clamp_level_id(12), 5)

    def test_clamp_gap_prefers_lower_on_tie(self):
        self.assertEqual(self.config.clamp_level_id(2), 1)
        self.assertEqual(self.config.clamp_level_id(4), 3)

    def test_clamp_garbage(self):
        self.assertEqual(self.config.clamp_level_id('x'), 1)

    def test_get_level_clamps(self):
        self.assertEqual(self.config.get_level(99).name, 'E')

    def test_next_higher_level(self):
        self.assertEqual(self.config.next_higher_level_id(1), 3)
        self.assertEqual(self.config.next_higher_level_id(3), 5)
        self.assertEqual(self.config.next_higher_level_id(5), 5)

    def test_is_max_level(self):
        self.assertTrue(self.config.is_max_level(5))
        self.assertFalse(self.config.is_max_level(3))

    def test_level_from_dict_bad_id_uses_position(self):
        level = LevelConfig.from_dict({'id': 'abc', 'name': 'X'}, position=2)
        self.assertEqual(level.id, 3)


class TestNormalizeWord(unittest.TestCase):
    """Tests for WordItem normalization."""

    def setUp(self):
        self.config = AppConfig.default()

    def test_defaults_for_new_word(self):
        word = normalize_word({'id': 'w1', 'word': ' serene '}, self.config, START)
        self.assertEqual(word.word, 'serene')
        self.assertEqual(word.level_id, 1)
        self.assertEqual(word.streak_correct, 0)
        self.assertEqual(word.due_at, START)
        self.assertIsNone(word.last_result)
        self.assertFalse(word.attempted)

    def test_clamps_counts(self):
        word = normalize_word({'id': 'w1', 'word': 'x', 'streak_correct': 10 ** 9,
                               'total_right': -5, 'total_wrong': 10 ** 9}, self.config, START)
        self.assertEqual(word.streak_correct, MAX_STREAK)
        self.assertEqual(word.total_right, 0)
        self.assertEqual(word.total_wrong, MAX_TOTAL_COUNT)

    def test_unknown_level_clamped(self):
        word = normalize_word({'id': 'w1', 'word': 'x', 'level_id': 9}, self.config, START)
        self.assertEqual(word.level_id, 3)

    def test_invalid_last_result_dropped(self):
        word = normalize_word({'id': 'w1', 'word': 'x', 'last_result': 'maybe'}, self.config, START)
        self.assertIsNone(word.last_result)

    def test_camel_case_fields(self):
        word = normalize_word({'id': 'w1', 'word': 'x', 'levelId': 2, 'totalWrong': 3,
                               'dueAt': '2026-04-01T00:00:00Z', 'imageUrl': 'http://img'},
                              self.config, START)
        self.assertEqual(word.level_id, 2)
        self.assertEqual(word.total_wrong, 3)
        self.assertEqual(word.due_at, datetime(2026, 4, 1, tzinfo=timezone.utc))
        self.assertEqual(word.image_url, 'http://img')
        self.assertTrue(word.attempted)

    def test_to_dict_contains_progress(self):
        word = WordItem.from_dict({'id': 'w1', 'word': 'x', 'total_right': 2}, now=START)
        data = word.to_dict()
        self.assertEqual(data['id'], 'w1')
        self.assertEqual(data['total_right'], 2)
        self.assertEqual(data['due_at'], START.isoformat())

    def test_progress_dict_fields(self):
        word = WordItem.from_dict({'id': 'w1', 'word': 'x'}, now=START)
        self.assertEqual(set(word.progress_dict()), {
            'level_id', 'streak_correct', 'total_right', 'total_wrong',
            'last_reviewed_at', 'due_at', 'last_result'
        })


if __name__ == '__main__':
    unittest.main()
