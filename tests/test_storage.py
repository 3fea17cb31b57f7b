"""Unit tests for the in-memory room store, the file word store and seeding."""

import os
import tempfile
import unittest

from core.config import REVERSE_ANSWERS, REVERSE_PLAYERS, REVERSE_ROOMS, VERSUS_ROOMS
from core.errors import NotFound, UniqueViolation
from core.models import AppConfig
from scripts.seed_words import get_seed_words, seed
from server.file_storage import FileStorage
from server.memory_storage import InMemoryRoomStore, matches


class TestInMemoryRoomStore(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryRoomStore()

    def test_insert_assigns_id_and_timestamps(self):
        row_id = self.store.insert(VERSUS_ROOMS, {'room_code': 'ABCD', 'status': 'waiting'})
        row = self.store.get(VERSUS_ROOMS, row_id)
        self.assertEqual(row['id'], row_id)
        self.assertEqual(row['room_code'], 'ABCD')
        self.assertIsNotNone(row['created_at'])
        self.assertIsNotNone(row['updated_at'])

    def test_get_missing_raises(self):
        with self.assertRaises(NotFound):
            self.store.get(VERSUS_ROOMS, 'nope')
        with self.assertRaises(NotFound):
            self.store.update(VERSUS_ROOMS, 'nope', {'status': 'active'})

    def test_rows_are_copies(self):
        row_id = self.store.insert(VERSUS_ROOMS, {'room_code': 'ABCD', 'player_a_words': [{'id': 'w'}]})
        row = self.store.get(VERSUS_ROOMS, row_id)
        row['player_a_words'].append({'id': 'x'})
        self.assertEqual(len(self.store.get(VERSUS_ROOMS, row_id)['player_a_words']), 1)

    def test_unique_room_code(self):
        self.store.insert(REVERSE_ROOMS, {'room_code': 'ABCD'})
        with self.assertRaises(UniqueViolation):
            self.store.insert(REVERSE_ROOMS, {'room_code': 'ABCD'})
        # different collections do not collide
        self.store.insert(VERSUS_ROOMS, {'room_code': 'ABCD'})

    def test_unique_composite_key(self):
        self.store.insert(REVERSE_ANSWERS, {'room_id': 'r', 'question_index': 0, 'user_id': 'u'})
        self.store.insert(REVERSE_ANSWERS, {'room_id': 'r', 'question_index': 1, 'user_id': 'u'})
        with self.assertRaises(UniqueViolation):
            self.store.insert(REVERSE_ANSWERS, {'room_id': 'r', 'question_index': 0, 'user_id': 'u'})

    def test_update_cannot_break_unique_key(self):
        self.store.insert(VERSUS_ROOMS, {'room_code': 'AAAA'})
        other = self.store.insert(VERSUS_ROOMS, {'room_code': 'BBBB'})
        with self.assertRaises(UniqueViolation):
            self.store.update(VERSUS_ROOMS, other, {'room_code': 'AAAA'})

    def test_find_filters(self):
        self.store.insert(REVERSE_PLAYERS, {'room_id': 'r1', 'user_id': 'a'})
        self.store.insert(REVERSE_PLAYERS, {'room_id': 'r1', 'user_id': 'b'})
        self.store.insert(REVERSE_PLAYERS, {'room_id': 'r2', 'user_id': 'a'})
        self.assertEqual(len(self.store.find(REVERSE_PLAYERS, room_id='r1')), 2)
        self.assertEqual(len(self.store.find(REVERSE_PLAYERS, user_id='a')), 2)
        self.assertEqual(self.store.find(REVERSE_PLAYERS, room_id='r3'), [])

    def test_compare_and_update(self):
        row_id = self.store.insert(VERSUS_ROOMS, {'status': 'waiting', 'player_b_id': None})
        self.assertTrue(self.store.compare_and_update(
            VERSUS_ROOMS, row_id, {'player_b_id': 'b'}, {'status': 'waiting', 'player_b_id': None}))
        self.assertFalse(self.store.compare_and_update(
            VERSUS_ROOMS, row_id, {'player_b_id': 'c'}, {'status': 'waiting', 'player_b_id': None}))
        self.assertEqual(self.store.get(VERSUS_ROOMS, row_id)['player_b_id'], 'b')

    def test_atomic_increment(self):
        row_id = self.store.insert(REVERSE_PLAYERS, {'room_id': 'r', 'user_id': 'u'})
        self.assertEqual(self.store.atomic_increment(REVERSE_PLAYERS, row_id, 'total_score', 1), 1)
        self.assertEqual(self.store.atomic_increment(REVERSE_PLAYERS, row_id, 'total_score', 2), 3)
        self.assertEqual(self.store.get(REVERSE_PLAYERS, row_id)['total_score'], 3)

    def test_delete_cascades_to_children(self):
        room_id = self.store.insert(REVERSE_ROOMS, {'room_code': 'ABCD'})
        other_room = self.store.insert(REVERSE_ROOMS, {'room_code': 'EFGH'})
        self.store.insert(REVERSE_PLAYERS, {'room_id': room_id, 'user_id': 'u'})
        self.store.insert(REVERSE_PLAYERS, {'room_id': other_room, 'user_id': 'u'})
        self.store.insert(REVERSE_ANSWERS, {'room_id': room_id, 'question_index': 0, 'user_id': 'u'})

        self.assertTrue(self.store.delete(REVERSE_ROOMS, room_id))
        self.assertFalse(self.store.delete(REVERSE_ROOMS, room_id))
        self.assertEqual(self.store.find(REVERSE_PLAYERS, room_id=room_id), [])
        self.assertEqual(self.store.find(REVERSE_ANSWERS, room_id=room_id), [])
        self.assertEqual(len(self.store.find(REVERSE_PLAYERS, room_id=other_room)), 1)

    def test_subscribers_receive_full_rows(self):
        events = []
        row_id = self.store.insert(VERSUS_ROOMS, {'room_code': 'ABCD', 'status': 'waiting'})
        subscription = self.store.subscribe(VERSUS_ROOMS, {'id': row_id},
                                            lambda event, row: events.append((event, row)))
        self.store.insert(VERSUS_ROOMS, {'room_code': 'EFGH'})
        self.store.update(VERSUS_ROOMS, row_id, {'status': 'active'})
        self.assertEqual(len(events), 1)
        event, row = events[0]
        self.assertEqual(event, 'update')
        self.assertEqual(row['status'], 'active')
        self.assertEqual(row['room_code'], 'ABCD')

        subscription.unsubscribe()
        self.store.update(VERSUS_ROOMS, row_id, {'status': 'finished'})
        self.assertEqual(len(events), 1)

    def test_cascade_deletes_are_published(self):
        room_id = self.store.insert(REVERSE_ROOMS, {'room_code': 'ABCD'})
        self.store.insert(REVERSE_PLAYERS, {'room_id': room_id, 'user_id': 'u'})
        events = []
        self.store.subscribe(REVERSE_PLAYERS, {'room_id': room_id},
                             lambda event, row: events.append(event))
        self.store.delete(REVERSE_ROOMS, room_id)
        self.assertEqual(events, ['delete'])

    def test_failing_subscriber_does_not_break_writes(self):
        def broken(event, row):
            raise RuntimeError("boom")

        received = []
        self.store.subscribe(VERSUS_ROOMS, {}, broken)
        self.store.subscribe(VERSUS_ROOMS, {}, lambda event, row: received.append(event))
        self.store.insert(VERSUS_ROOMS, {'room_code': 'ABCD'})
        self.assertEqual(received, ['insert'])

    def test_matches(self):
        self.assertTrue(matches({'a': 1, 'b': None}, {'b': None}))
        self.assertFalse(matches({'a': 1}, {'a': 2}))
        self.assertTrue(matches({'a': 1}, {}))


class TestFileStorage(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.state_dir = self._tmp.name
        self.store = FileStorage(state_dir=self.state_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def test_empty_store(self):
        self.assertEqual(self.store.list_users(), [])
        self.assertIsNone(self.store.get_user('nobody'))
        self.assertEqual(self.store.load_config(), AppConfig.default().to_dict())

    def test_create_user(self):
        user_id = self.store.create_user('  Ana ')
        self.assertEqual(self.store.get_user(user_id)['name'], 'Ana')
        self.assertEqual([u['id'] for u in self.store.list_users()], [user_id])
        self.assertTrue(os.path.exists(os.path.join(self.state_dir, 'vocab_users.json')))

    def test_new_word_gets_progress_for_every_user(self):
        ana = self.store.create_user('Ana')
        ben = self.store.create_user('Ben')
        word_id = self.store.create_word('serene', 'se-REEN', 'calm')
        for user_id in (ana, ben):
            rows = self.store.get_words_with_progress(user_id)
            self.assertEqual([r['id'] for r in rows], [word_id])
            self.assertEqual(rows[0]['level_id'], 1)
            self.assertEqual(rows[0]['streak_correct'], 0)
            self.assertIsNotNone(rows[0]['due_at'])

    def test_new_user_gets_progress_for_every_word(self):
        self.store.create_word('serene', '', 'calm')
        self.store.create_word('candid', '', 'frank')
        user_id = self.store.create_user('Ana')
        rows = self.store.get_words_with_progress(user_id)
        self.assertEqual([r['word'] for r in rows], ['candid', 'serene'])

    def test_update_word(self):
        word_id = self.store.create_word('serene', '', 'calm')
        user_id = self.store.create_user('Ana')
        self.store.update_word(word_id, 'serene', 'se-REEN', 'calm and peaceful', 'http://img')
        row = self.store.get_words_with_progress(user_id)[0]
        self.assertEqual(row['definition'], 'calm and peaceful')
        self.assertEqual(row['image_url'], 'http://img')
        with self.assertRaises(NotFound):
            self.store.update_word('missing', 'x', '', '')

    def test_delete_word_removes_progress(self):
        user_id = self.store.create_user('Ana')
        word_id = self.store.create_word('serene', '', 'calm')
        self.assertTrue(self.store.delete_word(word_id))
        self.assertFalse(self.store.delete_word(word_id))
        self.assertEqual(self.store.get_words_with_progress(user_id), [])
        with self.assertRaises(NotFound):
            self.store.save_progress(user_id, word_id, {'streak_correct': 1})

    def test_save_progress(self):
        user_id = self.store.create_user('Ana')
        word_id = self.store.create_word('serene', '', 'calm')
        self.store.save_progress(user_id, word_id, {'streak_correct': 2, 'last_result': 'right'})
        row = self.store.get_words_with_progress(user_id)[0]
        self.assertEqual(row['streak_correct'], 2)
        self.assertEqual(row['last_result'], 'right')
        self.assertEqual(row['level_id'], 1)

    def test_save_progress_unknown_user(self):
        word_id = self.store.create_word('serene', '', 'calm')
        with self.assertRaises(NotFound):
            self.store.save_progress('nobody', word_id, {})

    def test_config_is_normalized_on_save(self):
        self.store.save_config({'levels': [
            {'id': 2, 'name': 'Two', 'promote_after_correct': 0, 'interval_days': 99999},
            {'id': 1, 'name': 'One', 'promote_after_correct': 3, 'interval_days': 1},
        ], 'wrong_makes_immediately_due': True, 'wrong_resets_streak': False})
        config = self.store.load_config()
        self.assertEqual([level['id'] for level in config['levels']], [1, 2])
        self.assertEqual(config['levels'][1]['promote_after_correct'], 1)
        self.assertEqual(config['levels'][1]['interval_days'], 3650)
        self.assertFalse(config['wrong_resets_streak'])

    def test_corrupt_file_falls_back(self):
        with open(os.path.join(self.state_dir, 'vocab_config.json'), 'w') as f:
            f.write('{not json')
        self.assertEqual(self.store.load_config(), AppConfig.default().to_dict())

    def test_state_survives_new_instance(self):
        user_id = self.store.create_user('Ana')
        self.store.create_word('serene', '', 'calm')
        reopened = FileStorage(state_dir=self.state_dir)
        self.assertEqual(len(reopened.get_words_with_progress(user_id)), 1)


class TestSeed(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = FileStorage(state_dir=self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_seed_words_are_complete(self):
        words = get_seed_words()
        self.assertEqual(len(words), 20)
        self.assertEqual(len({w[0] for w in words}), 20)
        self.assertTrue(all(hint and definition for _, hint, definition in words))

    def test_seed_adds_missing_words_only(self):
        user_id = self.store.create_user('Ana')
        self.store.create_word('Serene', '', 'calm')
        added = seed(self.store)
        self.assertEqual(added, 19)
        self.assertEqual(len(self.store.get_words_with_progress(user_id)), 20)
        self.assertEqual(seed(self.store), 0)

    def test_seed_custom_words(self):
        self.store.create_user('Ana')
        self.assertEqual(seed(self.store, [('lucid', 'LOO-sid', 'clear')]), 1)


if __name__ == '__main__':
    unittest.main()
