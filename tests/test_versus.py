"""Unit tests for the versus room state machine."""

import random
import unittest

from core.config import VERSUS_ROOMS
from core.errors import (
    Conflict, InsufficientWords, NotFound, NotYourTurn, RoomCreationExhausted, RoomFull,
    RoomUnavailable
)
from core.versus import ACTIVE, FINISHED, WAITING, VersusGame, VersusRoom, merge_versus_snapshot
from server.memory_storage import InMemoryRoomStore

from fakes import FixedClock, MockWordStore


class ConstantRandom(random.Random):
    """Always picks the first choice, so every room code is the same."""

    def choice(self, seq):
        return seq[0]


class VersusTestCase(unittest.TestCase):

    def setUp(self):
        self.words = MockWordStore()
        self.rooms = InMemoryRoomStore()
        self.clock = FixedClock()
        self.alice = self.words.create_user('Alice')
        self.bob = self.words.create_user('Bob')
        self.game = VersusGame(self.rooms, self.words, rng=random.Random(3), clock=self.clock)

    def started_room(self, word_count: int = 15) -> VersusRoom:
        self.words.add_words(word_count)
        room = self.game.create_room(self.alice)
        return self.game.join_room(room.room_code, self.bob)

    def answer_many(self, room_id, user_id, marks):
        room = None
        for correct in marks:
            room = self.game.answer(room_id, user_id, correct)
        return room


class TestCreateAndJoin(VersusTestCase):

    def test_create_room(self):
        room = self.game.create_room(self.alice)
        self.assertEqual(room.status, WAITING)
        self.assertEqual(room.player_a_id, self.alice)
        self.assertIsNone(room.player_b_id)
        self.assertEqual(len(room.room_code), 4)
        self.assertEqual(room.player_a_name, 'Alice')

    def test_create_unknown_user(self):
        with self.assertRaises(NotFound):
            self.game.create_room('nobody')

    def test_code_collision_retries(self):
        first = VersusGame(self.rooms, self.words, rng=random.Random(8), clock=self.clock)
        second = VersusGame(self.rooms, self.words, rng=random.Random(8), clock=self.clock)
        a = first.create_room(self.alice)
        b = second.create_room(self.bob)
        self.assertNotEqual(a.room_code, b.room_code)

    def test_code_collision_budget_exhausted(self):
        game = VersusGame(self.rooms, self.words, rng=ConstantRandom(), clock=self.clock)
        game.create_room(self.alice)
        with self.assertRaises(RoomCreationExhausted):
            game.create_room(self.bob)

    def test_join_starts_game(self):
        room = self.started_room()
        self.assertEqual(room.status, ACTIVE)
        self.assertEqual(room.player_b_id, self.bob)
        self.assertEqual(len(room.player_a_words), 10)
        self.assertEqual(len(room.player_b_words), 10)
        self.assertEqual(room.current_turn, self.alice)
        self.assertEqual(room.turn_start_time, self.clock().isoformat())
        for side in ('a', 'b'):
            self.assertEqual(room.index(side), 0)
            self.assertEqual(room.right_count(side), 0)
            self.assertEqual(room.wrong_count(side), 0)

    def test_join_is_case_insensitive(self):
        self.words.add_words(12)
        room = self.game.create_room(self.alice)
        joined = self.game.join_room(f' {room.room_code.lower()} ', self.bob)
        self.assertEqual(joined.id, room.id)

    def test_join_unknown_code(self):
        with self.assertRaises(NotFound):
            self.game.join_room('ZZZZ', self.bob)

    def test_rejoin_is_reconnect(self):
        room = self.started_room()
        before = self.rooms.get(VERSUS_ROOMS, room.id)
        for user_id in (self.alice, self.bob):
            again = self.game.join_room(room.room_code, user_id)
            self.assertEqual(again.id, room.id)
        self.assertEqual(self.rooms.get(VERSUS_ROOMS, room.id), before)

    def test_creator_joining_own_room_reconnects(self):
        room = self.game.create_room(self.alice)
        again = self.game.join_room(room.room_code, self.alice)
        self.assertEqual(again.status, WAITING)
        self.assertIsNone(again.player_b_id)

    def test_third_player_rejected_from_active_room(self):
        room = self.started_room()
        carol = self.words.create_user('Carol')
        with self.assertRaises(RoomUnavailable):
            self.game.join_room(room.room_code, carol)

    def test_failed_start_leaves_room_waiting(self):
        room = self.game.create_room(self.alice)
        with self.assertRaises(InsufficientWords):
            self.game.join_room(room.room_code, self.bob)
        stored = self.game.get_room(room.id)
        self.assertEqual(stored.status, WAITING)
        self.assertEqual(stored.player_a_words, [])

        carol = self.words.create_user('Carol')
        with self.assertRaises(RoomFull):
            self.game.join_room(room.room_code, carol)

        self.words.add_words(5)
        started = self.game.start_game(room.id)
        self.assertEqual(started.status, ACTIVE)
        self.assertEqual(len(started.player_a_words), 5)

    def test_words_are_cross_assigned(self):
        shared = self.words.add_words(20)
        for word_id in shared[:10]:
            self.words.mark_attempted(self.bob, word_id)
        room = self.game.create_room(self.alice)
        room = self.game.join_room(room.room_code, self.bob)
        # Alice reads Bob's struggling words aloud
        self.assertEqual({w['id'] for w in room.player_a_words}, set(shared[:10]))
        self.assertEqual(set(room.player_a_words[0]), {'id', 'word', 'hint', 'definition', 'image_url'})


class TestAnswers(VersusTestCase):

    def test_only_turn_holder_may_answer(self):
        room = self.started_room()
        with self.assertRaises(NotYourTurn):
            self.game.answer(room.id, self.bob, True)

    def test_answer_requires_active_room(self):
        room = self.game.create_room(self.alice)
        with self.assertRaises(Conflict):
            self.game.answer(room.id, self.alice, True)

    def test_correct_credits_listener_and_keeps_turn(self):
        room = self.started_room()
        room = self.game.answer(room.id, self.alice, True)
        self.assertEqual(room.player_a_index, 1)
        self.assertEqual(room.player_b_right_count, 1)
        self.assertEqual(room.current_turn, self.alice)

    def test_wrong_credits_listener_and_switches_turn(self):
        room = self.started_room()
        self.clock.advance(seconds=4)
        room = self.game.answer(room.id, self.alice, False)
        self.assertEqual(room.player_b_wrong_count, 1)
        self.assertEqual(room.player_a_time, 4000)
        self.assertEqual(room.current_turn, self.bob)
        self.assertEqual(room.turn_start_time, self.clock().isoformat())

    def test_live_time_for_turn_holder(self):
        room = self.started_room()
        self.clock.advance(seconds=3)
        room = self.game.get_room(room.id)
        self.assertEqual(room.live_time_ms('a', self.clock()), 3000)
        self.assertEqual(room.live_time_ms('b', self.clock()), 0)

    def test_room_row_updated_in_store(self):
        room = self.started_room()
        self.game.answer(room.id, self.alice, False)
        row = self.rooms.get(VERSUS_ROOMS, room.id)
        self.assertEqual(row['current_turn'], self.bob)
        self.assertEqual(row['player_b_wrong_count'], 1)


class TestFinish(VersusTestCase):

    def test_full_game_decided_by_tally(self):
        room = self.started_room()
        # Alice reads: Bob gets nine right, then misses the last one
        room = self.answer_many(room.id, self.alice, [True] * 9 + [False])
        self.assertEqual(room.player_b_right_count, 9)
        self.assertEqual(room.player_b_wrong_count, 1)
        self.assertEqual(room.player_a_index, 10)
        # Alice never missed a word herself, so Bob gets his turn
        self.assertEqual(room.status, ACTIVE)
        self.assertEqual(room.current_turn, self.bob)

        room = self.answer_many(room.id, self.bob, [True, False, True, False, True, False,
                                                    True, False, False, False])
        self.assertEqual(room.player_a_right_count, 4)
        self.assertEqual(room.status, FINISHED)
        self.assertEqual(room.winner_id, self.bob)
        self.assertIsNone(room.current_turn)

    def test_exhausted_listener_keeps_turn_with_reader(self):
        room = self.started_room()
        room = self.answer_many(room.id, self.alice, [True] * 10)
        self.assertEqual(room.current_turn, self.bob)
        room = self.game.answer(room.id, self.bob, False)
        self.assertEqual(room.current_turn, self.bob)
        self.assertEqual(room.player_a_wrong_count, 1)

    def test_flawless_finisher_passes_turn(self):
        room = self.started_room()
        room = self.answer_many(room.id, self.alice, [True] * 10)
        self.assertEqual(room.status, ACTIVE)
        self.assertEqual(room.current_turn, self.bob)
        self.assertIsNone(room.winner_id)

    def test_flawed_finisher_ends_game_on_current_tally(self):
        room = self.started_room()
        room = self.game.answer(room.id, self.alice, False)      # turn to Bob
        room = self.game.answer(room.id, self.bob, False)        # Alice missed one, turn back
        self.assertEqual(room.player_a_wrong_count, 1)
        room = self.answer_many(room.id, self.alice, [True] * 9)
        self.assertEqual(room.status, FINISHED)
        self.assertEqual(room.winner_id, self.bob)

    def test_flawed_finisher_wins_ties(self):
        room = self.started_room()
        self.rooms.update(VERSUS_ROOMS, room.id, {
            'player_a_index': 9, 'player_a_wrong_count': 1,
            'player_a_right_count': 3, 'player_b_right_count': 3
        })
        room = self.game.answer(room.id, self.alice, False)
        self.assertEqual(room.status, FINISHED)
        self.assertEqual(room.winner_id, self.alice)

    def finish_both(self, room, **fields):
        self.rooms.update(VERSUS_ROOMS, room.id, {'player_a_index': 10, 'player_b_index': 10, **fields})
        return self.game.finish_game(self.game.get_room(room.id), 'b')

    def test_more_right_answers_win_regardless_of_time(self):
        for a_time, b_time in ((90000, 1000), (1000, 90000), (5000, 5000)):
            room = self.started_room()
            room = self.finish_both(room, player_a_right_count=7, player_b_right_count=3,
                                    player_a_time=a_time, player_b_time=b_time)
            self.assertEqual(room.winner_id, self.alice)
            self.assertEqual(room.status, FINISHED)

    def test_tie_broken_by_faster_time(self):
        room = self.started_room()
        room = self.finish_both(room, player_a_right_count=5, player_b_right_count=5,
                                player_a_time=8000, player_b_time=12000)
        self.assertEqual(room.winner_id, self.alice)

    def test_exact_tie_goes_to_second_player(self):
        room = self.started_room()
        room = self.finish_both(room, player_a_right_count=5, player_b_right_count=5,
                                player_a_time=8000, player_b_time=8000)
        self.assertEqual(room.winner_id, self.bob)


class TestLifecycle(VersusTestCase):

    def test_leave_abandons_without_winner(self):
        room = self.started_room()
        room = self.game.leave(room.id, self.bob)
        self.assertEqual(room.status, FINISHED)
        self.assertIsNone(room.winner_id)

    def test_leave_by_stranger(self):
        room = self.started_room()
        with self.assertRaises(Conflict):
            self.game.leave(room.id, 'stranger')

    def test_play_again_resets_in_place(self):
        room = self.started_room()
        self.answer_many(room.id, self.alice, [False])
        self.game.leave(room.id, self.alice)
        again = self.game.play_again(room.id, self.bob)
        self.assertEqual(again.id, room.id)
        self.assertEqual(again.status, ACTIVE)
        self.assertEqual(again.player_b_wrong_count, 0)
        self.assertEqual(again.player_a_time, 0)
        self.assertEqual(again.current_turn, self.alice)
        self.assertIsNone(again.winner_id)

    def test_play_again_requires_finished(self):
        room = self.started_room()
        with self.assertRaises(Conflict):
            self.game.play_again(room.id, self.alice)

    def test_delete_room(self):
        room = self.started_room()
        self.assertTrue(self.game.delete_room(room.id))
        self.assertFalse(self.game.delete_room(room.id))
        with self.assertRaises(NotFound):
            self.game.get_room(room.id)


class TestMergeSnapshot(unittest.TestCase):

    def make_room(self, **fields):
        data = {'id': 'r1', 'room_code': 'ABCD', 'player_a_id': 'a', 'player_b_id': 'b',
                'status': ACTIVE}
        data.update(fields)
        return VersusRoom.from_dict(data)

    def test_keeps_known_words_and_names(self):
        words = [{'id': 'w1', 'word': 'serene'}]
        known = self.make_room(player_a_words=words, player_b_words=words,
                               player_a_name='Alice', player_b_name='Bob')
        incoming = self.make_room(player_a_index=1)
        merged = merge_versus_snapshot(known, incoming)
        self.assertEqual(merged.player_a_words, words)
        self.assertEqual(merged.player_b_name, 'Bob')
        self.assertEqual(merged.player_a_index, 1)

    def test_incoming_values_win(self):
        known = self.make_room(player_a_words=[{'id': 'old'}], player_a_name='Alice')
        incoming = self.make_room(player_a_words=[{'id': 'new'}], player_a_name='Alicia')
        merged = merge_versus_snapshot(known, incoming)
        self.assertEqual(merged.player_a_words, [{'id': 'new'}])
        self.assertEqual(merged.player_a_name, 'Alicia')

    def test_name_not_kept_for_new_player(self):
        known = self.make_room(player_b_id=None, player_b_name=None)
        known.player_b_name = 'Ghost'
        incoming = self.make_room(player_b_id='carol')
        merged = merge_versus_snapshot(known, incoming)
        self.assertIsNone(merged.player_b_name)

    def test_words_decoded_from_json_strings(self):
        room = self.make_room(player_a_words='[{"id": "w1"}]')
        self.assertEqual(room.player_a_words, [{'id': 'w1'}])

    def test_unknown_snapshot_replaced(self):
        incoming = self.make_room()
        self.assertIs(merge_versus_snapshot(None, incoming), incoming)


if __name__ == '__main__':
    unittest.main()
