"""Console UI for the vocab arena application."""

import time

import requests

from core.config import LESSON_SIZE, RESULTS_DELAY_SECONDS, VERSUS_WORDS_PER_PLAYER
from cli.api_client import VocabAPIClient

POLL_SECONDS = 1


class ConsoleUI:
    """Console user interface for practice sessions and multiplayer rooms."""

    def __init__(self, client: VocabAPIClient):
        self.client = client

    def connect(self) -> bool:
        try:
            health = self.client.health_check()
            print(f"Connected to {health['name']}")
            return True
        except Exception:
            print(f"Error: Cannot connect to server at {self.client.base_url}")
            print("Make sure the server is running: python run_server.py")
            return False

    def print_users(self):
        users = self.client.list_users()
        if not users:
            print('No users yet.')
        for user in users:
            print(f"  {user['id']}  {user['name']}")

    def print_word_card(self, status: dict):
        word = status['current_word']
        if status['reviewing']:
            print(f"\n[Review] {status['wrong_pool_size']} words left to fix")
        else:
            print(f"\n[{status['position'] + 1}/{status['lesson_size']}] Level {word['level_id']}")
        print(f">>> {word['word']}")
        if word.get('hint'):
            print(f"    hint: {word['hint']}")

    def print_summary(self, status: dict):
        print('\n' + '=' * 40)
        print('LESSON COMPLETE')
        print('=' * 40)
        print(f"Answered: {status['seen_count']}  Right: {status['right_count']}  Wrong: {status['wrong_count']}")
        if status['persistence_failures']:
            print(f"Warning: {len(status['persistence_failures'])} answers could not be saved")
        print('=' * 40 + '\n')

    def run_practice(self):
        """Run a practice lesson: reveal each definition, then grade yourself."""
        words = self.client.get_words(due_only=True)
        print(f"{words['due_count']} words due, lessons take up to {LESSON_SIZE}")
        status = self.client.start_practice()
        if status['state'] == 'finished':
            print('Nothing to practice right now.')
            return

        print('Press Enter to reveal, then "y" if you knew it, "n" if not. "exit" to stop.\n')
        while status['state'] != 'finished':
            self.print_word_card(status)
            if input('==> ').strip().lower() == 'exit':
                status = self.client.stop_practice()
                break
            print(f"    {status['current_word']['definition']}")

            answer = ''
            while answer not in ('y', 'n', 'exit'):
                answer = input('Knew it? [y/n] ').strip().lower()
            if answer == 'exit':
                status = self.client.stop_practice()
                break
            status = self.client.answer_practice(answer == 'y')

        self.print_summary(status)

    def print_versus_room(self, room: dict):
        print('\n' + '=' * 50)
        print(f"VERSUS {room['room_code']}  ({room['status']})")
        print('=' * 50)
        for side in ('a', 'b'):
            name = room[f'player_{side}_name'] or 'waiting...'
            marker = '*' if room['current_turn'] and room['current_turn'] == room[f'player_{side}_id'] else ' '
            print(f" {marker} {name:<20} right {room[f'player_{side}_right_count']:>2}  "
                  f"wrong {room[f'player_{side}_wrong_count']:>2}  "
                  f"read {room[f'player_{side}_index']}/{len(room[f'player_{side}_words']) or VERSUS_WORDS_PER_PLAYER}  "
                  f"time {room[f'player_{side}_live_time'] / 1000:.1f}s")
        if room['status'] == 'finished':
            if room['winner_id']:
                winner = 'a' if room['winner_id'] == room['player_a_id'] else 'b'
                print(f"\nWinner: {room[f'player_{winner}_name']}")
            else:
                print('\nGame abandoned')
        print('=' * 50)

    def play_versus(self, room_code: str = None):
        """Create or join a versus room and read words aloud when it is your turn."""
        room = self.client.join_versus_room(room_code) if room_code else self.client.create_versus_room()
        print(f"Room code: {room['room_code']}")
        me = 'a' if room['player_a_id'] == self.client.user_id else 'b'

        while room['status'] != 'finished':
            if room['status'] == 'waiting' or room['current_turn'] != self.client.user_id:
                time.sleep(POLL_SECONDS)
                room = self.client.get_versus_room(room['id'])
                continue

            self.print_versus_room(room)
            word = room[f'player_{me}_words'][room[f'player_{me}_index']]
            print(f"\nRead aloud: {word['word']}")
            print(f"Expected: {word['definition']}")
            answer = ''
            while answer not in ('y', 'n'):
                answer = input('Did they get it? [y/n] ').strip().lower()
            room = self.client.answer_versus(room['id'], answer == 'y')

        self.print_versus_room(room)

    def print_reverse_room(self, room: dict):
        print('\n' + '=' * 50)
        print(f"REVERSE {room['room_code']}  ({room['status']})  "
              f"question {room['current_question_index'] + 1}/{room['total_questions']}")
        print('=' * 50)
        for player in sorted(room['players'], key=lambda p: -p['total_score']):
            online = '' if player['is_connected'] else ' (away)'
            print(f"  {player['player_name']:<20} {player['total_score']:>3}{online}")
        print('=' * 50)

    def print_stats(self, stats: list[dict]):
        print('\nFINAL STANDINGS')
        for rank, s in enumerate(stats, start=1):
            print(f"{rank}. {s['player_name']:<20} {s['total_score']:>3} pts  "
                  f"{s['correct_answers']} right, {s['bonus_points']} bonus, "
                  f"avg {s['average_answer_time_ms'] / 1000:.1f}s")

    def play_reverse(self, room_code: str = None):
        """Create or join a reverse room and answer each definition."""
        room = self.client.join_reverse_room(room_code) if room_code else self.client.create_reverse_room()
        print(f"Room code: {room['room_code']}")

        if room['host_id'] == self.client.user_id:
            input('Press Enter when everyone has joined...')
            room = self.client.start_reverse_game(room['id'])

        is_host = room['host_id'] == self.client.user_id
        answered = None
        shown_results = None
        results_since = None
        while room['status'] != 'finished':
            index = room['current_question_index']
            if room['status'] == 'question' and answered != index:
                question = room['current_question']
                print(f"\n{question['definition']}")
                for number, option in enumerate(question['options'], start=1):
                    print(f"  {number}. {option['word']}")
                choice = input('Your answer: ').strip()
                selected = None
                if choice.isdigit() and 1 <= int(choice) <= len(question['options']):
                    selected = question['options'][int(choice) - 1]['id']
                try:
                    result = self.client.answer_reverse(room['id'], index, selected)
                    print('Correct!' if result['answer']['is_correct'] else 'Wrong.')
                except requests.HTTPError as e:
                    if e.response is None or e.response.status_code != 409:
                        raise
                    print('Too late, time is up.')
                answered = index
            elif room['status'] == 'question' and not is_host:
                self.client.check_reverse(room['id'], index)
            elif room['status'] == 'results' and shown_results != index:
                self.print_reverse_room(room)
                shown_results = index
                results_since = time.monotonic()
            elif room['status'] == 'results' and is_host \
                    and time.monotonic() - results_since >= RESULTS_DELAY_SECONDS:
                self.client.advance_reverse(room['id'], index)
            elif room['status'] == 'active' and is_host:
                self.client.advance_reverse(room['id'], index)
            time.sleep(POLL_SECONDS)
            room = self.client.get_reverse_room(room['id'])

        self.print_stats(self.client.get_reverse_stats(room['id']))
