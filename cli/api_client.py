"""REST API client for the vocab arena server."""

import requests


class VocabAPIClient:
    """Client for communicating with the vocab arena REST API."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = None):
        self.base_url = base_url.rstrip('/')
        self.user_id = user_id
        self.session = requests.Session()

    def _get(self, endpoint: str, params: dict = None) -> dict:
        """Make a GET request."""
        response = self.session.get(f"{self.base_url}{endpoint}", params=params or {})
        response.raise_for_status()
        return response.json()

    def _post(self, endpoint: str, data: dict = None) -> dict:
        """Make a POST request on behalf of the current user."""
        payload = {'user_id': self.user_id, **(data or {})}
        response = self.session.post(f"{self.base_url}{endpoint}", json=payload)
        response.raise_for_status()
        return response.json()

    def health_check(self) -> dict:
        """Check if the server is running."""
        return self._get("/")

    def list_users(self) -> list[dict]:
        return self._get("/api/users")['users']

    def create_user(self, name: str) -> dict:
        response = self.session.post(f"{self.base_url}/api/users", json={'name': name})
        response.raise_for_status()
        return response.json()['user']

    def get_words(self, due_only: bool = False) -> dict:
        return self._get("/api/words", {'user_id': self.user_id, 'due_only': str(due_only).lower()})

    def get_config(self) -> dict:
        return self._get("/api/config")

    # Practice
    def start_practice(self) -> dict:
        return self._post("/api/practice/start")

    def answer_practice(self, right: bool) -> dict:
        return self._post("/api/practice/answer", {'right': right})

    def stop_practice(self) -> dict:
        return self._post("/api/practice/stop")

    def practice_status(self) -> dict:
        return self._get("/api/practice/status", {'user_id': self.user_id})

    # Versus
    def create_versus_room(self) -> dict:
        return self._post("/api/versus/rooms")

    def join_versus_room(self, room_code: str) -> dict:
        return self._post("/api/versus/join", {'room_code': room_code})

    def get_versus_room(self, room_id: str) -> dict:
        return self._get(f"/api/versus/rooms/{room_id}")

    def answer_versus(self, room_id: str, correct: bool) -> dict:
        return self._post(f"/api/versus/rooms/{room_id}/answer", {'correct': correct})

    # Reverse
    def create_reverse_room(self) -> dict:
        return self._post("/api/reverse/rooms")

    def join_reverse_room(self, room_code: str) -> dict:
        return self._post("/api/reverse/join", {'room_code': room_code})

    def get_reverse_room(self, room_id: str) -> dict:
        return self._get(f"/api/reverse/rooms/{room_id}")

    def start_reverse_game(self, room_id: str) -> dict:
        return self._post(f"/api/reverse/rooms/{room_id}/start")

    def answer_reverse(self, room_id: str, question_index: int, selected_word_id: str | None) -> dict:
        return self._post(f"/api/reverse/rooms/{room_id}/answer", {
            'question_index': question_index,
            'selected_word_id': selected_word_id
        })

    def check_reverse(self, room_id: str, question_index: int) -> bool:
        return self._post(f"/api/reverse/rooms/{room_id}/check", {'question_index': question_index})['all_answered']

    def advance_reverse(self, room_id: str, question_index: int) -> dict:
        return self._post(f"/api/reverse/rooms/{room_id}/advance", {'question_index': question_index})

    def get_reverse_stats(self, room_id: str) -> list[dict]:
        return self._get(f"/api/reverse/rooms/{room_id}/stats")['stats']
