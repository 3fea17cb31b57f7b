"""File-based word store implementation."""

import json
import logging
import os
import threading
import uuid

from core.errors import NotFound
from core.interfaces import WordStore
from core.models import AppConfig, normalize_config
from core.utils import to_iso, utc_now

logger = logging.getLogger(__name__)


class FileStorage(WordStore):
    """Word store kept in JSON files under a state directory.

    vocab_users.json and vocab_words.json hold lists of rows,
    vocab_progress.json maps user id -> word id -> progress fields and
    vocab_config.json holds the scheduler config.
    """

    def __init__(self, state_dir: str = None):
        # Project root is one level up from server/
        project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.state_dir = state_dir or project_root
        self._lock = threading.RLock()

    def _path(self, name: str) -> str:
        return os.path.join(self.state_dir, f'vocab_{name}.json')

    def _load(self, name: str, default):
        path = self._path(name)
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except ValueError as e:
            logger.error(f"Corrupt state file {path}: {e}")
            return default

    def _save(self, name: str, data) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        path = self._path(name)
        tmp_path = f'{path}.tmp'
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

    def _fresh_progress(self, first_level_id: int) -> dict:
        return {
            'level_id': first_level_id,
            'streak_correct': 0,
            'total_right': 0,
            'total_wrong': 0,
            'last_reviewed_at': None,
            'due_at': to_iso(utc_now()),
            'last_result': None
        }

    # Config

    def load_config(self) -> dict:
        return self._load('config', AppConfig.default().to_dict())

    def save_config(self, config: dict) -> None:
        with self._lock:
            self._save('config', normalize_config(config).to_dict())

    # Users

    def list_users(self) -> list[dict]:
        users = self._load('users', [])
        return sorted(users, key=lambda u: u.get('created_at') or '')

    def get_user(self, user_id: str) -> dict | None:
        for user in self._load('users', []):
            if user['id'] == user_id:
                return user
        return None

    def create_user(self, name: str) -> str:
        with self._lock:
            users = self._load('users', [])
            user = {'id': str(uuid.uuid4()), 'name': name.strip(), 'created_at': to_iso(utc_now())}
            users.append(user)

            first_level = normalize_config(self.load_config()).first_level_id
            progress = self._load('progress', {})
            progress[user['id']] = {
                w['id']: self._fresh_progress(first_level) for w in self._load('words', [])
            }
            self._save('users', users)
            self._save('progress', progress)
        logger.info(f"Created user {user['name']} ({user['id']})")
        return user['id']

    # Words

    def get_words_with_progress(self, user_id: str) -> list[dict]:
        words = self._load('words', [])
        progress = self._load('progress', {}).get(user_id, {})
        first_level = normalize_config(self.load_config()).first_level_id
        rows = []
        for word in sorted(words, key=lambda w: w['word'].lower()):
            rows.append({**word, **progress.get(word['id'], self._fresh_progress(first_level))})
        return rows

    def create_word(self, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> str:
        with self._lock:
            now = to_iso(utc_now())
            row = {
                'id': str(uuid.uuid4()),
                'word': word.strip(),
                'hint': (hint or '').strip(),
                'definition': (definition or '').strip(),
                'image_url': image_url,
                'created_at': now,
                'updated_at': now
            }
            words = self._load('words', [])
            words.append(row)

            first_level = normalize_config(self.load_config()).first_level_id
            progress = self._load('progress', {})
            for user in self._load('users', []):
                progress.setdefault(user['id'], {})[row['id']] = self._fresh_progress(first_level)
            self._save('words', words)
            self._save('progress', progress)
        return row['id']

    def update_word(self, word_id: str, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> None:
        with self._lock:
            words = self._load('words', [])
            for row in words:
                if row['id'] == word_id:
                    row.update({
                        'word': word.strip(),
                        'hint': (hint or '').strip(),
                        'definition': (definition or '').strip(),
                        'image_url': image_url,
                        'updated_at': to_iso(utc_now())
                    })
                    self._save('words', words)
                    return
        raise NotFound(f"Word {word_id} not found")

    def delete_word(self, word_id: str) -> bool:
        with self._lock:
            words = self._load('words', [])
            remaining = [w for w in words if w['id'] != word_id]
            if len(remaining) == len(words):
                return False
            progress = self._load('progress', {})
            for per_user in progress.values():
                per_user.pop(word_id, None)
            self._save('words', remaining)
            self._save('progress', progress)
        return True

    def save_progress(self, user_id: str, word_id: str, progress: dict) -> None:
        with self._lock:
            all_progress = self._load('progress', {})
            per_user = all_progress.get(user_id)
            if per_user is None or word_id not in per_user:
                raise NotFound(f"No progress for user {user_id} word {word_id}")
            per_user[word_id] = {**per_user[word_id], **progress}
            self._save('progress', all_progress)
