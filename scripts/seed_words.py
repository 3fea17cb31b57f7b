"""Starter vocabulary for a fresh word store.

Run from the project root: python -m scripts.seed_words [state_dir]
"""

import logging
import sys

from core.interfaces import WordStore

logger = logging.getLogger(__name__)


def get_seed_words():
    """Starter words as (word, hint, definition) tuples."""
    return [
        ('abundant', 'a-BUN-dant', 'Existing in large quantities; more than enough'),
        ('benevolent', 'be-NEV-o-lent', 'Well meaning and kindly'),
        ('candid', 'KAN-did', 'Truthful and straightforward; frank'),
        ('diligent', 'DIL-i-jent', 'Showing care and effort in work or duties'),
        ('eloquent', 'EL-o-kwent', 'Fluent or persuasive in speaking or writing'),
        ('frugal', 'FROO-gal', 'Sparing or economical with money or food'),
        ('gregarious', 'gre-GAIR-ee-us', 'Fond of company; sociable'),
        ('humble', 'HUM-bul', 'Having a modest view of one\'s own importance'),
        ('impartial', 'im-PAR-shul', 'Treating all rivals or sides equally'),
        ('jovial', 'JOH-vee-al', 'Cheerful and friendly'),
        ('keen', 'KEEN', 'Having or showing eagerness or enthusiasm'),
        ('lucid', 'LOO-sid', 'Expressed clearly; easy to understand'),
        ('meticulous', 'me-TIK-yu-lus', 'Showing great attention to detail'),
        ('nostalgia', 'nos-TAL-ja', 'A sentimental longing for the past'),
        ('obscure', 'ob-SKYOOR', 'Not discovered or known about; uncertain'),
        ('prudent', 'PROO-dent', 'Acting with care and thought for the future'),
        ('resilient', 're-ZIL-yent', 'Able to recover quickly from difficulties'),
        ('serene', 'se-REEN', 'Calm, peaceful and untroubled'),
        ('tenacious', 'te-NAY-shus', 'Holding firmly to something; persistent'),
        ('vivid', 'VIV-id', 'Producing powerful feelings or strong, clear images'),
    ]


def seed(store: WordStore, words=None) -> int:
    """Add every seed word not already in the store. Returns how many were added."""
    words = words if words is not None else get_seed_words()
    users = store.list_users()
    existing = set()
    if users:
        existing = {row['word'].lower() for row in store.get_words_with_progress(users[0]['id'])}

    added = 0
    for word, hint, definition in words:
        if word.lower() in existing:
            continue
        store.create_word(word, hint, definition)
        existing.add(word.lower())
        added += 1
    logger.info(f"Seeded {added} words")
    return added


if __name__ == '__main__':
    from server.file_storage import FileStorage

    logging.basicConfig(level=logging.INFO)
    state_dir = sys.argv[1] if len(sys.argv) > 1 else None
    count = seed(FileStorage(state_dir=state_dir))
    print(f"Added {count} words")
