"""
Turn noisy download filenames into clean song titles.

The cleaned title doubles as the output filename stem and as the
title/artist tags, so it must be a pure function of the input name.
"""

import re
import unicodedata
from typing import Iterable

FEATURING_WORDS = ['ft', 'feat', 'featuring', 'vs', 'x', 'and', 'with', 'by']

NOISE_WORDS = [
    'movie', 'film', 'official', 'lyrics?', 'video', 'music', 'hd', 'uhd', '4k', '1080p', '720p',
    'tamil', 'malayalam', 'telugu', 'hindi', 'punjabi', 'kannada', 'marathi', 'bengali',
    'gujarati', 'odia', 'sinhala', 'karaoke', 'audio', 'remix', 'rework', 'reboot', 'revisit',
    'bootleg', 'edit', 'extended', 'version', 'visualizer', 'teaser', 'trailer', 'status', 'dj',
    'mix', 'song', 'songs', 'full', 'mv', 'original', 'feat', 'ft', 'starring', 'starrer', 'new',
    'latest', 'exclusive', 'album', 'track', 'hit', 'hits', 'single', 'love', 'heart', 'emotional',
    'sad', 'romantic', 'bgm', 'theme', 'intro', 'outro', 'ending', 'title', 'cover',
    'performance', 'live', 'show', 'session', 'concert', 'reaction', 'behind', 'scenes',
    'officially', 'release', 'leak', 'leaked', 'update', 'launch', 'dialogue', 'dance',
    'choreography', 'practice', r'audio\s+only', r'with\s+lyrics', r'without\s+lyrics', 'lyric',
]

BRACKETED = re.compile(r'[\[(].*?[\])]')
SEPARATORS = re.compile(r'[-_]')
FEATURING = re.compile(r'\b(?:' + '|'.join(FEATURING_WORDS) + r')\b.*$', re.IGNORECASE)
NOISE = re.compile(r'\b(?:' + '|'.join(NOISE_WORDS) + r')\b', re.IGNORECASE)
COMBINING_DIACRITICS = re.compile(r'[\u0300-\u036f]')
# \w is Unicode-aware, so this keeps letters and digits in any script
SYMBOLS = re.compile(r'[^\w ]+|_')
WHITESPACE = re.compile(r'\s+')


def _strip_accents(text: str) -> str:
    return COMBINING_DIACRITICS.sub('', unicodedata.normalize('NFKD', text))


def _word_pattern(words: Iterable[str]):
    words = [r'\s+'.join(re.escape(part) for part in w.split()) for w in words if w and w.strip()]
    if not words:
        return None
    return re.compile(r'\b(?:' + '|'.join(words) + r')\b', re.IGNORECASE)


def clean_title(name: str, strip_words: Iterable[str] = ()) -> str:
    """
    Normalize a file stem into a title.

    Falls back to the stem itself when cleaning strips everything.
    """
    text = _strip_accents(name)
    text = BRACKETED.sub('', text)
    text = SEPARATORS.sub(' ', text)
    text = FEATURING.sub('', text)
    text = NOISE.sub('', text)

    extra = _word_pattern(strip_words)
    if extra is not None:
        text = extra.sub('', text)

    text = SYMBOLS.sub('', text)
    text = WHITESPACE.sub(' ', text).strip()
    return text or name.strip()


def make_cleaner(strip_words: Iterable[str] = ()):
    """Title normalizer bound to a set of extra words to drop."""
    strip_words = list(strip_words)

    def cleaner(name: str) -> str:
        return clean_title(name, strip_words)

    return cleaner
