"""
Cover art: detect art already embedded in a file, otherwise search the web
for some and materialize the first usable image as a temporary file.
"""

import base64
import binascii
import io
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote_plus

import requests
from bs4 import BeautifulSoup
from PIL import Image, ImageOps, UnidentifiedImageError

from .log import debug, info, warning
from .models import FetchedArt

INLINE_IMAGE = re.compile(r'^data:image/(jpeg|png);base64,', re.IGNORECASE)
STANDARD_FORMATS = {'jpeg': '.jpg', 'jpg': '.jpg', 'png': '.png'}


class ArtCandidateInvalid(Exception):
    """A single search candidate could not be turned into an image."""


class NoArtFound(Exception):
    """Every candidate for a query was rejected, or the search itself failed."""


def has_embedded_art(path: Path, ffprobe: str = 'ffprobe', timeout: float = 30) -> bool:
    """
    True when ffprobe reports a video stream (cover art shows up as one).

    Fails open: a missing ffprobe, a timeout or a probe error all count as
    "no embedded art" so conversion can still go ahead.
    """
    args = [
        ffprobe, '-v', 'error',
        '-select_streams', 'v',
        '-show_entries', 'stream=codec_type',
        '-of', 'default=noprint_wrappers=1:nokey=1',
        str(path),
    ]
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout, check=True)
    except (OSError, subprocess.SubprocessError) as e:
        debug(f"Probe failed for {Path(path).name}, assuming no embedded art: {e}")
        return False
    return 'video' in result.stdout.strip().splitlines()


class BingImageSearch:
    """Scrapes Bing image results for candidate image locations."""

    SEARCH_URL = "https://www.bing.com/images/search?q="

    def __init__(self, timeout: float = 10, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'
        })

    def search(self, query: str) -> List[str]:
        """Image locations for a query, in result order. May be data: URIs."""
        url = f"{self.SEARCH_URL}{quote_plus(query)}"
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        soup = BeautifulSoup(response.text, 'html.parser')

        locations = []
        for img in soup.select('img.mimg'):
            src = img.get('src') or img.get('data-src')
            if src:
                locations.append(src)
        return locations


def to_baseline_jpeg(image_bytes: bytes, quality: int = 95) -> bytes:
    """Re-encode any raster Pillow can read as a baseline JPEG."""
    with Image.open(io.BytesIO(image_bytes)) as im:
        im = ImageOps.exif_transpose(im)
        if im.mode in ('RGBA', 'LA'):
            background = Image.new('RGB', im.size, (255, 255, 255))
            background.paste(im, mask=im.split()[-1])
            im = background
        else:
            im = im.convert('RGB')

        out = io.BytesIO()
        im.save(out, format='JPEG', quality=quality, optimize=True, progressive=False)
        return out.getvalue()


def _write_temp(data: bytes, suffix: str) -> Path:
    try:
        fd, name = tempfile.mkstemp(prefix='tunepress-', suffix=suffix)
    except OSError as e:
        raise ArtCandidateInvalid(f"could not create temp file: {e}") from e
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
    except OSError as e:
        os.unlink(name)
        raise ArtCandidateInvalid(f"could not write temp file: {e}") from e
    return Path(name)


class CoverArtResolver:
    """Finds cover art for a title that has none embedded."""

    def __init__(self, search=None, session: Optional[requests.Session] = None,
                 timeout: float = 10, query_suffix: str = "song album art",
                 ffprobe: str = 'ffprobe', probe_timeout: float = 30):
        self.search = search or BingImageSearch(timeout=timeout)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.query_suffix = query_suffix
        self.ffprobe = ffprobe
        self.probe_timeout = probe_timeout

    def has_embedded_art(self, path: Path) -> bool:
        return has_embedded_art(path, ffprobe=self.ffprobe, timeout=self.probe_timeout)

    def query_for(self, title: str) -> str:
        return f"{title} {self.query_suffix}".strip()

    def resolve(self, title: str) -> FetchedArt:
        """
        Try each search candidate in order, returning the first that yields
        a usable image. The caller owns (and must delete) the temp file.

        Raises:
            NoArtFound: the search failed or no candidate was usable.
        """
        query = self.query_for(title)
        info(f"🔍 Searching for: \"{query}\"")
        try:
            candidates = self.search.search(query)
        except requests.RequestException as e:
            warning(f"Image search failed for \"{query}\": {e}")
            raise NoArtFound(f"search failed: {e}") from e

        debug(f"{len(candidates)} image candidates for \"{query}\"")
        for candidate in candidates:
            try:
                return FetchedArt(self._materialize(candidate))
            except ArtCandidateInvalid as e:
                warning(f"Skipped image: {candidate[:80]} ({e})")

        raise NoArtFound(f"no valid image found for \"{query}\"")

    def _materialize(self, candidate: str) -> Path:
        match = INLINE_IMAGE.match(candidate)
        if match:
            return self._decode_inline(candidate, match.group(1).lower())
        if candidate.startswith('https://'):
            return self._download(candidate)
        raise ArtCandidateInvalid("not a recognized image location")

    def _decode_inline(self, candidate: str, subtype: str) -> Path:
        try:
            data = base64.b64decode(candidate.split(',', 1)[1], validate=True)
        except (binascii.Error, ValueError) as e:
            raise ArtCandidateInvalid(f"bad inline data: {e}") from e
        if not data:
            raise ArtCandidateInvalid("empty inline image")
        return _write_temp(data, STANDARD_FORMATS[subtype])

    def _download(self, url: str) -> Path:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ArtCandidateInvalid(f"download failed: {e}") from e

        content_type = response.headers.get('Content-Type', '')
        if not content_type.startswith('image/'):
            raise ArtCandidateInvalid(f"content type is {content_type or 'missing'}")
        subtype = content_type.split('/', 1)[1].split(';', 1)[0].strip().lower()

        content = response.content
        if subtype in STANDARD_FORMATS:
            return _write_temp(content, STANDARD_FORMATS[subtype])

        try:
            converted = to_baseline_jpeg(content)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ArtCandidateInvalid(f"could not decode {subtype}: {e}") from e
        debug(f"Re-encoded {subtype} image as JPEG")
        return _write_temp(converted, '.jpg')
