"""Parse broadcast recording file names into catalog fields.

Recorder output is named ``YYYYMMDDhhmm_<title>_<station>.<ext>``, for example
``202505252330_Some Show Episode 8_BS11.mp4``. Plain file names without the
date prefix are taken as the title as-is.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Dict, Optional

MEDIA_EXTENSIONS = frozenset({".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v"})

_DATE_PREFIX = re.compile(r"^(\d{12})_")
_STATION_SUFFIX = re.compile(r"_([^_]+)$")
_EPISODE = re.compile(r"(?:ep?|episode|第)\s*(\d+)", re.IGNORECASE)
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")

# Full-width station names as written by recorders -> display names
STATION_ALIASES: Dict[str, str] = {
    "ＢＳ１１イレブン": "BS11",
    "ＢＳ１１": "BS11",
    "ＢＳフジ": "BSフジ",
    "ＢＳ-ＴＢＳ": "BS-TBS",
    "ＢＳテレ東": "BSテレ東",
    "ＢＳアニマックス": "アニマックス",
    "ＡＴＸＸ": "AT-X",
    "ＡＴ－Ｘ": "AT-X",
}


@dataclass
class ParsedFileName:
    title: str
    broadcast_date: Optional[datetime] = None
    station: Optional[str] = None
    episode: Optional[int] = None
    year: Optional[int] = None


def is_media_file(name: str) -> bool:
    """True when the name has a known media extension (case-insensitive)."""
    return PurePosixPath(name).suffix.lower() in MEDIA_EXTENSIONS


def clean_station_name(station: str) -> str:
    return STATION_ALIASES.get(station, station)


def _parse_broadcast_date(raw: str) -> Optional[datetime]:
    try:
        return datetime.strptime(raw, "%Y%m%d%H%M")
    except ValueError:
        return None


def parse_filename(file_name: str) -> ParsedFileName:
    """
    Split a media file name into title, broadcast date, station, episode and year.

    The station suffix is only recognised together with the date prefix so
    that ordinary underscores in hand-named files are left alone.

    Example:
        >>> info = parse_filename("202505252330_Show 第8話_ＢＳ１１.mp4")
        >>> info.title, info.station, info.episode, info.year
        ('Show 第8話', 'BS11', 8, 2025)
    """
    name = PurePosixPath(file_name).name
    stem = name
    if is_media_file(name):
        stem = name[: -len(PurePosixPath(name).suffix)]

    title = stem
    broadcast_date = None
    station = None

    date_match = _DATE_PREFIX.match(stem)
    if date_match:
        broadcast_date = _parse_broadcast_date(date_match.group(1))
        title = title[date_match.end():]

        station_match = _STATION_SUFFIX.search(title)
        if station_match:
            station = clean_station_name(station_match.group(1))
            title = title[: station_match.start()]

    title = title.strip() or stem

    episode_match = _EPISODE.search(title)
    episode = int(episode_match.group(1)) if episode_match else None

    if broadcast_date is not None:
        year = broadcast_date.year
    else:
        year_match = _YEAR.search(title)
        year = int(year_match.group(0)) if year_match else None

    return ParsedFileName(
        title=title,
        broadcast_date=broadcast_date,
        station=station,
        episode=episode,
        year=year,
    )
