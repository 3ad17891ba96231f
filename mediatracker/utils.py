import logging
import math
import os
from datetime import datetime
from typing import List, Optional, Tuple

from guessit import guessit

from mediatracker.domain import MediaEntry

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = ('.mp4', '.avi', '.mkv', '.mov', '.wmv', '.flv', '.webm', '.m4v')


def is_video_file(name: str) -> bool:
    return name.lower().endswith(VIDEO_EXTENSIONS)


def guess_title(filename: str) -> str:
    """Returns a readable title for a video file, falling back to its base name."""
    fallback = os.path.splitext(os.path.basename(filename))[0]
    try:
        guessed = guessit(os.path.basename(filename))
    except Exception as e:
        logger.debug("Error guessing title for %s: %s", filename, e)
        return fallback

    title = guessed.get('title')
    if not title:
        return fallback
    if 'season' in guessed and 'episode' in guessed:
        season, episode = guessed['season'], guessed['episode']
        if isinstance(season, int) and isinstance(episode, int):
            return f"{title} S{season:02d}E{episode:02d}"
    return str(title)


def list_directory(path: str) -> List[MediaEntry]:
    """
    Lists sub-folders and video files of a directory, folders first,
    each group sorted by name. Entries that cannot be stat'ed are skipped.
    """
    try:
        names = os.listdir(path)
    except OSError as e:
        logger.error("Error reading folder %s: %s", path, e)
        return []

    entries = []
    for name in names:
        full_path = os.path.join(path, name)
        try:
            stats = os.stat(full_path)
            is_folder = os.path.isdir(full_path)
        except OSError:
            logger.debug("Skipping inaccessible item: %s", full_path)
            continue

        modified = datetime.fromtimestamp(stats.st_mtime)
        if is_folder:
            entries.append(MediaEntry(name=name, path=full_path, modified=modified, is_folder=True, title=name))
        elif is_video_file(name):
            entries.append(MediaEntry(
                name=name,
                path=full_path,
                size=stats.st_size,
                modified=modified,
                extension=os.path.splitext(name)[1].lower(),
                title=guess_title(name),
            ))

    entries.sort(key=lambda e: (not e.is_folder, e.name.lower()))
    return entries


def split_breadcrumbs(path: str) -> List[Tuple[str, str]]:
    """Returns (label, path) pairs from the filesystem root down to `path`."""
    if not path:
        return []
    path = os.path.normpath(path)
    crumbs = []
    current = path
    while True:
        parent = os.path.dirname(current)
        label = os.path.basename(current) or current
        crumbs.append((label, current))
        if not parent or parent == current:
            break
        current = parent
    return list(reversed(crumbs))


def format_seconds_to_human_readable(seconds: Optional[float]) -> str:
    """
    Converts a float of seconds into a human-readable string (e.g., "1h 25m 30s").
    Handles hours, minutes, and seconds, omitting units if their value is zero.
    """
    if seconds is None:
        return "N/A"

    seconds = math.ceil(seconds)  # Round up to the nearest whole second

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    remaining_seconds = seconds % 60

    parts = []
    if hours > 0:
        parts.append(f"{int(hours)}h")
    if minutes > 0:
        parts.append(f"{int(minutes)}m")
    if remaining_seconds > 0 or (hours == 0 and minutes == 0):  # Always show seconds under a minute
        parts.append(f"{int(remaining_seconds)}s")

    return " ".join(parts)


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ['Bytes', 'KB', 'MB', 'GB', 'TB']
    value, i = float(size), 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


SORT_KEYS = {
    'name': lambda e: e.name.lower(),
    'size': lambda e: e.size,
    'modified': lambda e: e.modified or datetime.min,
    'extension': lambda e: e.extension,
}


def sort_entries(entries: List[MediaEntry], key: str = 'name', descending: bool = False) -> List[MediaEntry]:
    """
    Sorts a folder listing by name, size, modified date or extension.
    Folders always come before videos; the order applies within each group.
    """
    sort_key = SORT_KEYS.get(key)
    if sort_key is None:
        raise ValueError(f"Unknown sort key: {key}")
    folders = sorted((e for e in entries if e.is_folder), key=sort_key, reverse=descending)
    videos = sorted((e for e in entries if not e.is_folder), key=sort_key, reverse=descending)
    return folders + videos
