"""
Deadwatch - Cursor Resolver
Picks the next (file, offset) to read for a stream from the remote listing
"""

import posixpath
from typing import Optional, Sequence, Tuple

from deadwatch.models.records import StreamCursor


def resolve_next_read(candidates: Sequence[str], cursor: StreamCursor) -> Optional[Tuple[str, int]]:
    """
    Decide which file to read next and the line index to read after.

    Filenames are chronologically prefixed, so sorting by file name (not by
    the directory a candidate sits in) orders them oldest to newest. When
    the cursor sits on an older file we step to the file right after it;
    anything further back is never read.
    Returns None when there is nothing to read.
    """
    files = sorted(candidates, key=lambda path: (posixpath.basename(path), path))
    if not files:
        return None

    newest = files[-1]
    if not cursor.last_file or cursor.last_file not in files:
        return newest, -1

    index = files.index(cursor.last_file)
    if index < len(files) - 1:
        return files[index + 1], -1

    return cursor.last_file, cursor.last_line
