import logging
import os
import stat
from dataclasses import dataclass
from typing import AsyncIterator, Iterator, List, Optional, Set, Tuple

import aiofiles.os

from scandaemon.core.control_channel import ScanInterrupt
from scandaemon.core.events.scanner_events import MatchEvent


@dataclass(frozen=True)
class ScanRequest:
    """One pass over ``root`` looking for ``pattern``."""

    root: str
    pattern: str


def name_matches(name: str, pattern: str) -> bool:
    """Case-sensitive substring containment on the entry's base name."""
    return pattern in name


async def list_directory(path: str) -> Optional[List[str]]:
    """Entry names of ``path``, or None when the directory cannot be read."""
    try:
        return await aiofiles.os.listdir(path)
    except OSError as e:
        logging.debug(f"Cannot read directory {path}: {e}")
        return None


async def stat_entry(path: str) -> Optional[os.stat_result]:
    try:
        return await aiofiles.os.stat(path)
    except OSError:
        return None


async def has_access(path: str, is_dir: bool) -> bool:
    """Read access, plus traverse access for directories."""
    mode = os.R_OK | (os.X_OK if is_dir else 0)
    try:
        return await aiofiles.os.access(path, mode)
    except OSError:
        return False


async def scan(
    request: ScanRequest,
    interrupt: ScanInterrupt,
    *,
    verbose: bool = False,
    guard_symlink_loops: bool = False,
) -> AsyncIterator[MatchEvent]:
    """
    Walk ``request.root`` depth-first and yield a MatchEvent per matching entry.

    Entries are visited pre-order: a directory is checked against the pattern
    first and then descended into, whether it matched or not. The interrupt is
    checked before each entry; once it is set the walk unwinds completely.

    Unreadable directories and entries without access are skipped; no
    filesystem error leaves this generator.

    Symlinks are followed (``stat`` semantics). Unless ``guard_symlink_loops``
    is set, a link back to an ancestor makes the walk revisit that subtree.
    """
    root = os.path.abspath(request.root)
    pattern = request.pattern

    if interrupt.is_set:
        return

    names = await list_directory(root)
    if names is None:
        return

    visited: Set[Tuple[int, int]] = set()
    if guard_symlink_loops:
        root_stat = await stat_entry(root)
        if root_stat is not None:
            visited.add((root_stat.st_dev, root_stat.st_ino))

    stack: List[Tuple[str, Iterator[str]]] = [(root, iter(names))]

    while stack:
        if interrupt.is_set:
            logging.debug(f"[{pattern}] walk interrupted ({interrupt.reason.value})")
            return

        dir_path, entries = stack[-1]
        name = next(entries, None)
        if name is None:
            stack.pop()
            continue

        full_path = os.path.join(dir_path, name)

        st = await stat_entry(full_path)
        if st is None:
            continue

        is_dir = stat.S_ISDIR(st.st_mode)

        if not await has_access(full_path, is_dir):
            if verbose:
                logging.debug(f"[{pattern}] no access: {full_path}")
            continue

        if name_matches(name, pattern):
            yield MatchEvent(path=full_path, pattern=pattern)
        elif verbose:
            logging.debug(f"[{pattern}] compared: {name}")

        if not is_dir:
            continue

        if guard_symlink_loops:
            key = (st.st_dev, st.st_ino)
            if key in visited:
                logging.debug(f"[{pattern}] already visited, not descending: {full_path}")
                continue
            visited.add(key)

        children = await list_directory(full_path)
        if children is not None:
            stack.append((full_path, iter(children)))
