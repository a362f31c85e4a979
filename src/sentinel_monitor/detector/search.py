"""Fixed-string search for error signatures across log files."""

import shutil
import subprocess
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

import structlog

from sentinel_monitor.errors import SearchFailure

from .files import read_lines

log = structlog.get_logger()

# grep exits with 1 when nothing matched
GREP_NO_MATCH = 1


class SearchProvider(Protocol):
    """Anything that can return the lines of a file containing a literal string."""

    def search(self, pattern: str, path: str) -> list[str]: ...


class SubstringSearchProvider:
    """In-process fixed-string line matcher."""

    def search(self, pattern: str, path: str) -> list[str]:
        try:
            lines = read_lines(path)
        except OSError as e:
            raise SearchFailure(f"Couldn't search {path}: {e}", path=path) from e
        return [line for line in lines if pattern in line]


class GrepSearchProvider:
    """Fixed-string matcher backed by the grep utility."""

    def __init__(self, grep_path: str | None = None, timeout: float | None = None):
        self.grep_path = grep_path or shutil.which("grep") or "grep"
        self.timeout = timeout

    def search(self, pattern: str, path: str) -> list[str]:
        cmd = [self.grep_path, "-F", "-e", pattern, "--", path]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise SearchFailure(f"grep failed for {path}: {e}", path=path) from e

        stderr = result.stderr.decode("utf-8", errors="replace").strip()

        if result.returncode not in (0, GREP_NO_MATCH):
            raise SearchFailure(
                f"grep exited with {result.returncode} for {path}: {stderr}",
                path=path,
            )
        if stderr:
            raise SearchFailure(f"grep reported errors for {path}: {stderr}", path=path)

        stdout = result.stdout.decode("utf-8", errors="replace")
        return [line for line in stdout.split("\n") if line]


def make_search_provider(name: str, timeout: float | None = None) -> SearchProvider:
    """Build the search provider named in the config ('substring' or 'grep')."""
    if name == "substring":
        return SubstringSearchProvider()
    if name == "grep":
        return GrepSearchProvider(timeout=timeout)
    raise ValueError(f"Unknown searcher: {name}. Use 'substring' or 'grep'")


class ErrorSearcher:
    """Searches many log files for one error signature.

    Each file is searched independently on a bounded thread pool. Results
    are only returned once every file has been searched, flattened in file
    order and then line order. The first failing search is re-raised.
    """

    def __init__(self, provider: SearchProvider | None = None, max_workers: int = 4):
        self.provider = provider or SubstringSearchProvider()
        self.max_workers = max(1, max_workers)

    def _search_file(self, path: str, pattern: str) -> list[str]:
        lines = [line for line in self.provider.search(pattern, path) if line != ""]
        log.debug("Searched log file", path=path, matches=len(lines))
        return lines

    def search(self, paths: Sequence[str], pattern: str) -> list[str]:
        """Return every non-blank line containing pattern across paths."""
        log.info("Searching for error string", string=pattern, files=len(paths))
        if not paths:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(paths))) as pool:
            per_file = list(pool.map(lambda path: self._search_file(path, pattern), paths))

        matches = [line for lines in per_file for line in lines]
        log.info("Found log lines containing error string", matches=len(matches))
        return matches
