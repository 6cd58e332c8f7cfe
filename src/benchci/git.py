"""
Source-control access and scoped checkouts.

Provides:
- Git: thin wrapper over the `git` CLI (resolve, tags, status, hard reset).
- RevisionController: resolves the revisions to benchmark and moves the working
  copy between them, restoring the original HEAD when the outermost session ends.
- find_repo_root: locate the enclosing repository.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TypeVar

from .exec import ExecError, RunResult, describe_failure, run_command
from .version import Version, VersionError, parse_version

T = TypeVar("T")


class GitError(RuntimeError):
    """Raised when a source-control operation fails."""


class RepoError(GitError):
    """Raised when the repository root cannot be located."""


class RevisionError(GitError):
    """Raised when a reference cannot be resolved to a commit."""


class DirtyWorkingCopyError(GitError):
    """Raised when the working copy has uncommitted changes."""


class NoReleaseFoundError(GitError):
    """Raised when no tag parses as a semantic version."""


class SourceControl(Protocol):
    def head(self) -> str: ...

    def resolve(self, ref: str) -> str: ...

    def tags(self) -> list[str]: ...

    def is_clean(self) -> bool: ...

    def hard_reset(self, revision: str) -> None: ...


def find_repo_root(start: Path | None = None) -> Path:
    """Find the enclosing git repository root (a directory containing `.git`)."""
    cwd = (start or Path.cwd()).resolve()
    for parent in [cwd, *cwd.parents]:
        if (parent / ".git").exists():
            return parent
    raise RepoError(f"Could not find a git repository root above {cwd} (no .git found).")


class Git:
    """`git` CLI backend for a single repository."""

    def __init__(self, root: Path, *, executable: str = "git") -> None:
        self.root = root
        self._executable = executable

    def _git(self, *args: str) -> RunResult:
        argv = [self._executable, *args]
        try:
            res = run_command(argv, cwd=self.root)
        except ExecError as e:
            raise GitError(str(e)) from e
        if res.returncode != 0:
            raise GitError(describe_failure(argv, res))
        return res

    def head(self) -> str:
        return self._git("rev-parse", "--verify", "HEAD").stdout.strip()

    def resolve(self, ref: str) -> str:
        try:
            res = self._git("rev-parse", "--verify", f"{ref}^{{commit}}")
        except GitError as e:
            raise RevisionError(f"unable to resolve revision {ref!r}:\n{e}") from e
        return res.stdout.strip()

    def tags(self) -> list[str]:
        out = self._git("tag", "--list").stdout
        return [line.strip() for line in out.splitlines() if line.strip()]

    def is_clean(self) -> bool:
        return self._git("status", "--porcelain").stdout.strip() == ""

    def hard_reset(self, revision: str) -> None:
        self._git("reset", "--hard", "--quiet", revision)


@dataclass(frozen=True, slots=True)
class ReleaseTag:
    name: str
    version: Version
    revision: str


def latest_release(
    tags: Sequence[str], *, on_log: Callable[[str], None] | None = None
) -> tuple[str, Version]:
    """
    Pick the highest semantic-version tag.

    Tags that do not parse (after dropping a leading `v`) are skipped with a
    diagnostic.
    """
    log = _logger(on_log)
    best: tuple[str, Version] | None = None
    for tag in tags:
        try:
            v = parse_version(tag)
        except VersionError:
            log(f"INFO: ignoring tag {tag!r} (not a semantic version)")
            continue
        if best is None or v.compare(best[1]) > 0:
            best = (tag, v)

    if best is None:
        raise NoReleaseFoundError("no release tag found (no tag parses as a semantic version)")
    return best


class RevisionController:
    """
    Resolve revisions and move the shared working copy between them.

    Checkouts are hard resets. They only happen inside a session: the outermost
    session verifies the working copy is clean, remembers the original HEAD and,
    once any checkout happened, resets back to it on exit (including on errors).
    Restore failures are reported through `on_log` and not raised.
    """

    def __init__(self, git: SourceControl, *, on_log: Callable[[str], None] | None = None) -> None:
        self._git = git
        self._log = _logger(on_log)
        self._depth = 0
        self._original_head: str | None = None
        self._moved = False
        self.checkouts = 0

    def resolve_head(self) -> str:
        return self._git.head()

    def resolve_revision(self, ref: str) -> str:
        return self._git.resolve(ref)

    def resolve_latest_release_tag(self) -> ReleaseTag:
        name, version = latest_release(self._git.tags(), on_log=self._log)
        return ReleaseTag(name=name, version=version, revision=self._git.resolve(name))

    def ensure_clean(self) -> None:
        if not self._git.is_clean():
            raise DirtyWorkingCopyError(
                "the repository is dirty: commit or stash all changes before running"
            )

    @contextmanager
    def session(self) -> Iterator[RevisionController]:
        if self._depth == 0:
            self.ensure_clean()
            self._original_head = self._git.head()
            self._moved = False

        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._restore()

    def with_checkout(self, revision: str, body: Callable[[], T]) -> T:
        """Hard-reset the working copy to `revision` and run `body` there."""
        with self.session():
            self._log(f"INFO: checkout {revision}")
            self._moved = True
            self.checkouts += 1
            self._git.hard_reset(revision)
            return body()

    def _restore(self) -> None:
        original = self._original_head
        self._original_head = None
        if original is None or not self._moved:
            return

        self._moved = False
        try:
            self._git.hard_reset(original)
        except Exception as e:
            self._log(f"WARN: failed to restore working copy to {original}: {e}")
            return
        self._log(f"INFO: restored working copy to {original}")


def _logger(on_log: Callable[[str], None] | None) -> Callable[[str], None]:
    if on_log is not None:
        return on_log
    return lambda m: print(m, flush=True)


__all__ = [
    "DirtyWorkingCopyError",
    "Git",
    "GitError",
    "NoReleaseFoundError",
    "ReleaseTag",
    "RepoError",
    "RevisionController",
    "RevisionError",
    "SourceControl",
    "find_repo_root",
    "latest_release",
]
