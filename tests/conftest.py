from __future__ import annotations

import pytest

from benchci.git import GitError, RevisionError


class FakeGit:
    """In-memory source-control collaborator tracking the checked-out revision."""

    def __init__(
        self,
        *,
        head: str = "c3",
        refs: dict[str, str] | None = None,
        tags: dict[str, str] | None = None,
        clean: bool = True,
        fail_reset_to: set[str] | None = None,
    ) -> None:
        self.current = head
        self.refs = {"HEAD": head, **(refs or {}), **(tags or {})}
        self._tags = list(tags or {})
        self.clean = clean
        self.fail_reset_to = fail_reset_to or set()
        self.resets: list[str] = []

    def head(self) -> str:
        return self.current

    def resolve(self, ref: str) -> str:
        if ref == "HEAD":
            return self.current
        try:
            return self.refs[ref]
        except KeyError:
            raise RevisionError(f"unable to resolve revision {ref!r}") from None

    def tags(self) -> list[str]:
        return list(self._tags)

    def is_clean(self) -> bool:
        return self.clean

    def hard_reset(self, revision: str) -> None:
        if revision in self.fail_reset_to:
            raise GitError(f"reset to {revision} failed")
        self.resets.append(revision)
        self.current = revision


@pytest.fixture
def fake_git() -> type[FakeGit]:
    return FakeGit
