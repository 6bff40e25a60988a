"""DiffProvider — git からの変更セット収集。

ベース ref の解釈:
    - 空文字列: 未コミットの変更があれば ``HEAD``、なければ ``HEAD^``
    - ``ROOT``: 追跡中の全ファイルを空ツリーと比較
    - ``^`` / ``~`` で始まる値: ``HEAD`` からの相対指定
    - その他: コミットハッシュまたは ref 名
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from firekeeper.models._base import FirekeeperBaseModel
from firekeeper.models.task import ChangeSet

logger = logging.getLogger(__name__)

ROOT_BASE: Final[str] = "ROOT"
GIT_EMPTY_TREE: Final[str] = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
"""git の空ツリーオブジェクト。ROOT 指定時の比較対象。"""

_SUBPROCESS_TIMEOUT_SECONDS: Final[int] = 120


class DiffCollectionError(Exception):
    """変更セットの収集失敗。

    git コマンドの失敗、コマンド未検出、タイムアウトなどを表す。
    """


class BaseRef(FirekeeperBaseModel):
    """解釈済みのベース ref。

    Attributes:
        commit: 比較対象の ref。ROOT の場合は None。
    """

    commit: str | None

    @property
    def is_root(self) -> bool:
        return self.commit is None

    @property
    def diff_base(self) -> str:
        """git diff に渡す比較対象。"""
        return self.commit if self.commit is not None else GIT_EMPTY_TREE


def parse_base(base: str, has_uncommitted: bool = False) -> BaseRef:
    """ベース ref 文字列を解釈する。

    Args:
        base: 設定または CLI で指定されたベース ref。
        has_uncommitted: 作業ツリーに未コミットの変更があるか（空文字列時のみ参照）。

    Returns:
        解釈済みの BaseRef。
    """
    effective = base.strip()
    if not effective:
        effective = "HEAD" if has_uncommitted else "^"
        logger.debug("Auto-detected base: %s", effective)
    if effective == ROOT_BASE:
        return BaseRef(commit=None)
    if effective.startswith(("^", "~")):
        return BaseRef(commit=f"HEAD{effective}")
    return BaseRef(commit=effective)


@runtime_checkable
class DiffProvider(Protocol):
    """変更セットを提供するプロトコル。"""

    async def collect(self, base: str) -> ChangeSet:
        """ベース ref からの変更セットを収集する。"""
        ...


class GitDiffProvider:
    """git コマンドで変更セットを収集する DiffProvider 実装。

    Args:
        root: git 作業ツリーのルート。None の場合はカレントディレクトリ。
    """

    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    async def collect(self, base: str) -> ChangeSet:
        """ベース ref からの変更セットを収集する。

        Raises:
            DiffCollectionError: git コマンドが失敗した場合。
        """
        has_uncommitted = False
        if not base.strip():
            has_uncommitted = await self.has_uncommitted_changes()
        ref = parse_base(base, has_uncommitted)

        if ref.is_root:
            listing = await self._run_git("ls-files")
        else:
            listing = await self._run_git("diff", "--name-only", ref.diff_base)
        files = tuple(sorted({line for line in listing.splitlines() if line.strip()}))

        diffs: dict[str, str] = {}
        for path in files:
            diff = await self._run_git("diff", ref.diff_base, "--", path)
            if diff:
                diffs[path] = diff

        commit_messages = ""
        if ref.commit is not None:
            commit_messages = (
                await self._run_git("log", "--format=%s", f"{ref.commit}..HEAD")
            ).strip()

        logger.info(
            "Collected %d changed file(s) against %s", len(files), ref.diff_base
        )
        return ChangeSet(
            files=files,
            diffs=diffs,
            commit_messages=commit_messages,
            is_root=ref.is_root,
        )

    async def has_uncommitted_changes(self) -> bool:
        """``git diff --quiet HEAD`` で未コミットの変更を判定する。"""
        proc = await self._spawn("git", "diff", "--quiet", "HEAD")
        await proc.communicate()
        return proc.returncode != 0

    async def _spawn(self, *args: str) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._root,
            )
        except FileNotFoundError as exc:
            raise DiffCollectionError(
                f"Command not found: {args[0]}. "
                f"Ensure {args[0]} is installed and available in PATH."
            ) from exc

    async def _run_git(self, *args: str) -> str:
        """git を非同期で実行し、stdout を返す。

        Raises:
            DiffCollectionError: コマンド失敗、未検出、タイムアウト時。
        """
        cmd = ("git", *args)
        cmd_display = " ".join(cmd)
        proc = await self._spawn(*cmd)
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=_SUBPROCESS_TIMEOUT_SECONDS
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise DiffCollectionError(
                f"Command timed out after {_SUBPROCESS_TIMEOUT_SECONDS}s: {cmd_display}"
            ) from exc
        except BaseException:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            stderr_text = stderr.decode(errors="replace").strip()
            raise DiffCollectionError(f"Command failed ({cmd_display}): {stderr_text}")
        return stdout.decode(errors="replace")
