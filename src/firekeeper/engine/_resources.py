"""ResourceResolver — リソース URI の事前解決。

``file://``, ``skill://``, ``sh://`` の URI を順序付き・重複排除済みの
ResourceBlock リストに解決する。解決はタスク分割時に一度だけ行い、
会話ループ中にリソース I/O は発生しない。

重複排除キー:
    - file:// / skill://: 絶対パス
    - sh://: コマンド文字列そのもの
"""

from __future__ import annotations

import asyncio
import glob
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Final

import yaml

from firekeeper.engine._errors import ResourceError
from firekeeper.engine._glob import normalize_path
from firekeeper.models.resource import (
    ResourceBlock,
    ResourceKind,
    parse_resource_uri,
)

logger = logging.getLogger(__name__)

SH_TIMEOUT_SECONDS: Final[int] = 120
"""sh:// コマンドのタイムアウト秒数。"""

_FRONT_MATTER_DELIMITER: Final[str] = "---"
_SKILL_SUFFIX: Final[str] = ".md"
_SKILL_FIELDS: Final[tuple[str, ...]] = ("title", "description")


class ResourceResolver:
    """リソース URI を ResourceBlock に解決する。

    同一 URI の解決結果（失敗を含む）は実行中キャッシュされ、
    複数のルールから参照されてもシェルコマンドは一度しか実行されない。

    Args:
        root: 相対パターンの基準となる作業ツリーのルート。
        sh_timeout: sh:// コマンドのタイムアウト秒数。
    """

    def __init__(self, root: Path, sh_timeout: float = SH_TIMEOUT_SECONDS) -> None:
        self._root = root.resolve()
        self._sh_timeout = sh_timeout
        self._cache: dict[str, tuple[ResourceBlock, ...]] = {}
        self._failures: dict[str, ResourceError] = {}

    async def resolve(self, uris: Iterable[str]) -> list[ResourceBlock]:
        """URI を宣言順に解決し、identity で重複排除したブロックを返す。

        グローバルリソースとルール固有リソースは呼び出し側で連結してから渡す。

        Args:
            uris: リソース URI の列。

        Returns:
            最初の出現順を保った ResourceBlock のリスト。

        Raises:
            ResourceError: いずれかの URI の解決に失敗した場合。
        """
        blocks: list[ResourceBlock] = []
        seen: set[str] = set()
        for uri in uris:
            for block in await self._resolve_uri(uri):
                if block.identity in seen:
                    continue
                seen.add(block.identity)
                blocks.append(block)
        return blocks

    async def _resolve_uri(self, uri: str) -> tuple[ResourceBlock, ...]:
        if uri in self._failures:
            raise self._failures[uri]
        if uri in self._cache:
            return self._cache[uri]

        try:
            try:
                kind, body = parse_resource_uri(uri)
            except ValueError as exc:
                raise ResourceError(str(exc)) from exc

            if kind is ResourceKind.FILE:
                blocks = tuple(self._load_file(p) for p in self._expand(body))
            elif kind is ResourceKind.SKILL:
                blocks = tuple(
                    self._load_skill(p)
                    for p in self._expand(body)
                    if p.suffix.lower() == _SKILL_SUFFIX
                )
            else:
                blocks = (await self._run_shell(body),)
        except ResourceError as exc:
            self._failures[uri] = exc
            raise

        if not blocks:
            logger.debug("Resource '%s' matched no files", uri)
        self._cache[uri] = blocks
        return blocks

    def _expand(self, pattern: str) -> list[Path]:
        """glob パターンを展開し、ソート済みの絶対パス（ファイルのみ）を返す。"""
        normalized = normalize_path(pattern)
        if normalized.startswith("~"):
            normalized = str(Path(normalized).expanduser())

        if Path(normalized).is_absolute():
            matches = glob.glob(normalized, recursive=True, include_hidden=True)
            candidates = [Path(m) for m in matches]
        else:
            matches = glob.glob(
                normalized,
                root_dir=self._root,
                recursive=True,
                include_hidden=True,
            )
            candidates = [self._root / m for m in matches]
        return sorted({p.resolve() for p in candidates if p.is_file()})

    def _load_file(self, path: Path) -> ResourceBlock:
        return ResourceBlock(
            identity=str(path), kind=ResourceKind.FILE, content=_read_text(path)
        )

    def _load_skill(self, path: Path) -> ResourceBlock:
        """skill ファイルの front matter から title と description だけを取り出す。"""
        front_matter = _parse_front_matter(path, _read_text(path))
        lines = [
            f"{field}: {front_matter[field]}"
            for field in _SKILL_FIELDS
            if front_matter.get(field) is not None
        ]
        return ResourceBlock(
            identity=str(path), kind=ResourceKind.SKILL, content="\n".join(lines)
        )

    async def _run_shell(self, command: str) -> ResourceBlock:
        """プラットフォームのシェルでコマンドを実行し、stdout をブロックにする。

        Raises:
            ResourceError: 起動失敗、タイムアウト、非ゼロ終了の場合。
        """
        logger.debug("Running resource command: %s", command)
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._root,
            )
        except OSError as exc:
            raise ResourceError(f"Cannot start command '{command}': {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._sh_timeout
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ResourceError(
                f"Command timed out after {self._sh_timeout}s: {command}"
            ) from exc
        except BaseException:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            stderr_text = stderr.decode(errors="replace").strip()
            raise ResourceError(
                f"Command failed with exit code {proc.returncode} ({command}): "
                f"{stderr_text}",
                stderr=stderr_text,
            )
        return ResourceBlock(
            identity=f"sh://{command}",
            kind=ResourceKind.SH,
            content=stdout.decode(errors="replace"),
        )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ResourceError(f"File '{path}' is not a valid UTF-8 text file") from exc
    except OSError as exc:
        raise ResourceError(f"Cannot read file '{path}': {exc}") from exc


def _parse_front_matter(path: Path, text: str) -> dict[str, object]:
    """Markdown 先頭の YAML front matter を辞書として返す。無ければ空辞書。

    Raises:
        ResourceError: front matter が閉じていない、YAML として不正、
            またはマッピングでない場合。
    """
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIMITER:
        return {}
    try:
        end = next(
            i
            for i, line in enumerate(lines[1:], start=1)
            if line.strip() == _FRONT_MATTER_DELIMITER
        )
    except StopIteration:
        raise ResourceError(f"Unterminated front matter in '{path}'") from None

    try:
        data = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as exc:
        raise ResourceError(f"Invalid front matter in '{path}': {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ResourceError(f"Front matter in '{path}' must be a mapping")
    return data
