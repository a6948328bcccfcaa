# core/content/git_mirror.py
"""Local mirror of the content Git repository.

Runs the git CLI via asyncio subprocesses: clone when the working copy is
missing, fast-forward pull when it exists, and read the head commit.

Git failures are classified so the sync manager knows what to retry:
- TransientSyncError: network trouble (DNS, resets, 5xx, git timeouts)
- PermanentSyncError: auth failures, missing remotes, corrupt working copies
"""

import asyncio
import base64
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from .errors import PermanentSyncError, TransientSyncError
from .types import HeadCommit

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_TEMPLATE = """site_name: Website
item_name: Item
items_name: Items
copyright_year: {year}
"""

# Lower-cased stderr fragments that mean "try again later"
TRANSIENT_GIT_ERRORS = (
    "could not resolve host",
    "connection reset",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "failed to connect",
    "network is unreachable",
    "temporary failure in name resolution",
    "early eof",
    "the remote end hung up unexpectedly",
    "rpc failed",
    "gnutls",
    "ssl_read",
    "returned error: 500",
    "returned error: 502",
    "returned error: 503",
    "returned error: 504",
    "unable to access",
)

# Pull failures that a fresh clone fixes (local history can't fast-forward)
RESET_GIT_ERRORS = (
    "not possible to fast-forward",
    "divergent branches",
    "would be overwritten by merge",
    "merge conflict",
    "you have unmerged paths",
    "couldn't find remote ref",
    "no tracking information",
)

# Auth failures also mention "unable to access", so check these first
PERMANENT_GIT_ERRORS = (
    "authentication failed",
    "could not read username",
    "permission denied",
    "repository not found",
    "does not appear to be a git repository",
    "not a git repository",
    "returned error: 401",
    "returned error: 403",
    "returned error: 404",
)

_FIELD_SEP = "\x1f"


class _ResetRequired(Exception):
    """Pull failed in a way that only a re-clone can recover from."""

    pass


def classify_git_error(command: str, stderr: str) -> Exception:
    """Map git stderr output to a TransientSyncError or PermanentSyncError."""
    lowered = stderr.lower()
    message = f"git {command} failed: {stderr.strip() or 'no output'}"

    if any(fragment in lowered for fragment in PERMANENT_GIT_ERRORS):
        return PermanentSyncError(message)
    if any(fragment in lowered for fragment in TRANSIENT_GIT_ERRORS):
        return TransientSyncError(message)
    return PermanentSyncError(message)


def _is_non_empty_dir(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


class GitMirror:
    """Keeps a working copy of the content repository at `path` up to date.

    All git invocations are serialized by an internal lock. When the sync
    manager abandons a timed-out call, the call keeps running in the
    background and the next one waits for it; pulling again is harmless.
    """

    def __init__(
        self,
        path: Path,
        repository_url: str | None,
        token: str | None = None,
        branch: str | None = None,
        command_timeout: float = 120.0,
    ):
        self.path = Path(path)
        self.repository_url = repository_url
        self.branch = branch
        self._token = token
        self._command_timeout = command_timeout
        self._lock = asyncio.Lock()

    @property
    def is_remote_configured(self) -> bool:
        return bool(self.repository_url)

    async def ensure_local_mirror(self) -> None:
        """Clone the repository if absent, otherwise pull the latest commit.

        Without a configured repository, a local-only content directory is
        created so the site can still render.

        Raises:
            TransientSyncError: For network failures worth retrying
            PermanentSyncError: For everything else
        """
        async with self._lock:
            if not self.repository_url:
                logger.warning(
                    "DATA_REPOSITORY is not defined, content features will be limited"
                )
                await asyncio.to_thread(self._ensure_local_only)
                return

            if (self.path / ".git").exists():
                try:
                    await self._pull()
                except _ResetRequired as e:
                    logger.warning(f"Pull cannot fast-forward ({e}), re-cloning mirror")
                    await self._reclone()
                return

            if await asyncio.to_thread(_is_non_empty_dir, self.path):
                # Leftover local-only content from before DATA_REPOSITORY was set
                logger.warning(
                    f"{self.path} is not a git repository, replacing it with a clone"
                )
                await self._reclone()
                return

            await self._clone(self.path)

    async def head_commit(self) -> HeadCommit:
        """Read the commit currently checked out in the mirror."""
        fmt = _FIELD_SEP.join(["%H", "%an", "%aI", "%s"])
        output = await self._run_git(
            ["log", "-1", f"--format={fmt}"], cwd=self.path, command="log"
        )
        parts = output.strip().split(_FIELD_SEP)
        if len(parts) != 4:
            raise PermanentSyncError(f"Unexpected git log output: {output!r}")
        commit_hash, author, timestamp, message = parts
        return HeadCommit(
            hash=commit_hash,
            message=message,
            author=author,
            timestamp=datetime.fromisoformat(timestamp),
        )

    # --- git operations ---

    async def _clone(self, dest: Path) -> None:
        logger.info(f"Cloning content repository into {dest}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone", "--single-branch"]
        if self.branch:
            args += ["--branch", self.branch]
        args += [self.repository_url, str(dest)]
        await self._run_git(args, cwd=dest.parent, command="clone")

    async def _pull(self) -> None:
        logger.info(f"Pulling content repository in {self.path}")
        args = ["pull", "--ff-only"]
        if self.branch:
            args += ["origin", self.branch]
        try:
            output = await self._run_git(args, cwd=self.path, command="pull")
        except PermanentSyncError as e:
            if any(fragment in str(e).lower() for fragment in RESET_GIT_ERRORS):
                raise _ResetRequired(str(e)) from e
            raise
        logger.debug(f"git pull: {output.strip()}")

    async def _reclone(self) -> None:
        """Replace the working copy with a fresh clone."""
        staging = self.path.with_name(f"{self.path.name}.reclone")
        await asyncio.to_thread(shutil.rmtree, staging, True)
        await self._clone(staging)
        await asyncio.to_thread(self._swap_in, staging)

    def _swap_in(self, staging: Path) -> None:
        shutil.rmtree(self.path, ignore_errors=True)
        staging.rename(self.path)

    def _ensure_local_only(self) -> None:
        (self.path / "data").mkdir(parents=True, exist_ok=True)
        config_path = self.path / "config.yml"
        if not config_path.exists():
            config_path.write_text(
                DEFAULT_CONFIG_TEMPLATE.format(year=datetime.now().year)
            )

    # --- subprocess plumbing ---

    def _auth_args(self) -> list[str]:
        """Pass the token as an HTTP header so it never lands in .git/config."""
        if not self._token:
            return []
        credentials = base64.b64encode(
            f"x-access-token:{self._token}".encode()
        ).decode()
        return ["-c", f"http.extraHeader=Authorization: Basic {credentials}"]

    def _redact(self, text: str) -> str:
        if self._token:
            text = text.replace(self._token, "***")
        return text

    async def _run_git(self, args: list[str], cwd: Path, command: str) -> str:
        """Run a git command and return stdout.

        Raises:
            TransientSyncError / PermanentSyncError: On failure
        """
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *self._auth_args(),
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError:
            raise PermanentSyncError("git not found. Is git installed?")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._command_timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TransientSyncError(
                f"git {command} timed out after {self._command_timeout:.0f}s"
            )

        if process.returncode != 0:
            stderr_text = self._redact(stderr.decode("utf-8", errors="replace"))
            raise classify_git_error(command, stderr_text)

        return stdout.decode("utf-8", errors="replace")
