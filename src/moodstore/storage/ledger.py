"""
Version Ledger - git-backed audit trail for the document tree.

Every accepted mutation is snapshotted as a commit in a local git repository
whose working tree contains the data directory. Only the data directory is
ever staged by commit_pending_changes(); the initial commit captures the full
tree once.

Git is driven through the git executable. All calls that touch the index or
move the branch tip run under one process-wide lock: two unsynchronised
commits can corrupt the index or lose a commit. status() is read-only and
does not take the lock.

Ledger failures never invalidate the document write that preceded them; the
caller logs them and carries on.
"""

import subprocess
import threading
from datetime import datetime, timezone
from pathlib import Path

from moodstore.core.config import settings, get_logger
from moodstore.core.errors import VersionControlError
from moodstore.core.types import CommitInfo, LedgerStatus

logger = get_logger("storage.ledger")

# Guards every ledger call that mutates repository state
_LEDGER_LOCK = threading.RLock()

DETACHED = "detached"
INITIAL_COMMIT_MESSAGE = "chore: initial commit of the mood tracker data"

DEFAULT_GITIGNORE = """\
# temp files of in-flight atomic writes
*.tmp-*
.env
.venv/
__pycache__/
*.py[cod]
*.sqlite
*.sqlite-journal
*.db
"""


class VersionLedger:
    """
    Local git repository used as the audit log of the document store.

    repo_root is the git working tree; data_dir (default: settings.data_dir)
    must live inside it and is the only path staged on commit.
    """

    def __init__(
        self,
        repo_root: Path | None = None,
        data_dir: Path | None = None,
        git_binary: str | None = None,
        branch: str | None = None,
        author_name: str | None = None,
        author_email: str | None = None,
    ):
        """Initialize the ledger. Nothing touches disk until init_repository_if_needed()."""
        self.repo_root = Path(repo_root or settings.repo_root)
        self.data_dir = Path(data_dir or settings.data_dir)
        self.git_binary = git_binary or settings.git_binary
        self.branch = branch or settings.ledger_branch
        self.author_name = author_name or settings.ledger_author_name
        self.author_email = author_email or settings.ledger_author_email
        self.pathspec = self._tracked_pathspec()

    def _tracked_pathspec(self) -> str:
        root = self.repo_root.resolve()
        data = self.data_dir.resolve()
        try:
            relative = data.relative_to(root)
        except ValueError as e:
            raise VersionControlError(
                f"Data directory {data} is not inside repository {root}"
            ) from e
        return relative.as_posix() or "."

    # ============================================
    # git plumbing
    # ============================================

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run one git command in the repository root."""
        command = [
            self.git_binary,
            "-c", f"user.name={self.author_name}",
            "-c", f"user.email={self.author_email}",
            "-c", "commit.gpgsign=false",
            *args,
        ]
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as e:
            raise VersionControlError(f"Cannot run {self.git_binary}: {e}", command) from e

        if check and result.returncode != 0:
            raise VersionControlError(
                f"git {args[0]} failed with exit code {result.returncode}",
                command,
                result.stderr,
            )
        return result

    def is_repository(self) -> bool:
        return (self.repo_root / ".git").exists()

    def _require_repository(self) -> None:
        if not self.is_repository():
            raise VersionControlError(f"{self.repo_root} is not a git repository")

    # ============================================
    # Public API
    # ============================================

    def init_repository_if_needed(self) -> bool:
        """
        Initialise the repository with one commit of the full tree.

        A pre-existing repository is left untouched. Returns True if a
        repository was created.
        """
        with _LEDGER_LOCK:
            if self.is_repository():
                return False

            try:
                self.repo_root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise VersionControlError(f"Cannot create {self.repo_root}: {e}") from e

            self._git("init", "--quiet")
            self._git("symbolic-ref", "HEAD", f"refs/heads/{self.branch}")
            self._ensure_gitignore()
            self._git("add", "--all", ".")
            self._git("commit", "--quiet", "--allow-empty", "-m", INITIAL_COMMIT_MESSAGE)

            logger.info(f"Initialised ledger repository at {self.repo_root}")
            return True

    def commit_pending_changes(self, message: str) -> str | None:
        """
        Commit whatever changed under the data directory.

        Returns the new commit hash, or None if nothing changed. Safe to call
        after every mutation.
        """
        if not message.strip():
            raise VersionControlError("Commit message must not be empty")

        with _LEDGER_LOCK:
            self._require_repository()
            self._git("add", "--all", "--", self.pathspec)

            if not self._has_staged_changes():
                logger.debug(f"Nothing to commit for '{message}'")
                return None

            # Only the tracked subtree, even if other paths are staged
            self._git("commit", "--quiet", "-m", message, "--", self.pathspec)
            commit_hash = self._git("rev-parse", "HEAD").stdout.strip()

        logger.info(f"Committed {commit_hash[:10]}: {message}")
        return commit_hash

    def status(self) -> LedgerStatus:
        """Branch, last commit and whether the data directory has uncommitted changes."""
        self._require_repository()

        ref = self._git("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
        branch = ref.stdout.strip() if ref.returncode == 0 else DETACHED

        porcelain = self._git(
            "status", "--porcelain", "--untracked-files=all", "--", self.pathspec
        )

        return LedgerStatus(
            branch=branch or DETACHED,
            pending_changes=bool(porcelain.stdout.strip()),
            last_commit=self._last_commit(),
        )

    # ============================================
    # Helpers
    # ============================================

    def _has_staged_changes(self) -> bool:
        result = self._git("diff", "--cached", "--quiet", "--", self.pathspec, check=False)
        if result.returncode == 0:
            return False
        if result.returncode == 1:
            return True
        raise VersionControlError(
            f"git diff failed with exit code {result.returncode}",
            ["git", "diff", "--cached", "--quiet", "--", self.pathspec],
            result.stderr,
        )

    def _last_commit(self) -> CommitInfo | None:
        # Fails on an unborn branch, which simply means no commits yet
        result = self._git("log", "-1", "--format=%H%x00%ct%x00%B", check=False)
        if result.returncode != 0 or not result.stdout.strip():
            return None

        commit_hash, committed_at, body = result.stdout.split("\x00", 2)
        return CommitInfo(
            hash=commit_hash.strip(),
            message=body.strip() or "(no message)",
            timestamp=datetime.fromtimestamp(int(committed_at), tz=timezone.utc),
        )

    def _ensure_gitignore(self) -> None:
        path = self.repo_root / ".gitignore"
        if path.exists():
            return
        try:
            path.write_text(DEFAULT_GITIGNORE, encoding="utf-8")
        except OSError as e:
            raise VersionControlError(f"Cannot write {path}: {e}") from e
