from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from aoa.core.process import AsyncProcessRunner, ProcessRunner, StreamMode
from aoa.core.result import Err, GitError, MergeError, Ok, ProcessError, Result


@dataclass
class WorktreeInfo:
    """Information about a git worktree."""

    path: Path
    branch: str
    commit: str
    is_locked: bool
    prunable: bool


@dataclass(frozen=True)
class CommitIdentity:
    """Author/committer identity supplied to a single commit."""

    name: str
    email: str


def _to_git_error(err: ProcessError, args: tuple[str, ...], cwd: Path) -> GitError:
    detail = err.stderr.strip() or err.stdout.strip() or f"git {' '.join(args)} failed"
    return GitError(
        detail,
        context={"cwd": str(cwd), "args": list(args), "returncode": err.returncode},
    )


def _parse_worktree_list(output: str) -> list[WorktreeInfo]:
    """Parse `git worktree list --porcelain` output."""
    worktrees: list[WorktreeInfo] = []
    current: dict[str, str] = {}

    def _flush() -> None:
        if current:
            worktrees.append(
                WorktreeInfo(
                    path=Path(current.get("worktree", "")),
                    branch=current.get("branch", "").replace("refs/heads/", ""),
                    commit=current.get("HEAD", ""),
                    is_locked="locked" in current,
                    prunable="prunable" in current,
                )
            )
            current.clear()

    for line in output.splitlines():
        if not line.strip():
            _flush()
            continue

        if line.startswith("worktree "):
            current["worktree"] = line[9:]
        elif line.startswith("HEAD "):
            current["HEAD"] = line[5:]
        elif line.startswith("branch "):
            current["branch"] = line[7:]
        elif line.startswith("locked"):
            current["locked"] = "true"
        elif line.startswith("prunable"):
            current["prunable"] = "true"

    # Handle last entry if no trailing newline
    _flush()
    return worktrees


class AsyncRepo:
    """Async git wrapper built on a ProcessRunner.

    Queries (branch names, config values, staged state) are always captured.
    Commands that change repository state use ``write_mode``, which defaults
    to INHERIT so git's own progress and error text reach the terminal.
    """

    def __init__(
        self,
        root: Path,
        runner: ProcessRunner | None = None,
        *,
        write_mode: StreamMode = StreamMode.INHERIT,
    ) -> None:
        self._root = root
        self._runner: ProcessRunner = runner or AsyncProcessRunner()
        self._write_mode = write_mode

    @property
    def path(self) -> Path:
        return self._root

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    @classmethod
    async def open(
        cls,
        path: Path | str = ".",
        runner: ProcessRunner | None = None,
        *,
        write_mode: StreamMode = StreamMode.INHERIT,
    ) -> Result[AsyncRepo, GitError]:
        root = Path(path).expanduser()
        if not root.is_dir():
            return Err(GitError("Repository path does not exist", context={"cwd": str(root)}))

        candidate = cls(root, runner, write_mode=write_mode)
        match await candidate._run_git("rev-parse", "--show-toplevel"):
            case Ok(raw):
                return Ok(cls(Path(raw.strip()).resolve(), runner, write_mode=write_mode))
            case Err(err):
                return Err(err)

    def at(self, path: Path) -> AsyncRepo:
        """Return a repo handle for another checkout sharing this runner."""
        return AsyncRepo(path, self._runner, write_mode=self._write_mode)

    async def _run_git(
        self, *args: str, mode: StreamMode = StreamMode.CAPTURE
    ) -> Result[str, GitError]:
        match await self._runner.run(["git", *args], cwd=self._root, mode=mode):
            case Ok(result):
                return Ok(result.stdout)
            case Err(err):
                return Err(_to_git_error(err, args, self._root))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def is_repo(self) -> bool:
        match await self._run_git("rev-parse", "--is-inside-work-tree"):
            case Ok(output):
                return output.strip() == "true"
            case Err(_):
                return False

    async def current_branch(self) -> Result[str, GitError]:
        match await self._run_git("rev-parse", "--abbrev-ref", "HEAD"):
            case Ok(output):
                branch = output.strip()
                if branch == "HEAD":
                    return Err(GitError("HEAD is detached", context={"cwd": str(self._root)}))
                return Ok(branch)
            case Err(err):
                return Err(err)

    async def head(self, short: bool = True) -> Result[str, GitError]:
        args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "HEAD"]
        match await self._run_git(*args):
            case Ok(output):
                return Ok(output.strip())
            case Err(err):
                return Err(err)

    async def get_remote_url(self, remote: str = "origin") -> Result[str, GitError]:
        match await self._run_git("remote", "get-url", remote):
            case Ok(output):
                return Ok(output.strip())
            case Err(err):
                return Err(
                    GitError(
                        f"Failed to get remote '{remote}'",
                        context={"cwd": str(self._root), "error": err.message},
                    )
                )

    async def has_remote(self, remote: str = "origin") -> bool:
        return (await self.get_remote_url(remote)).is_ok()

    async def get_config(self, key: str) -> Result[str | None, GitError]:
        """Read a config value; an unset key is Ok(None), not an error."""
        match await self._run_git("config", "--get", key):
            case Ok(output):
                value = output.strip()
                return Ok(value or None)
            case Err(err) if err.returncode == 1:
                return Ok(None)
            case Err(err):
                return Err(err)

    async def get_identity(self) -> Result[CommitIdentity | None, GitError]:
        """Return the configured commit identity, or None if either part is unset."""
        match await self.get_config("user.name"):
            case Err(err):
                return Err(err)
            case Ok(name):
                pass
        match await self.get_config("user.email"):
            case Err(err):
                return Err(err)
            case Ok(email):
                pass
        if not name or not email:
            return Ok(None)
        return Ok(CommitIdentity(name=name, email=email))

    async def has_staged_changes(self) -> Result[bool, GitError]:
        """Report whether the index differs from HEAD.

        `git diff --cached --quiet` exits 0 when nothing is staged and 1 when
        something is. Any other exit code is a real failure.
        """
        match await self._run_git("diff", "--cached", "--quiet"):
            case Ok(_):
                return Ok(False)
            case Err(err) if err.returncode == 1:
                return Ok(True)
            case Err(err):
                return Err(err)

    # -------------------------------------------------------------------------
    # Index, commit and sync operations
    # -------------------------------------------------------------------------

    async def add_all(self) -> Result[None, GitError]:
        result = await self._run_git("add", "--all", mode=self._write_mode)
        return result.map(lambda _: None)

    async def commit(
        self,
        message: str,
        *,
        identity: CommitIdentity | None = None,
    ) -> Result[str, GitError]:
        """Commit the index and return the new HEAD SHA.

        When an identity is given it applies to this commit only (via
        `git -c`), leaving repository config untouched.
        """
        args: list[str] = []
        if identity is not None:
            args.extend(["-c", f"user.name={identity.name}", "-c", f"user.email={identity.email}"])
        args.extend(["commit", "-m", message])

        match await self._run_git(*args, mode=self._write_mode):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        return await self.head(short=False)

    async def fetch(self, remote: str = "origin") -> Result[None, GitError]:
        result = await self._run_git("fetch", remote, mode=self._write_mode)
        return result.map(lambda _: None)

    async def pull(self, remote: str, branch: str) -> Result[None, GitError]:
        result = await self._run_git(
            "pull", "--ff-only", "--no-rebase", remote, branch, mode=self._write_mode
        )
        return result.map(lambda _: None)

    # -------------------------------------------------------------------------
    # Worktree operations
    # -------------------------------------------------------------------------

    async def worktree_add(
        self,
        path: Path,
        branch: str,
        *,
        start_point: str = "HEAD",
    ) -> Result[Path, GitError]:
        """Create a new worktree on a new branch.

        Args:
            path: Directory for the new worktree
            branch: Branch created with -b
            start_point: Base commit/branch (default: HEAD)

        Returns:
            Ok(worktree_path) on success, Err(GitError) on failure
        """
        match await self._run_git(
            "worktree", "add", "-b", branch, str(path), start_point, mode=self._write_mode
        ):
            case Ok(_):
                return Ok(path.resolve())
            case Err(err):
                return Err(err)

    async def worktree_remove(
        self,
        path: Path,
        *,
        force: bool = False,
    ) -> Result[None, GitError]:
        """Remove a worktree.

        Args:
            path: Worktree directory to remove
            force: If True, remove even if dirty
        """
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))

        result = await self._run_git(*args, mode=self._write_mode)
        return result.map(lambda _: None)

    async def worktree_list(self) -> Result[list[WorktreeInfo], GitError]:
        """List all worktrees registered with this repository."""
        match await self._run_git("worktree", "list", "--porcelain"):
            case Ok(output):
                return Ok(_parse_worktree_list(output))
            case Err(err):
                return Err(err)

    async def worktree_prune(self) -> Result[None, GitError]:
        """Prune stale worktree references."""
        result = await self._run_git("worktree", "prune")
        return result.map(lambda _: None)

    # -------------------------------------------------------------------------
    # Branch and merge operations
    # -------------------------------------------------------------------------

    async def merge_ff_only(self, branch: str) -> Result[str, MergeError]:
        """Fast-forward the checked-out branch to `branch`.

        Fails instead of creating a merge commit when the histories diverged.

        Returns:
            Ok(new_head_sha) on success, Err(MergeError) otherwise
        """
        match await self._run_git("merge", "--ff-only", branch, mode=self._write_mode):
            case Err(err):
                return Err(
                    MergeError(
                        f"Cannot fast-forward to {branch}: {err.message}", context=err.context
                    )
                )
            case Ok(_):
                pass

        match await self.head(short=False):
            case Ok(sha):
                return Ok(sha)
            case Err(err):
                return Err(MergeError(err.message, context=err.context))

    async def delete_branch(
        self,
        branch: str,
        *,
        force: bool = False,
    ) -> Result[None, GitError]:
        flag = "-D" if force else "-d"
        result = await self._run_git("branch", flag, branch)
        return result.map(lambda _: None)

    async def list_branches(self, pattern: str = "*") -> Result[list[str], GitError]:
        """List local branch names matching a ref glob (e.g. ``agent-*``)."""
        match await self._run_git(
            "for-each-ref", "--format=%(refname:short)", f"refs/heads/{pattern}"
        ):
            case Ok(output):
                return Ok([line.strip() for line in output.splitlines() if line.strip()])
            case Err(err):
                return Err(err)


__all__ = [
    "AsyncRepo",
    "CommitIdentity",
    "WorktreeInfo",
]
