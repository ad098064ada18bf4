"""Primitive repository operations over GitPython."""

import base64
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from git import Repo, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, RemoteReference

from .error_recovery import get_error_classifier, git_error_text
from .error_types import ErrorCategory
from .operations import execute_git_operation_with_retry
from .repository_info import ChangeItem, ChangeType, FileStatus, RepositoryState
from .utils import GitResult, create_git_result


# Porcelain XY codes for unmerged paths
_CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}

# Failures that are part of normal operation and only logged at INFO
_EXPECTED_CATEGORIES = {
    ErrorCategory.NOTHING_TO_COMMIT,
    ErrorCategory.REMOTE_REF_MISSING,
    ErrorCategory.MERGE_CONFLICT,
}

MERGE_STRATEGIES = ("merge", "squash", "rebase")
CONFLICT_SIDES = ("ours", "theirs")


class VersionControlAdapter:
    """
    Request/response wrapper around one git working tree.

    Every operation returns a GitResult. Expected failures such as a missing
    remote, merge conflicts or an empty commit are reported through the
    result and never raised; only invalid arguments raise ValueError.
    Read-only commands are retried with backoff, mutating commands run once.
    """

    def __init__(
        self,
        repo_path: Union[str, Path],
        remote_name: str = "origin",
        token: Optional[str] = None,
        retry_attempts: int = 3,
        retry_delay: float = 1.0
    ):
        """
        Initialize the adapter.

        Args:
            repo_path: Working tree directory
            remote_name: Name of the remote used for push/pull/fetch
            token: Optional access token passed to network commands as an HTTP header
            retry_attempts: Attempts for read-only commands
            retry_delay: Base backoff delay for read-only commands
        """
        self.repo_path = Path(repo_path)
        self.remote_name = remote_name
        self._token = token
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.logger = logging.getLogger('cfgsync.git_sync.adapter')
        self.classifier = get_error_classifier()

    @classmethod
    def from_config(cls, config) -> "VersionControlAdapter":
        return cls(
            config.repo_dir,
            remote_name=config.git_remote_name,
            token=config.git_token,
            retry_attempts=config.git_retry_attempts,
            retry_delay=config.git_retry_delay
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open(self) -> Repo:
        return Repo(self.repo_path)

    def _network_env(self) -> Dict[str, str]:
        """Environment for commands that talk to the remote."""
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self._token:
            credentials = base64.b64encode(f"x-access-token:{self._token}".encode()).decode()
            env.update({
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": f"Authorization: Basic {credentials}",
            })
        return env

    def _failure(self, operation: str, error: GitCommandError) -> GitResult:
        error_text = git_error_text(error)
        category = self.classifier.categorize_error(error_text)

        if category in _EXPECTED_CATEGORIES:
            self.logger.info(f"{operation}: {category.value}")
        else:
            self.logger.error(f"{operation} failed: {error_text}")

        return create_git_result(
            False, operation,
            error=error_text,
            conflicts=category is ErrorCategory.MERGE_CONFLICT,
            error_code=self.classifier.error_code_for(category),
            category=category
        )

    def _not_a_repository(self, operation: str) -> GitResult:
        return create_git_result(
            False, operation,
            error=f"Not a git repository: {self.repo_path}",
            error_code="INVALID_GIT_REPOSITORY",
            category=ErrorCategory.REPOSITORY_ACCESS
        )

    def _no_remote(self, operation: str) -> GitResult:
        return create_git_result(
            False, operation,
            error="No remote repository configured",
            error_code="NO_REMOTE",
            category=ErrorCategory.CONFIGURATION
        )

    def _run(self, operation: str, func: Callable[[Repo], Any], network: bool = False) -> GitResult:
        """Run a mutating command once, converting git failures into a result."""
        try:
            repo = self._open()
            if network:
                with repo.git.custom_environment(**self._network_env()):
                    data = func(repo)
            else:
                data = func(repo)
            return create_git_result(True, operation, data=data)
        except GitCommandError as e:
            return self._failure(operation, e)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return self._not_a_repository(operation)

    def _run_read_only(self, operation: str, func: Callable[[Repo], Any], network: bool = False) -> GitResult:
        """Run a read-only command with retry and exponential backoff."""
        def _execute():
            repo = self._open()
            if network:
                with repo.git.custom_environment(**self._network_env()):
                    return func(repo)
            return func(repo)

        return execute_git_operation_with_retry(
            _execute, operation,
            max_attempts=self.retry_attempts,
            base_delay=self.retry_delay
        )

    @staticmethod
    def _head_sha(repo: Repo) -> Optional[str]:
        return repo.head.commit.hexsha if repo.head.is_valid() else None

    @staticmethod
    def _branch_name(repo: Repo) -> str:
        try:
            return repo.active_branch.name
        except TypeError:
            # Detached HEAD
            return "HEAD"

    def _remote_names(self, repo: Repo) -> List[str]:
        return [remote.name for remote in repo.remotes]

    def _ref_exists(self, repo: Repo, ref: str) -> bool:
        try:
            repo.git.rev_parse("--verify", "--quiet", ref)
            return True
        except GitCommandError:
            return False

    def _ahead_behind(self, repo: Repo, branch: str) -> Tuple[int, int]:
        """Commits ahead of and behind ``<remote>/<branch>``; (0, 0) without an upstream."""
        upstream = f"refs/remotes/{self.remote_name}/{branch}"
        if not repo.head.is_valid() or not self._ref_exists(repo, upstream):
            return 0, 0

        try:
            output = repo.git.rev_list("--left-right", "--count", f"{upstream}...HEAD")
            behind, ahead = (int(value) for value in output.split())
            return ahead, behind
        except (GitCommandError, ValueError):
            return 0, 0

    def _parse_status(self, output: str, branch: str) -> RepositoryState:
        staged: List[str] = []
        unstaged: List[str] = []
        untracked: List[str] = []
        files: Dict[str, FileStatus] = {}

        entries = output.split("\0")
        index = 0
        while index < len(entries):
            entry = entries[index]
            index += 1
            if len(entry) < 4:
                continue

            code, path = entry[:2], entry[3:]
            x, y = code[0], code[1]

            if code in _CONFLICT_CODES:
                files[path] = FileStatus.CONFLICTED
                continue

            if code == "??":
                untracked.append(path)
                files[path] = FileStatus.ADDED
                continue

            if x in "RC":
                # Renames and copies are followed by their source path
                index += 1

            if x not in " ?":
                staged.append(path)
            if y in "MD":
                unstaged.append(path)

            if "D" in (x, y):
                files[path] = FileStatus.DELETED
            elif x in "AC":
                files[path] = FileStatus.ADDED
            else:
                files[path] = FileStatus.MODIFIED

        return RepositoryState(
            has_changes=bool(files),
            current_branch=branch,
            staged=staged,
            unstaged=unstaged,
            untracked=untracked,
            files=files
        )

    def _changes_between(self, repo: Repo, before: Optional[str], after: Optional[str]) -> List[ChangeItem]:
        """Files that differ between two commits; everything is added when ``before`` is None."""
        if after is None or before == after:
            return []

        if before is None:
            output = repo.git.ls_tree("-r", "--name-only", "-z", after)
            return [ChangeItem(ChangeType.ADDED, path) for path in output.split("\0") if path]

        tokens = repo.git.diff("--name-status", "-z", before, after).split("\0")
        changes: List[ChangeItem] = []
        index = 0
        while index < len(tokens):
            code = tokens[index]
            index += 1
            if not code:
                continue

            if code[0] in "RC" and index + 1 < len(tokens):
                source, target = tokens[index], tokens[index + 1]
                index += 2
                if code[0] == "R":
                    changes.append(ChangeItem(ChangeType.DELETED, source))
                changes.append(ChangeItem(ChangeType.ADDED, target))
                continue

            if index >= len(tokens):
                break
            path = tokens[index]
            index += 1

            if code[0] == "A":
                changes.append(ChangeItem(ChangeType.ADDED, path))
            elif code[0] == "D":
                changes.append(ChangeItem(ChangeType.DELETED, path))
            else:
                changes.append(ChangeItem(ChangeType.MODIFIED, path))

        return changes

    # ------------------------------------------------------------------
    # Repository setup
    # ------------------------------------------------------------------

    def is_repository(self) -> bool:
        try:
            self._open()
            return True
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def init(self, default_branch: str = "main") -> GitResult:
        """
        Create the repository if needed, with ``default_branch`` as the unborn HEAD.

        Args:
            default_branch: Name of the initial branch

        Returns:
            GitResult with the repository path and branch name
        """
        if not default_branch:
            raise ValueError("default_branch must not be empty")

        try:
            self.repo_path.mkdir(parents=True, exist_ok=True)
            repo = Repo.init(self.repo_path)
            if not repo.head.is_valid():
                repo.git.symbolic_ref("HEAD", f"refs/heads/{default_branch}")
            self.logger.info(f"Initialized repository at {self.repo_path} (branch {default_branch})")
            return create_git_result(True, "init", data={
                "path": str(self.repo_path),
                "default_branch": default_branch
            })
        except GitCommandError as e:
            return self._failure("init", e)
        except OSError as e:
            return create_git_result(
                False, "init",
                error=f"Cannot create repository directory {self.repo_path}: {e}",
                error_code="REPOSITORY_ACCESS_ERROR",
                category=ErrorCategory.REPOSITORY_ACCESS
            )

    def configure_author(self, name: str, email: str) -> GitResult:
        def _configure(repo: Repo):
            with repo.config_writer() as writer:
                writer.set_value("user", "name", name)
                writer.set_value("user", "email", email)
            return {"name": name, "email": email}

        return self._run("configure_author", _configure)

    def add_remote(self, url: str, name: Optional[str] = None) -> GitResult:
        """
        Register the remote, or update its URL if it already exists.

        Args:
            url: Remote repository URL
            name: Remote name (defaults to the adapter's remote)
        """
        if not url:
            raise ValueError("Remote URL must not be empty")
        name = name or self.remote_name

        def _add(repo: Repo):
            if name in self._remote_names(repo):
                remote = repo.remote(name)
                if remote.url == url:
                    return {"name": name, "url": url, "already_exists": True}
                remote.set_url(url)
                self.logger.info(f"Updated URL of remote '{name}'")
                return {"name": name, "url": url, "updated": True}

            repo.create_remote(name, url)
            self.logger.info(f"Added remote '{name}'")
            return {"name": name, "url": url}

        return self._run("add_remote", _add)

    def has_remote(self, name: Optional[str] = None) -> bool:
        try:
            return (name or self.remote_name) in self._remote_names(self._open())
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def remote_url(self, name: Optional[str] = None) -> Optional[str]:
        try:
            repo = self._open()
            name = name or self.remote_name
            return repo.remote(name).url if name in self._remote_names(repo) else None
        except (InvalidGitRepositoryError, NoSuchPathError):
            return None

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def status(self) -> GitResult:
        """Fresh RepositoryState of the working tree in ``data``."""
        def _status(repo: Repo) -> RepositoryState:
            branch = self._branch_name(repo)
            output = repo.git.status("--porcelain", "-z", "--untracked-files=all")
            state = self._parse_status(output, branch)
            state.ahead, state.behind = self._ahead_behind(repo, branch)
            return state

        return self._run_read_only("status", _status)

    def current_branch(self) -> Optional[str]:
        try:
            return self._branch_name(self._open())
        except (InvalidGitRepositoryError, NoSuchPathError):
            return None

    def has_commits(self) -> bool:
        try:
            return self._open().head.is_valid()
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def add(self, paths: Union[str, Sequence[str]] = ".", include_untracked: bool = True) -> GitResult:
        """
        Stage changes.

        Args:
            paths: ``"."`` for the whole tree, or explicit paths
            include_untracked: For ``"."``, stage new files too; otherwise only tracked files
        """
        def _add(repo: Repo):
            if paths == ".":
                if include_untracked:
                    repo.git.add("--all")
                else:
                    repo.git.add("--update")
                return {"paths": ["."]}

            path_list = [paths] if isinstance(paths, str) else list(paths)
            if path_list:
                repo.git.add("--", *path_list)
            return {"paths": path_list}

        return self._run("add", _add)

    def commit(self, message: str, allow_empty: bool = False) -> GitResult:
        """
        Commit the staged changes.

        Returns:
            GitResult with ``hash``, ``summary`` and ``files_changed``;
            error code NOTHING_TO_COMMIT when the index is clean
        """
        if not message or not message.strip():
            raise ValueError("Commit message must not be empty")

        def _commit(repo: Repo):
            args = ["--allow-empty"] if allow_empty else []
            repo.git.commit(*args, "-m", message)
            head = repo.head.commit
            self.logger.info(f"Committed {head.hexsha[:7]}: {head.summary}")
            return {
                "hash": head.hexsha,
                "short_hash": head.hexsha[:7],
                "summary": head.summary,
                "files_changed": head.stats.total.get("files", 0),
            }

        return self._run("commit", _commit)

    def diff_excerpt(self, max_chars: int = 2000) -> str:
        """Start of the working tree diff, for commit-message generation."""
        try:
            repo = self._open()
            if repo.head.is_valid():
                diff = repo.git.diff("HEAD")
            else:
                diff = repo.git.diff("--cached")
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError):
            return ""
        return diff[:max_chars]

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    def push(self, branch: Optional[str] = None, set_upstream: bool = False) -> GitResult:
        if not self.has_remote():
            return self._no_remote("push")

        def _push(repo: Repo):
            target = branch or self._branch_name(repo)
            args = ["--set-upstream"] if set_upstream else []
            repo.git.push(*args, self.remote_name, target)
            self.logger.info(f"Pushed {target} to {self.remote_name}")
            return {"remote": self.remote_name, "branch": target}

        return self._run("push", _push, network=True)

    def pull(self, branch: Optional[str] = None, rebase: bool = False) -> GitResult:
        """
        Fetch and integrate ``<remote>/<branch>`` into the current branch.

        Returns:
            GitResult with the list of ChangeItems brought in; ``conflicts`` is
            set when the merge stopped on conflicting paths
        """
        if not self.has_remote():
            return self._no_remote("pull")

        def _pull(repo: Repo) -> List[ChangeItem]:
            target = branch or self._branch_name(repo)
            before = self._head_sha(repo)
            args = ["--rebase"] if rebase else ["--no-rebase", "--no-edit"]
            repo.git.pull(*args, self.remote_name, target)
            changes = self._changes_between(repo, before, self._head_sha(repo))
            self.logger.info(f"Pulled {len(changes)} change(s) from {self.remote_name}/{target}")
            return changes

        return self._run("pull", _pull, network=True)

    def fetch(self) -> GitResult:
        if not self.has_remote():
            return self._no_remote("fetch")

        def _fetch(repo: Repo):
            repo.git.fetch("--prune", self.remote_name)
            return {"remote": self.remote_name}

        return self._run_read_only("fetch", _fetch, network=True)

    def merge(self, source: str, strategy: str = "merge") -> GitResult:
        """
        Merge ``source`` into the current branch.

        Args:
            source: Branch or ref to merge
            strategy: ``merge``, ``squash`` (stages the result without committing) or ``rebase``
        """
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy: {strategy}. Must be one of {MERGE_STRATEGIES}")

        def _merge(repo: Repo):
            before = self._head_sha(repo)
            if strategy == "squash":
                repo.git.merge("--squash", source)
            elif strategy == "rebase":
                repo.git.rebase(source)
            else:
                repo.git.merge("--no-edit", source)
            changes = self._changes_between(repo, before, self._head_sha(repo))
            return {"source": source, "strategy": strategy, "changes": changes}

        return self._run("merge", _merge)

    def abort_merge(self) -> GitResult:
        """Undo a conflicted merge, squash merge included, back to the pre-merge HEAD."""
        return self._run("abort_merge", lambda repo: repo.git.reset("--merge"))

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def branch_list(self, include_remote: bool = False) -> GitResult:
        def _list(repo: Repo) -> List[str]:
            names = [head.name for head in repo.heads]
            if include_remote:
                names.extend(
                    f"remotes/{ref.name}" for ref in repo.references
                    if isinstance(ref, RemoteReference) and not ref.name.endswith("/HEAD")
                )
            return names

        return self._run_read_only("branch_list", _list)

    def branch_exists(self, name: str) -> bool:
        result = self.branch_list()
        return result.success and name in result.data

    def branch_create(self, name: str, start_point: Optional[str] = None, checkout: bool = True) -> GitResult:
        if not name or name.startswith("-"):
            raise ValueError(f"Invalid branch name: {name!r}")

        if self.branch_exists(name):
            return create_git_result(
                False, "branch_create",
                error=f"Branch already exists: {name}",
                error_code="BRANCH_EXISTS",
                category=ErrorCategory.UNKNOWN
            )

        def _create(repo: Repo):
            start = [start_point] if start_point else []
            if checkout:
                repo.git.checkout("-b", name, *start)
            else:
                repo.git.branch(name, *start)
            self.logger.info(f"Created branch {name}")
            return {"branch": name, "checked_out": checkout}

        return self._run("branch_create", _create)

    def branch_switch(self, name: str) -> GitResult:
        def _switch(repo: Repo):
            if self._branch_name(repo) == name:
                return {"branch": name, "changed": False}
            repo.git.checkout(name)
            self.logger.info(f"Switched to branch {name}")
            return {"branch": name, "changed": True}

        return self._run("branch_switch", _switch)

    def branch_delete(self, name: str, force: bool = False) -> GitResult:
        def _delete(repo: Repo):
            repo.git.branch("-D" if force else "-d", name)
            self.logger.info(f"Deleted branch {name}")
            return {"branch": name}

        return self._run("branch_delete", _delete)

    def last_commit_date(self, branch: str) -> Optional[datetime]:
        try:
            repo = self._open()
            for head in repo.heads:
                if head.name == branch:
                    return head.commit.committed_datetime
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, ValueError):
            return None
        return None

    def commits_ahead(self, base: str, head: str = "HEAD") -> int:
        """
        Number of commits on ``head`` that are not on ``base``.

        ``base`` is resolved as a local branch first, then as
        ``<remote>/<base>``; when neither exists every commit counts.
        """
        try:
            repo = self._open()
            if not repo.head.is_valid():
                return 0
            for candidate in (f"refs/heads/{base}", f"refs/remotes/{self.remote_name}/{base}"):
                if self._ref_exists(repo, candidate):
                    return int(repo.git.rev_list("--count", f"{candidate}..{head}"))
            return int(repo.git.rev_list("--count", head))
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, ValueError):
            return 0

    def unpushed_commits(self, branch: Optional[str] = None) -> int:
        """Commits on the current branch missing from ``<remote>/<branch>``; all commits if it is unpublished."""
        try:
            repo = self._open()
            if not repo.head.is_valid():
                return 0
            upstream = f"refs/remotes/{self.remote_name}/{branch or self._branch_name(repo)}"
            if self._ref_exists(repo, upstream):
                return int(repo.git.rev_list("--count", f"{upstream}..HEAD"))
            return int(repo.git.rev_list("--count", "HEAD"))
        except (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, ValueError):
            return 0

    # ------------------------------------------------------------------
    # Stash, tags, history
    # ------------------------------------------------------------------

    def stash(self, message: Optional[str] = None, include_untracked: bool = True) -> GitResult:
        """Stash local changes; ``data["stashed"]`` is False when there was nothing to save."""
        def _stash(repo: Repo):
            args = ["push"]
            if include_untracked:
                args.append("--include-untracked")
            if message:
                args.extend(["-m", message])
            output = repo.git.stash(*args)
            return {"stashed": "No local changes to save" not in output}

        return self._run("stash", _stash)

    def stash_pop(self) -> GitResult:
        return self._run("stash_pop", lambda repo: {"output": repo.git.stash("pop")})

    def stash_drop(self) -> GitResult:
        return self._run("stash_drop", lambda repo: {"output": repo.git.stash("drop")})

    def tag(self, name: str, message: Optional[str] = None, ref: str = "HEAD") -> GitResult:
        if not name:
            raise ValueError("Tag name must not be empty")

        def _tag(repo: Repo):
            if message:
                repo.git.tag("-a", name, "-m", message, ref)
            else:
                repo.git.tag(name, ref)
            return {"tag": name, "ref": ref}

        return self._run("tag", _tag)

    def log(self, limit: int = 10, ref: Optional[str] = None) -> GitResult:
        """Most recent commits, newest first; empty for a repository without commits."""
        if limit < 1:
            raise ValueError("limit must be positive")

        def _log(repo: Repo) -> List[Dict[str, Any]]:
            if not repo.head.is_valid():
                return []
            return [
                {
                    "hash": commit.hexsha,
                    "short_hash": commit.hexsha[:7],
                    "summary": commit.summary,
                    "message": commit.message.strip(),
                    "author": commit.author.name,
                    "email": commit.author.email,
                    "date": commit.committed_datetime.isoformat(),
                }
                for commit in repo.iter_commits(ref or "HEAD", max_count=limit)
            ]

        return self._run_read_only("log", _log)

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def checkout_conflict_side(self, path: str, side: str) -> GitResult:
        """
        Take one side of a conflicted path and stage it.

        When that side deleted the file, the deletion is staged instead.

        Args:
            path: Conflicted path relative to the working tree
            side: git's ``ours`` or ``theirs`` stage
        """
        if side not in CONFLICT_SIDES:
            raise ValueError(f"Unknown conflict side: {side}. Must be one of {CONFLICT_SIDES}")

        def _checkout(repo: Repo):
            try:
                repo.git.checkout(f"--{side}", "--", path)
            except GitCommandError as e:
                if "does not have" not in git_error_text(e):
                    raise
                repo.git.rm("--", path)
                return {"path": path, "side": side, "removed": True}
            repo.git.add("--", path)
            return {"path": path, "side": side, "removed": False}

        return self._run("resolve_conflict", _checkout)
