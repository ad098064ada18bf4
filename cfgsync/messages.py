"""Commit message generation: template fallback and LLM-backed generator."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from .errors import AuthError, ConfigurationError, NetworkError, SyncError
from .git_sync.repository_info import FileStatus, RepositoryState


ASSET_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp", ".ico", ".pdf"}
CONFIG_EXTENSIONS = {".json", ".yaml", ".yml"}
MARKDOWN_EXTENSIONS = {".md", ".markdown"}

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
}

SYSTEM_PROMPT = (
    "You write git commit messages for changes to application settings files. "
    "Follow the conventional commits format: '<type>: <description>' where type is one of "
    "feat, fix, docs, style, refactor, chore or config. Keep the first line under 72 characters. "
    "Reply with the commit message only."
)


def commit_prefix(paths: Sequence[str]) -> str:
    """
    Conventional prefix for a set of changed paths.

    ``docs`` when every path is markdown, ``assets`` when any image or PDF is
    present, ``config`` when any JSON or YAML file is present, else ``update``.
    """
    suffixes = [PurePosixPath(path).suffix.lower() for path in paths]
    if suffixes and all(suffix in MARKDOWN_EXTENSIONS for suffix in suffixes):
        return "docs"
    if any(suffix in ASSET_EXTENSIONS for suffix in suffixes):
        return "assets"
    if any(suffix in CONFIG_EXTENSIONS for suffix in suffixes):
        return "config"
    return "update"


def template_commit_message(state: RepositoryState, now: Optional[datetime] = None) -> str:
    """Deterministic message used whenever the generator is unavailable or fails."""
    added = state.count(FileStatus.ADDED)
    modified = state.count(FileStatus.MODIFIED)
    deleted = state.count(FileStatus.DELETED)
    prefix = commit_prefix(state.changed_paths)
    timestamp = (now or datetime.now()).isoformat(timespec="seconds")

    return (
        f"{prefix}: auto commit - {added} added, {modified} modified, {deleted} deleted"
        f"\n\nAuto-committed at {timestamp}"
    )


@dataclass
class CommitContext:
    """Everything the generator is told about a pending commit."""
    branch: str
    staged: List[str] = field(default_factory=list)
    unstaged: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    recent_commits: List[str] = field(default_factory=list)
    diff_excerpt: Optional[str] = None

    @classmethod
    def from_state(cls, state: RepositoryState, recent_commits: Optional[List[str]] = None,
                   diff_excerpt: Optional[str] = None) -> "CommitContext":
        return cls(
            branch=state.current_branch,
            staged=list(state.staged),
            unstaged=list(state.unstaged),
            untracked=list(state.untracked),
            recent_commits=list(recent_commits or []),
            diff_excerpt=diff_excerpt
        )

    def to_request(self) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "files": {
                "staged": self.staged,
                "unstaged": self.unstaged,
                "untracked": self.untracked,
            },
            "branch": self.branch,
        }
        if self.recent_commits:
            request["recentCommits"] = self.recent_commits
        if self.diff_excerpt:
            request["diffExcerpt"] = self.diff_excerpt
        return request


@dataclass
class GeneratorResponse:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class CommitMessageGenerator(Protocol):
    def generate(self, context: CommitContext) -> GeneratorResponse:
        ...


def _build_prompt(context: CommitContext) -> str:
    lines = [f"Branch: {context.branch}"]
    for label, paths in (("Staged", context.staged), ("Modified", context.unstaged),
                         ("New", context.untracked)):
        if paths:
            lines.append(f"{label} files:")
            lines.extend(f"  - {path}" for path in paths[:50])
    if context.recent_commits:
        lines.append("Recent commits:")
        lines.extend(f"  - {summary}" for summary in context.recent_commits[:3])
    if context.diff_excerpt:
        lines.append("Diff excerpt:")
        lines.append(context.diff_excerpt)
    return "\n".join(lines)


def _clean_message(text: str) -> str:
    message = text.strip()
    if message.startswith("```"):
        message = message.strip("`").strip()
    return message.strip("\"'").strip()


class LLMCommitMessageGenerator:
    """Asks an OpenAI or Anthropic model for a commit message over HTTP."""

    def __init__(self, provider: str, api_key: Optional[str], model: Optional[str] = None,
                 timeout: float = 30.0, session: Optional[requests.Session] = None):
        """
        Args:
            provider: ``openai`` or ``anthropic``
            api_key: Provider API key
            model: Model name; a small default model per provider when omitted
            timeout: HTTP timeout in seconds

        Raises:
            ConfigurationError: Unknown provider or missing API key
        """
        if provider not in DEFAULT_MODELS:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}")
        if not api_key:
            raise ConfigurationError(f"No API key configured for {provider}")

        self.provider = provider
        self._api_key = api_key
        self.model = model or DEFAULT_MODELS[provider]
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger('cfgsync.messages')

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"{self.provider} request timed out after {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Cannot reach {self.provider} API: {e}") from e

        if response.status_code in (401, 403):
            raise AuthError(f"{self.provider} rejected the API key (HTTP {response.status_code})")
        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(f"{self.provider} API unavailable (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise ConfigurationError(f"{self.provider} API request invalid (HTTP {response.status_code})")

        return response.json()

    def _request_openai(self, prompt: str) -> str:
        data = self._post(
            OPENAI_URL,
            headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
            payload={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0.3,
                "max_tokens": 100,
            }
        )
        return data["choices"][0]["message"]["content"]

    def _request_anthropic(self, prompt: str) -> str:
        data = self._post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            payload={
                "model": self.model,
                "system": SYSTEM_PROMPT,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.3,
                "max_tokens": 100,
            }
        )
        return data["content"][0]["text"]

    def generate(self, context: CommitContext) -> GeneratorResponse:
        prompt = _build_prompt(context)
        try:
            if self.provider == "openai":
                raw = self._request_openai(prompt)
            else:
                raw = self._request_anthropic(prompt)
        except SyncError as e:
            self.logger.warning(f"Commit message generation failed: {e}")
            return GeneratorResponse(success=False, error=str(e))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            self.logger.warning(f"Unexpected {self.provider} response shape: {e}")
            return GeneratorResponse(success=False, error=f"Malformed response: {e}")

        message = _clean_message(raw or "")
        if not message:
            return GeneratorResponse(success=False, error="Empty message returned")
        return GeneratorResponse(success=True, message=message)


def build_message_generator(config) -> Optional[LLMCommitMessageGenerator]:
    """LLM generator for the configuration, or None when AI messages are off or unusable."""
    if not config.enable_ai_commit_messages or config.llm_provider == "none":
        return None
    try:
        return LLMCommitMessageGenerator(
            config.llm_provider, config.llm_api_key,
            model=config.llm_model, timeout=config.llm_timeout
        )
    except ConfigurationError as e:
        logging.getLogger('cfgsync.messages').warning(f"AI commit messages disabled: {e}")
        return None
