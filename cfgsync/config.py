"""Configuration management for cfgsync."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv

from .errors import ConfigurationError
from .platform import normalize_path, validate_git_availability

load_dotenv()  # Load .env file if it exists


VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
VALID_STRATEGIES = ["simple", "develop-host", "feature-branch", "custom"]
VALID_CONFLICT_POLICIES = ["ours", "theirs", "manual"]
VALID_LLM_PROVIDERS = ["none", "openai", "anthropic"]

DEFAULT_EXCLUDED_FILES = ["workspace.json", "workspace-mobile.json"]
DEFAULT_SENSITIVE_KEYS = ["apiKey", "api_key", "token", "password", "secret"]


def _split_list(value: Optional[str], default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Configuration class for cfgsync with validation and defaults."""

    # Storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".cfgsync")  # Base directory for all cfgsync data
    settings_root: Optional[Path] = None  # Live configuration tree being synchronized

    # Git remote
    git_remote_url: Optional[str] = None
    git_remote_name: str = "origin"
    git_token: Optional[str] = None
    git_author_name: Optional[str] = None
    git_author_email: Optional[str] = None
    git_retry_attempts: int = 3
    git_retry_delay: float = 1.0

    # Logging
    log_level: str = "INFO"

    # Branch strategy
    branch_strategy: str = "simple"
    default_branch: str = "main"
    develop_prefix: str = "develop/"
    feature_prefix: str = "feature/"
    auto_merge_to_default: bool = False
    squash_merge: bool = False

    # Auto commit
    enable_auto_commit: bool = False
    commit_interval_minutes: float = 10
    include_untracked: bool = True
    enable_auto_push: bool = True
    push_after_commits: int = 5

    # Auto sync
    enable_auto_sync: bool = False
    sync_interval_minutes: float = 30

    # Conflicts
    conflict_policy: str = "ours"
    editor_command: Optional[str] = None

    # Settings filters
    excluded_files: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_FILES))
    sensitive_keys: List[str] = field(default_factory=lambda: list(DEFAULT_SENSITIVE_KEYS))

    # AI commit messages
    enable_ai_commit_messages: bool = False
    llm_provider: str = "none"
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None
    llm_timeout: float = 30.0

    # Cloud profile store
    cloud_api_url: Optional[str] = None
    cloud_api_key: Optional[str] = None
    cloud_timeout: float = 30.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        self.data_dir = normalize_path(self.data_dir)

        if self.settings_root is not None:
            self.settings_root = normalize_path(self.settings_root)

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}")

        if self.branch_strategy not in VALID_STRATEGIES:
            raise ConfigurationError(
                f"Invalid branch strategy: {self.branch_strategy}. Must be one of {VALID_STRATEGIES}"
            )

        if self.conflict_policy not in VALID_CONFLICT_POLICIES:
            raise ConfigurationError(
                f"Invalid conflict policy: {self.conflict_policy}. Must be one of {VALID_CONFLICT_POLICIES}"
            )

        if self.llm_provider not in VALID_LLM_PROVIDERS:
            raise ConfigurationError(
                f"Invalid LLM provider: {self.llm_provider}. Must be one of {VALID_LLM_PROVIDERS}"
            )

        if not self.default_branch:
            raise ConfigurationError("default_branch must not be empty")

        if self.git_retry_attempts < 1:
            raise ConfigurationError("git_retry_attempts must be at least 1")

        if self.git_retry_delay < 0:
            raise ConfigurationError("git_retry_delay must be non-negative")

        if self.commit_interval_minutes <= 0:
            raise ConfigurationError("commit_interval_minutes must be positive")

        if self.sync_interval_minutes <= 0:
            raise ConfigurationError("sync_interval_minutes must be positive")

        if self.push_after_commits < 1:
            raise ConfigurationError("push_after_commits must be at least 1")

        if self.llm_timeout <= 0 or self.cloud_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")

    @property
    def repo_dir(self) -> Path:
        """Working tree of the sync repository."""
        return self.data_dir / "repo"

    @property
    def export_dir(self) -> Path:
        """Directory inside the repository holding exported settings files."""
        return self.repo_dir / "settings"

    @property
    def profiles_path(self) -> Path:
        """JSON document storing settings profiles and the active profile id."""
        return self.data_dir / "profiles.json"

    def branch_config(self):
        """Build the BranchConfig for the current branch strategy settings."""
        from .git_sync.branch_strategy import BranchConfig, BranchStrategy

        return BranchConfig(
            strategy=BranchStrategy(self.branch_strategy),
            default_branch=self.default_branch,
            develop_prefix=self.develop_prefix,
            feature_prefix=self.feature_prefix,
            auto_merge_to_default=self.auto_merge_to_default,
            squash_merge=self.squash_merge
        )

    def auto_commit_settings(self):
        """Build the AutoCommitSettings for the scheduler."""
        from .git_sync.auto_commit import AutoCommitSettings

        return AutoCommitSettings(
            enabled=self.enable_auto_commit,
            interval_minutes=self.commit_interval_minutes,
            include_untracked=self.include_untracked,
            auto_push=self.enable_auto_push,
            push_after_commits=self.push_after_commits,
            ai_messages=self.enable_ai_commit_messages,
            message_timeout=self.llm_timeout
        )


def load_configuration() -> Config:
    """Load configuration from CFGSYNC_* environment variables."""
    try:
        settings_root = os.getenv("CFGSYNC_SETTINGS_ROOT")

        return Config(
            data_dir=Path(os.getenv("CFGSYNC_DATA_DIR", str(Path.home() / ".cfgsync"))),
            settings_root=Path(settings_root) if settings_root else None,
            git_remote_url=os.getenv("CFGSYNC_GIT_REMOTE"),
            git_remote_name=os.getenv("CFGSYNC_GIT_REMOTE_NAME", "origin"),
            git_token=os.getenv("CFGSYNC_GIT_TOKEN"),
            git_author_name=os.getenv("CFGSYNC_GIT_AUTHOR_NAME"),
            git_author_email=os.getenv("CFGSYNC_GIT_AUTHOR_EMAIL"),
            git_retry_attempts=int(os.getenv("CFGSYNC_GIT_RETRY_ATTEMPTS", "3")),
            git_retry_delay=float(os.getenv("CFGSYNC_GIT_RETRY_DELAY", "1.0")),
            log_level=os.getenv("CFGSYNC_LOG_LEVEL", "INFO").upper(),
            branch_strategy=os.getenv("CFGSYNC_BRANCH_STRATEGY", "simple"),
            default_branch=os.getenv("CFGSYNC_DEFAULT_BRANCH", "main"),
            develop_prefix=os.getenv("CFGSYNC_DEVELOP_PREFIX", "develop/"),
            feature_prefix=os.getenv("CFGSYNC_FEATURE_PREFIX", "feature/"),
            auto_merge_to_default=_env_flag("CFGSYNC_AUTO_MERGE"),
            squash_merge=_env_flag("CFGSYNC_SQUASH_MERGE"),
            enable_auto_commit=_env_flag("CFGSYNC_AUTO_COMMIT"),
            commit_interval_minutes=float(os.getenv("CFGSYNC_COMMIT_INTERVAL_MINUTES", "10")),
            include_untracked=_env_flag("CFGSYNC_INCLUDE_UNTRACKED", "true"),
            enable_auto_push=_env_flag("CFGSYNC_AUTO_PUSH", "true"),
            push_after_commits=int(os.getenv("CFGSYNC_PUSH_AFTER_COMMITS", "5")),
            enable_auto_sync=_env_flag("CFGSYNC_AUTO_SYNC"),
            sync_interval_minutes=float(os.getenv("CFGSYNC_SYNC_INTERVAL_MINUTES", "30")),
            conflict_policy=os.getenv("CFGSYNC_CONFLICT_POLICY", "ours"),
            editor_command=os.getenv("CFGSYNC_EDITOR"),
            excluded_files=_split_list(os.getenv("CFGSYNC_EXCLUDED_FILES"), DEFAULT_EXCLUDED_FILES),
            sensitive_keys=_split_list(os.getenv("CFGSYNC_SENSITIVE_KEYS"), DEFAULT_SENSITIVE_KEYS),
            enable_ai_commit_messages=_env_flag("CFGSYNC_AI_COMMIT_MESSAGES"),
            llm_provider=os.getenv("CFGSYNC_LLM_PROVIDER", "none"),
            llm_api_key=os.getenv("CFGSYNC_LLM_API_KEY"),
            llm_model=os.getenv("CFGSYNC_LLM_MODEL"),
            llm_timeout=float(os.getenv("CFGSYNC_LLM_TIMEOUT", "30")),
            cloud_api_url=os.getenv("CFGSYNC_CLOUD_URL"),
            cloud_api_key=os.getenv("CFGSYNC_CLOUD_API_KEY"),
            cloud_timeout=float(os.getenv("CFGSYNC_CLOUD_TIMEOUT", "30"))
        )
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return any errors or warnings."""
    errors = []

    git_available, git_error = validate_git_availability()
    if not git_available:
        errors.append(f"ERROR: {git_error}")

    try:
        config.data_dir.mkdir(parents=True, exist_ok=True)
        test_file = config.data_dir / ".test_write"
        test_file.write_text("test")
        test_file.unlink()
    except PermissionError:
        errors.append(f"ERROR: No write permission for data directory: {config.data_dir}")
    except OSError as e:
        errors.append(f"ERROR: Cannot access data directory {config.data_dir}: {e}")

    if config.settings_root is None:
        errors.append("WARNING: No settings root configured (CFGSYNC_SETTINGS_ROOT); sync will only track the repository")
    elif not config.settings_root.is_dir():
        errors.append(f"WARNING: Settings root does not exist: {config.settings_root}")

    if config.git_remote_url:
        valid_prefixes = ("https://", "http://", "git@", "ssh://", "file://", "/")
        if not config.git_remote_url.startswith(valid_prefixes):
            errors.append(f"ERROR: Unsupported remote URL format: {config.git_remote_url}")
    else:
        errors.append("WARNING: No remote repository configured; changes will be committed locally only")

    if config.enable_ai_commit_messages:
        if config.llm_provider == "none":
            errors.append("WARNING: AI commit messages enabled but no LLM provider selected; using template messages")
        elif not config.llm_api_key:
            errors.append("ERROR: AI commit messages enabled but CFGSYNC_LLM_API_KEY is not set")

    if config.cloud_api_url and not config.cloud_api_key:
        errors.append("WARNING: Cloud profile store URL configured without an API key")

    if config.auto_merge_to_default and config.branch_strategy != "develop-host":
        errors.append("WARNING: Auto-merge only applies to the develop-host branch strategy")

    logging.getLogger('cfgsync.config').debug(f"Configuration validation produced {len(errors)} issue(s)")

    return errors
