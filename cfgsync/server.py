"""MCP server exposing settings sync and profile tools over stdio."""

import logging
import sys
import threading
from dataclasses import replace
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from .cloud import CloudProfileClient
from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .messages import build_message_generator
from .profiles import ProfileManager, ProfileStore
from .settings_tree import SettingsTree


def setup_logging(config: Config) -> None:
    """Configure the root logger and the cfgsync loggers."""
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    loggers = [
        'cfgsync.init',
        'cfgsync.git_sync',
        'cfgsync.profiles',
        'cfgsync.settings_tree',
        'cfgsync.messages',
        'cfgsync.cloud',
        'cfgsync.error_handler'
    ]
    for logger_name in loggers:
        logging.getLogger(logger_name).setLevel(getattr(logging, config.log_level))


class SyncService:
    """Lazily built sync engine, orchestrator and profile manager for one configuration."""

    def __init__(self, config: Config):
        self.config = config
        self._lock = threading.Lock()
        self._orchestrator = None
        self._profiles: Optional[ProfileManager] = None
        self.settings_tree = SettingsTree.from_config(config) if config.settings_root else None

    @property
    def orchestrator(self):
        with self._lock:
            if self._orchestrator is None:
                from .git_sync.orchestrator import SyncEngine, SyncOrchestrator

                engine = SyncEngine.build(self.config, message_generator=build_message_generator(self.config),
                                          settings_io=self.settings_tree)
                self._orchestrator = SyncOrchestrator(engine, self.config, settings_io=self.settings_tree)
            return self._orchestrator

    @property
    def engine(self):
        return self.orchestrator.engine

    @property
    def profiles(self) -> ProfileManager:
        with self._lock:
            if self._profiles is None:
                self._profiles = ProfileManager(
                    ProfileStore(self.config.profiles_path),
                    settings_io=self.settings_tree,
                    cloud_client=CloudProfileClient.from_config(self.config)
                )
            return self._profiles

    def start_background_tasks(self) -> None:
        """Arm the auto-commit and auto-sync timers the configuration asks for."""
        orchestrator = self.orchestrator
        if self.config.enable_auto_commit:
            orchestrator.engine.scheduler.start()
        if self.config.enable_auto_sync:
            orchestrator.start_auto_sync()

    def shutdown(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.stop_auto_sync()
            self._orchestrator.engine.scheduler.stop()


def register_tools(server: FastMCP, service: SyncService) -> None:
    """Register MCP tools with the server instance."""

    @server.tool()
    def sync_settings() -> dict:
        """
        Synchronize the settings tree with the remote repository.

        Exports the live settings into the repository, pulls remote changes,
        resolves conflicts with the configured policy, applies what changed
        to the live settings and then commits and pushes local changes.

        Returns:
            Dictionary with success, message and, when conflicts were
            resolved, the list of conflicted paths
        """
        try:
            return service.orchestrator.sync().to_dict()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "sync_settings"}).to_dict()

    @server.tool()
    def sync_status() -> dict:
        """
        Report repository, branch and auto-commit status.

        Returns:
            Dictionary with repository_exists, remote_configured,
            sync_in_progress, branch details and working tree counts
        """
        try:
            return service.orchestrator.repository_status()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "sync_status"}).to_dict()

    @server.tool()
    def commit_now(push: bool = False) -> dict:
        """
        Commit pending changes in the sync repository immediately.

        Args:
            push: Push right after committing instead of waiting for the commit threshold

        Returns:
            Dictionary describing the commit (message, files_changed, pushed, merged)
        """
        try:
            engine = service.engine
            if not engine.lock.acquire(blocking=False):
                return {"success": False, "message": "Sync already in progress"}
            try:
                if service.settings_tree is not None:
                    service.settings_tree.export_settings()
                return engine.scheduler.run_commit_cycle(force_push=push).to_dict()
            finally:
                engine.lock.release()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "commit_now"}).to_dict()

    @server.tool()
    def pull_settings() -> dict:
        """
        Pull remote changes and apply them to the live settings without committing.

        Conflicts are resolved with the configured policy, as during a sync.

        Returns:
            Dictionary with success, message, the pulled changes and any conflicted paths
        """
        try:
            return service.orchestrator.pull_latest().to_dict()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "pull_settings"}).to_dict()

    @server.tool()
    def set_auto_commit(enabled: bool, interval_minutes: Optional[float] = None) -> dict:
        """
        Turn the auto-commit timer on or off without restarting the server.

        Args:
            enabled: Whether the timer should run
            interval_minutes: New interval; keeps the current one when omitted

        Returns:
            The scheduler status after the change
        """
        try:
            if interval_minutes is not None and interval_minutes <= 0:
                raise ValueError("interval_minutes must be positive")
            scheduler = service.engine.scheduler
            settings = replace(scheduler.settings, enabled=enabled)
            if interval_minutes is not None:
                settings = replace(settings, interval_minutes=interval_minutes)
            scheduler.update_settings(settings)
            return {"success": True, **scheduler.status()}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "set_auto_commit"}).to_dict()

    @server.tool()
    def merge_to_default() -> dict:
        """
        Merge the current per-host or feature branch into the default branch.

        Returns:
            Dictionary with success and either the merge details or an error
        """
        try:
            engine = service.engine
            with engine.lock:
                result = engine.branch_manager.merge_to_default(engine.branch_config, verify_remote=True)
            return {"success": result.success, "data": result.data, "error": result.error}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "merge_to_default"}).to_dict()

    @server.tool()
    def cleanup_branches(days_old: int = 30) -> dict:
        """
        Delete merged branches whose last commit is older than ``days_old`` days.

        The checked-out branch and the default branch are never deleted.

        Args:
            days_old: Minimum age in days of the last commit on a branch

        Returns:
            Dictionary with the deleted branches and those that could not be deleted
        """
        try:
            engine = service.engine
            with engine.lock:
                result = engine.branch_manager.cleanup_old_branches(engine.branch_config, days_old=days_old)
            return {"success": result.success, "data": result.data, "error": result.error}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "cleanup_branches"}).to_dict()

    @server.tool()
    def history(limit: int = 20) -> List[dict]:
        """
        List recent commits in the sync repository, newest first.

        Args:
            limit: Maximum number of commits to return
        """
        try:
            return service.orchestrator.history(limit)
        except Exception as e:
            return [error_handler.handle_error(e, {"operation": "history"}).to_dict()]

    @server.tool()
    def list_profiles() -> dict:
        """List stored settings profiles and the active profile id."""
        try:
            manager = service.profiles
            return {
                "active_profile": manager.active_profile_id,
                "profiles": [profile.to_dict() for profile in manager.list_profiles()]
            }
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "list_profiles"}).to_dict()

    @server.tool()
    def create_profile(name: str, description: str = "", inherit_from: Optional[str] = None) -> dict:
        """
        Create a profile from the current live settings.

        Args:
            name: Display name of the profile
            description: Free-form description
            inherit_from: Id of a parent profile whose settings this profile overrides

        Returns:
            The created profile
        """
        try:
            return service.profiles.create_profile(name, description, inherit_from).to_dict()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "create_profile", "name": name}).to_dict()

    @server.tool()
    def apply_profile(profile_id: str) -> dict:
        """
        Write a profile's effective settings (after inheritance) into the live settings.

        Args:
            profile_id: Profile to apply

        Returns:
            Dictionary with the settings files that changed
        """
        try:
            written = service.profiles.apply_profile(profile_id)
            return {"success": True, "profile_id": profile_id, "files_changed": written}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "apply_profile", "profile_id": profile_id}).to_dict()

    @server.tool()
    def delete_profile(profile_id: str) -> dict:
        """Delete a profile that no other profile inherits from."""
        try:
            service.profiles.delete_profile(profile_id)
            return {"success": True, "profile_id": profile_id}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "delete_profile", "profile_id": profile_id}).to_dict()

    @server.tool()
    def export_profile(profile_id: str) -> dict:
        """Export a profile as a JSON document that ``import_profile`` accepts."""
        try:
            return {"success": True, "profile_json": service.profiles.export_profile(profile_id)}
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "export_profile", "profile_id": profile_id}).to_dict()

    @server.tool()
    def import_profile(profile_json: str) -> dict:
        """
        Import a profile exported elsewhere. It receives a new id.

        Args:
            profile_json: Document produced by ``export_profile``
        """
        try:
            return service.profiles.import_profile(profile_json).to_dict()
        except Exception as e:
            return error_handler.handle_error(e, {"operation": "import_profile"}).to_dict()

    @server.tool()
    def compare_profiles(profile_a: str, profile_b: str) -> dict:
        """
        Compare the effective settings of two profiles.

        Returns:
            Dictionary with added, removed and modified setting categories
        """
        try:
            return service.profiles.compare_profiles(profile_a, profile_b).to_dict()
        except Exception as e:
            return error_handler.handle_error(
                e, {"operation": "compare_profiles", "profiles": [profile_a, profile_b]}
            ).to_dict()

    init_logger = logging.getLogger('cfgsync.init')
    init_logger.info("MCP tools registered successfully")


def initialize_server() -> FastMCP:
    """Load configuration, build the sync service and register tools."""
    init_logger = None
    try:
        server_config = load_configuration()
        validation_issues = validate_configuration(server_config)

        setup_logging(server_config)
        init_logger = logging.getLogger('cfgsync.init')

        for issue in validation_issues:
            if issue.startswith("ERROR:"):
                init_logger.error(issue[7:])
            elif issue.startswith("WARNING:"):
                init_logger.warning(issue[9:])

        error_count = sum(1 for issue in validation_issues if issue.startswith("ERROR:"))
        if error_count > 0:
            init_logger.critical(f"Server startup failed due to {error_count} configuration error(s)")
            sys.exit(1)

        init_logger.info("Configuration loaded successfully")

        service = SyncService(server_config)
        service.start_background_tasks()

        server = FastMCP(
            "cfgsync",
            log_level=server_config.log_level.upper()
        )
        register_tools(server, service)

        init_logger.info("cfgsync MCP server initialized successfully")
        return server

    except Exception as e:
        if init_logger is None:
            logging.basicConfig(level=logging.ERROR)
            init_logger = logging.getLogger('cfgsync.init')
        init_logger.critical(f"Server initialization failed: {e}", exc_info=True)
        raise


def main():
    """Entry point: run the MCP server over stdio."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    startup_logger = logging.getLogger('cfgsync.startup')

    try:
        startup_logger.info("=" * 60)
        startup_logger.info("cfgsync settings sync MCP server")
        startup_logger.info("=" * 60)

        if sys.version_info < (3, 10):
            startup_logger.error(f"Python 3.10+ required, found {sys.version.split()[0]}")
            sys.exit(1)

        server = initialize_server()

        startup_logger.info("Ready to accept MCP connections via stdio transport")
        server.run(transport="stdio")

    except KeyboardInterrupt:
        startup_logger.info("Server stopped by user (Ctrl+C)")
    except SystemExit:
        raise
    except Exception as e:
        startup_logger.critical(f"Server failed to start: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
