"""Governance config loading for documentation repositories.

Parses and validates metadata/repo-config.yaml, syncs it to the config
database, and falls back to the persisted config, then to defaults, whenever
any step fails. Loading never raises.
"""

from __future__ import annotations

import yaml
from pydantic import ValidationError

from docs_bot.core.errors import DocsBotError
from docs_bot.core.logging import get_logger
from docs_bot.core.schemas_governance import GovernanceConfig, RepositoryConfig
from docs_bot.db.repository_config import get_repository_config, upsert_repository_config
from docs_bot.services.github_service import GitHubService

logger = get_logger(__name__)

CONFIG_FILE_PATH = "metadata/repo-config.yaml"


def split_repo_full_name(repo_full_name: str) -> tuple[str, str] | None:
    parts = repo_full_name.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def parse_and_validate_config(yaml_content: str) -> GovernanceConfig | None:
    """
    Parse YAML and validate it against the governance schema.

    Returns:
        GovernanceConfig, or None when the YAML is malformed or invalid
    """
    try:
        parsed = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        return None

    try:
        return GovernanceConfig.model_validate(parsed)
    except ValidationError as e:
        logger.error(f"Config validation failed: {e.errors()}")
        return None


def get_default_config(repo_full_name: str) -> RepositoryConfig:
    logger.warning(f"Using default config for {repo_full_name} - no config found in database")
    return RepositoryConfig(repo_full_name=repo_full_name)


def sync_config_to_database(repo_full_name: str, config: GovernanceConfig, sha: str | None) -> RepositoryConfig:
    """
    Persist a validated config for a repository.

    Returns:
        The runtime config that was written

    Raises:
        Exception: If the database write fails
    """
    runtime = RepositoryConfig.from_governance(repo_full_name, config)
    upsert_repository_config(runtime, CONFIG_FILE_PATH, sha)
    return runtime


def load_from_db_or_default(repo_full_name: str) -> RepositoryConfig:
    try:
        stored = get_repository_config(repo_full_name)
        if stored is not None:
            return stored
    except Exception as e:
        logger.error(f"Failed to load config from database: {e}")

    return get_default_config(repo_full_name)


async def load_or_sync_config(
    github: GitHubService,
    repo_full_name: str,
    changed_files: list[str],
    ref: str | None = None,
) -> RepositoryConfig:
    """
    Load the governance config for a push.

    When the push touches the config file it is fetched, validated and synced
    to the database; the fresh config is used even if the sync fails. Any
    fetch or validation problem falls back to the persisted config, then to
    defaults. Without a config change the persisted config (or defaults) is
    used directly.

    Args:
        github: GitHub service for fetching the config file
        repo_full_name: "owner/name"
        changed_files: Paths changed by the push
        ref: Commit to read the config at

    Returns:
        RepositoryConfig (never raises)
    """
    names = split_repo_full_name(repo_full_name)
    if names is None:
        logger.error(f"Invalid repo full name: {repo_full_name}")
        return get_default_config(repo_full_name)
    owner, repo = names

    if CONFIG_FILE_PATH not in changed_files:
        return load_from_db_or_default(repo_full_name)

    logger.info(f"Config change detected for {repo_full_name}, syncing...")

    try:
        file_result = await github.fetch_file_content(owner, repo, CONFIG_FILE_PATH, ref)
    except DocsBotError as e:
        logger.warning(f"Failed to fetch {CONFIG_FILE_PATH} for {repo_full_name}: {e}, using DB fallback")
        return load_from_db_or_default(repo_full_name)

    if file_result is None:
        logger.warning(f"Config file not found at {CONFIG_FILE_PATH}, using DB fallback")
        return load_from_db_or_default(repo_full_name)

    config = parse_and_validate_config(file_result.content)
    if config is None:
        logger.warning(f"Config validation failed for {repo_full_name}, using DB fallback")
        return load_from_db_or_default(repo_full_name)

    runtime = RepositoryConfig.from_governance(repo_full_name, config)
    try:
        sync_config_to_database(repo_full_name, config, file_result.sha)
    except Exception as e:
        logger.error(f"Failed to sync config to database: {e}")

    return runtime
