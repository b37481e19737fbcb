"""Repository governance config database operations."""

from datetime import datetime, timezone
from typing import Any

from docs_bot.core.config import get_settings
from docs_bot.core.logging import get_logger
from docs_bot.core.schemas_governance import (
    CrossDomainRule,
    RepositoryConfig,
    SharePointSync,
)
from docs_bot.db.supabase_client import get_supabase

logger = get_logger(__name__)

CONFIG_TABLE = "repository_config"
RULES_TABLE = "cross_domain_rules"


def _config_schema():
    """Postgrest client scoped to the config schema."""
    return get_supabase().schema(get_settings().CONFIG_DB_SCHEMA)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def config_to_row(config: RepositoryConfig, config_file_path: str, config_sha: str | None) -> dict[str, Any]:
    """Map a runtime config onto the repository_config columns."""
    sync = config.sharepoint_sync
    return {
        "repo_full_name": config.repo_full_name,
        "document_type": config.document_type,
        "document_path": config.document_path,
        "config_file_path": config_file_path,
        "config_sha": config_sha,
        "synced_at": _utc_now_iso(),
        "approval_required": config.approval_required,
        "domain_approval": config.domain_approval,
        "owner_approval": config.owner_approval,
        "auto_merge_enabled": config.auto_merge_enabled,
        "auto_merge_after_hours": config.auto_merge_after_hours,
        "notify_on_pr_open": config.notify_on_pr_open,
        "notification_channels": config.notification_channels,
        "reminder_after_hours": config.reminder_after_hours,
        "escalate_after_hours": config.escalate_after_hours,
        "sp_sync_enabled": sync.enabled,
        "sp_site_url": sync.site_url,
        "sp_library_name": sync.library_name,
        "sp_archive_old_versions": sync.archive_old_versions,
        "sp_archive_site_url": sync.archive_site_url,
        "sp_archive_library_name": sync.archive_library_name,
    }


def row_to_config(row: dict[str, Any], rules: list[dict[str, Any]]) -> RepositoryConfig:
    """Map database rows back into a runtime config."""
    return RepositoryConfig(
        repo_full_name=row["repo_full_name"],
        document_type=row["document_type"],
        document_path=row["document_path"],
        sharepoint_sync=SharePointSync(
            enabled=bool(row.get("sp_sync_enabled")),
            site_url=row.get("sp_site_url") or "",
            library_name=row.get("sp_library_name") or "",
            archive_old_versions=bool(row.get("sp_archive_old_versions")),
            archive_site_url=row.get("sp_archive_site_url"),
            archive_library_name=row.get("sp_archive_library_name"),
        ),
        approval_required=row.get("approval_required", True),
        domain_approval=row.get("domain_approval", True),
        owner_approval=row.get("owner_approval", True),
        auto_merge_enabled=row.get("auto_merge_enabled", False),
        auto_merge_after_hours=row.get("auto_merge_after_hours"),
        notify_on_pr_open=row.get("notify_on_pr_open", True),
        notification_channels=row.get("notification_channels") or ["email"],
        reminder_after_hours=row.get("reminder_after_hours"),
        escalate_after_hours=row.get("escalate_after_hours"),
        cross_domain_rules=[
            CrossDomainRule(
                pattern=rule["rule_pattern"],
                domains=rule.get("required_domains") or [],
                description=rule.get("description"),
            )
            for rule in rules
        ],
    )


def upsert_repository_config(
    config: RepositoryConfig,
    config_file_path: str,
    config_sha: str | None,
) -> None:
    """
    Persist a repository config and replace its cross-domain rules.

    The config row is upserted on repo_full_name; existing rules are deleted
    and the current set inserted.

    Args:
        config: Validated runtime config
        config_file_path: Repository path the config was read from
        config_sha: Blob SHA of the config file

    Raises:
        Exception: If any database operation fails
    """
    schema = _config_schema()
    repo_full_name = config.repo_full_name

    schema.table(CONFIG_TABLE).upsert(
        config_to_row(config, config_file_path, config_sha),
        on_conflict="repo_full_name",
    ).execute()

    schema.table(RULES_TABLE).delete().eq("repo_full_name", repo_full_name).execute()

    if config.cross_domain_rules:
        schema.table(RULES_TABLE).insert(
            [
                {
                    "repo_full_name": repo_full_name,
                    "rule_pattern": rule.pattern,
                    "required_domains": rule.domains,
                    "description": rule.description,
                }
                for rule in config.cross_domain_rules
            ]
        ).execute()

    logger.info(f"Config synced to database for {repo_full_name}")


def get_repository_config(repo_full_name: str) -> RepositoryConfig | None:
    """
    Get the persisted config for a repository.

    Args:
        repo_full_name: "owner/name"

    Returns:
        RepositoryConfig, or None when no row exists

    Raises:
        Exception: If a database read fails
    """
    schema = _config_schema()
    response = (
        schema.table(CONFIG_TABLE)
        .select("*")
        .eq("repo_full_name", repo_full_name)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None

    rules_response = (
        schema.table(RULES_TABLE)
        .select("*")
        .eq("repo_full_name", repo_full_name)
        .execute()
    )
    return row_to_config(response.data[0], rules_response.data or [])
