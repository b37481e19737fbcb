"""Pydantic models for repository governance configuration.

GovernanceConfig mirrors the YAML file committed at metadata/repo-config.yaml.
RepositoryConfig is the flattened runtime shape the pipeline works with, and
the shape persisted to the config database.
"""

from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, field_validator

NotificationChannel = Literal["email", "teams", "slack"]


# =============================================================================
# YAML file schema
# =============================================================================


class DocumentSection(BaseModel):
    type: str = Field(..., min_length=1, description="Document type, e.g. 'policy'")
    path: str = Field(..., min_length=1, description="Repository folder holding the documents")


class SharePointSyncSection(BaseModel):
    enabled: bool
    site_url: HttpUrl
    library_name: str = Field(..., min_length=1)
    archive_old_versions: bool = False
    archive_site_url: HttpUrl | None = None
    archive_library_name: str | None = None


class AutoMergeSection(BaseModel):
    enabled: bool = False
    after_hours: int = Field(default=24, gt=0)


class ApprovalSection(BaseModel):
    required: bool = True
    domain_approval: bool = True
    owner_approval: bool = True
    auto_merge: AutoMergeSection = Field(default_factory=AutoMergeSection)


class NotificationsSection(BaseModel):
    on_pr_open: bool = True
    channels: list[NotificationChannel] = Field(default_factory=lambda: ["email"])
    reminder_after_hours: int = Field(default=48, gt=0)
    escalate_after_hours: int = Field(default=120, gt=0)


class CrossDomainRuleSection(BaseModel):
    pattern: str = Field(..., min_length=1, description="Glob matched against changed file paths")
    domains: list[str] = Field(..., min_length=2)
    description: str | None = None

    @field_validator("domains")
    @classmethod
    def domains_not_empty(cls, v: list[str]) -> list[str]:
        """Ensure every domain name has content."""
        if any(not domain or not domain.strip() for domain in v):
            raise ValueError("Cross-domain rule domains cannot be empty")
        return [domain.strip() for domain in v]


class GovernanceConfig(BaseModel):
    """Validated contents of metadata/repo-config.yaml."""

    document: DocumentSection
    sharepoint_sync: SharePointSyncSection
    approval: ApprovalSection = Field(default_factory=ApprovalSection)
    notifications: NotificationsSection = Field(default_factory=NotificationsSection)
    cross_domain_rules: list[CrossDomainRuleSection] = Field(default_factory=list)

    @field_validator("cross_domain_rules", mode="before")
    @classmethod
    def null_rules_are_empty(cls, v):
        return [] if v is None else v


# =============================================================================
# Runtime configuration
# =============================================================================


class SharePointSync(BaseModel):
    enabled: bool = False
    site_url: str = ""
    library_name: str = ""
    archive_old_versions: bool = False
    archive_site_url: str | None = None
    archive_library_name: str | None = None


class CrossDomainRule(BaseModel):
    pattern: str
    domains: list[str]
    description: str | None = None


class RepositoryConfig(BaseModel):
    """Governance settings the pipeline runs with for one repository."""

    repo_full_name: str
    document_type: str = "policy"
    document_path: str = "policies/"
    sharepoint_sync: SharePointSync = Field(default_factory=SharePointSync)
    approval_required: bool = True
    domain_approval: bool = True
    owner_approval: bool = True
    auto_merge_enabled: bool = False
    auto_merge_after_hours: int | None = None
    notify_on_pr_open: bool = True
    notification_channels: list[str] = Field(default_factory=lambda: ["email"])
    reminder_after_hours: int | None = 48
    escalate_after_hours: int | None = 120
    cross_domain_rules: list[CrossDomainRule] = Field(default_factory=list)

    @classmethod
    def from_governance(cls, repo_full_name: str, config: GovernanceConfig) -> "RepositoryConfig":
        """Flatten a validated YAML config into runtime form."""
        sync = config.sharepoint_sync
        return cls(
            repo_full_name=repo_full_name,
            document_type=config.document.type,
            document_path=config.document.path,
            sharepoint_sync=SharePointSync(
                enabled=sync.enabled,
                site_url=str(sync.site_url).rstrip("/"),
                library_name=sync.library_name,
                archive_old_versions=sync.archive_old_versions,
                archive_site_url=str(sync.archive_site_url).rstrip("/") if sync.archive_site_url else None,
                archive_library_name=sync.archive_library_name,
            ),
            approval_required=config.approval.required,
            domain_approval=config.approval.domain_approval,
            owner_approval=config.approval.owner_approval,
            auto_merge_enabled=config.approval.auto_merge.enabled,
            auto_merge_after_hours=config.approval.auto_merge.after_hours,
            notify_on_pr_open=config.notifications.on_pr_open,
            notification_channels=list(config.notifications.channels),
            reminder_after_hours=config.notifications.reminder_after_hours,
            escalate_after_hours=config.notifications.escalate_after_hours,
            cross_domain_rules=[
                CrossDomainRule(pattern=rule.pattern, domains=rule.domains, description=rule.description)
                for rule in config.cross_domain_rules
            ],
        )
