"""Pydantic schema for configuration validation."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class PolicyConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    max_addresses: int = Field(..., ge=1, description="Distinct addresses allowed")
    check_interval_seconds: float = Field(..., gt=0)
    grace_period_seconds: float = Field(default=0, ge=0)
    # <= 0 means unlimited bans / history kept forever
    ban_duration_minutes: float
    ban_retention_minutes: float


class LedgerConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    path: str = Field(..., min_length=1)


class LogsConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    access_log: str = Field(..., min_length=1)
    accumulated_log: str = Field(..., min_length=1)
    save_interval_seconds: float = Field(..., gt=0)
    retention_minutes: float
    cleanup_interval_seconds: float = Field(..., gt=0)
    cleanup_initial_delay_seconds: float = Field(..., ge=0)


class PanelConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    url: str = Field(default="")
    username: str = Field(default="")
    inbound_id: int = Field(default=0, ge=0)
    timeout: float = Field(default=30, gt=0, le=300)
    verify_tls: bool = Field(default=True)
    phase_delay_seconds: float = Field(default=1.0, ge=0, le=60)
    remark_delay_seconds: float = Field(default=0.5, ge=0, le=60)
    max_retries: int = Field(default=3, ge=0, le=10)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        if not v:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("panel url must be an http(s) URL")
        return v


class FirewallConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    enabled: bool = Field(default=True)
    chain: str = Field(default="INPUT")
    iptables: str = Field(default="iptables", min_length=1)
    ip6tables: str = Field(default="ip6tables", min_length=1)

    @field_validator("chain")
    @classmethod
    def _validate_chain(cls, v: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9_-]{1,28}", v):
            raise ValueError("chain must be an iptables chain name")
        return v


class LoggingConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    log_file: str = Field(default="")
    log_level: str = Field(default="INFO")
    log_rotation: bool = Field(default=True)
    max_log_size: str = Field(default="10MB")
    backup_count: int = Field(default=5, ge=0)
    banned_users_log: str = Field(default="")
    log_banned_users: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        if v.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(_LOG_LEVELS)}")
        return v.upper()

    @field_validator("max_log_size")
    @classmethod
    def _validate_size(cls, v: str) -> str:
        if not re.fullmatch(r"\s*\d+(\.\d+)?\s*(KB|MB|GB)?\s*", v, re.IGNORECASE):
            raise ValueError("max_log_size must look like 512KB, 10MB or 1GB")
        return v


class MonitoringConfigSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    enabled: bool = Field(default=False)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8088, ge=1, le=65535)


class ShareGuardConfigSchema(BaseModel):
    policy: PolicyConfigSchema
    ledger: LedgerConfigSchema
    logs: LogsConfigSchema
    panel: PanelConfigSchema
    firewall: FirewallConfigSchema
    logging: LoggingConfigSchema
    monitoring: MonitoringConfigSchema


def validate_config_file(payload: dict) -> ShareGuardConfigSchema:
    """Validate configuration payload with Pydantic schema."""

    return ShareGuardConfigSchema(**payload)
