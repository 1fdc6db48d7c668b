"""
packleader Configuration Module
===============================

Centralized configuration management for the packleader framework.
Supports environment variables for sensitive data (API keys, credentials).

Design Decision:
- Configuration is a dataclass tree built once and passed through the pipeline
- The BloodHound client, tool catalog and agent each take the section they need
- AI features can be toggled on/off without affecting deterministic analysis
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class BloodHoundConfig:
    """Connection settings for the BloodHound CE API.

    Attributes:
        url: Base address of the BloodHound instance
        username: Account used for secret-based login
        password: Secret for the account (loaded from BH_PASSWORD if not provided)
        timeout: Per-request timeout in seconds
    """
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 30.0

    def __post_init__(self):
        """Fill unset values from the environment."""
        if self.url is None:
            self.url = os.environ.get("BH_URL", "http://127.0.0.1:8080")
        if self.username is None:
            self.username = os.environ.get("BH_USERNAME", "admin")
        if self.password is None:
            self.password = os.environ.get("BH_PASSWORD", "")
        self.url = self.url.rstrip("/")


@dataclass
class LLMConfig:
    """Configuration for the AI/LLM chat agent.

    Attributes:
        enabled: Whether to use the conversational agent
        provider: LLM provider (anthropic, openai)
        model: Specific model to use
        api_key: API key (loaded from environment if not provided)
        temperature: LLM temperature for response variability
        max_tokens: Maximum tokens in LLM response
        max_steps: Maximum tool-calling rounds per user message
    """
    enabled: bool = True
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 4096
    max_steps: int = 10

    def __post_init__(self):
        """Load API key from environment if not explicitly provided."""
        if self.api_key is None:
            if self.provider == "openai":
                self.api_key = os.environ.get("OPENAI_API_KEY")
            elif self.provider == "anthropic":
                self.api_key = os.environ.get("ANTHROPIC_API_KEY")

        # Check for custom API base
        if self.api_base is None:
            self.api_base = os.environ.get("LLM_API_BASE")


@dataclass
class AnalysisConfig:
    """Configuration for the analytical queries.

    Attributes:
        privileged_group_prefix: Name prefix of the target group for path analysis
        excluded_user_prefix: Name prefix of users never treated as path sources
        tier_zero_tag: System tag marking Tier Zero assets
        init_path_limit: Number of shortest paths loaded at session start
        init_retries: Extra initialization attempts after a 500-class failure
        init_retry_delay: Seconds to wait before retrying initialization
    """
    privileged_group_prefix: str = "DOMAIN ADMINS"
    excluded_user_prefix: str = "KRBTGT"
    tier_zero_tag: str = "admin_tier_0"
    init_path_limit: int = 5
    init_retries: int = 1
    init_retry_delay: float = 2.0


@dataclass
class OutputConfig:
    """Configuration for report output.

    Attributes:
        output_dir: Directory for remediation reports
    """
    output_dir: str = "output"


@dataclass
class PackLeaderConfig:
    """Main configuration container for the packleader framework.

    Usage:
        config = PackLeaderConfig()  # Uses all defaults + environment
        config = PackLeaderConfig(llm=LLMConfig(enabled=False))  # Disable AI
    """
    bloodhound: BloodHoundConfig = field(default_factory=BloodHoundConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    verbose: bool = False

    @classmethod
    def from_dict(cls, config_dict: dict) -> "PackLeaderConfig":
        """Create configuration from a dictionary.

        Useful for loading from JSON files or CLI inputs.
        """
        return cls(
            bloodhound=BloodHoundConfig(**config_dict.get("bloodhound", {})),
            llm=LLMConfig(**config_dict.get("llm", {})),
            analysis=AnalysisConfig(**config_dict.get("analysis", {})),
            output=OutputConfig(**config_dict.get("output", {})),
            verbose=config_dict.get("verbose", False),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary, with secrets masked."""
        from dataclasses import asdict
        data = asdict(self)
        if data["bloodhound"].get("password"):
            data["bloodhound"]["password"] = "***"
        if data["llm"].get("api_key"):
            data["llm"]["api_key"] = "***"
        return data
