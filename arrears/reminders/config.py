"""Configuration for overdue reminders.

Provides domain settings with sensible defaults and environment-based
overrides.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ReminderConfig:
    """Configuration for reminder composition.

    Supports overrides via environment variables with pattern:
    REMINDERS_<SETTING>
    """

    # Labels used in messages
    currency_label: str = "LYD"
    unknown_customer_label: str = "Unknown customer"
    default_installment_description: str = "Installment"
    company_name: str = ""

    # Entries listed in the management report before truncation
    management_report_limit: int = 10

    # Directory searched before the bundled templates
    template_dir: Optional[str] = None

    date_format: str = "%Y-%m-%d"

    @classmethod
    def from_env(cls) -> "ReminderConfig":
        """Create configuration with environment overrides applied."""
        config = cls()
        prefix = "REMINDERS"

        config.currency_label = os.getenv(f"{prefix}_CURRENCY_LABEL", config.currency_label)
        config.unknown_customer_label = os.getenv(
            f"{prefix}_UNKNOWN_CUSTOMER_LABEL", config.unknown_customer_label
        )
        config.default_installment_description = os.getenv(
            f"{prefix}_INSTALLMENT_DESCRIPTION", config.default_installment_description
        )
        config.company_name = os.getenv(f"{prefix}_COMPANY_NAME", config.company_name)
        config.management_report_limit = int(
            os.getenv(f"{prefix}_MANAGEMENT_REPORT_LIMIT", config.management_report_limit)
        )
        config.template_dir = os.getenv(f"{prefix}_TEMPLATE_DIR", config.template_dir)
        config.date_format = os.getenv(f"{prefix}_DATE_FORMAT", config.date_format)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "currency_label": self.currency_label,
            "unknown_customer_label": self.unknown_customer_label,
            "default_installment_description": self.default_installment_description,
            "company_name": self.company_name,
            "management_report_limit": self.management_report_limit,
            "template_dir": self.template_dir,
            "date_format": self.date_format,
        }
