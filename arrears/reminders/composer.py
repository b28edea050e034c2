"""Message composition for overdue reminders.

Renders customer reminders and the management report from Jinja2
templates. Rendering is pure: the same aggregate (and report date) always
yields the same text.
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from .config import ReminderConfig
from .dto import CustomerOverdueAggregate, OverdueInstallmentRecord

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates" / "default"

CUSTOMER_TEMPLATE = "customer_reminder.jinja.txt"
MANAGEMENT_TEMPLATE = "management_report.jinja.txt"


class MessageComposer:
    """Jinja2 composer for reminder texts."""

    def __init__(self, config: ReminderConfig | None = None):
        """Initialize composer.

        Args:
            config: Reminder configuration; `template_dir` is searched
                before the bundled templates
        """
        self.config = config or ReminderConfig()
        self.logger = logging.getLogger(__name__)

        search_path = []
        if self.config.template_dir:
            search_path.append(self.config.template_dir)
        search_path.append(str(DEFAULT_TEMPLATE_DIR))

        self.env = Environment(
            loader=FileSystemLoader(search_path),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["money"] = self._money_filter
        self.env.filters["datefmt"] = self._datefmt_filter

    def _money_filter(self, amount: Decimal) -> str:
        """Format an amount with thousands separators and currency label."""
        return f"{Decimal(amount):,.2f} {self.config.currency_label}"

    def _datefmt_filter(self, value, format_str: str | None = None) -> str:
        """Format a date or datetime."""
        if hasattr(value, "strftime"):
            return value.strftime(format_str or self.config.date_format)
        return str(value)

    def _render(self, template_name: str, **context) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            error_msg = f"Template '{template_name}' not found in {self.env.loader.searchpath}"
            self.logger.error(error_msg)
            raise FileNotFoundError(error_msg) from e
        return template.render(**context)

    def compose_customer_message(self, aggregate: CustomerOverdueAggregate) -> str:
        """Compose the reminder sent to one customer.

        Installments are grouped by contract in order of first appearance,
        followed by unpaid invoices and the total.
        """
        groups: dict[str, list[OverdueInstallmentRecord]] = {}
        for record in aggregate.installments:
            groups.setdefault(record.contract_id, []).append(record)

        return self._render(
            CUSTOMER_TEMPLATE,
            customer_name=aggregate.customer_name,
            contracts=[
                {"contract_id": contract_id, "installments": records}
                for contract_id, records in groups.items()
            ],
            unpaid_invoices=aggregate.unpaid_invoices,
            total=aggregate.total_overdue,
            company_name=self.config.company_name,
            default_description=self.config.default_installment_description,
        )

    def compose_management_report(
        self,
        aggregates: Sequence[CustomerOverdueAggregate],
        report_date: date | datetime | None = None,
    ) -> str:
        """Compose the summary report sent to management.

        Lists the first `management_report_limit` aggregates in input order;
        the grand total covers all of them.
        """
        limit = max(self.config.management_report_limit, 0)
        listed = list(aggregates[:limit])
        return self._render(
            MANAGEMENT_TEMPLATE,
            report_date=report_date or date.today(),
            customer_count=len(aggregates),
            grand_total=sum((a.total_overdue for a in aggregates), Decimal("0.00")),
            listed=listed,
            omitted=len(aggregates) - len(listed),
        )


@lru_cache(maxsize=1)
def default_composer() -> MessageComposer:
    """Composer built from environment configuration."""
    return MessageComposer(ReminderConfig.from_env())


def compose_customer_message(aggregate: CustomerOverdueAggregate) -> str:
    return default_composer().compose_customer_message(aggregate)


def compose_management_report(
    aggregates: Sequence[CustomerOverdueAggregate], report_date: date | datetime | None = None
) -> str:
    return default_composer().compose_management_report(aggregates, report_date)
