"""Fixtures for overdue reminder tests."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from arrears.integrations import SendResult
from arrears.reminders.composer import MessageComposer
from arrears.reminders.config import ReminderConfig
from arrears.reminders.dto import Contract, Installment, Payment

TODAY = date(2025, 3, 1)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def make_contract(contract_id, amounts_and_due, customer_id="cust-1", customer_name="Ali Ahmed"):
    """Contract with already-normalized installments."""
    return Contract(
        id=contract_id,
        customer_id=customer_id,
        customer_name=customer_name,
        installments=[
            Installment(amount=Decimal(str(amount)), due_date=due) for amount, due in amounts_and_due
        ],
    )


def make_payment(contract_id, amount):
    return Payment(contract_id=contract_id, amount=Decimal(str(amount)))


class RecordingChannel:
    """Channel stub that records sends and fails for chosen phones."""

    name = "recording"

    def __init__(self, fail_phones=(), raise_phones=()):
        self.fail_phones = set(fail_phones)
        self.raise_phones = set(raise_phones)
        self.calls = []

    def send(self, phone, text, timeout=None):
        self.calls.append((phone, text, timeout))
        if phone in self.raise_phones:
            raise RuntimeError("connection reset")
        if phone in self.fail_phones:
            return SendResult(success=False, error="provider rejected")
        return SendResult(success=True, message_id=f"msg-{len(self.calls)}")


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def reminder_config():
    return ReminderConfig(currency_label="LYD", company_name="Test Company")


@pytest.fixture
def composer(reminder_config):
    return MessageComposer(reminder_config)


@pytest.fixture
def recording_channel():
    return RecordingChannel()
