"""Tests for the reminder playbook."""

from decimal import Decimal
from pathlib import Path

import pytest

from arrears.comm.event_sink import read_transitions
from arrears.comm.events import DispatchState
from arrears.core.config import settings
from arrears.integrations import DryRunChannel
from arrears.reminders.directory import CustomerContact, InMemoryCustomerDirectory, ManagementContact
from arrears.reminders.errors import InputError
from arrears.reminders.playbooks import ReminderContext, ReminderPlaybook

from .conftest import TODAY, RecordingChannel, days_ago, make_contract, make_payment


class StaticSource:
    """Contract source over fixed lists."""

    def __init__(self, contracts, payments=()):
        self.contracts = list(contracts)
        self.payments = list(payments)

    def load_contracts(self):
        return self.contracts

    def load_payments(self):
        return self.payments


class BrokenSource(StaticSource):
    def load_contracts(self):
        raise RuntimeError("database unavailable")


@pytest.fixture
def source():
    return StaticSource(
        [
            make_contract("C1", [(100, days_ago(10))], customer_id="1", customer_name="Ali Ahmed"),
            make_contract("C2", [(300, days_ago(40))], customer_id="2", customer_name="Huda"),
            make_contract("C3", [(50, days_ago(5))], customer_id="3", customer_name="Omar"),
        ],
        [make_payment("C1", 60)],
    )


@pytest.fixture
def directory():
    return InMemoryCustomerDirectory(
        [
            CustomerContact(id="1", name="Ali Ahmed", phone="0911111111"),
            CustomerContact(id="2", name="Huda", phone="0922222222"),
        ]
    )


class TestContextValidation:
    """Test run option checks."""

    def test_unknown_recipients(self):
        with pytest.raises(InputError):
            ReminderContext(reference_date=TODAY, recipients="everyone")

    def test_unknown_mode(self):
        with pytest.raises(InputError):
            ReminderContext(reference_date=TODAY, mode="blast")

    def test_missing_source(self):
        with pytest.raises(InputError):
            ReminderPlaybook().run_once(ReminderContext(reference_date=TODAY))


class TestPreview:
    """Test preview runs."""

    def test_customer_preview_sends_nothing(self, source, directory, reminder_config):
        channel = RecordingChannel()
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            directory=directory,
            channel=channel,
            config=reminder_config,
            run_id="preview-1",
        )

        result = ReminderPlaybook().run_once(context)

        assert result.success is True
        assert result.run_id == "preview-1"
        assert result.dispatch is None
        assert channel.calls == []
        assert [t.id for t in result.targets] == ["id:1", "id:2"]
        assert result.unresolved == ["id:3"]
        assert result.total_overdue == Decimal("390.00")
        assert result.summary() == "2 messages composed, 1 unresolved"

    def test_no_overdue_customers(self, directory):
        source = StaticSource([make_contract("C1", [(10, days_ago(3))])], [make_payment("C1", 10)])

        result = ReminderPlaybook().run_once(
            ReminderContext(reference_date=TODAY, source=source, directory=directory)
        )

        assert result.success is True
        assert result.targets == []
        assert "No overdue customers found" in result.warnings

    def test_management_report_sorted_by_total(self, source, reminder_config):
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            recipients="management",
            management_contacts=[ManagementContact(id="1", phone="0933", label="CEO")],
            config=reminder_config,
        )

        result = ReminderPlaybook().run_once(context)

        report = result.targets[0].message
        assert result.targets[0].id == "management:1"
        assert report.index("*Huda*") < report.index("*Omar*") < report.index("*Ali Ahmed*")
        assert "Total overdue: 390.00 LYD" in report
        assert "Date: 2025-03-01" in report

    def test_management_without_contacts_warns(self, source):
        result = ReminderPlaybook().run_once(
            ReminderContext(reference_date=TODAY, source=source, recipients="management")
        )
        assert "No active management contacts" in result.warnings

    def test_source_failure_reported(self):
        result = ReminderPlaybook().run_once(
            ReminderContext(reference_date=TODAY, source=BrokenSource([]))
        )

        assert result.success is False
        assert result.errors == ["database unavailable"]


class TestSend:
    """Test dispatching runs."""

    def test_send_with_injected_channel(self, source, directory):
        channel = RecordingChannel(fail_phones={"0922222222"})
        seen = []
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            directory=directory,
            mode="send",
            channel=channel,
            delay=0,
            observers=[seen.append],
            run_id="run-42",
        )

        result = ReminderPlaybook().run_once(context)

        assert result.dispatch.per_target == {"id:1": DispatchState.SUCCESS, "id:2": DispatchState.ERROR}
        assert "1 sends failed" in result.warnings
        assert result.summary() == "1 succeeded, 1 failed"
        assert len(seen) == 4
        assert all(t.run_id == "run-42" for t in seen)

    def test_transitions_written_to_log_dir(self, source, directory):
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            directory=directory,
            mode="send",
            channel=DryRunChannel(),
            delay=0,
            run_id="run-log",
        )

        ReminderPlaybook().run_once(context)

        files = list(Path(settings.TRANSITION_LOG_DIR).glob("*/transitions-run-log.ndjson"))
        assert len(files) == 1
        transitions = read_transitions(files[0])
        assert [t.state for t in transitions] == [
            DispatchState.PENDING,
            DispatchState.PENDING,
            DispatchState.SUCCESS,
            DispatchState.SUCCESS,
        ]

    def test_no_transition_log_by_default(self, source, directory, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "TRANSITION_LOG_DIR", "")
        monkeypatch.chdir(tmp_path)
        context = ReminderContext(
            reference_date=TODAY, source=source, directory=directory, mode="send",
            channel=DryRunChannel(), delay=0,
        )

        result = ReminderPlaybook().run_once(context)

        assert result.dispatch.success_count == 2
        assert list(tmp_path.rglob("*.ndjson")) == []

    def test_transition_log_dir_from_context(self, source, directory, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "TRANSITION_LOG_DIR", "")
        context = ReminderContext(
            reference_date=TODAY, source=source, directory=directory, mode="send",
            channel=DryRunChannel(), delay=0, run_id="ctx-log",
            transition_log_dir=str(tmp_path / "ctx"),
        )

        ReminderPlaybook().run_once(context)

        assert len(list((tmp_path / "ctx").glob("*/transitions-ctx-log.ndjson"))) == 1

    def test_send_through_named_dry_run_channel(self, source, directory):
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            directory=directory,
            mode="send",
            channel_name="dry_run",
            delay=0,
        )

        result = ReminderPlaybook().run_once(context)

        assert result.dispatch.success_count == 2

    def test_unknown_channel_name_rejected(self, source, directory):
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            directory=directory,
            mode="send",
            channel_name="pigeon",
            delay=0,
        )

        with pytest.raises(InputError):
            ReminderPlaybook().run_once(context)

    def test_management_contact_without_phone_excluded(self, source):
        channel = RecordingChannel()
        context = ReminderContext(
            reference_date=TODAY,
            source=source,
            recipients="management",
            mode="send",
            channel=channel,
            delay=0,
            management_contacts=[
                ManagementContact(id="1", phone="0933"),
                ManagementContact(id="2", phone=None),
            ],
        )

        result = ReminderPlaybook().run_once(context)

        assert result.dispatch.excluded == ["management:2"]
        assert result.dispatch.success_count == 1
        assert len(channel.calls) == 1

    def test_to_dict(self, source, directory):
        context = ReminderContext(
            reference_date=TODAY, source=source, directory=directory, mode="send",
            channel=RecordingChannel(), delay=0,
        )

        data = ReminderPlaybook().run_once(context).to_dict()

        assert data["customers"] == 3
        assert data["total_overdue"] == "390.00"
        assert data["dispatch"]["success_count"] == 2
        assert data["unresolved"] == ["id:3"]
