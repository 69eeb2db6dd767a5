import os
import random
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.negotiation import RFQItem, SimulationTaskStatus, SupplierResponseStatus
from repositories.negotiation_store import NegotiationStore
from repositories.reference_data_repo import ReferenceDataRepository
from services.backend_scheduler import BackendScheduler
from services.email_dispatch_service import EmailDispatchService
from services.email_service import EmailService
from services.reply_simulation import FALLBACK_PROFILE, SUPPLIER_PROFILES, ReplySimulator
from services.rfq_workflow import RFQWorkflow
from utils.exceptions import NotFoundError


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
LATER = START + timedelta(hours=1)

BOLTS = RFQItem(sku="HB-M10X50-A480", name="Hex Bolt M10x50mm Grade A4-80 Stainless", qty=500)
VALVES = RFQItem(sku="BV-DN25-PN16", name="Ball Valve DN25 PN16 Brass", qty=40)


def _settings(**overrides):
    defaults = {
        "buyer_name": "James Cooper",
        "buyer_email": "buyer@example.com",
        "buyer_company": "Meridian Industrial Supplies",
        "default_quote_deadline_days": 2,
        "default_delivery_days": 7,
        "rfq_number_seed": 91,
        "po_number_seed": 1000,
        "domestic_currency_symbol": "£",
        "simulation_enabled": True,
        "supplier_reply_delay_seconds": 30.0,
        "non_responding_suppliers": ["sup-006"],
        "supplier_sim_email": "supplier-sim@example.com",
        "eur_per_gbp": 1.16,
        "email_transport": "log",
        "ses_default_sender": "procurement@example.com",
    }
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def _simulation(seed=7, **overrides):
    settings = _settings(**overrides)
    clock = lambda: START
    email = EmailService(settings)
    workflow = RFQWorkflow(
        NegotiationStore(settings, clock=clock),
        ReferenceDataRepository.from_default(default_contact_email=settings.supplier_sim_email),
        EmailDispatchService(settings, email),
        BackendScheduler(settings, clock=clock, autostart=False),
        settings=settings,
    )
    simulator = ReplySimulator(workflow, settings=settings, rng=random.Random(seed))
    workflow.attach_simulator(simulator)
    return workflow, simulator, email


def test_non_responder_stays_pending_while_others_reply():
    workflow, simulator, email = _simulation()
    rfq = workflow.create_rfq([BOLTS], ["sup-001", "sup-002", "sup-006"])

    tasks = simulator.status(rfq.id)
    assert [(t.supplier_id, t.scheduled_for) for t in tasks] == [
        ("sup-001", START + timedelta(seconds=30)),
        ("sup-002", START + timedelta(seconds=60)),
    ]

    assert workflow.scheduler.run_pending(START + timedelta(seconds=30)) == 1
    assert workflow.scheduler.run_pending(LATER) == 1

    assert [t.status for t in simulator.status(rfq.id)] == [SimulationTaskStatus.SENT] * 2
    quotes = workflow.quotes_for_rfq(rfq.id)
    assert sorted(q.supplier_id for q in quotes) == ["sup-001", "sup-002"]
    statuses = {v.supplier_id: v.status for v in workflow.supplier_statuses(rfq.id, LATER)}
    assert statuses == {
        "sup-001": SupplierResponseStatus.RESPONDED,
        "sup-002": SupplierResponseStatus.RESPONDED,
        "sup-006": SupplierResponseStatus.PENDING,
    }

    replies = [m for m in email.sent_messages if m["recipients"] == ["buyer@example.com"]]
    assert [m["subject"] for m in replies] == [
        "[RS Components] RE: RFQ-0092 — Request for Quotation",
        "[Würth] RE: RFQ-0092 — Request for Quotation",
    ]
    assert all(m["sender"] == "supplier-sim@example.com" for m in replies)


def test_captured_simulated_quotes_follow_supplier_profiles():
    workflow, _, _ = _simulation()
    rfq = workflow.create_rfq([BOLTS, VALVES], ["sup-001", "sup-002"])
    workflow.scheduler.run_pending(LATER)

    rs = workflow.store.live_quote(rfq.id, "sup-001")
    wurth = workflow.store.live_quote(rfq.id, "sup-002")

    assert [i.sku for i in rs.items] == ["HB-M10X50-A480", "BV-DN25-PN16"]
    assert 0.42 <= rs.items[0].unit_price <= 0.45
    assert rs.delivery_cost == 0.0
    assert rs.lead_time_days == 5
    assert rs.payment_terms == "Net 30"
    assert rs.validity == "14 days"
    assert rs.subtotal == pytest.approx(sum(i.total for i in rs.items))

    assert [i.qty for i in wurth.items] == [500, 40]
    assert wurth.delivery_cost == pytest.approx(45.00)
    assert wurth.lead_time_days == 8
    assert wurth.payment_terms == "Net 45"
    assert wurth.validity == "21 days"
    assert wurth.landed_total == pytest.approx(wurth.subtotal + 45.00)


def test_same_seed_gives_same_prices():
    prices = []
    for _ in range(2):
        workflow, _, _ = _simulation(seed=11)
        rfq = workflow.create_rfq([BOLTS], ["sup-004"])
        workflow.scheduler.run_pending(LATER)
        prices.append(workflow.store.live_quote(rfq.id, "sup-004").items[0].unit_price)

    assert prices[0] == prices[1]


def test_reply_after_cancel_marks_task_failed():
    workflow, simulator, _ = _simulation()
    rfq = workflow.create_rfq([BOLTS], ["sup-001"])
    workflow.cancel_rfq(rfq.id)

    workflow.scheduler.run_pending(LATER)

    (task,) = simulator.status(rfq.id)
    assert task.status is SimulationTaskStatus.FAILED
    assert "cancelled" in task.error
    assert workflow.quotes_for_rfq(rfq.id) == []


def test_undeliverable_reply_is_not_captured():
    workflow, simulator, _ = _simulation(buyer_email="")
    rfq = workflow.create_rfq([BOLTS], ["sup-003"])

    workflow.scheduler.run_pending(LATER)

    (task,) = simulator.status(rfq.id)
    assert task.status is SimulationTaskStatus.FAILED
    assert workflow.quotes_for_rfq(rfq.id) == []
    assert workflow.store.get_supplier_status(rfq.id, "sup-003").status is SupplierResponseStatus.PENDING


def test_trigger_reschedules_existing_rfq():
    workflow, simulator, _ = _simulation(simulation_enabled=False)
    rfq = workflow.create_rfq([BOLTS], ["sup-005"])
    assert simulator.status(rfq.id) == []

    tasks = simulator.trigger(rfq.id)

    assert [t.supplier_id for t in tasks] == ["sup-005"]
    assert workflow.scheduler.pending_jobs() == [f"simulated-reply:{rfq.id}:sup-005"]
    workflow.scheduler.run_pending(LATER)
    assert workflow.store.live_quote(rfq.id, "sup-005").delivery_cost == pytest.approx(15.00)

    with pytest.raises(NotFoundError):
        simulator.trigger("missing")


def test_unknown_supplier_prices_with_fallback_profile():
    workflow, simulator, _ = _simulation()
    supplier = workflow.reference.get_supplier("sup-006")
    rfq = workflow.store.create_rfq([BOLTS], ["sup-006"])

    draft = simulator.price_quote(rfq, supplier)

    assert "sup-006" not in SUPPLIER_PROFILES
    latest = workflow.reference.price_history(BOLTS.sku, "sup-006").latest.unit_price
    assert latest * FALLBACK_PROFILE.bias_low - 0.01 <= draft.items[0].unit_price
    assert draft.items[0].unit_price <= latest * FALLBACK_PROFILE.bias_high + 0.01
    assert draft.lead_time_days == supplier.avg_lead_time_days
    assert draft.subtotal_stated is True


def test_trigger_skips_suppliers_already_answered_or_scheduled():
    workflow, simulator, email = _simulation()
    rfq = workflow.create_rfq([BOLTS], ["sup-001", "sup-003"])
    workflow.scheduler.run_pending(START + timedelta(seconds=30))
    sent_before = len(email.sent_messages)

    assert simulator.trigger(rfq.id) == []

    assert [(t.supplier_id, t.status) for t in simulator.status(rfq.id)] == [
        ("sup-001", SimulationTaskStatus.SENT),
        ("sup-003", SimulationTaskStatus.SCHEDULED),
    ]
    workflow.scheduler.run_pending(LATER)
    replies = [m for m in email.sent_messages if m["recipients"] == ["buyer@example.com"]]
    assert len(replies) == 2
    assert len(email.sent_messages) == sent_before + 1


def test_trigger_retries_a_failed_reply_and_keeps_history():
    workflow, simulator, _ = _simulation(buyer_email="")
    rfq = workflow.create_rfq([BOLTS], ["sup-003"])
    workflow.scheduler.run_pending(LATER)

    (retry,) = simulator.trigger(rfq.id)

    assert retry.status is SimulationTaskStatus.SCHEDULED
    assert [t.status for t in simulator.status(rfq.id)] == [
        SimulationTaskStatus.FAILED,
        SimulationTaskStatus.SCHEDULED,
    ]


def test_manual_capture_before_simulated_reply_suppresses_it():
    workflow, simulator, email = _simulation()
    rfq = workflow.create_rfq([BOLTS], ["sup-001"])
    manual = workflow.capture_quote(rfq.id, "sup-001", simulator.price_quote(
        rfq, workflow.reference.get_supplier("sup-001")
    ))

    workflow.scheduler.run_pending(LATER)

    (task,) = simulator.status(rfq.id)
    assert task.status is SimulationTaskStatus.FAILED
    assert "already responded" in task.error
    assert not [m for m in email.sent_messages if m["recipients"] == ["buyer@example.com"]]
    assert workflow.store.live_quote(rfq.id, "sup-001").id == manual.id
