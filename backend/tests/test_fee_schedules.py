from decimal import Decimal

import pytest

from fee_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_engine.models.fee_schedule import FeeRate, PaymentMethod
from fee_engine.services.fee_schedules import validate_rates


def _rate(method, installments, final, root, forwarding):
    return {
        "payment_method": method,
        "installment_count": installments,
        "final_rate_percent": final,
        "root_share_percent": root,
        "forwarding_share_percent": forwarding,
    }


def test_create_schedule_persists_rates(store, standard):
    loaded = store.get_schedule(standard.id)

    assert loaded.name == "Standard"
    assert loaded.description == "Default pricing"
    assert len(loaded.rates) == 4
    for rate in loaded.rates:
        assert rate.root_share_percent + rate.forwarding_share_percent == rate.final_rate_percent


def test_create_schedule_reports_every_offending_row(store):
    rates = [
        _rate("CREDIT", 1, "3.50", "2.00", "1.50"),
        _rate("CREDIT", 1, "4.00", "2.00", "2.00"),  # duplicate of row 0
        _rate("CREDIT", 2, "5.00", "3.00", "1.00"),  # shares sum to 4.00
        _rate("PIX", 1, "150", "150", "0"),  # out of range
        _rate("DEBIT", 3, "1.20", "1.20", "0"),  # debit is never installment-based
    ]

    with pytest.raises(ValidationError) as exc_info:
        store.create_schedule("Broken", None, rates)

    errors = exc_info.value.errors
    assert {e["index"] for e in errors} == {1, 2, 3, 4}
    assert any("duplicate" in e["message"] for e in errors if e["index"] == 1)
    assert any("must equal final_rate_percent" in e["message"] for e in errors if e["index"] == 2)
    assert {e.get("field") for e in errors if e["index"] == 3} >= {"final_rate_percent", "root_share_percent"}
    assert store.list_schedules() == []


def test_create_schedule_rejects_blank_name_and_unknown_method(store):
    with pytest.raises(ValidationError) as exc_info:
        store.create_schedule("  ", None, [_rate("BOLETO", 1, "1", "1", "0")])

    fields = {e.get("field") for e in exc_info.value.errors}
    assert "name" in fields
    assert "payment_method" in fields


def test_shares_must_match_final_rate_exactly():
    assert validate_rates([_rate("CREDIT", 1, "3.50", "2.00", "1.50")]) == []
    assert len(validate_rates([_rate("CREDIT", 1, "3.50", "2.00", "1.49")])) == 1
    assert len(validate_rates([_rate("CREDIT", 1, "3.50", "2.00", "1.4999")])) == 1


def test_shares_compared_at_stored_scale(store):
    # 1.50004 is stored as 1.5000
    assert validate_rates([_rate("CREDIT", 1, "3.50", "2.00", "1.50004")]) == []

    schedule = store.create_schedule("Fine grained", None, [_rate("CREDIT", 1, "3.33", "1.665", "1.66504")])

    rate = schedule.rates[0]
    assert rate.forwarding_share_percent == Decimal("1.665")
    assert rate.root_share_percent + rate.forwarding_share_percent == rate.final_rate_percent


def test_credit_installments_capped():
    issues = validate_rates([_rate("CREDIT", 22, "9", "5", "4"), _rate("CREDIT", 0, "1", "1", "0")])

    assert [i["index"] for i in issues] == [0, 1]


def test_update_schedule_replaces_rate_set(store, standard):
    updated = store.update_schedule(
        standard.id,
        name="Standard 2026",
        rates=[
            _rate("CREDIT", 1, "3.20", "2.00", "1.20"),
            _rate("PIX", 1, "0.50", "0.50", "0"),
        ],
    )

    assert updated.name == "Standard 2026"
    keys = sorted((PaymentMethod(r.payment_method).value, r.installment_count) for r in updated.rates)
    assert keys == [("CREDIT", 1), ("PIX", 1)]
    credit = next(r for r in updated.rates if r.payment_method == PaymentMethod.CREDIT)
    assert credit.final_rate_percent == Decimal("3.20")


def test_update_schedule_invalid_rates_leave_schedule_untouched(store, standard):
    with pytest.raises(ValidationError):
        store.update_schedule(standard.id, rates=[_rate("CREDIT", 1, "3.50", "3.00", "3.00")])

    assert len(store.get_schedule(standard.id).rates) == 4


def test_upsert_rates_merges_by_method_and_installments(store, standard):
    store.upsert_rates(
        standard.id,
        [
            _rate("CREDIT", 6, "6.10", "3.10", "3.00"),
            _rate("CREDIT", 12, "8.90", "4.90", "4.00"),
        ],
    )

    rates = {(PaymentMethod(r.payment_method), r.installment_count): r for r in store.get_schedule(standard.id).rates}
    assert len(rates) == 5
    assert rates[(PaymentMethod.CREDIT, 6)].final_rate_percent == Decimal("6.10")
    assert rates[(PaymentMethod.CREDIT, 12)].root_share_percent == Decimal("4.90")
    assert rates[(PaymentMethod.DEBIT, 1)].final_rate_percent == Decimal("1.20")


def test_get_unknown_schedule_raises_not_found(store):
    with pytest.raises(NotFoundError) as exc_info:
        store.get_schedule("missing")

    assert exc_info.value.context["schedule_id"] == "missing"


def test_update_unknown_schedule_raises_not_found(store):
    with pytest.raises(NotFoundError) as exc_info:
        store.update_schedule("missing", name="Renamed")

    assert exc_info.value.context["schedule_id"] == "missing"


def test_delete_unknown_schedule_raises_not_found(store, standard):
    with pytest.raises(NotFoundError):
        store.delete_schedule("missing")

    assert [s.id for s in store.list_schedules()] == [standard.id]


def test_list_schedules_ordered_by_name(store, standard, premium):
    assert [s.name for s in store.list_schedules()] == ["Premium", "Standard"]


def test_delete_unreferenced_schedule_removes_rates(db, store, premium):
    store.delete_schedule(premium.id)

    with pytest.raises(NotFoundError):
        store.get_schedule(premium.id)
    assert db.query(FeeRate).filter(FeeRate.schedule_id == premium.id).count() == 0


def test_delete_referenced_schedule_conflicts(store, manager, standard, premium, client_id):
    manager.assign(client_id, standard.id, "ops")

    with pytest.raises(ConflictError):
        store.delete_schedule(standard.id)


def test_delete_schedule_with_only_historical_assignment_conflicts(store, manager, standard, premium, client_id):
    manager.assign(client_id, standard.id, "ops")
    manager.assign(client_id, premium.id, "ops")

    with pytest.raises(ConflictError) as exc_info:
        store.delete_schedule(standard.id)

    assert exc_info.value.context["assignment_count"] == 1
    assert store.get_schedule(standard.id).name == "Standard"


def test_grouped_rates_by_method_ascending(store):
    schedule = store.create_schedule(
        "Grid",
        None,
        [
            _rate("PIX", 1, "0.90", "0.90", "0"),
            _rate("CREDIT", 12, "8.00", "4.00", "4.00"),
            _rate("CREDIT", 2, "4.00", "2.00", "2.00"),
            _rate("CREDIT", 1, "3.00", "2.00", "1.00"),
        ],
    )

    grouped = store.grouped_rates(store.get_schedule(schedule.id))

    assert list(grouped) == [PaymentMethod.CREDIT, PaymentMethod.PIX]
    assert [r.installment_count for r in grouped[PaymentMethod.CREDIT]] == [1, 2, 12]
