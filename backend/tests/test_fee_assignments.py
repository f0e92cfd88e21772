import pytest

from fee_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_engine.models.client_fee_assignment import ClientFeeAssignment


def test_assign_makes_schedule_active(manager, standard, client_id):
    row = manager.assign(client_id, standard.id, "ops", notes="onboarding")

    active = manager.get_active_assignment(client_id)
    assert active.id == row.id
    assert active.fee_schedule_id == standard.id
    assert active.assigned_by == "ops"
    assert active.notes == "onboarding"
    assert active.active is True


def test_reassign_keeps_prior_row_in_history(manager, standard, premium, client_id):
    first = manager.assign(client_id, standard.id, "ops")
    second = manager.assign(client_id, premium.id, "ops", notes="volume discount")

    assert manager.get_active_assignment(client_id).fee_schedule_id == premium.id
    history = manager.get_history(client_id)
    assert [h.id for h in history] == [first.id, second.id]
    assert history[0].active is False
    assert history[0].deactivated_at is not None
    assert history[1].active is True


def test_history_is_restartable_and_empty_for_unknown_client(manager, standard, client_id):
    manager.assign(client_id, standard.id, "ops")

    history = manager.get_history(client_id)
    assert list(history) == list(history)
    assert manager.get_history("nobody") == ()


def test_only_one_active_row_per_client(db, manager, standard, premium, client_id):
    manager.assign(client_id, standard.id, "ops")
    manager.assign(client_id, premium.id, "ops")
    manager.assign(client_id, standard.id, "ops")

    active_rows = (
        db.query(ClientFeeAssignment)
        .filter(ClientFeeAssignment.client_id == client_id, ClientFeeAssignment.active.is_(True))
        .count()
    )
    assert active_rows == 1
    assert len(manager.get_history(client_id)) == 3


def test_assign_same_schedule_is_idempotent(manager, standard, client_id):
    first = manager.assign(client_id, standard.id, "ops")
    again = manager.assign(client_id, standard.id, "ops")

    assert again.id == first.id
    assert len(manager.get_history(client_id)) == 1


def test_assign_unknown_schedule_raises_not_found(manager, client_id):
    with pytest.raises(NotFoundError):
        manager.assign(client_id, "missing", "ops")

    assert manager.get_active_assignment(client_id) is None


def test_assign_requires_actor(manager, standard, client_id):
    with pytest.raises(ValidationError):
        manager.assign(client_id, standard.id, " ")


def test_stale_expected_assignment_conflicts(manager, standard, premium, client_id):
    seen = manager.assign(client_id, standard.id, "ops")
    manager.assign(client_id, premium.id, "other-ops")

    with pytest.raises(ConflictError) as exc_info:
        manager.assign(client_id, standard.id, "ops", expected_assignment_id=seen.id)

    assert exc_info.value.context["client_id"] == client_id
    assert manager.get_active_assignment(client_id).fee_schedule_id == premium.id


def test_expected_none_matches_unassigned_client(manager, standard, client_id):
    row = manager.assign(client_id, standard.id, "ops", expected_assignment_id=None)

    assert row.active is True


def test_losing_concurrent_reassign_conflicts(monkeypatch, manager, store, standard, premium, client_id):
    manager.assign(client_id, standard.id, "ops")
    stale = manager.get_active_assignment(client_id)
    winner = manager.assign(client_id, premium.id, "other-ops")
    third = store.create_schedule("Third", None, [])

    # The loser read the active row before the winner committed
    monkeypatch.setattr(manager, "get_active_assignment", lambda _client_id: stale)
    with pytest.raises(ConflictError):
        manager.assign(client_id, third.id, "ops")
    monkeypatch.undo()

    assert manager.get_active_assignment(client_id).id == winner.id


def test_losing_concurrent_first_assign_conflicts(monkeypatch, manager, standard, premium, client_id):
    winner = manager.assign(client_id, standard.id, "ops")

    # The loser saw no active assignment before the winner committed
    monkeypatch.setattr(manager, "get_active_assignment", lambda _client_id: None)
    with pytest.raises(ConflictError):
        manager.assign(client_id, premium.id, "ops")
    monkeypatch.undo()

    assert manager.get_active_assignment(client_id).id == winner.id
    assert len(manager.get_history(client_id)) == 1


def test_remove_leaves_client_unassigned(manager, standard, client_id):
    row = manager.assign(client_id, standard.id, "ops")

    removed = manager.remove(client_id, removed_by="ops")

    assert removed.id == row.id
    assert removed.active is False
    assert manager.get_active_assignment(client_id) is None
    assert len(manager.get_history(client_id)) == 1


def test_remove_without_assignment_raises_not_found(manager, client_id):
    with pytest.raises(NotFoundError):
        manager.remove(client_id)


def test_transfer_moves_client_from_expected_schedule(manager, standard, premium, client_id):
    manager.assign(client_id, standard.id, "ops")

    row = manager.transfer(client_id, standard.id, premium.id, "ops", notes="renegotiated")

    assert row.fee_schedule_id == premium.id
    assert row.notes == "renegotiated"


def test_transfer_from_wrong_schedule_conflicts(manager, standard, premium, client_id):
    manager.assign(client_id, premium.id, "ops")

    with pytest.raises(ConflictError) as exc_info:
        manager.transfer(client_id, standard.id, premium.id, "ops")

    assert exc_info.value.context["current_schedule_id"] == premium.id


def test_list_active_assignments_by_schedule(manager, standard, premium):
    manager.assign("client-a", standard.id, "ops")
    manager.assign("client-b", premium.id, "ops")
    manager.assign("client-c", standard.id, "ops")
    manager.remove("client-c")

    linked = manager.list_active_assignments(standard.id)

    assert [a.client_id for a in linked] == ["client-a"]
    assert [a.client_id for a in manager.list_active_assignments()] == ["client-a", "client-b"]
