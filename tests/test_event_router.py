"""
Unit tests for the event router state machine and its fan-out decisions.
"""
import pytest

from wealth_relay.exceptions import DeliveryUnreachable
from wealth_relay.models import InvestorStatus, JoinOutcome, Sender
from wealth_relay.realtime.router import Audience, ConnectionState, parse_envelope
from wealth_relay.exceptions import ValidationError


def join(event_router, ctx, investor_id=None):
    data = {} if investor_id is None else {"investorId": investor_id}
    event_router.handle(ctx, {"type": "investor-join", "data": data})
    return ctx.investor_id


@pytest.fixture
def admin(event_router, fake_manager):
    return event_router.open(fake_manager.add("admin"))


@pytest.fixture
def investor(event_router, fake_manager):
    return event_router.open(fake_manager.add("investor"))


@pytest.mark.unit
class TestEnvelope:

    def test_nested_and_flat_payloads(self):
        assert parse_envelope({"type": "investor-message", "data": {"message": "x"}})[1] == {"message": "x"}
        assert parse_envelope({"type": "investor-message", "message": "x"})[1] == {"message": "x"}
        assert parse_envelope({"type": "investor-join", "data": None})[1] == {}

    @pytest.mark.parametrize("frame", [
        "not an object",
        {"type": "no-such-event"},
        {"type": "new-message", "data": {}},
        {"type": "investor-join", "data": ["list"]},
        {"data": {}},
    ])
    def test_rejects_malformed_frames(self, frame):
        with pytest.raises(ValidationError):
            parse_envelope(frame)


@pytest.mark.unit
class TestJoin:

    def test_join_without_id_announces_to_everyone(self, event_router, fake_manager, admin, investor):
        investor_id = join(event_router, investor)

        assert investor.state == ConnectionState.IDENTIFIED
        assert investor_id.startswith("inv_")

        announced = fake_manager.of_type("admin", "new-investor")
        assert len(announced) == 1
        assert announced[0]["data"]["investorId"] == investor_id
        assert announced[0]["data"]["ip"] == "10.0.0.1"
        assert announced[0]["data"]["returning"] is False

        ack = fake_manager.of_type("investor", "investor-joined")[0]["data"]
        assert ack == {"investorId": investor_id, "outcome": "created", "history": []}
        # The ack goes to the joining connection only
        assert fake_manager.of_type("admin", "investor-joined") == []

    def test_duplicate_join_is_idempotent(self, event_router, relay_state, investor):
        join(event_router, investor, "inv_7")
        join(event_router, investor, "inv_7")
        join(event_router, investor, "inv_7")

        assert relay_state.registry.count() == 1
        assert relay_state.registry.get("inv_7").status == InvestorStatus.ACTIVE

    def test_join_result_is_tagged(self, event_router, investor, fake_manager):
        first = event_router.on_investor_join(investor, {"investorId": "inv_9"})
        second = event_router.on_investor_join(investor, {"investorId": "inv_9"})
        assert first.outcome == JoinOutcome.CREATED
        assert second.outcome == JoinOutcome.REACTIVATED

    def test_rejoin_under_new_id_releases_the_old_one(self, event_router, relay_state, fake_manager, admin, investor):
        join(event_router, investor, "inv_a")
        join(event_router, investor, "inv_b")

        assert relay_state.registry.get("inv_a").status == InvestorStatus.INACTIVE
        assert relay_state.registry.get("inv_b").connection_id == "investor"
        left = fake_manager.of_type("admin", "investor-left")
        assert [e["data"]["investorId"] for e in left] == ["inv_a"]

    def test_non_string_id_is_rejected(self, event_router, relay_state, fake_manager, investor):
        event_router.handle(investor, {"type": "investor-join", "data": {"investorId": 12}})

        assert investor.state == ConnectionState.UNIDENTIFIED
        assert relay_state.registry.count() == 0
        assert fake_manager.of_type("investor", "error")[0]["data"]["code"] == "VALIDATION_ERROR"


@pytest.mark.unit
class TestMessages:

    def test_investor_message_requires_join(self, event_router, relay_state, fake_manager, admin, investor):
        event_router.handle(investor, {"type": "investor-message", "data": {"message": "hello"}})

        error = fake_manager.of_type("investor", "error")[0]["data"]
        assert error["code"] == "VALIDATION_ERROR"
        assert fake_manager.of_type("admin", "new-message") == []

    def test_investor_message_is_stored_and_broadcast(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor)
        event_router.handle(investor, {"type": "investor-message", "data": {"message": "hello"}})

        stored = relay_state.conversations.get(investor_id)
        assert [(m.sender, m.content) for m in stored] == [(Sender.INVESTOR, "hello")]

        broadcast = fake_manager.of_type("admin", "new-message")[0]["data"]
        assert broadcast["type"] == "investor"
        assert broadcast["content"] == "hello"
        assert broadcast["investorId"] == investor_id
        assert broadcast["id"] == stored[0].id

    def test_admin_message_targets_the_bound_investor(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor)
        bystander = event_router.open(fake_manager.add("bystander"))
        join(event_router, bystander, "inv_other")
        fake_manager.clear()

        event_router.handle(admin, {"type": "admin-message", "data": {"investorId": investor_id, "message": "hi"}})

        targeted = fake_manager.of_type("investor", "admin-message")
        assert len(targeted) == 1
        assert targeted[0]["data"]["type"] == "admin"
        assert targeted[0]["data"]["content"] == "hi"
        assert fake_manager.of_type("bystander", "admin-message") == []
        assert fake_manager.of_type("admin", "admin-message") == []

        # Every observer stays in sync, including the target, exactly once
        for cid in ("admin", "investor", "bystander"):
            assert len(fake_manager.of_type(cid, "new-message")) == 1

        assert [m.sender for m in relay_state.conversations.get(investor_id)] == [Sender.ADMIN]

    def test_admin_message_to_unknown_investor(self, event_router, relay_state, fake_manager, admin):
        event_router.handle(admin, {"type": "admin-message", "data": {"investorId": "inv_ghost", "message": "hi"}})

        error = fake_manager.of_type("admin", "error")[0]["data"]
        assert error["code"] == "UNKNOWN_INVESTOR"
        assert relay_state.conversations.get("inv_ghost") == []
        assert fake_manager.of_type("admin", "new-message") == []
        assert admin.state == ConnectionState.UNIDENTIFIED

    def test_admin_message_to_offline_investor_is_stored_not_delivered(
        self, event_router, relay_state, fake_manager, admin, investor
    ):
        investor_id = join(event_router, investor)
        event_router.close(investor)
        fake_manager.drop("investor")
        fake_manager.clear()

        event_router.handle(admin, {"type": "admin-message", "data": {"investorId": investor_id, "message": "later"}})

        assert [m.content for m in relay_state.conversations.get(investor_id)] == ["later"]
        assert len(fake_manager.of_type("admin", "new-message")) == 1
        assert fake_manager.of_type("admin", "error") == []

    @pytest.mark.parametrize("data", [
        {"message": "hi"},
        {"investorId": "inv_1"},
        {"investorId": "inv_1", "message": 5},
    ])
    def test_admin_message_payload_validation(self, event_router, relay_state, fake_manager, admin, investor, data):
        join(event_router, investor, "inv_1")
        event_router.handle(admin, {"type": "admin-message", "data": data})

        assert fake_manager.of_type("admin", "error")[0]["data"]["code"] == "VALIDATION_ERROR"
        assert relay_state.conversations.get("inv_1") == []


@pytest.mark.unit
class TestDisconnect:

    def test_disconnect_marks_inactive_and_announces(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor)
        fake_manager.drop("investor")
        event_router.close(investor)

        assert investor.state == ConnectionState.DETACHED
        assert relay_state.registry.get(investor_id).status == InvestorStatus.INACTIVE
        left = fake_manager.of_type("admin", "investor-left")
        assert left[0]["data"] == {"investorId": investor_id}

    def test_unidentified_disconnect_is_a_noop(self, event_router, fake_manager, admin):
        event_router.close(admin)
        assert admin.state == ConnectionState.DETACHED
        assert fake_manager.types("admin") == []

    def test_double_disconnect_announces_once(self, event_router, fake_manager, admin, investor):
        join(event_router, investor)
        event_router.close(investor)
        event_router.close(investor)
        assert len(fake_manager.of_type("admin", "investor-left")) == 1

    def test_reconnect_preserves_history(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor)
        event_router.handle(investor, {"type": "investor-message", "data": {"message": "one"}})
        event_router.handle(admin, {"type": "admin-message", "data": {"investorId": investor_id, "message": "two"}})
        before = [m.id for m in relay_state.conversations.get(investor_id)]
        event_router.close(investor)
        fake_manager.drop("investor")

        returning = event_router.open(fake_manager.add("investor-2"))
        join(event_router, returning, investor_id)

        ack = fake_manager.of_type("investor-2", "investor-joined")[0]["data"]
        assert ack["outcome"] == "reactivated"
        assert [m["id"] for m in ack["history"]] == before
        assert relay_state.registry.count() == 1
        assert relay_state.registry.get(investor_id).status == InvestorStatus.ACTIVE
        assert fake_manager.of_type("admin", "new-investor")[-1]["data"]["returning"] is True

    def test_stale_connection_close_does_not_announce(self, event_router, relay_state, fake_manager, admin):
        first = event_router.open(fake_manager.add("tab-1"))
        second = event_router.open(fake_manager.add("tab-2"))
        join(event_router, first, "inv_1")
        join(event_router, second, "inv_1")

        event_router.close(first)

        assert relay_state.registry.get("inv_1").status == InvestorStatus.ACTIVE
        assert fake_manager.of_type("admin", "investor-left") == []


@pytest.mark.unit
class TestRelay:

    def test_file_upload_start_is_relayed_without_mutation(self, event_router, relay_state, fake_manager, admin, investor):
        event_router.handle(investor, {"type": "file-upload-start", "data": {"fileName": "proof.png"}})

        for cid in ("admin", "investor"):
            relayed = fake_manager.of_type(cid, "file-upload-start")
            assert relayed[0]["data"] == {"fileName": "proof.png"}
        assert relay_state.registry.count() == 0

    def test_ping_gets_pong_for_sender_only(self, event_router, fake_manager, admin, investor):
        event_router.handle(investor, {"type": "ping", "data": {"timestamp": 123}})
        assert fake_manager.of_type("investor", "pong")[0]["data"] == {"timestamp": 123}
        assert fake_manager.types("admin") == []

    def test_investor_audience_without_connection_is_unreachable(self, event_router):
        with pytest.raises(DeliveryUnreachable):
            event_router.recipients(Audience.INVESTOR, investor_id="inv_none")

    def test_admins_and_investor_has_no_duplicates(self, event_router, fake_manager, admin, investor):
        investor_id = join(event_router, investor)
        recipients = event_router.recipients(Audience.ADMINS_AND_INVESTOR, investor_id=investor_id)
        assert sorted(recipients) == ["admin", "investor"]


@pytest.mark.unit
class TestMessageContent:

    def test_empty_investor_message_is_stored_and_broadcast(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor, "inv_1")
        event_router.handle(investor, {"type": "investor-message", "data": {"message": ""}})

        assert [m.content for m in relay_state.conversations.get(investor_id)] == [""]
        assert fake_manager.of_type("admin", "new-message")[0]["data"]["content"] == ""
        assert fake_manager.of_type("investor", "error") == []

    def test_empty_admin_message_is_delivered(self, event_router, relay_state, fake_manager, admin, investor):
        investor_id = join(event_router, investor, "inv_1")
        event_router.handle(admin, {"type": "admin-message", "data": {"investorId": investor_id, "message": ""}})

        assert fake_manager.of_type("investor", "admin-message")[0]["data"]["content"] == ""
        assert [m.content for m in relay_state.conversations.get(investor_id)] == [""]

    def test_superseded_tab_cannot_post_for_the_investor(self, event_router, relay_state, fake_manager, admin):
        first = event_router.open(fake_manager.add("tab-1"))
        second = event_router.open(fake_manager.add("tab-2"))
        join(event_router, first, "inv_1")
        join(event_router, second, "inv_1")

        event_router.handle(first, {"type": "investor-message", "data": {"message": "from old tab"}})
        event_router.handle(second, {"type": "investor-message", "data": {"message": "from new tab"}})

        assert fake_manager.of_type("tab-1", "error")[0]["data"]["code"] == "VALIDATION_ERROR"
        assert [m.content for m in relay_state.conversations.get("inv_1")] == ["from new tab"]

    def test_released_investor_cannot_be_written_through_old_binding(self, event_router, relay_state, investor):
        join(event_router, investor, "inv_a")
        join(event_router, investor, "inv_b")
        event_router.handle(investor, {"type": "investor-message", "data": {"message": "hello"}})

        assert relay_state.conversations.get("inv_a") == []
        assert [m.content for m in relay_state.conversations.get("inv_b")] == ["hello"]
