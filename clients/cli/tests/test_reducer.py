import unittest

from chat_cli.events import (
    FetchHistory,
    FetchTopology,
    HistoryLoaded,
    LoadFailed,
    MessageCreated,
    PresenceChanged,
    SelectNextChannel,
    SelectPreviousChannel,
    SendFailed,
    SendMessage,
    SubmitMessage,
    TopologyFailed,
    TopologyLoaded,
    TransportError,
)
from chat_cli.models import Channel, ChannelCategory, Message
from chat_cli.reducer import NO_CHANNELS_ERROR, initial_commands, reduce
from chat_cli.session_state import ConnectionState, SessionState


def _msg(message_id: int, channel_id: int, content: str = "hi") -> Message:
    return Message(id=message_id, channel_id=channel_id, user_id=1, username="ada", content=content)


def _topology(*channel_ids: int) -> TopologyLoaded:
    channels = tuple(Channel(id=cid, name=f"c{cid}", category_id=1, position=pos) for pos, cid in enumerate(channel_ids))
    return TopologyLoaded((ChannelCategory(id=1, name="Text", position=0, channels=channels),))


class ReducerTests(unittest.TestCase):
    def _live_state(self, *channel_ids: int) -> SessionState:
        state = SessionState()
        reduce(state, _topology(*(channel_ids or (1, 2, 3))))
        state.consume_dirty()
        return state

    def test_initial_command_fetches_topology(self):
        self.assertEqual(initial_commands(), [FetchTopology()])

    def test_topology_goes_live_and_loads_first_channel(self):
        state = SessionState()

        commands = reduce(state, _topology(4, 5))

        self.assertIs(state.connection_state, ConnectionState.LIVE)
        self.assertEqual(state.active_channel_index, 0)
        self.assertEqual(commands, [FetchHistory(4)])

    def test_topology_is_flattened_by_channel_position(self):
        categories = (
            ChannelCategory(1, "later", 1, (Channel(10, "posA", 1, 2), Channel(11, "posB", 1, 1))),
            ChannelCategory(2, "earlier", 0, (Channel(12, "posC", 2, 0),)),
        )
        state = SessionState()

        reduce(state, TopologyLoaded(categories))

        self.assertEqual([c.name for c in state.channels], ["posC", "posB", "posA"])

    def test_empty_topology_is_an_error(self):
        state = SessionState()

        commands = reduce(state, TopologyLoaded(()))

        self.assertEqual(commands, [])
        self.assertIs(state.connection_state, ConnectionState.ERROR)
        self.assertEqual(state.last_error, NO_CHANNELS_ERROR)
        self.assertEqual(NO_CHANNELS_ERROR, "no channels found")

    def test_topology_failure_is_an_error(self):
        state = SessionState()

        reduce(state, TopologyFailed("failed to load channels: boom"))

        self.assertIs(state.connection_state, ConnectionState.ERROR)
        self.assertEqual(state.last_error, "failed to load channels: boom")

    def test_messages_append_in_arrival_order_per_channel(self):
        state = self._live_state(1, 2)
        sequence = [_msg(1, 1), _msg(2, 2), _msg(3, 1), _msg(4, 2), _msg(5, 1), _msg(5, 1)]

        for message in sequence:
            reduce(state, MessageCreated(message))

        self.assertEqual(state.messages_for(1), [m for m in sequence if m.channel_id == 1])
        self.assertEqual(state.messages_for(2), [m for m in sequence if m.channel_id == 2])

    def test_message_for_active_channel_marks_view_dirty(self):
        state = self._live_state(1, 2)

        reduce(state, MessageCreated(_msg(1, 2)))
        self.assertFalse(state.consume_dirty())

        reduce(state, MessageCreated(_msg(2, 1)))
        self.assertTrue(state.consume_dirty())

    def test_history_installs_oldest_first(self):
        state = self._live_state(1)
        history = (_msg(1, 1), _msg(2, 1), _msg(3, 1))

        reduce(state, HistoryLoaded(1, history))

        self.assertEqual([m.id for m in state.messages_for(1)], [1, 2, 3])
        self.assertTrue(state.consume_dirty())

    def test_history_race_neither_drops_nor_duplicates(self):
        state = self._live_state(1)
        reduce(state, MessageCreated(_msg(3, 1)))
        reduce(state, MessageCreated(_msg(4, 1)))

        reduce(state, HistoryLoaded(1, (_msg(1, 1), _msg(2, 1), _msg(3, 1))))
        reduce(state, MessageCreated(_msg(2, 1)))

        self.assertEqual([m.id for m in state.messages_for(1)], [1, 2, 3, 4])

    def test_history_failure_is_an_error(self):
        state = self._live_state(1)

        reduce(state, LoadFailed(1, "failed to load history: 500"))

        self.assertIs(state.connection_state, ConnectionState.ERROR)

    def test_presence_is_replaced_not_merged(self):
        state = self._live_state()

        reduce(state, PresenceChanged(frozenset({"alice", "bob"})))
        reduce(state, PresenceChanged(frozenset({"alice"})))

        self.assertEqual(state.online_users, frozenset({"alice"}))

    def test_next_channel_wraps_to_first(self):
        state = self._live_state(1, 2, 3)
        state.active_channel_index = 2

        reduce(state, SelectNextChannel())

        self.assertEqual(state.active_channel_index, 0)

    def test_previous_channel_wraps_to_last(self):
        state = self._live_state(1, 2, 3)

        reduce(state, SelectPreviousChannel())

        self.assertEqual(state.active_channel_index, 2)

    def test_selecting_unloaded_channel_fetches_history_once_buffered_it_does_not(self):
        state = self._live_state(1, 2)

        self.assertEqual(reduce(state, SelectNextChannel()), [FetchHistory(2)])

        reduce(state, HistoryLoaded(2, ()))
        reduce(state, SelectNextChannel())
        self.assertEqual(reduce(state, SelectNextChannel()), [])
        self.assertTrue(state.consume_dirty())

    def test_history_in_flight_is_not_requested_twice(self):
        state = self._live_state(1, 2, 3)

        self.assertEqual(reduce(state, SelectNextChannel()), [FetchHistory(2)])
        self.assertEqual(reduce(state, SelectNextChannel()), [FetchHistory(3)])
        self.assertEqual(reduce(state, SelectNextChannel()), [])
        self.assertEqual(reduce(state, SelectNextChannel()), [])

        capped = (_msg(8, 2), _msg(9, 2))
        reduce(state, HistoryLoaded(2, capped))
        reduce(state, SelectNextChannel())
        reduce(state, SelectNextChannel())

        self.assertEqual(reduce(state, SelectNextChannel()), [])
        self.assertEqual(state.messages_for(2), list(capped))

    def test_topology_fetches_history_even_when_live_messages_arrived_first(self):
        state = SessionState()
        reduce(state, MessageCreated(_msg(5, 1)))

        self.assertEqual(reduce(state, _topology(1, 2)), [FetchHistory(1)])
        self.assertEqual(reduce(state, SelectPreviousChannel()), [FetchHistory(2)])
        self.assertEqual(reduce(state, SelectPreviousChannel()), [])

    def test_submit_sends_to_active_channel(self):
        state = self._live_state(7, 8)
        reduce(state, SelectNextChannel())

        commands = reduce(state, SubmitMessage("  hello there "))

        self.assertEqual(commands, [SendMessage(8, "hello there")])

    def test_blank_submit_is_a_no_op(self):
        state = self._live_state(1)
        reduce(state, HistoryLoaded(1, (_msg(1, 1),)))
        state.consume_dirty()
        before = repr(state)

        for text in ("", "   ", "\t\n"):
            self.assertEqual(reduce(state, SubmitMessage(text)), [])

        self.assertEqual(repr(state), before)
        self.assertFalse(state.consume_dirty())

    def test_send_failure_is_a_notice_not_an_error(self):
        state = self._live_state(1)

        reduce(state, SendFailed(1, "failed to send message: 500 - oops"))

        self.assertIs(state.connection_state, ConnectionState.LIVE)
        self.assertEqual(state.notice, "send failed: failed to send message: 500 - oops")

        reduce(state, SubmitMessage("again"))
        self.assertIsNone(state.notice)

    def test_transport_error_while_connecting(self):
        state = SessionState()

        reduce(state, TransportError("websocket dial error: refused"))

        self.assertIs(state.connection_state, ConnectionState.ERROR)
        self.assertEqual(state.last_error, "websocket dial error: refused")

    def test_user_input_before_topology_is_ignored(self):
        state = SessionState()

        self.assertEqual(reduce(state, SubmitMessage("hi")), [])
        self.assertEqual(reduce(state, SelectNextChannel()), [])
        self.assertIs(state.connection_state, ConnectionState.CONNECTING)

    def test_live_events_before_topology_are_kept(self):
        state = SessionState()

        reduce(state, MessageCreated(_msg(1, 1)))
        reduce(state, PresenceChanged(frozenset({"bob"})))
        reduce(state, _topology(1))

        self.assertEqual([m.id for m in state.messages_for(1)], [1])
        self.assertEqual(state.online_users, frozenset({"bob"}))

    def test_error_state_ignores_everything(self):
        state = self._live_state(1, 2)
        reduce(state, TransportError("websocket read error: unexpected close 1011"))
        state.consume_dirty()

        events = [
            MessageCreated(_msg(1, 1)),
            PresenceChanged(frozenset({"x"})),
            HistoryLoaded(1, (_msg(2, 1),)),
            SelectNextChannel(),
            SubmitMessage("hi"),
            TransportError("second"),
            _topology(9),
        ]
        for event in events:
            self.assertEqual(reduce(state, event), [])

        self.assertEqual(state.last_error, "websocket read error: unexpected close 1011")
        self.assertEqual(state.active_channel_index, 0)
        self.assertEqual(state.messages_by_channel, {})
        self.assertEqual(state.online_users, frozenset())

    def test_second_topology_is_ignored(self):
        state = self._live_state(1, 2)
        reduce(state, SelectNextChannel())

        self.assertEqual(reduce(state, _topology(5)), [])
        self.assertEqual([c.id for c in state.channels], [1, 2])
        self.assertEqual(state.active_channel_index, 1)


if __name__ == "__main__":
    unittest.main()
