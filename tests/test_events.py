from unittest import TestCase

from quickdef import events


class TestEvents(TestCase):
    def test_broadcast_passes_the_payload_as_keywords(self):
        received = []
        events.subscribe(events.LINT_END, lambda **kwargs: received.append(kwargs))

        events.broadcast(events.LINT_END, {'document_id': 1, 'checker_name': 'diag'})

        self.assertEqual([{'document_id': 1, 'checker_name': 'diag'}], received)

    def test_decorated_listeners_can_be_removed_by_function(self):
        received = []

        @events.on(events.CHECKER_REGISTERED)
        def on_registered(checker_name):
            received.append(checker_name)

        events.broadcast(events.CHECKER_REGISTERED, {'checker_name': 'a'})
        events.off(on_registered)
        events.broadcast(events.CHECKER_REGISTERED, {'checker_name': 'b'})

        self.assertEqual(['a'], received)

    def test_unsubscribe_by_topic_needs_the_function(self):
        with self.assertRaises(ValueError):
            events.unsubscribe(events.LINT_END)

    def test_unsubscribing_unknown_listeners_is_fine(self):
        events.unsubscribe(events.LINT_END, lambda **kwargs: None)
        events.off(lambda **kwargs: None)

    def test_failing_listeners_do_not_stop_the_others(self):
        received = []

        def bad_listener(**kwargs):
            raise RuntimeError('boom')

        events.subscribe(events.LINT_START, bad_listener)
        events.subscribe(events.LINT_START, lambda **kwargs: received.append(kwargs))

        with self.assertLogs('quickdef.events', 'ERROR'):
            events.broadcast(events.LINT_START, {'document_id': 1, 'checker_name': 'x'})

        self.assertEqual(1, len(received))
