"""
Tests for the CDP WebSocket client (devtools_audit/cdp.py)
"""
import pytest
import websocket

from devtools_audit import cdp as cdp_module
from devtools_audit.cdp import CDP, exception_message
from devtools_audit.errors import CDPError, RemoteEvaluationError, TransientRemoteError
from fakes import FakeWebSocket


def connected(incoming=()):
    client = CDP("ws://127.0.0.1:9222/devtools/page/TAB1", timeout=2)
    client.ws = FakeWebSocket(incoming)
    return client


class TestSend:
    """Request/response correlation"""

    def test_returns_result_for_matching_id(self):
        client = connected([{'id': 1, 'result': {'frameId': 'F1'}}])

        result = client.send('Page.navigate', {'url': 'https://a.test'})

        assert result == {'frameId': 'F1'}
        assert client.ws.sent == [{'id': 1, 'method': 'Page.navigate', 'params': {'url': 'https://a.test'}}]

    def test_ids_increment_and_params_optional(self):
        client = connected([{'id': 1, 'result': {}}, {'id': 2, 'result': {}}])

        client.send('Runtime.enable')
        client.send('Page.enable')

        assert client.ws.sent == [{'id': 1, 'method': 'Runtime.enable'},
                                  {'id': 2, 'method': 'Page.enable'}]

    def test_events_buffered_while_waiting(self):
        event = {'method': 'Page.domContentEventFired', 'params': {'timestamp': 1.5}}
        client = connected([event, {'id': 1, 'result': {}}])

        client.send('Runtime.enable')

        assert list(client.events) == [event]

    def test_stale_responses_ignored(self):
        client = connected([{'id': 99, 'result': {'old': True}}, {'id': 1, 'result': {'new': True}}])
        assert client.send('Runtime.enable') == {'new': True}

    def test_protocol_error(self):
        client = connected([{'id': 1, 'error': {'code': -32000, 'message': 'Cannot find context'}}])

        with pytest.raises(CDPError, match='Cannot find context'):
            client.send('Runtime.evaluate', {'expression': '1'})

    def test_timeout(self):
        client = connected()
        with pytest.raises(CDPError, match='timeout'):
            client.send('Runtime.enable', timeout=0.05)

    def test_connection_closed(self):
        client = connected([websocket.WebSocketConnectionClosedException('closed')])

        with pytest.raises(CDPError) as exc_info:
            client.send('Runtime.enable')
        assert isinstance(exc_info.value, TransientRemoteError)

    def test_close_frame_is_transient(self):
        client = connected([''])

        with pytest.raises(CDPError, match='closed by peer') as exc_info:
            client.send('Runtime.enable')
        assert isinstance(exc_info.value, TransientRemoteError)

    def test_garbled_message(self):
        client = connected(['{not json'])
        with pytest.raises(CDPError, match='Invalid CDP message'):
            client.send('Runtime.enable')

    def test_not_connected(self):
        client = CDP("ws://nowhere")
        with pytest.raises(CDPError, match='Not connected'):
            client.send('Runtime.enable')


class TestEvents:
    """wait_event()"""

    def test_buffered_event_consumed_first(self):
        client = connected()
        client.events.append({'method': 'Console.messageAdded', 'params': {}})
        client.events.append({'method': 'Page.domContentEventFired', 'params': {'timestamp': 2}})

        assert client.wait_event('Page.domContentEventFired') == {'timestamp': 2}
        assert [e['method'] for e in client.events] == ['Console.messageAdded']

    def test_reads_until_event(self):
        client = connected([
            {'method': 'Page.frameNavigated', 'params': {}},
            {'method': 'Page.domContentEventFired', 'params': {'timestamp': 3}},
        ])

        assert client.wait_event('Page.domContentEventFired') == {'timestamp': 3}
        assert [e['method'] for e in client.events] == ['Page.frameNavigated']

    def test_event_timeout(self):
        client = connected()
        with pytest.raises(CDPError, match='Page.domContentEventFired'):
            client.wait_event('Page.domContentEventFired', timeout=0.05)

    def test_close_frame_while_waiting(self):
        client = connected([''])
        with pytest.raises(CDPError, match='closed by peer'):
            client.wait_event('Page.domContentEventFired')

    def test_unclaimed_events_are_bounded(self, monkeypatch):
        monkeypatch.setattr(cdp_module, 'MAX_BUFFERED_EVENTS', 3)
        noise = [{'method': 'Runtime.consoleAPICalled', 'params': {'n': n}} for n in range(5)]
        client = connected(noise + [{'id': 1, 'result': {}}])

        client.send('Runtime.evaluate', {'expression': '1'})

        assert [e['params']['n'] for e in client.events] == [2, 3, 4], "Oldest events dropped first"


class TestRuntime:
    """evaluate / evaluate_handle / await_promise"""

    def test_evaluate_by_value(self):
        client = connected([{'id': 1, 'result': {'result': {'type': 'string', 'value': 'Example'}}}])

        assert client.evaluate('document.title') == 'Example'
        assert client.ws.sent[0]['params'] == {'expression': 'document.title', 'returnByValue': True}

    def test_evaluate_await_promise_flag(self):
        client = connected([{'id': 1, 'result': {'result': {'type': 'number', 'value': 2}}}])

        assert client.evaluate('Promise.resolve(2)', await_promise=True) == 2
        assert client.ws.sent[0]['params']['awaitPromise'] is True

    def test_evaluate_remote_exception(self):
        details = {
            'text': 'Uncaught',
            'exception': {'description': 'Error: Start button disabled\n    at <anonymous>:9:27'},
        }
        client = connected([{'id': 1, 'result': {'result': {'type': 'object'}, 'exceptionDetails': details}}])

        with pytest.raises(RemoteEvaluationError) as exc_info:
            client.evaluate('start()')

        assert 'Start button disabled' in str(exc_info.value)
        assert exc_info.value.details == details

    def test_evaluate_handle(self):
        client = connected([{'id': 1, 'result': {'result': {'type': 'object', 'subtype': 'promise',
                                                            'objectId': '{"injectedScriptId":1,"id":7}'}}}])

        assert client.evaluate_handle('new Promise(() => {})') == '{"injectedScriptId":1,"id":7}'
        assert 'returnByValue' not in client.ws.sent[0]['params']

    def test_await_promise(self):
        client = connected([{'id': 1, 'result': {'result': {'type': 'string', 'value': '{"a":1}'}}}])

        assert client.await_promise('obj-1', timeout=1) == '{"a":1}'
        assert client.ws.sent[0] == {'id': 1, 'method': 'Runtime.awaitPromise',
                                     'params': {'promiseObjectId': 'obj-1', 'returnByValue': True}}

    def test_exception_message_fallbacks(self):
        assert exception_message({'text': 'Uncaught'}) == 'Uncaught'
        assert exception_message({}) == 'Remote exception'


class TestConnection:
    """connect / close / context manager"""

    def test_for_target_url(self):
        client = CDP.for_target('ABC', host='127.0.0.1', port=9333)
        assert client.ws_url == 'ws://127.0.0.1:9333/devtools/page/ABC'

    def test_context_manager(self, monkeypatch):
        fake = FakeWebSocket()
        opened = []

        def create_connection(url, timeout=None):
            opened.append((url, timeout))
            return fake

        monkeypatch.setattr(cdp_module.websocket, 'create_connection', create_connection)

        with CDP('ws://127.0.0.1:9222/devtools/page/X', timeout=7) as client:
            assert client.ws is fake

        assert opened == [('ws://127.0.0.1:9222/devtools/page/X', 7)]
        assert fake.closed
        assert client.ws is None

    def test_connect_refused(self, monkeypatch):
        def create_connection(url, timeout=None):
            raise ConnectionRefusedError(111, 'Connection refused')

        monkeypatch.setattr(cdp_module.websocket, 'create_connection', create_connection)

        with pytest.raises(CDPError, match='Connection refused'):
            CDP('ws://127.0.0.1:1/devtools/page/X').connect()
