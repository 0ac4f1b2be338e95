"""
Tests for emailqueue app - enqueueing, batch delivery, retries, transports.
"""
from io import StringIO

import pytest
from django.core.management import call_command

from emailqueue.models import QueuedEmail, QueuedEmailError
from emailqueue.queue import OutboundEmail, enqueue
from emailqueue.runner import EmailQueueRunner, QueueConfig
from emailqueue.transports import PostmarkTransport, TransportError


class RecordingTransport:
    """Records every send; fails for the addresses in `failing`."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def send(self, from_addr, to_addr, subject, body, mode, headers, stream):
        self.calls.append({
            'from_addr': from_addr, 'to_addr': to_addr, 'subject': subject,
            'body': body, 'mode': mode, 'headers': headers, 'stream': stream,
        })
        if to_addr in self.failing:
            raise TransportError('mailbox unavailable', code=406)


class FakeResponse:

    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data if data is not None else {'ErrorCode': 0, 'Message': 'OK'}
        self.text = str(self._data)

    def json(self):
        return self._data


class FakeSession:

    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        return self.response


@pytest.fixture
def queue_email():
    def _queue_email(to_addr='reader@example.com', headers=None, **kwargs):
        return enqueue(OutboundEmail(
            from_addr=kwargs.pop('from_addr', 'blog@sites.example.com'),
            to_addr=to_addr,
            subject=kwargs.pop('subject', 'New post'),
            body=kwargs.pop('body', '<p>Hello</p>'),
            headers=headers or [],
            **kwargs
        ))
    return _queue_email


@pytest.fixture
def make_runner():
    def _make_runner(transport, max_retries=3, batch_size=500):
        return EmailQueueRunner(transport, QueueConfig(batch_size=batch_size, max_retries=max_retries, period=0))
    return _make_runner


@pytest.mark.django_db
class TestEnqueue:

    def test_enqueue_creates_pending_email(self, queue_email):
        email = queue_email(subject='Welcome')
        email.refresh_from_db()
        assert email.status == QueuedEmail.STATUS_PENDING
        assert email.fail_count == 0
        assert email.subject == 'Welcome'

    def test_headers_keep_order_and_duplicates(self, queue_email):
        headers = [
            ('List-Unsubscribe', '<https://example.com/u>'),
            ('X-Tag', 'b'),
            ('List-Unsubscribe-Post', 'List-Unsubscribe=One-Click'),
            ('X-Tag', 'a'),
        ]
        email = queue_email(headers=headers)
        assert QueuedEmail.objects.get(pk=email.pk).header_pairs() == headers

    def test_invalid_mode_is_rejected(self, queue_email):
        with pytest.raises(ValueError):
            queue_email(mode='markdown')
        assert QueuedEmail.objects.count() == 0


@pytest.mark.django_db
class TestRunner:

    def test_successful_delivery_marks_sent(self, queue_email, make_runner):
        email = queue_email(headers=[('X-One', '1'), ('X-Two', '2')])
        transport = RecordingTransport()

        result = make_runner(transport).run_batch()

        email.refresh_from_db()
        assert result.sent == 1
        assert email.status == QueuedEmail.STATUS_SENT
        assert email.sent_at is not None
        assert transport.calls[0]['headers'] == [('X-One', '1'), ('X-Two', '2')]

    def test_sent_email_is_not_delivered_again(self, queue_email, make_runner):
        queue_email()
        transport = RecordingTransport()
        runner = make_runner(transport)

        runner.run_batch()
        runner.run_batch()

        assert len(transport.calls) == 1

    def test_fails_after_exactly_max_retries(self, queue_email, make_runner):
        email = queue_email(to_addr='bounce@example.com')
        transport = RecordingTransport(failing={'bounce@example.com'})
        runner = make_runner(transport, max_retries=3)

        for expected_count in (1, 2):
            runner.run_batch()
            email.refresh_from_db()
            assert email.status == QueuedEmail.STATUS_PENDING
            assert email.fail_count == expected_count

        runner.run_batch()
        email.refresh_from_db()
        assert email.status == QueuedEmail.STATUS_FAILED
        assert email.fail_count == 3

        runner.run_batch()
        assert len(transport.calls) == 3
        assert QueuedEmailError.objects.filter(email=email).count() == 3

    def test_failure_does_not_abort_batch(self, queue_email, make_runner):
        first = queue_email(to_addr='one@example.com')
        bad = queue_email(to_addr='bounce@example.com')
        last = queue_email(to_addr='three@example.com')
        transport = RecordingTransport(failing={'bounce@example.com'})

        result = make_runner(transport).run_batch()

        assert [c['to_addr'] for c in transport.calls] == [
            'one@example.com', 'bounce@example.com', 'three@example.com',
        ]
        assert (result.sent, result.retrying, result.failed) == (2, 1, 0)
        for email, status in ((first, 'sent'), (bad, 'pending'), (last, 'sent')):
            email.refresh_from_db()
            assert email.status == status

    def test_unexpected_transport_error_is_counted(self, queue_email, make_runner):
        email = queue_email()

        class BrokenTransport:
            def send(self, **kwargs):
                raise RuntimeError('socket closed')

        make_runner(BrokenTransport()).run_batch()

        email.refresh_from_db()
        assert email.fail_count == 1
        assert email.errors.get().message == 'socket closed'

    def test_batch_size_limits_oldest_first(self, queue_email, make_runner):
        for i in range(3):
            queue_email(to_addr=f'r{i}@example.com')
        transport = RecordingTransport()

        make_runner(transport, batch_size=2).run_batch()

        assert [c['to_addr'] for c in transport.calls] == ['r0@example.com', 'r1@example.com']
        assert QueuedEmail.objects.filter(status=QueuedEmail.STATUS_PENDING).count() == 1

    def test_run_sleeps_between_batches(self, queue_email):
        queue_email()
        transport = RecordingTransport()
        sleeps = []

        class Stop(Exception):
            pass

        def fake_sleep(seconds):
            sleeps.append(seconds)
            raise Stop

        runner = EmailQueueRunner(transport, QueueConfig(period=7), sleep=fake_sleep)
        with pytest.raises(Stop):
            runner.run()

        assert sleeps == [7]
        assert len(transport.calls) == 1

    def test_terminal_states_are_final(self, queue_email):
        email = queue_email()
        email.mark_sent()
        with pytest.raises(ValueError):
            email.mark_failed_attempt(3)
        with pytest.raises(ValueError):
            email.mark_sent()

    def test_run_email_queue_command_once(self, queue_email):
        email = queue_email()
        out = StringIO()

        call_command(
            'run_email_queue', '--once',
            '--transport', 'emailqueue.transports.ConsoleTransport',
            stdout=out,
        )

        email.refresh_from_db()
        assert email.status == QueuedEmail.STATUS_SENT
        assert 'Processed 1 emails: 1 sent' in out.getvalue()


class TestPostmarkTransport:

    def test_headers_sent_as_ordered_list(self):
        session = FakeSession(FakeResponse())
        transport = PostmarkTransport(api_key='token', session=session)

        transport.send(
            from_addr='a@example.com', to_addr='b@example.com', subject='Hi',
            body='Hello', mode='plaintext',
            headers=[('X-B', '2'), ('X-A', '1'), ('X-B', '3')],
            stream='broadcast',
        )

        request = session.requests[0]
        assert request['headers']['X-Postmark-Server-Token'] == 'token'
        assert request['json']['Headers'] == [
            {'Name': 'X-B', 'Value': '2'},
            {'Name': 'X-A', 'Value': '1'},
            {'Name': 'X-B', 'Value': '3'},
        ]
        assert request['json']['TextBody'] == 'Hello'
        assert 'HtmlBody' not in request['json']
        assert request['json']['MessageStream'] == 'broadcast'

    def test_error_code_raises_transport_error(self):
        session = FakeSession(FakeResponse(422, {'ErrorCode': 300, 'Message': 'Invalid email request'}))
        transport = PostmarkTransport(api_key='token', session=session)

        with pytest.raises(TransportError) as excinfo:
            transport.send('a@example.com', 'b@example.com', 'Hi', '<p>x</p>', 'html', [], 'outbound')

        assert excinfo.value.code == 300
        assert excinfo.value.message == 'Invalid email request'
