"""
Tests for subscribers app - subscribing, unsubscribing, post emails.
"""
import uuid

import pytest

from emailqueue.models import QueuedEmail
from generation.models import Post
from subscribers.models import Subscriber, SubscriberEmail


@pytest.fixture
def generated_site(create_site, engine):
    site = create_site()
    engine.get_fresh_generation(site)
    site.refresh_from_db()
    return site


@pytest.fixture
def add_subscriber():
    def _add_subscriber(site, email, status=Subscriber.STATUS_ACTIVE):
        return Subscriber.objects.create(site=site, email=email, status=status)
    return _add_subscriber


def subscribe_url(site):
    return f'/api/v1/sites/{site.pk}/subscribe/'


@pytest.mark.django_db
class TestSubscribe:

    def test_subscribe_json(self, api_client, generated_site):
        response = api_client.post(subscribe_url(generated_site), {'email': 'Reader@Example.com'}, format='json')

        assert response.status_code == 201
        assert response.data['email'] == 'reader@example.com'
        assert response.data['status'] == 'active'

    def test_subscribe_form_redirects_to_site(self, api_client, generated_site):
        response = api_client.post(
            subscribe_url(generated_site),
            'email=reader%40example.com',
            content_type='application/x-www-form-urlencoded',
        )

        assert response.status_code == 302
        assert response['Location'] == 'http://blog.testserver/subscribed'
        assert Subscriber.objects.filter(site=generated_site, email='reader@example.com').exists()

    def test_welcome_email_is_queued(self, api_client, generated_site):
        api_client.post(subscribe_url(generated_site), {'email': 'reader@example.com'}, format='json')

        email = QueuedEmail.objects.get()
        subscriber = Subscriber.objects.get()
        link = f'http://testserver/api/v1/subscribers/unsubscribe/?token={subscriber.unsubscribe_token}'
        assert email.to_addr == 'reader@example.com'
        assert email.from_addr == 'Field Notes <blog@mail.testserver>'
        assert email.subject == 'Welcome to Field Notes'
        assert email.stream == QueuedEmail.STREAM_OUTBOUND
        assert email.status == QueuedEmail.STATUS_PENDING
        assert link in email.body
        assert email.header_pairs() == [
            ('List-Unsubscribe-Post', 'List-Unsubscribe=One-Click'),
            ('List-Unsubscribe', f'<{link}>'),
        ]

    def test_duplicate_subscription_sends_nothing(self, api_client, generated_site):
        api_client.post(subscribe_url(generated_site), {'email': 'reader@example.com'}, format='json')

        response = api_client.post(subscribe_url(generated_site), {'email': 'READER@example.com'}, format='json')

        assert response.status_code == 200
        assert Subscriber.objects.count() == 1
        assert QueuedEmail.objects.count() == 1

    def test_resubscribe_reactivates(self, api_client, generated_site, add_subscriber):
        subscriber = add_subscriber(generated_site, 'reader@example.com', status=Subscriber.STATUS_UNSUBSCRIBED)

        response = api_client.post(subscribe_url(generated_site), {'email': 'reader@example.com'}, format='json')

        assert response.status_code == 201
        subscriber.refresh_from_db()
        assert subscriber.is_active
        assert QueuedEmail.objects.count() == 1

    def test_invalid_email(self, api_client, generated_site):
        response = api_client.post(subscribe_url(generated_site), {'email': 'not-an-email'}, format='json')

        assert response.status_code == 400
        assert not Subscriber.objects.exists()

    def test_unknown_site(self, api_client):
        response = api_client.post('/api/v1/sites/999/subscribe/', {'email': 'reader@example.com'}, format='json')
        assert response.status_code == 404


@pytest.mark.django_db
class TestUnsubscribe:

    def test_link_redirects_to_site(self, api_client, generated_site, add_subscriber):
        subscriber = add_subscriber(generated_site, 'reader@example.com')

        response = api_client.get(f'/api/v1/subscribers/unsubscribe/?token={subscriber.unsubscribe_token}')

        assert response.status_code == 302
        assert response['Location'] == 'http://blog.testserver/unsubscribed'
        subscriber.refresh_from_db()
        assert subscriber.status == Subscriber.STATUS_UNSUBSCRIBED

    def test_one_click_post(self, api_client, generated_site, add_subscriber):
        subscriber = add_subscriber(generated_site, 'reader@example.com')

        response = api_client.post(
            f'/api/v1/subscribers/unsubscribe/?token={subscriber.unsubscribe_token}',
            'List-Unsubscribe=One-Click',
            content_type='application/x-www-form-urlencoded',
        )

        assert response.status_code == 200
        assert response.data == {'status': 'unsubscribed'}

    def test_unknown_token(self, api_client):
        response = api_client.get(f'/api/v1/subscribers/unsubscribe/?token={uuid.uuid4()}')

        assert response.status_code == 404
        assert response.data['error']['code'] == 'UNKNOWN_TOKEN'

    def test_malformed_token(self, api_client):
        response = api_client.get('/api/v1/subscribers/unsubscribe/?token=nope')
        assert response.status_code == 400


@pytest.mark.django_db
class TestPostEmails:

    @pytest.fixture
    def owned_site(self, authenticated_client, create_site, engine, add_subscriber):
        client, user = authenticated_client
        site = create_site(user=user)
        engine.get_fresh_generation(site)
        add_subscriber(site, 'one@example.com')
        add_subscriber(site, 'two@example.com')
        add_subscriber(site, 'gone@example.com', status=Subscriber.STATUS_UNSUBSCRIBED)
        post = Post.objects.get(site=site, url='/posts/first')
        return client, site, post

    def send_url(self, site, post):
        return f'/api/v1/sites/{site.pk}/posts/{post.pk}/send-email/'

    def test_send_queues_one_email_per_active_subscriber(self, owned_site):
        client, site, post = owned_site

        response = client.post(self.send_url(site, post))

        assert response.status_code == 200
        assert response.data == {'post_id': post.pk, 'queued': 2}
        emails = QueuedEmail.objects.order_by('id')
        assert [e.to_addr for e in emails] == ['one@example.com', 'two@example.com']
        assert {e.stream for e in emails} == {QueuedEmail.STREAM_BROADCAST}
        assert {e.subject for e in emails} == {'First Post'}
        assert '<strong>first</strong>' in emails[0].body
        assert [h for h, _ in emails[0].header_pairs()] == ['List-Unsubscribe-Post', 'List-Unsubscribe']
        post.refresh_from_db()
        assert post.email_sent

    def test_post_link_carries_click_token(self, owned_site):
        client, site, post = owned_site

        client.post(self.send_url(site, post))

        record = SubscriberEmail.objects.get(subscriber__email='one@example.com')
        email = QueuedEmail.objects.get(to_addr='one@example.com')
        assert f'http://blog.testserver/posts/first?subscriber={record.token}' in email.body
        assert record.clicked is False

    def test_post_can_only_be_sent_once(self, owned_site):
        client, site, post = owned_site
        client.post(self.send_url(site, post))

        response = client.post(self.send_url(site, post))

        assert response.status_code == 409
        assert response.data['error']['code'] == 'EMAIL_ALREADY_SENT'
        assert QueuedEmail.objects.count() == 2

    def test_plaintext_mode(self, owned_site):
        client, site, post = owned_site
        site.email_mode = 'plaintext'
        site.save(update_fields=['email_mode'])

        client.post(self.send_url(site, post))

        email = QueuedEmail.objects.filter(to_addr='one@example.com').get()
        assert email.mode == QueuedEmail.MODE_PLAINTEXT
        assert 'The **first** post.' in email.body
        assert '<strong>' not in email.body

    def test_not_ready_without_fresh_generation(self, owned_site, engine):
        client, site, post = owned_site
        engine.mark_stale(site)

        response = client.post(self.send_url(site, post))

        assert response.status_code == 503
        post.refresh_from_db()
        assert not post.email_sent
        assert not QueuedEmail.objects.exists()

    def test_subscribers_listing(self, owned_site):
        client, site, _ = owned_site

        response = client.get(f'/api/v1/sites/{site.pk}/subscribers/')
        assert response.data['count'] == 3

        response = client.get(f'/api/v1/sites/{site.pk}/subscribers/?status=active')
        assert {s['email'] for s in response.data['results']} == {'one@example.com', 'two@example.com'}
