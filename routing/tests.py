"""
Tests for routing app - host resolution, serving, visits, email clicks.
"""
import uuid

import pytest
from django.db import DatabaseError

from sitehost_backend.errors import ErrorKind, SiteHostError
from generation.models import Post
from routing.hosts import IS_SERVICE, canonicalize_host, resolve_host
from routing.models import Visit
from routing.resolver import get_binding, serve
from subscribers.models import Subscriber, SubscriberEmail


def body_of(response):
    return b''.join(response.streaming_content).decode()


@pytest.fixture
def live_site(create_site, engine):
    site = create_site()
    engine.get_fresh_generation(site)
    return site


@pytest.fixture
def subscriber_email(live_site):
    post = Post.objects.get(site=live_site, url='/posts/first')
    subscriber = Subscriber.objects.create(site=live_site, email='reader@example.com')
    return SubscriberEmail.objects.create(subscriber=subscriber, post=post)


class TestCanonicalizeHost:

    @pytest.mark.parametrize('raw, expected', [
        ('Blog.TestServer', 'blog.testserver'),
        ('blog.testserver:8000', 'blog.testserver'),
        (' blog.testserver. ', 'blog.testserver'),
        ('127.0.0.1:8000', 'localhost'),
        ('', ''),
        ('bad host', ''),
    ])
    def test_canonicalize(self, raw, expected):
        assert canonicalize_host(raw) == expected


@pytest.mark.django_db
class TestResolveHost:

    def test_root_domain_is_service(self):
        assert resolve_host('testserver') is IS_SERVICE
        assert resolve_host('TESTSERVER:80') is IS_SERVICE

    def test_unknown_subdomain(self):
        with pytest.raises(SiteHostError) as excinfo:
            resolve_host('nosuch.testserver')
        assert excinfo.value.kind is ErrorKind.UNKNOWN_SUBDOMAIN

    def test_invalid_label_is_unknown_subdomain(self):
        with pytest.raises(SiteHostError) as excinfo:
            resolve_host('a.b.testserver')
        assert excinfo.value.kind is ErrorKind.UNKNOWN_SUBDOMAIN

    def test_unknown_domain(self):
        with pytest.raises(SiteHostError) as excinfo:
            resolve_host('unregistered-custom.com')
        assert excinfo.value.kind is ErrorKind.UNKNOWN_DOMAIN

    def test_subdomain_and_custom_domain(self, create_site):
        site = create_site(custom_domain='blog.example.com')

        assert resolve_host('blog.testserver') == site
        assert resolve_host('Blog.Example.com:443') == site

    def test_offline_site(self, create_site):
        create_site(is_live=False)

        with pytest.raises(SiteHostError) as excinfo:
            resolve_host('blog.testserver')
        assert excinfo.value.kind is ErrorKind.SITE_OFFLINE


@pytest.mark.django_db
class TestServe:

    def test_serve_records_visit(self, live_site):
        path = serve(live_site, '/about')

        assert 'Who writes this.' in path.read_text()
        assert list(Visit.objects.values_list('url', flat=True)) == ['/about']

    def test_missing_path(self, live_site):
        with pytest.raises(SiteHostError) as excinfo:
            serve(live_site, '/nope')
        assert excinfo.value.kind is ErrorKind.PAGE_NOT_FOUND
        assert not Visit.objects.exists()

    def test_not_ready_without_fresh_generation(self, live_site, engine):
        engine.mark_stale(live_site)

        with pytest.raises(SiteHostError) as excinfo:
            get_binding(live_site, '/')
        assert excinfo.value.kind is ErrorKind.NOT_READY

    def test_never_falls_back_to_stale_binding(self, live_site, make_checkout):
        from sites.services import SiteService
        ref = make_checkout({'index.md': '# Only a home page\n'}, ref='v2')

        SiteService.from_settings().update_source(live_site, ref)

        with pytest.raises(SiteHostError) as excinfo:
            serve(live_site, '/about')
        assert excinfo.value.kind is ErrorKind.PAGE_NOT_FOUND


@pytest.mark.django_db
class TestRoutingMiddleware:

    def test_service_host_falls_through(self, client):
        response = client.get('/api/v1/health/', HTTP_HOST='testserver')
        assert response.status_code == 200
        assert response.json()['status'] == 'ok'

    def test_serves_bound_file(self, client, live_site):
        response = client.get('/posts/first', HTTP_HOST='blog.testserver')

        assert response.status_code == 200
        assert 'First Post' in body_of(response)
        assert Visit.objects.filter(site=live_site, url='/posts/first').count() == 1

    def test_unknown_host_error_envelope(self, client):
        response = client.get('/', HTTP_HOST='nosuch.testserver')

        assert response.status_code == 404
        assert response.json() == {
            'error': {'code': 'UNKNOWN_SUBDOMAIN', 'message': 'Unknown subdomain', 'status': 404},
        }

    def test_page_not_found(self, client, live_site):
        response = client.get('/missing', HTTP_HOST='blog.testserver')

        assert response.status_code == 404
        assert response.json()['error']['code'] == 'PAGE_NOT_FOUND'

    def test_not_ready_sets_retry_after(self, client, create_site):
        create_site(checkout=False)

        response = client.get('/', HTTP_HOST='blog.testserver')

        assert response.status_code == 503
        assert response.json()['error']['code'] == 'NOT_READY'
        assert response['Retry-After'] == '5'

    def test_only_get_and_head(self, client, live_site):
        response = client.post('/', HTTP_HOST='blog.testserver')

        assert response.status_code == 405
        assert response['Allow'] == 'GET, HEAD'

    def test_visit_failure_does_not_break_response(self, client, live_site, monkeypatch):
        def fail(*args, **kwargs):
            raise DatabaseError('visits table locked')
        monkeypatch.setattr(Visit.objects, 'create', fail)

        response = client.get('/', HTTP_HOST='blog.testserver')

        assert response.status_code == 200

    def test_email_click_is_recorded_once_and_stripped(self, client, subscriber_email):
        url = f'/posts/first?subscriber={subscriber_email.token}&ref=mail'

        first = client.get(url, HTTP_HOST='blog.testserver')
        subscriber_email.refresh_from_db()
        clicked_at = subscriber_email.clicked_at

        assert first.status_code == 308
        assert first['Location'] == '/posts/first?ref=mail'
        assert subscriber_email.clicked is True

        second = client.get(url, HTTP_HOST='blog.testserver')
        subscriber_email.refresh_from_db()

        assert second.status_code == 308
        assert second['Location'] == '/posts/first?ref=mail'
        assert subscriber_email.clicked is True
        assert subscriber_email.clicked_at == clicked_at
        assert not Visit.objects.exists()

        client.get(first['Location'], HTTP_HOST='blog.testserver')
        assert Visit.objects.count() == 1

    def test_malformed_click_token_still_redirects(self, client, live_site):
        response = client.get('/?subscriber=not-a-uuid', HTTP_HOST='blog.testserver')

        assert response.status_code == 308
        assert response['Location'] == '/'

    def test_unknown_click_token_changes_nothing(self, client, subscriber_email):
        response = client.get(f'/?subscriber={uuid.uuid4()}', HTTP_HOST='blog.testserver')

        assert response.status_code == 308
        subscriber_email.refresh_from_db()
        assert subscriber_email.clicked is False

    def test_head_with_click_token_redirects_without_recording(self, client, subscriber_email):
        response = client.head(f'/posts/first?subscriber={subscriber_email.token}', HTTP_HOST='blog.testserver')

        assert response.status_code == 308
        assert response['Location'] == '/posts/first'
        subscriber_email.refresh_from_db()
        assert subscriber_email.clicked is False
        assert subscriber_email.clicked_at is None

    def test_click_token_from_another_site_is_ignored(self, client, subscriber_email, create_site, engine):
        other = create_site(subdomain='other')
        engine.get_fresh_generation(other)

        response = client.get(f'/posts/first?subscriber={subscriber_email.token}', HTTP_HOST='other.testserver')

        assert response.status_code == 308
        subscriber_email.refresh_from_db()
        assert subscriber_email.clicked is False

        client.get(f'/posts/first?subscriber={subscriber_email.token}', HTTP_HOST='blog.testserver')
        subscriber_email.refresh_from_db()
        assert subscriber_email.clicked is True
