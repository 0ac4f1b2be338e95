"""
Tests for sites app - Site management, configuration changes, validation.
"""
import shutil
from datetime import datetime, timezone as dt_timezone

import pytest

from sitehost_backend.errors import InvalidSubdomain
from generation.models import Generation, Post
from routing.models import Visit
from sites.domains import parse_custom_domain, parse_subdomain
from sites.models import Site
from subscribers.models import Subscriber, SubscriberEmail


def fresh_generation(site):
    return Generation.objects.filter(site=site, stale=False).values_list('id', flat=True).first()


class TestSubdomainValidation:

    @pytest.mark.parametrize('raw, message', [
        ('', 'must be between 1 and 63 characters long'),
        ('a' * 64, 'must be between 1 and 63 characters long'),
        ('-abc', 'cannot start or end with a hyphen'),
        ('abc-', 'cannot start or end with a hyphen'),
        ('ab--cd', 'cannot contain consecutive hyphens'),
        ('ab cd', 'cannot contain spaces'),
        ('ab_cd', 'can only contain letters, numbers, and hyphens'),
    ])
    def test_rejects(self, raw, message):
        with pytest.raises(InvalidSubdomain) as excinfo:
            parse_subdomain(raw)
        assert excinfo.value.message == message

    def test_accepts_and_normalises(self):
        assert parse_subdomain('abc-123') == 'abc-123'
        assert parse_subdomain('  My-Blog ') == 'my-blog'
        assert parse_subdomain('a' * 63) == 'a' * 63

    def test_custom_domain(self):
        assert parse_custom_domain('Blog.Example.com.', 'testserver') == 'blog.example.com'
        with pytest.raises(InvalidSubdomain):
            parse_custom_domain('localhost', 'testserver')
        with pytest.raises(InvalidSubdomain):
            parse_custom_domain('blog.testserver', 'testserver')
        with pytest.raises(InvalidSubdomain):
            parse_custom_domain('bad_label.example.com', 'testserver')


@pytest.mark.django_db
class TestSiteManagement:

    def test_list_sites(self, authenticated_client, create_site, create_user):
        client, user = authenticated_client
        site = create_site(user=user)
        create_site(user=create_user(email='other@example.com'), subdomain='other')

        response = client.get('/api/v1/sites/')
        assert response.status_code == 200
        assert [s['subdomain'] for s in response.data['results']] == [site.subdomain]
        assert response.data['results'][0]['url'] == 'http://blog.testserver/'

    def test_create_site_without_source(self, authenticated_client):
        client, user = authenticated_client

        response = client.post('/api/v1/sites/', data={'subdomain': 'New-Site'}, format='json')

        assert response.status_code == 201
        site = Site.objects.get(subdomain='new-site')
        assert site.user == user
        assert site.theme == 'lit'
        assert not Generation.objects.filter(site=site).exists()

    @pytest.mark.parametrize('subdomain, code', [
        ('-abc', 'INVALID_SUBDOMAIN'),
        ('ab_cd', 'INVALID_SUBDOMAIN'),
        ('www', 'INVALID_SUBDOMAIN'),
    ])
    def test_create_site_invalid_subdomain(self, authenticated_client, subdomain, code):
        client, _ = authenticated_client

        response = client.post('/api/v1/sites/', data={'subdomain': subdomain}, format='json')

        assert response.status_code == 400
        assert response.data['error']['code'] == code
        assert not Site.objects.exists()

    def test_create_site_invalid_subdomain_message_is_verbatim(self, authenticated_client):
        client, _ = authenticated_client

        response = client.post('/api/v1/sites/', data={'subdomain': 'ab--cd'}, format='json')

        assert response.data['error']['message'] == 'cannot contain consecutive hyphens'

    def test_create_site_duplicate_subdomain(self, authenticated_client, create_site):
        client, _ = authenticated_client
        create_site(subdomain='taken')

        response = client.post('/api/v1/sites/', data={'subdomain': 'Taken'}, format='json')

        assert response.status_code == 400
        assert response.data['error']['code'] == 'SUBDOMAIN_TAKEN'

    def test_create_site_unknown_theme(self, authenticated_client):
        client, _ = authenticated_client

        response = client.post('/api/v1/sites/', data={'subdomain': 'blog', 'theme': 'nope'}, format='json')

        assert response.status_code == 400
        assert response.data['error']['code'] == 'UNKNOWN_THEME'

    def test_update_site_editable_fields(self, authenticated_client, create_site):
        client, user = authenticated_client
        site = create_site(user=user)

        response = client.patch(
            f'/api/v1/sites/{site.id}/',
            data={'email_mode': 'plaintext', 'subdomain': 'ignored'},
            format='json'
        )

        assert response.status_code == 200
        site.refresh_from_db()
        assert site.email_mode == 'plaintext'
        assert site.subdomain == 'blog'

    def test_delete_site(self, authenticated_client, create_site, engine, hosting):
        client, user = authenticated_client
        site = create_site(user=user)
        engine.get_fresh_generation(site)

        response = client.delete(f'/api/v1/sites/{site.id}/')

        assert response.status_code == 204
        assert not Site.objects.filter(id=site.id).exists()
        assert not Generation.objects.exists()
        assert not (hosting.websites_path / 'blog').exists()

    def test_delete_site_removes_output_from_earlier_subdomains(self, create_site, engine, hosting,
                                                                django_capture_on_commit_callbacks):
        from sites.services import SiteService
        site = create_site()
        engine.get_fresh_generation(site)
        service = SiteService(engine)
        with django_capture_on_commit_callbacks(execute=True):
            service.change_subdomain(site, 'news')

        service.delete_site(site)

        assert not (hosting.websites_path / 'blog').exists()
        assert not (hosting.websites_path / 'news').exists()

    def test_delete_site_removes_output_left_by_stale_generations(self, create_site, engine, hosting):
        from sites.services import SiteService
        site = create_site()
        engine.get_fresh_generation(site)
        # without on_commit callbacks running, the superseded output is still on disk
        SiteService(engine).change_subdomain(site, 'news')
        assert any((hosting.websites_path / 'blog').iterdir())

        SiteService(engine).delete_site(site)

        assert not (hosting.websites_path / 'blog').exists()
        assert not (hosting.websites_path / 'news').exists()

    def test_cannot_access_other_user_site(self, authenticated_client, create_user, create_site):
        other_site = create_site(user=create_user(email='other@example.com'), subdomain='other')

        client, _ = authenticated_client
        response = client.get(f'/api/v1/sites/{other_site.id}/')
        assert response.status_code == 404

        response = client.post(f'/api/v1/sites/{other_site.id}/theme/', data={'theme': 'lit'}, format='json')
        assert response.status_code == 404

    def test_requires_authentication(self, api_client):
        response = api_client.get('/api/v1/sites/')
        assert response.status_code == 401

    def test_subdomain_check(self, authenticated_client, create_site):
        client, _ = authenticated_client
        create_site(subdomain='taken')

        assert client.get('/api/v1/sites/subdomain-check/?subdomain=Taken').data == {
            'subdomain': 'taken', 'available': False,
        }
        assert client.get('/api/v1/sites/subdomain-check/?subdomain=free').data['available'] is True
        response = client.get('/api/v1/sites/subdomain-check/?subdomain=no--pe')
        assert response.status_code == 400


@pytest.mark.django_db
class TestConfigurationChanges:

    @pytest.fixture
    def owned_site(self, authenticated_client, create_site, engine):
        client, user = authenticated_client
        site = create_site(user=user)
        first = engine.get_fresh_generation(site)
        return client, site, first

    def test_theme_change_regenerates(self, owned_site):
        client, site, first = owned_site

        response = client.post(f'/api/v1/sites/{site.id}/theme/', data={'theme': 'lit-copy'}, format='json')

        assert response.status_code == 200
        assert response.data['theme'] == 'lit-copy'
        assert Generation.objects.get(pk=first).stale
        assert fresh_generation(site) not in (None, first)

    def test_unknown_theme_changes_nothing(self, owned_site):
        client, site, first = owned_site

        response = client.post(f'/api/v1/sites/{site.id}/theme/', data={'theme': 'nope'}, format='json')

        assert response.status_code == 400
        assert fresh_generation(site) == first

    def test_branch_change_regenerates(self, owned_site):
        client, site, first = owned_site

        response = client.post(
            f'/api/v1/sites/{site.id}/branch/', data={'kind': 'test', 'branch': 'drafts'}, format='json'
        )

        assert response.status_code == 200
        site.refresh_from_db()
        assert site.test_branch == 'drafts'
        assert fresh_generation(site) != first

    def test_subdomain_change_regenerates(self, owned_site, create_site):
        client, site, first = owned_site
        create_site(subdomain='taken')

        response = client.post(f'/api/v1/sites/{site.id}/subdomain/', data={'subdomain': 'taken'}, format='json')
        assert response.status_code == 400
        assert response.data['error']['code'] == 'SUBDOMAIN_TAKEN'

        response = client.post(f'/api/v1/sites/{site.id}/subdomain/', data={'subdomain': 'journal'}, format='json')
        assert response.status_code == 200
        site.refresh_from_db()
        assert site.subdomain == 'journal'
        assert fresh_generation(site) != first

    def test_source_update(self, owned_site, make_checkout):
        client, site, first = owned_site
        ref = make_checkout({'index.md': '# Version two\n'}, ref='v2')

        response = client.post(f'/api/v1/sites/{site.id}/source/', data={'content_hash': ref}, format='json')

        assert response.status_code == 200
        generation = Generation.objects.get(pk=fresh_generation(site))
        assert generation.content_hash == 'v2'
        assert generation.pk != first

    def test_missing_source_rolls_back(self, owned_site):
        client, site, first = owned_site
        old_hash = site.live_hash

        response = client.post(f'/api/v1/sites/{site.id}/source/', data={'content_hash': 'missing'}, format='json')

        assert response.status_code == 409
        assert response.data['error']['code'] == 'SOURCE_UNAVAILABLE'
        site.refresh_from_db()
        assert site.live_hash == old_hash
        assert fresh_generation(site) == first
        assert not Generation.objects.get(pk=first).stale

    def test_config_change_with_missing_checkout_rolls_back(self, owned_site, hosting):
        client, site, first = owned_site
        shutil.rmtree(hosting.checkouts_path / site.live_hash)

        response = client.post(f'/api/v1/sites/{site.id}/theme/', data={'theme': 'lit-copy'}, format='json')

        assert response.status_code == 409
        assert response.data['error']['code'] == 'SOURCE_UNAVAILABLE'
        site.refresh_from_db()
        assert site.theme == 'lit'
        assert fresh_generation(site) == first
        assert not Generation.objects.get(pk=first).stale

    def test_config_change_with_missing_folder_rolls_back(self, authenticated_client, create_site,
                                                          engine, hosting, write_tree):
        client, user = authenticated_client
        site = create_site(user=user, checkout=False, source_type='folder')
        folder = write_tree(hosting.folders_path / str(site.pk), {'index.md': '# Notes\n'})
        first = engine.get_fresh_generation(site)
        shutil.rmtree(folder)

        response = client.post(
            f'/api/v1/sites/{site.id}/branch/', data={'kind': 'live', 'branch': 'main'}, format='json'
        )

        assert response.status_code == 409
        assert fresh_generation(site) == first

    def test_theme_change_before_first_source(self, authenticated_client, create_site):
        client, user = authenticated_client
        site = create_site(user=user, checkout=False)

        response = client.post(f'/api/v1/sites/{site.id}/theme/', data={'theme': 'lit-copy'}, format='json')

        assert response.status_code == 200
        site.refresh_from_db()
        assert site.theme == 'lit-copy'
        assert not Generation.objects.filter(site=site).exists()

    def test_status_and_domain(self, owned_site, create_site):
        client, site, first = owned_site
        create_site(subdomain='other', custom_domain='taken.example.com')

        response = client.post(f'/api/v1/sites/{site.id}/status/', data={'is_live': False}, format='json')
        assert response.status_code == 200
        assert response.data['is_live'] is False

        response = client.post(f'/api/v1/sites/{site.id}/domain/', data={'domain': 'taken.example.com'}, format='json')
        assert response.data['error']['code'] == 'DOMAIN_TAKEN'

        response = client.post(f'/api/v1/sites/{site.id}/domain/', data={'domain': 'Blog.Example.com'}, format='json')
        assert response.status_code == 200
        assert response.data['custom_domain'] == 'blog.example.com'
        assert fresh_generation(site) == first

    def test_posts_listing(self, owned_site):
        client, site, _ = owned_site

        response = client.get(f'/api/v1/sites/{site.id}/posts/')

        assert response.status_code == 200
        assert [p['url'] for p in response.data['results']] == ['/posts/first']
        assert response.data['results'][0]['email_sent'] is False

    def test_auth_token_endpoint(self, api_client, create_user):
        create_user(email='owner@example.com', password='s3cret-pass')

        response = api_client.post(
            '/api/v1/auth/token/',
            data={'username': 'owner@example.com', 'password': 's3cret-pass'},
            format='json'
        )

        assert response.status_code == 200
        assert 'access' in response.data
        assert 'refresh' in response.data


@pytest.mark.django_db
class TestSiteMetrics:

    @pytest.fixture
    def owned_site(self, authenticated_client, create_site, engine):
        client, user = authenticated_client
        site = create_site(user=user)
        engine.get_fresh_generation(site)
        return client, site

    @pytest.fixture
    def add_subscriber(self):
        def _add_subscriber(site, email, created_at, status=Subscriber.STATUS_ACTIVE):
            subscriber = Subscriber.objects.create(site=site, email=email, status=status)
            Subscriber.objects.filter(pk=subscriber.pk).update(created_at=created_at)
            subscriber.refresh_from_db()
            return subscriber
        return _add_subscriber

    def test_post_views_and_email_clicks(self, owned_site, add_subscriber):
        client, site = owned_site
        post = Post.objects.get(site=site, url='/posts/first')
        for url in ('/posts/first', '/posts/first', '/about'):
            Visit.objects.create(site=site, url=url)
        one = add_subscriber(site, 'one@example.com', datetime(2024, 5, 1, 9, tzinfo=dt_timezone.utc))
        two = add_subscriber(site, 'two@example.com', datetime(2024, 5, 1, 9, tzinfo=dt_timezone.utc))
        SubscriberEmail.objects.create(subscriber=one, post=post, clicked=True)
        SubscriberEmail.objects.create(subscriber=two, post=post)

        response = client.get(f'/api/v1/sites/{site.id}/metrics/')

        assert response.status_code == 200
        assert response.data['posts'] == [{
            'id': post.pk,
            'title': 'First Post',
            'url': '/posts/first',
            'link': 'http://blog.testserver/posts/first',
            'published_at': datetime(2024, 5, 1, tzinfo=dt_timezone.utc),
            'email_sent': False,
            'views': 2,
            'email_clicks': 1,
        }]

    def test_post_metrics_without_activity(self, owned_site):
        client, site = owned_site

        row = client.get(f'/api/v1/sites/{site.id}/metrics/').data['posts'][0]

        assert (row['views'], row['email_clicks']) == (0, 0)

    def test_subscriber_metrics_are_cumulative_per_hour(self, owned_site, add_subscriber):
        client, site = owned_site
        add_subscriber(site, 'a@example.com', datetime(2024, 5, 1, 9, 5, tzinfo=dt_timezone.utc))
        add_subscriber(site, 'b@example.com', datetime(2024, 5, 1, 9, 40, tzinfo=dt_timezone.utc))
        add_subscriber(site, 'c@example.com', datetime(2024, 5, 2, 14, 0, tzinfo=dt_timezone.utc))
        add_subscriber(site, 'gone@example.com', datetime(2024, 5, 1, 10, 0, tzinfo=dt_timezone.utc),
                       status=Subscriber.STATUS_UNSUBSCRIBED)

        response = client.get(f'/api/v1/sites/{site.id}/subscribers/metrics/')

        assert response.status_code == 200
        assert response.data['count'] == 3
        assert response.data['cumulative_counts'] == [
            {'timestamp': datetime(2024, 5, 1, 9, tzinfo=dt_timezone.utc), 'count': 2},
            {'timestamp': datetime(2024, 5, 2, 14, tzinfo=dt_timezone.utc), 'count': 3},
        ]

    def test_export_subscribers_csv(self, owned_site, add_subscriber):
        client, site = owned_site
        add_subscriber(site, 'b@example.com', datetime(2024, 5, 2, 8, tzinfo=dt_timezone.utc))
        add_subscriber(site, 'a@example.com', datetime(2024, 5, 1, 8, tzinfo=dt_timezone.utc))
        add_subscriber(site, 'gone@example.com', datetime(2024, 5, 1, 9, tzinfo=dt_timezone.utc),
                       status=Subscriber.STATUS_UNSUBSCRIBED)

        response = client.get(f'/api/v1/sites/{site.id}/subscribers/export/')

        assert response.status_code == 200
        assert response['Content-Type'] == 'text/csv'
        assert response['Content-Disposition'] == 'attachment; filename=subscribers.csv'
        assert response.content.decode().splitlines() == [
            'Email,CreatedAt',
            'a@example.com,2024-05-01T08:00:00+00:00',
            'b@example.com,2024-05-02T08:00:00+00:00',
        ]

    def test_delete_subscriber(self, owned_site, add_subscriber):
        client, site = owned_site
        subscriber = add_subscriber(site, 'a@example.com', datetime(2024, 5, 1, 8, tzinfo=dt_timezone.utc))
        SubscriberEmail.objects.create(subscriber=subscriber, post=Post.objects.get(site=site, url='/posts/first'))

        response = client.delete(f'/api/v1/sites/{site.id}/subscribers/{subscriber.pk}/')

        assert response.status_code == 204
        assert not Subscriber.objects.filter(pk=subscriber.pk).exists()
        assert not SubscriberEmail.objects.exists()

    def test_cannot_delete_another_sites_subscriber(self, owned_site, add_subscriber, create_site):
        client, site = owned_site
        other = create_site(subdomain='other')
        subscriber = add_subscriber(other, 'a@example.com', datetime(2024, 5, 1, 8, tzinfo=dt_timezone.utc))

        response = client.delete(f'/api/v1/sites/{site.id}/subscribers/{subscriber.pk}/')
        assert response.status_code == 404

        response = client.get(f'/api/v1/sites/{other.id}/subscribers/export/')
        assert response.status_code == 404
        assert Subscriber.objects.filter(pk=subscriber.pk).exists()
