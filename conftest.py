"""
Shared pytest fixtures.

Every test runs against a throwaway SITEHOST configuration whose root
domain is Django's test host, so tenant hosts look like `blog.testserver`
and all rendered output lands under the test's tmp_path.
"""
from pathlib import Path

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from sitehost_backend.hosting import HostingConfig

BASE_DIR = Path(__file__).resolve().parent
LIT_THEME = BASE_DIR / 'generation' / 'theme_bundles' / 'lit'

SAMPLE_SOURCE = {
    'site.yaml': 'title: Field Notes\n',
    'index.md': '---\ntitle: Home\n---\n# Welcome\n\nHello there.\n',
    'about.md': '# About\n\nWho writes this.\n',
    'posts/first.md': '---\ntitle: First Post\ndate: 2024-05-01\n---\nThe **first** post.\n',
    'images/cat.txt': 'not really a cat\n',
}


@pytest.fixture(autouse=True)
def hosting(settings, tmp_path):
    settings.SITEHOST = {
        'ROOT_DOMAIN': 'testserver',
        'PROTOCOL': 'http',
        'CHECKOUTS_PATH': str(tmp_path / 'checkouts'),
        'FOLDERS_PATH': str(tmp_path / 'folders'),
        'WEBSITES_PATH': str(tmp_path / 'websites'),
        'EMAIL_DOMAIN': 'mail.testserver',
        'RESERVED_SUBDOMAINS': ['www', 'api', 'admin'],
        'DEFAULT_THEME': 'lit',
        'THEMES': {
            'lit': {'name': 'Lit', 'path': str(LIT_THEME)},
            'lit-copy': {'name': 'Lit (copy)', 'path': str(LIT_THEME)},
        },
    }
    settings.EMAIL_QUEUE = {
        'BATCH_SIZE': 500,
        'MAX_RETRIES': 3,
        'PERIOD_SECONDS': 0,
        'TRANSPORT': 'emailqueue.transports.ConsoleTransport',
    }
    return HostingConfig.from_settings()


@pytest.fixture
def write_tree():
    def _write_tree(root, files):
        root = Path(root)
        for rel, content in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding='utf-8')
        return root
    return _write_tree


@pytest.fixture
def make_checkout(hosting, write_tree):
    """Write a repository checkout and return its hash."""
    def _make_checkout(files=None, ref='c0ffee01'):
        write_tree(hosting.checkouts_path / ref, SAMPLE_SOURCE if files is None else files)
        return ref
    return _make_checkout


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user_model():
    return get_user_model()


@pytest.fixture
def create_user(user_model):
    def _create_user(email="test@example.com", password="testpass123"):
        return user_model.objects.create_user(
            email=email,
            username=email,
            password=password
        )
    return _create_user


@pytest.fixture
def authenticated_client(api_client, create_user):
    user = create_user()
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {str(refresh.access_token)}')
    return api_client, user


@pytest.fixture
def create_site(create_user, make_checkout):
    """Create a site; with `files` (or `checkout=True`) it gets a checkout to render."""
    def _create_site(user=None, subdomain="blog", files=None, checkout=True, **kwargs):
        from sites.models import Site
        if user is None:
            user = create_user(email=f"{subdomain}-owner@example.com")
        live_hash = make_checkout(files, ref=f"{subdomain}-v1") if checkout else ''
        kwargs.setdefault('theme', 'lit')
        return Site.objects.create(user=user, subdomain=subdomain, live_hash=live_hash, **kwargs)
    return _create_site


@pytest.fixture
def engine(hosting):
    from generation.engine import GenerationEngine
    return GenerationEngine(hosting)
