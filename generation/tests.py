"""
Tests for generation app - fresh generations, staleness, rendering.
"""
import shutil
from datetime import datetime, timezone as dt_timezone
from pathlib import Path

import pytest
from django.db import DatabaseError, IntegrityError, transaction

from sitehost_backend.errors import GenerationFailed, SourceUnavailable, StorageError, ThemeNotFound
from generation.engine import remove_output
from generation.models import Binding, Generation, Post, PostEmailBinding
from generation.renderer import parse_front_matter, parse_published_at, urls_for
from generation.sources import hash_tree


def bound_urls(generation_id):
    return set(Binding.objects.filter(generation_id=generation_id).values_list('url', flat=True))


def bound_file(generation_id, url):
    return Path(Binding.objects.get(generation_id=generation_id, url=url).path)


@pytest.mark.django_db
class TestFreshGeneration:

    def test_first_call_generates_site(self, engine, create_site):
        site = create_site()

        generation_id = engine.get_fresh_generation(site)

        generation = Generation.objects.get(pk=generation_id)
        assert not generation.stale
        assert generation.content_hash == site.live_hash
        assert {
            '/', '/about', '/posts/first', '/images/cat.txt', '/assets/style.css',
            '/subscribe', '/subscribed', '/unsubscribed',
        } <= bound_urls(generation_id)
        assert 'Welcome' in bound_file(generation_id, '/').read_text()

    def test_second_call_is_a_cache_hit(self, engine, create_site, django_assert_num_queries):
        site = create_site()
        first = engine.get_fresh_generation(site)
        counts = (Generation.objects.count(), Binding.objects.count(), Post.objects.count())

        with django_assert_num_queries(1):
            second = engine.get_fresh_generation(site)

        assert second == first
        assert (Generation.objects.count(), Binding.objects.count(), Post.objects.count()) == counts

    def test_stale_then_fresh_yields_new_generation(self, engine, create_site):
        site = create_site()
        first = engine.get_fresh_generation(site)

        engine.mark_stale(site)
        second = engine.get_fresh_generation(site)

        assert second != first
        assert Generation.objects.get(pk=first).stale
        assert Generation.objects.filter(site=site, stale=False).count() == 1

    def test_regenerate_leaves_exactly_one_fresh_generation(self, engine, create_site):
        site = create_site()
        ids = {engine.get_fresh_generation(site)}
        for _ in range(3):
            ids.add(engine.regenerate(site))

        assert len(ids) == 4
        assert list(Generation.objects.filter(site=site, stale=False).values_list('id', flat=True)) == [
            max(ids)
        ]

    def test_regenerate_prunes_superseded_output_after_commit(self, engine, create_site,
                                                              django_capture_on_commit_callbacks):
        site = create_site()
        first = Generation.objects.get(pk=engine.get_fresh_generation(site))

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            second = Generation.objects.get(pk=engine.regenerate(site))

        assert len(callbacks) == 1
        assert not Path(first.output_path).exists()
        assert Path(second.output_path).is_dir()
        assert bound_file(second.pk, '/about').exists()

    def test_failed_regenerate_keeps_current_output(self, engine, create_site, hosting,
                                                    django_capture_on_commit_callbacks):
        site = create_site()
        first = Generation.objects.get(pk=engine.get_fresh_generation(site))
        shutil.rmtree(hosting.checkouts_path / site.live_hash)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(SourceUnavailable):
                engine.regenerate(site)

        assert callbacks == []
        assert Path(first.output_path).is_dir()
        assert Generation.objects.fresh_id(site) == first.pk

    def test_remove_output_drops_empty_site_directory(self, engine, create_site, hosting):
        site = create_site()
        generation = Generation.objects.get(pk=engine.get_fresh_generation(site))

        remove_output([generation.output_path])

        assert not (hosting.websites_path / site.subdomain).exists()

    def test_second_fresh_generation_is_rejected_by_database(self, engine, create_site):
        site = create_site()
        engine.get_fresh_generation(site)

        with pytest.raises(IntegrityError), transaction.atomic():
            Generation.objects.create(site=site, content_hash='x', output_path='/tmp/x')

    def test_generations_are_immutable(self, engine, create_site):
        site = create_site()
        generation = Generation.objects.get(pk=engine.get_fresh_generation(site))

        with pytest.raises(ValueError):
            generation.save()

    def test_site_name_follows_rendered_title(self, engine, create_site):
        site = create_site(name='')

        engine.get_fresh_generation(site)

        site.refresh_from_db()
        assert site.name == 'Field Notes'

    def test_posts_are_upserted_across_generations(self, engine, create_site, hosting):
        site = create_site()
        engine.get_fresh_generation(site)
        post = Post.objects.get(site=site, url='/posts/first')
        assert post.title == 'First Post'
        assert post.published_at == datetime(2024, 5, 1, tzinfo=dt_timezone.utc)

        source = hosting.checkouts_path / site.live_hash / 'posts' / 'first.md'
        source.write_text('---\ntitle: First Post, Revised\ndate: 2024-05-02\n---\nEdited.\n')
        engine.regenerate(site)

        assert Post.objects.filter(site=site).count() == 1
        post.refresh_from_db()
        assert post.title == 'First Post, Revised'
        assert post.published_at == datetime(2024, 5, 2, tzinfo=dt_timezone.utc)

    def test_post_email_bodies_are_bound(self, engine, create_site):
        site = create_site()
        generation_id = engine.get_fresh_generation(site)

        binding = PostEmailBinding.objects.get(generation_id=generation_id, url='/posts/first')

        assert '<strong>first</strong>' in Path(binding.body_path('html')).read_text()
        assert 'The **first** post.' in Path(binding.body_path('plaintext')).read_text()
        assert not PostEmailBinding.objects.filter(generation_id=generation_id, url='/about').exists()

    def test_missing_source_raises(self, engine, create_site):
        site = create_site(checkout=False)

        with pytest.raises(SourceUnavailable):
            engine.get_fresh_generation(site)
        assert not Generation.objects.filter(site=site).exists()

    def test_unknown_theme_raises(self, engine, create_site):
        site = create_site(theme='nope')

        with pytest.raises(ThemeNotFound):
            engine.get_fresh_generation(site)

    def test_render_failure_leaves_nothing_behind(self, engine, create_site, hosting):
        site = create_site(files={'index.md': '---\ntitle: [unclosed\n---\nbody\n'})

        with pytest.raises(GenerationFailed):
            engine.get_fresh_generation(site)

        assert not Generation.objects.filter(site=site).exists()
        site_output = hosting.websites_path / site.subdomain
        assert not site_output.exists() or not any(site_output.iterdir())

    def test_database_failure_rolls_back_everything(self, engine, create_site, hosting, monkeypatch):
        site = create_site()

        def fail(*args, **kwargs):
            raise DatabaseError('disk full')
        monkeypatch.setattr(PostEmailBinding.objects, 'bulk_create', fail)

        with pytest.raises(StorageError):
            engine.get_fresh_generation(site)

        assert not Generation.objects.filter(site=site).exists()
        assert not Binding.objects.exists()
        assert not Post.objects.filter(site=site).exists()
        site.refresh_from_db()
        assert site.name == ''
        assert not any((hosting.websites_path / site.subdomain).iterdir())

    def test_folder_site_hashes_uploaded_files(self, engine, create_site, hosting, write_tree):
        site = create_site(subdomain='notes', checkout=False, source_type='folder')
        folder = write_tree(hosting.folders_path / str(site.pk), {'index.md': '# Notes\n'})

        generation = Generation.objects.get(pk=engine.get_fresh_generation(site))

        assert generation.content_hash == hash_tree(folder)


@pytest.mark.django_db
class TestRenderer:

    def test_drafts_and_hidden_files_are_skipped(self, engine, create_site):
        site = create_site(files={
            'index.md': '# Home\n',
            'wip.md': '---\ntitle: WIP\ndraft: true\n---\nnot yet\n',
            '.git/HEAD': 'ref: refs/heads/main\n',
            'site.yaml': 'title: Drafty\n',
        })

        urls = bound_urls(engine.get_fresh_generation(site))

        assert '/wip' not in urls
        assert '/.git/HEAD' not in urls
        assert '/site.yaml' not in urls

    def test_index_lists_posts_when_source_has_none(self, engine, create_site):
        site = create_site(files={
            'posts/a.md': '---\ntitle: Alpha\ndate: 2024-01-01\n---\na\n',
            'posts/b.md': '---\ntitle: Beta\ndate: 2024-02-01\n---\nb\n',
        })

        html = bound_file(engine.get_fresh_generation(site), '/').read_text()

        assert html.index('Beta') < html.index('Alpha')

    def test_directory_index_binds_both_forms(self, engine, create_site):
        site = create_site(files={'docs/index.md': '# Docs\n'})

        urls = bound_urls(engine.get_fresh_generation(site))

        assert {'/docs', '/docs/'} <= urls

    def test_source_page_wins_over_builtin_page(self, engine, create_site):
        site = create_site(files={'subscribe.md': '# Join the list\n\nMy own form.\n'})

        html = bound_file(engine.get_fresh_generation(site), '/subscribe').read_text()

        assert 'My own form.' in html

    def test_subscribe_page_posts_to_service(self, engine, create_site):
        site = create_site()

        html = bound_file(engine.get_fresh_generation(site), '/subscribe').read_text()

        assert f'action="http://testserver/api/v1/sites/{site.pk}/subscribe/"' in html

    def test_invalid_utf8_markdown_fails_generation(self, engine, create_site, hosting):
        site = create_site(files={'index.md': '# Home\n'})
        (hosting.checkouts_path / site.live_hash / 'bad.md').write_bytes(b'# Bad\n\xff\xfe\n')

        with pytest.raises(GenerationFailed) as excinfo:
            engine.get_fresh_generation(site)

        assert 'bad.md' in excinfo.value.message
        assert not Generation.objects.filter(site=site).exists()

    def test_impossible_post_date_fails_generation(self, engine, create_site):
        site = create_site(files={'posts/x.md': '---\ntitle: X\ndate: 2024-13-45\n---\nx\n'})

        with pytest.raises(GenerationFailed):
            engine.get_fresh_generation(site)
        assert not Post.objects.filter(site=site).exists()

    def test_invalid_utf8_site_config_fails_generation(self, engine, create_site, hosting):
        site = create_site(files={'index.md': '# Home\n'})
        (hosting.checkouts_path / site.live_hash / 'site.yaml').write_bytes(b'title: \xff\n')

        with pytest.raises(GenerationFailed):
            engine.get_fresh_generation(site)

    def test_markdown_and_static_file_for_same_output_fail(self, engine, create_site):
        site = create_site(files={
            'about.md': '# About\n',
            'about.html': '<p>hand written</p>\n',
        })

        with pytest.raises(GenerationFailed) as excinfo:
            engine.get_fresh_generation(site)

        assert 'about.html' in excinfo.value.message
        assert not Generation.objects.filter(site=site).exists()

    def test_page_and_directory_index_for_same_url_fail(self, engine, create_site):
        site = create_site(files={
            'docs.md': '# Docs\n',
            'docs/index.md': '# Also docs\n',
        })

        with pytest.raises(GenerationFailed):
            engine.get_fresh_generation(site)

    def test_static_file_keeps_its_content_beside_builtin_page(self, engine, create_site):
        site = create_site(files={
            'index.md': '# Home\n',
            'subscribe.html': '<p>static signup</p>\n',
        })

        generation_id = engine.get_fresh_generation(site)

        assert bound_file(generation_id, '/subscribe.html').read_text() == '<p>static signup</p>\n'
        assert 'static signup' not in bound_file(generation_id, '/subscribe').read_text()

    def test_static_index_survives_generated_index(self, engine, create_site):
        site = create_site(files={
            'index.html': '<p>static home</p>\n',
            'posts/a.md': '---\ntitle: Alpha\ndate: 2024-01-01\n---\na\n',
        })

        generation_id = engine.get_fresh_generation(site)

        assert bound_file(generation_id, '/index.html').read_text() == '<p>static home</p>\n'
        assert 'Alpha' in bound_file(generation_id, '/').read_text()

    def test_reserved_source_directories_are_skipped(self, engine, create_site):
        site = create_site(files={
            'index.md': '# Home\n',
            '_pages/subscribe.html': '<p>sneaky</p>\n',
        })

        generation_id = engine.get_fresh_generation(site)

        assert '/_pages/subscribe.html' not in bound_urls(generation_id)
        assert 'sneaky' not in bound_file(generation_id, '/subscribe').read_text()


@pytest.mark.django_db
class TestSources:

    def test_folder_has_source_does_not_hash_files(self, engine, create_site, hosting, write_tree, monkeypatch):
        site = create_site(subdomain='notes', checkout=False, source_type='folder')
        assert engine.sources.has_source(site) is False
        write_tree(hosting.folders_path / str(site.pk), {'index.md': '# Notes\n'})

        def fail(root):
            raise AssertionError('has_source must not read the uploaded files')
        monkeypatch.setattr('generation.sources.hash_tree', fail)

        assert engine.sources.has_source(site) is True

    def test_checkout_has_source(self, engine, create_site, hosting):
        site = create_site()
        assert engine.sources.has_source(site) is True

        shutil.rmtree(hosting.checkouts_path / site.live_hash)
        assert engine.sources.has_source(site) is False
        assert engine.sources.has_source(create_site(subdomain='empty', checkout=False)) is False

    def test_unknown_source_type(self, engine, create_site):
        site = create_site(source_type='ftp')
        assert engine.sources.has_source(site) is False
        with pytest.raises(SourceUnavailable):
            engine.sources.fetch(site)


class TestRendererHelpers:

    def test_front_matter_is_split(self):
        metadata, body = parse_front_matter('---\ntitle: Hi\ndraft: false\n---\n# Body\n')
        assert metadata == {'title': 'Hi', 'draft': False}
        assert body == '# Body\n'

    def test_content_without_front_matter(self):
        assert parse_front_matter('# Just markdown\n') == ({}, '# Just markdown\n')

    def test_impossible_date_in_front_matter(self):
        with pytest.raises(ValueError):
            parse_front_matter('---\ndate: 2024-13-45\n---\nbody\n')

    def test_urls_for(self):
        assert urls_for(Path('index.md')) == ['/']
        assert urls_for(Path('about.md')) == ['/about']
        assert urls_for(Path('posts/index.md')) == ['/posts', '/posts/']

    def test_published_at(self):
        assert parse_published_at(None) is None
        assert parse_published_at('2024-03-04T10:00:00') == datetime(2024, 3, 4, 10, tzinfo=dt_timezone.utc)
        with pytest.raises(GenerationFailed):
            parse_published_at('next tuesday')
