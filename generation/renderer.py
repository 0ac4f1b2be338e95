"""
Static site renderer: source tree + theme -> output directory + URL bindings.

Source layout:
    site.yaml            optional, `title:` is the site title
    index.md             rendered at /
    about.md             rendered at /about
    posts/hello.md       a post when its front matter has a `date`
    images/cat.png       copied and bound at /images/cat.png

Markdown front matter is YAML between `---` lines:
    ---
    title: Hello
    date: 2024-05-01
    ---
    # Hello

Theme bundles are Django template directories providing `page.html`,
`post.html` and `index.html`, plus an optional `assets/` directory that is
copied to /assets/.

`_email/` and `_pages/` at the source root are reserved for generated output
and skipped. Two source files that would write the same output file or bind
the same URL fail the generation instead of silently replacing each other.
"""
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone as dt_timezone
from pathlib import Path

import markdown
import yaml
from django.template import Context, Engine, TemplateDoesNotExist, TemplateSyntaxError
from django.utils.safestring import mark_safe

from sitehost_backend.errors import GenerationFailed

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = '---'
SITE_CONFIG_FILE = 'site.yaml'
EMAIL_DIR = '_email'
PAGES_DIR = '_pages'
RESERVED_DIRS = (EMAIL_DIR, PAGES_DIR)
ASSETS_DIR = 'assets'
MARKDOWN_SUFFIXES = ('.md', '.markdown')
MARKDOWN_EXTENSIONS = ['extra', 'toc', 'sane_lists']

_FRONT_MATTER_RE = re.compile(
    rf"^{re.escape(FRONT_MATTER_DELIMITER)}\s*\n(.*?)\n{re.escape(FRONT_MATTER_DELIMITER)}\s*(?:\n|$)",
    re.DOTALL,
)
_HEADING_RE = re.compile(r'^#\s+(.+?)\s*#*\s*$', re.MULTILINE)


@dataclass(frozen=True)
class CustomPage:
    """A page the platform injects into every site (e.g. /subscribe)."""
    title: str
    content: str


@dataclass
class PostInfo:
    title: str
    published_at: datetime
    html_email_path: Path
    text_email_path: Path


@dataclass
class Resource:
    path: Path
    post: PostInfo = None

    @property
    def is_post(self):
        return self.post is not None


@dataclass
class RenderedSite:
    title: str
    output_path: Path
    bindings: dict = field(default_factory=dict)
    files: set = field(default_factory=set)

    def posts(self):
        return {url: rsc.post for url, rsc in self.bindings.items() if rsc.is_post}

    def claim(self, target, source):
        """Reserve output file `target` for `source`."""
        if target in self.files:
            rel = target.relative_to(self.output_path).as_posix()
            raise GenerationFailed(f"{source} would overwrite {rel}, which another source file produces")
        self.files.add(target)

    def bind(self, url, resource):
        if url in self.bindings:
            raise GenerationFailed(f"{url} is produced by more than one source file")
        self.bindings[url] = resource


@dataclass
class _Page:
    rel: Path
    urls: list
    title: str
    body: str
    html: str
    published_at: datetime = None

    @property
    def is_post(self):
        return self.published_at is not None


def parse_front_matter(content):
    """
    Split YAML front matter from markdown content.

    Returns (metadata, body). Content without front matter, or whose front
    matter is not a mapping, comes back unchanged with empty metadata.
    Malformed YAML raises yaml.YAMLError, and impossible dates such as
    2024-13-45 raise ValueError.
    """
    match = _FRONT_MATTER_RE.match(content)
    if not match:
        return {}, content
    metadata = yaml.safe_load(match.group(1)) or {}
    if not isinstance(metadata, dict):
        return {}, content
    return metadata, content[match.end():]


def urls_for(rel):
    """Request paths for a markdown file relative to the source root."""
    parts = rel.with_suffix('').parts
    if parts[-1] == 'index':
        if len(parts) == 1:
            return ['/']
        base = '/' + '/'.join(parts[:-1])
        return [base, base + '/']
    return ['/' + '/'.join(parts)]


def parse_published_at(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip())
        except ValueError:
            raise GenerationFailed(f"invalid post date {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=dt_timezone.utc)
    return dt


def _title_from(metadata, body, rel):
    title = str(metadata.get('title') or '').strip()
    if title:
        return title
    match = _HEADING_RE.search(body)
    if match:
        return match.group(1)
    return rel.stem.replace('-', ' ').replace('_', ' ').strip().capitalize()


class SiteRenderer:

    def __init__(self, theme, custom_pages=None):
        self.theme = theme
        self.custom_pages = custom_pages or {}
        self.engine = Engine(dirs=[str(theme.path)], autoescape=True)

    def render(self, source, dest):
        """Render `source` into the new directory `dest`."""
        source, dest = Path(source), Path(dest)
        try:
            return self._render(source, dest)
        except (OSError, TemplateDoesNotExist, TemplateSyntaxError) as exc:
            raise GenerationFailed(f"rendering {source.name} with theme {self.theme.key!r}: {exc}") from exc

    def _render(self, source, dest):
        dest.mkdir(parents=True, exist_ok=False)
        site_title = self._site_title(source)
        rendered = RenderedSite(title=site_title, output_path=dest)
        self._copy_tree(self.theme.path / ASSETS_DIR, dest / ASSETS_DIR, '/' + ASSETS_DIR, rendered)

        pages = []
        for path in sorted(source.rglob('*')):
            if not path.is_file():
                continue
            rel = path.relative_to(source)
            if self._skip(rel):
                continue
            if path.suffix.lower() in MARKDOWN_SUFFIXES:
                page = self._read_page(path, rel)
                if page is not None:
                    pages.append(page)
                continue
            target = dest / rel
            rendered.claim(target, rel.as_posix())
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            rendered.bind('/' + rel.as_posix(), Resource(path=target))

        listing = [
            {'title': p.title, 'url': p.urls[0], 'published_at': p.published_at}
            for p in sorted(
                (p for p in pages if p.is_post),
                key=lambda p: p.published_at,
                reverse=True,
            )
        ]
        site_context = {'title': site_title}

        for page in pages:
            self._write_page(page, dest, rendered, site_context, listing)

        # Built-in pages live under PAGES_DIR so they never replace a source file.
        if '/' not in rendered.bindings:
            target = dest / PAGES_DIR / 'index.html'
            rendered.claim(target, 'the built-in index page')
            target.parent.mkdir(parents=True, exist_ok=True)
            self._write_template('index.html', target, {
                'site': site_context,
                'page': {'title': site_title, 'url': '/'},
                'posts': listing,
            })
            rendered.bind('/', Resource(path=target))

        for url, custom in self.custom_pages.items():
            if url in rendered.bindings:
                logger.info("Source page %s overrides the built-in page", url)
                continue
            target = dest / PAGES_DIR / (url.strip('/') + '.html')
            rendered.claim(target, f"the built-in {url} page")
            target.parent.mkdir(parents=True, exist_ok=True)
            self._write_template('page.html', target, {
                'site': site_context,
                'page': {'title': custom.title, 'url': url, 'content': mark_safe(custom.content)},
                'posts': listing,
            })
            rendered.bind(url, Resource(path=target))

        logger.info(
            "Rendered %s resources (%s posts) into %s",
            len(rendered.bindings), len(listing), dest,
        )
        return rendered

    def _site_title(self, source):
        config_path = source / SITE_CONFIG_FILE
        if not config_path.is_file():
            return ''
        try:
            data = yaml.safe_load(config_path.read_text(encoding='utf-8')) or {}
        except UnicodeDecodeError as exc:
            raise GenerationFailed(f"{SITE_CONFIG_FILE}: not valid UTF-8") from exc
        except (yaml.YAMLError, ValueError) as exc:
            raise GenerationFailed(f"{SITE_CONFIG_FILE}: {exc}") from exc
        if not isinstance(data, dict):
            return ''
        return str(data.get('title') or '').strip()

    def _skip(self, rel):
        if any(part.startswith('.') for part in rel.parts) or rel.parts[0] in RESERVED_DIRS:
            return True
        return rel.as_posix() == SITE_CONFIG_FILE

    def _read_page(self, path, rel):
        try:
            content = path.read_text(encoding='utf-8')
        except UnicodeDecodeError as exc:
            raise GenerationFailed(f"{rel.as_posix()}: not valid UTF-8") from exc
        try:
            metadata, body = parse_front_matter(content)
        except (yaml.YAMLError, ValueError) as exc:
            # safe_load builds dates eagerly, so `date: 2024-13-45` is a ValueError
            raise GenerationFailed(f"{rel.as_posix()}: invalid front matter: {exc}") from exc
        if metadata.get('draft'):
            return None
        return _Page(
            rel=rel,
            urls=urls_for(rel),
            title=_title_from(metadata, body, rel),
            body=body,
            html=markdown.markdown(body, extensions=MARKDOWN_EXTENSIONS),
            published_at=parse_published_at(metadata.get('date')),
        )

    def _write_page(self, page, dest, rendered, site_context, listing):
        target = dest / page.rel.with_suffix('.html')
        rendered.claim(target, page.rel.as_posix())
        target.parent.mkdir(parents=True, exist_ok=True)
        self._write_template('post.html' if page.is_post else 'page.html', target, {
            'site': site_context,
            'page': {
                'title': page.title,
                'url': page.urls[0],
                'content': mark_safe(page.html),
                'published_at': page.published_at,
                'is_post': page.is_post,
            },
            'posts': listing,
        })
        post = None
        if page.is_post:
            email_base = dest / EMAIL_DIR / page.rel.with_suffix('')
            email_base.parent.mkdir(parents=True, exist_ok=True)
            html_path = email_base.with_suffix('.html')
            text_path = email_base.with_suffix('.txt')
            html_path.write_text(page.html, encoding='utf-8')
            text_path.write_text(page.body.strip() + '\n', encoding='utf-8')
            post = PostInfo(
                title=page.title,
                published_at=page.published_at,
                html_email_path=html_path,
                text_email_path=text_path,
            )
        for url in page.urls:
            rendered.bind(url, Resource(path=target, post=post if url == page.urls[0] else None))

    def _write_template(self, name, target, context):
        html = self.engine.get_template(name).render(Context(context))
        target.write_text(html, encoding='utf-8')

    def _copy_tree(self, src, dst, url_prefix, rendered):
        if not src.is_dir():
            return
        for path in sorted(src.rglob('*')):
            if not path.is_file():
                continue
            rel = path.relative_to(src)
            target = dst / rel
            rendered.claim(target, f"theme asset {rel.as_posix()}")
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            rendered.bind(f"{url_prefix}/{rel.as_posix()}", Resource(path=target))
