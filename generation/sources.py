"""
Source providers: where a site's source tree lives on disk.

Fetching from source control and extracting uploads happen elsewhere; by the
time the engine runs, a repository site's tree is checked out under
<checkouts>/<live hash> and a folder site's tree is unpacked under
<folders>/<site id>.
"""
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from sitehost_backend.errors import SourceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceTree:
    path: Path
    content_hash: str


def hash_tree(root):
    """sha256 over the relative paths and contents of every file under `root`."""
    digest = hashlib.sha256()
    root = Path(root)
    for path in sorted(p for p in root.rglob('*') if p.is_file()):
        digest.update(path.relative_to(root).as_posix().encode())
        digest.update(b'\0')
        with path.open('rb') as fh:
            for chunk in iter(lambda: fh.read(65536), b''):
                digest.update(chunk)
        digest.update(b'\0')
    return digest.hexdigest()


class SourceProvider:
    """Interface: fetch(site, ref) -> SourceTree; has_source(site) -> bool without reading files."""

    def fetch(self, site, ref=None):
        raise NotImplementedError

    def has_source(self, site):
        raise NotImplementedError


class CheckoutSourceProvider(SourceProvider):
    """Repository checkouts keyed by commit hash."""

    def __init__(self, checkouts_path):
        self.checkouts_path = Path(checkouts_path)

    def has_source(self, site):
        return bool(site.live_hash) and (self.checkouts_path / site.live_hash).is_dir()

    def fetch(self, site, ref=None):
        ref = ref or site.live_hash
        if not ref:
            raise SourceUnavailable(f"site {site.subdomain!r} has no fetched source yet")
        path = self.checkouts_path / ref
        if not path.is_dir():
            raise SourceUnavailable(f"checkout {ref!r} for site {site.subdomain!r} is missing")
        return SourceTree(path=path, content_hash=ref)


class FolderSourceProvider(SourceProvider):
    """Uploaded folders, one directory per site; the hash is computed from the files."""

    def __init__(self, folders_path):
        self.folders_path = Path(folders_path)

    def has_source(self, site):
        return (self.folders_path / str(site.pk)).is_dir()

    def fetch(self, site, ref=None):
        path = self.folders_path / str(site.pk)
        if not path.is_dir():
            raise SourceUnavailable(f"no folder has been uploaded for site {site.subdomain!r}")
        return SourceTree(path=path, content_hash=hash_tree(path))


class SiteSourceProvider(SourceProvider):
    """Dispatches on Site.source_type."""

    def __init__(self, config):
        self.providers = {
            'repository': CheckoutSourceProvider(config.checkouts_path),
            'folder': FolderSourceProvider(config.folders_path),
        }

    def has_source(self, site):
        provider = self.providers.get(site.source_type)
        return provider is not None and provider.has_source(site)

    def fetch(self, site, ref=None):
        try:
            provider = self.providers[site.source_type]
        except KeyError:
            raise SourceUnavailable(f"unknown source type {site.source_type!r}")
        return provider.fetch(site, ref)
