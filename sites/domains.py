"""
Subdomain and custom-domain validation.

Both parsers normalise (strip + lowercase) before checking, and raise
InvalidSubdomain with a message that is shown to the user as-is.
"""
import string

from sitehost_backend.errors import InvalidSubdomain

MAX_LABEL_LENGTH = 63
MAX_DOMAIN_LENGTH = 253

_LABEL_CHARS = frozenset(string.ascii_lowercase + string.digits + '-')


def parse_subdomain(raw):
    """
    Validate a single DNS label and return it normalised.

    Rules: 1-63 characters; letters, digits and hyphens only; no leading or
    trailing hyphen; no consecutive hyphens.
    """
    value = (raw or '').strip().lower()
    if not 1 <= len(value) <= MAX_LABEL_LENGTH:
        raise InvalidSubdomain(f"must be between 1 and {MAX_LABEL_LENGTH} characters long")
    if value[0] == '-' or value[-1] == '-':
        raise InvalidSubdomain("cannot start or end with a hyphen")
    if '--' in value:
        raise InvalidSubdomain("cannot contain consecutive hyphens")
    for ch in value:
        if ch.isspace():
            raise InvalidSubdomain("cannot contain spaces")
        if ch not in _LABEL_CHARS:
            raise InvalidSubdomain("can only contain letters, numbers, and hyphens")
    return value


def parse_custom_domain(raw, root_domain):
    """Validate a fully-qualified custom domain such as `blog.example.com`."""
    value = (raw or '').strip().lower().rstrip('.')
    if not value or len(value) > MAX_DOMAIN_LENGTH:
        raise InvalidSubdomain(f"domain must be between 1 and {MAX_DOMAIN_LENGTH} characters long")
    labels = value.split('.')
    if len(labels) < 2:
        raise InvalidSubdomain("domain must have at least two labels, e.g. example.com")
    for label in labels:
        try:
            parse_subdomain(label)
        except InvalidSubdomain as exc:
            raise InvalidSubdomain(f"label {label!r} {exc.message}") from exc
    if value == root_domain or value.endswith('.' + root_domain):
        raise InvalidSubdomain(f"domain cannot be {root_domain} or one of its subdomains")
    return value
