import logging
from urllib.parse import urlparse

from .models import RemoteRepository
from .config import CENTRAL_URL, CENTRAL_URL_ALT
from . import mirrors

logger = logging.getLogger(__name__)

CENTRAL_HOSTS = frozenset(urlparse(u).hostname for u in (CENTRAL_URL, CENTRAL_URL_ALT))


def _selector(selector=None):
    return selector if selector is not None else mirrors.get_selector()


def is_central(target) -> bool:
    """True if the URL (or repository) points at one of the Maven Central hosts."""
    url = target.url if isinstance(target, RemoteRepository) else target
    try:
        host = urlparse(url).hostname
    except (ValueError, TypeError, AttributeError):
        return False
    return host in CENTRAL_HOSTS


def central_repository(selector=None) -> RemoteRepository:
    """Reference to Maven Central, served by the fastest mirror."""
    return RemoteRepository("central", _selector(selector).select(), "default")


def rewrite(repository: RemoteRepository, selector=None) -> RemoteRepository:
    """
    Swaps a Maven Central reference for the selected mirror, keeping its name
    and layout. Anything else comes back untouched.
    """
    if not is_central(repository):
        return repository
    url = _selector(selector).select()
    if url != repository.url:
        logger.debug(f"Redirecting repository {repository.name} from {repository.url} to {url}")
    return RemoteRepository(repository.name, url, repository.type)


def replace(url: str, selector=None) -> str:
    """Maps the exact canonical Central URL to the selected mirror."""
    return _selector(selector).select() if url == CENTRAL_URL else url
