import hashlib
import logging
import time
import requests
from pathlib import Path

from .models import RepoFile
from .errors import ChecksumError, TransferError
from .config import MAX_RETRIES, RETRY_DELAY, CHUNK_SIZE, CONNECT_TIMEOUT, READ_TIMEOUT, DEFAULT_CHECKSUM_POLICY

logger = logging.getLogger(__name__)

CHECKSUM_POLICIES = ("fail", "warn", "ignore")

def fetch_url(url: str, session: requests.Session, stream: bool = False, timeout: tuple = (CONNECT_TIMEOUT, READ_TIMEOUT)):
    """
    Fetches a URL with retries. Returns the response, or None on 404.
    Raises TransferError once every attempt has failed.
    """
    last_error = None
    for attempt in range(MAX_RETRIES):
        try:
            response = session.get(url, stream=stream, timeout=timeout, allow_redirects=True)
            response.raise_for_status()  # Raise HTTPError for bad responses (4xx or 5xx)
            logger.debug(f"Successfully fetched (status {response.status_code}): {url}")
            return response
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                logger.debug(f"File not found (404): {url}")
                return None # Don't retry 404
            last_error = e
            status = e.response.status_code if e.response is not None else "?"
            logger.warning(f"HTTP Error {status} on attempt {attempt + 1}/{MAX_RETRIES} for {url}: {e}")
        except requests.exceptions.RequestException as e:
            last_error = e
            logger.warning(f"Network/Request Error on attempt {attempt + 1}/{MAX_RETRIES} for {url}: {e}")

        if attempt + 1 < MAX_RETRIES:
            # Basic exponential backoff
            delay = RETRY_DELAY * (2 ** attempt)
            logger.debug(f"Retrying {url} in {delay} seconds...")
            time.sleep(delay)

    logger.error(f"Failed to fetch {url} after {MAX_RETRIES} attempts.")
    raise TransferError(f"Could not transfer {url}: {last_error}") from last_error

def calculate_digest(file_path: Path, algorithm: str = "sha1") -> str | None:
    """Calculates the hex digest of a file, or None if it cannot be read."""
    hasher = hashlib.new(algorithm)
    try:
        with open(file_path, 'rb') as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()
    except FileNotFoundError:
        logger.error(f"Cannot calculate {algorithm}, file not found: {file_path}")
        return None
    except OSError as e:
        logger.error(f"Error calculating {algorithm} for {file_path}: {e}")
        return None

def fetch_checksum(url: str, session: requests.Session) -> str | None:
    """
    Reads the published .sha1 next to a remote file.
    Checksum files hold either the bare digest or "<digest>  <filename>".
    """
    response = fetch_url(url + ".sha1", session)
    if response is None:
        return None
    words = response.text.split()
    if not words:
        return None
    return words[0].strip().lower()

def verify_checksum(repo_file: RepoFile, tmp_path: Path, session: requests.Session, policy: str):
    """Checks tmp_path against the remote .sha1 according to the checksum policy."""
    if policy == "ignore":
        return
    expected = fetch_checksum(repo_file.url, session)
    if expected is None:
        message = f"No checksum published for {repo_file.url}"
    else:
        actual = calculate_digest(tmp_path)
        if actual == expected:
            logger.debug(f"SHA1 verified for {repo_file.local_path}")
            return
        message = f"Checksum validation failed for {repo_file.url}, expected {expected} but is {actual}"
    if policy == "fail":
        raise ChecksumError(message)
    logger.warning(message)

def download_file(repo_file: RepoFile, session: requests.Session,
                  checksum_policy: str = DEFAULT_CHECKSUM_POLICY) -> bool:
    """
    Downloads a single file into the local repository.
    Returns False if the remote does not have it; a file already present
    locally counts as downloaded.
    """
    if checksum_policy not in CHECKSUM_POLICIES:
        raise ValueError(f"Unknown checksum policy {checksum_policy!r}, expected one of {CHECKSUM_POLICIES}")

    if repo_file.local_path.exists():
        logger.debug(f"File already present in local repository: {repo_file.local_path}")
        return True

    repo_file.local_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = repo_file.local_path.with_suffix(repo_file.local_path.suffix + ".partial")

    response = None
    try:
        logger.info(f"Downloading {repo_file.url}")
        response = fetch_url(repo_file.url, session, stream=True)
        if response is None:
            return False

        downloaded_size = 0
        try:
            with open(tmp_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
                    downloaded_size += len(chunk)
        except (requests.exceptions.RequestException, OSError) as e:
            raise TransferError(f"Transfer of {repo_file.url} interrupted: {e}") from e

        # Content-Length counts encoded bytes; iter_content yields decoded ones
        content_encoding = response.headers.get('Content-Encoding', 'identity').strip().lower()
        content_length_str = response.headers.get('Content-Length')
        if (content_encoding == 'identity' and content_length_str and content_length_str.isdigit()
                and downloaded_size != int(content_length_str)):
            raise TransferError(
                f"Downloaded size ({downloaded_size}) differs from Content-Length ({content_length_str}) for {repo_file.url}")

        verify_checksum(repo_file, tmp_path, session, checksum_policy)

        # Only a fully verified file reaches its final name
        tmp_path.replace(repo_file.local_path)
        logger.debug(f"Successfully downloaded and verified {repo_file.local_path}")
        return True
    finally:
        if response is not None:
            response.close()
        if tmp_path.exists():
            try:
                tmp_path.unlink()
                logger.debug(f"Deleted temporary file: {tmp_path}")
            except OSError as unlink_err:
                logger.error(f"Error deleting temporary file {tmp_path}: {unlink_err}")
