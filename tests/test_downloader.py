import pytest
import requests
import gzip
import hashlib
from unittest.mock import MagicMock, patch

from mavenloader.models import RepoFile
from mavenloader.errors import ChecksumError, TransferError
from mavenloader.downloader import (
    fetch_url,
    calculate_digest,
    fetch_checksum,
    download_file,
)
from mavenloader.config import CONNECT_TIMEOUT, READ_TIMEOUT, MAX_RETRIES

CONTENT = b'PK\x03\x04' + b'a' * 1020
CONTENT_SHA1 = hashlib.sha1(CONTENT).hexdigest()

# --- Fixtures ---

def make_response(status=200, content=b'', headers=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.headers = headers if headers is not None else {'Content-Length': str(len(content))}
    response.content = content
    response.text = content.decode('latin-1')
    response.iter_content.return_value = [content[i:i + 256] for i in range(0, len(content), 256)]
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    else:
        response.raise_for_status = MagicMock()
    return response

@pytest.fixture
def mock_session(mocker):
    """Fixture for a mocked requests.Session."""
    return mocker.MagicMock(spec=requests.Session)

@pytest.fixture
def routed_session(mock_session):
    """Session answering from a url -> response table, 404 for anything else."""
    routes = {}

    def get(url, **kwargs):
        return routes.get(url) or make_response(404)

    mock_session.get.side_effect = get
    mock_session.routes = routes
    return mock_session

@pytest.fixture
def repo_file_fixture(tmp_path):
    """Fixture for a RepoFile pointing into a temp local repository."""
    return RepoFile(
        url="https://repo.example.com/maven2/g/a/1.0/a-1.0.jar",
        local_path=tmp_path / "repo" / "g" / "a" / "1.0" / "a-1.0.jar",
    )

# --- Tests for fetch_url ---

def test_fetch_url_success(mock_session):
    """Test successful URL fetch."""
    url = "http://example.com/success"
    response = make_response(200, b'ok')
    mock_session.get.return_value = response
    assert fetch_url(url, mock_session) is response
    mock_session.get.assert_called_once_with(
        url, stream=False, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT), allow_redirects=True
    )

def test_fetch_url_404(mock_session):
    """Test fetch returns None on 404 without retries."""
    mock_session.get.return_value = make_response(404)
    assert fetch_url("http://example.com/notfound", mock_session) is None
    assert mock_session.get.call_count == 1

@patch('time.sleep', return_value=None) # Mock time.sleep to speed up tests
def test_fetch_url_retry_http_error(mock_sleep, mock_session):
    """Test retry mechanism on non-404 HTTP errors."""
    good = make_response(200, b'ok')
    mock_session.get.side_effect = [make_response(500), make_response(503), good]

    assert fetch_url("http://example.com/servererror", mock_session) is good
    assert mock_session.get.call_count == 3
    assert mock_sleep.call_count == 2

@patch('time.sleep', return_value=None)
def test_fetch_url_max_retries_exceeded(mock_sleep, mock_session):
    """Test TransferError after max retries for network errors."""
    error = requests.exceptions.Timeout("Connection timed out")
    mock_session.get.side_effect = error

    with pytest.raises(TransferError) as excinfo:
        fetch_url("http://example.com/timeout", mock_session)

    assert excinfo.value.__cause__ is error
    assert mock_session.get.call_count == MAX_RETRIES
    assert mock_sleep.call_count == MAX_RETRIES - 1

# --- Tests for calculate_digest / fetch_checksum ---

def test_calculate_digest_success(tmp_path):
    """Test digests for an existing file."""
    file_path = tmp_path / "testfile.bin"
    file_path.write_bytes(b"data for hashing 123")
    assert calculate_digest(file_path) == hashlib.sha1(b"data for hashing 123").hexdigest()
    assert calculate_digest(file_path, "sha256") == hashlib.sha256(b"data for hashing 123").hexdigest()

def test_calculate_digest_file_not_found(tmp_path):
    """Test digest of a missing file is None."""
    assert calculate_digest(tmp_path / "nonexistent.file") is None

@pytest.mark.parametrize("body", [
    CONTENT_SHA1.encode(),
    (CONTENT_SHA1.upper() + "  a-1.0.jar\n").encode(),
])
def test_fetch_checksum_formats(body, routed_session):
    """Test both bare and 'digest filename' checksum files."""
    routed_session.routes["https://x/a.jar.sha1"] = make_response(200, body)
    assert fetch_checksum("https://x/a.jar", routed_session) == CONTENT_SHA1

def test_fetch_checksum_missing(routed_session):
    """Test a missing checksum file yields None."""
    assert fetch_checksum("https://x/a.jar", routed_session) is None

# --- Tests for download_file ---

def test_download_file_success(repo_file_fixture, routed_session):
    """Test download, verification, and move into place."""
    response = make_response(200, CONTENT)
    routed_session.routes[repo_file_fixture.url] = response
    routed_session.routes[repo_file_fixture.url + ".sha1"] = make_response(200, CONTENT_SHA1.encode())

    assert download_file(repo_file_fixture, routed_session) is True

    assert repo_file_fixture.local_path.read_bytes() == CONTENT
    partial = repo_file_fixture.local_path.with_suffix(".jar.partial")
    assert not partial.exists()
    response.close.assert_called_once()

def test_download_file_already_present(repo_file_fixture, mock_session):
    """Test files already in the local repository are not downloaded again."""
    repo_file_fixture.local_path.parent.mkdir(parents=True)
    repo_file_fixture.local_path.write_bytes(b"cached")

    assert download_file(repo_file_fixture, mock_session) is True
    mock_session.get.assert_not_called()

def test_download_file_not_found(repo_file_fixture, routed_session):
    """Test a 404 reports False and leaves nothing behind."""
    assert download_file(repo_file_fixture, routed_session) is False
    assert not repo_file_fixture.local_path.exists()

def test_download_file_checksum_mismatch_fails(repo_file_fixture, routed_session):
    """Test a wrong checksum is a hard failure under the fail policy."""
    routed_session.routes[repo_file_fixture.url] = make_response(200, CONTENT)
    routed_session.routes[repo_file_fixture.url + ".sha1"] = make_response(200, b"0" * 40)

    with pytest.raises(ChecksumError):
        download_file(repo_file_fixture, routed_session)

    assert not repo_file_fixture.local_path.exists()
    assert not repo_file_fixture.local_path.with_suffix(".jar.partial").exists()

def test_download_file_missing_checksum_fails(repo_file_fixture, routed_session):
    """Test a missing checksum is a failure under the fail policy."""
    routed_session.routes[repo_file_fixture.url] = make_response(200, CONTENT)

    with pytest.raises(ChecksumError):
        download_file(repo_file_fixture, routed_session)
    assert not repo_file_fixture.local_path.exists()

def test_download_file_checksum_warn_policy(repo_file_fixture, routed_session):
    """Test the warn policy keeps the file despite a mismatch."""
    routed_session.routes[repo_file_fixture.url] = make_response(200, CONTENT)
    routed_session.routes[repo_file_fixture.url + ".sha1"] = make_response(200, b"0" * 40)

    assert download_file(repo_file_fixture, routed_session, checksum_policy="warn") is True
    assert repo_file_fixture.local_path.exists()

def test_download_file_checksum_ignore_policy(repo_file_fixture, routed_session):
    """Test the ignore policy never asks for a checksum."""
    routed_session.routes[repo_file_fixture.url] = make_response(200, CONTENT)

    assert download_file(repo_file_fixture, routed_session, checksum_policy="ignore") is True
    requested = [c.args[0] for c in routed_session.get.call_args_list]
    assert requested == [repo_file_fixture.url]

def test_download_file_truncated(repo_file_fixture, routed_session):
    """Test a body shorter than Content-Length is rejected."""
    routed_session.routes[repo_file_fixture.url] = make_response(
        200, CONTENT, headers={'Content-Length': str(len(CONTENT) + 10)})

    with pytest.raises(TransferError):
        download_file(repo_file_fixture, routed_session, checksum_policy="ignore")
    assert not repo_file_fixture.local_path.exists()

def test_download_file_unknown_policy(repo_file_fixture, mock_session):
    """Test unknown checksum policies are rejected."""
    with pytest.raises(ValueError):
        download_file(repo_file_fixture, mock_session, checksum_policy="maybe")

def test_download_file_gzip_encoded(repo_file_fixture, routed_session):
    """Test a compressed transfer is not measured against the decoded size."""
    compressed = gzip.compress(CONTENT)
    routed_session.routes[repo_file_fixture.url] = make_response(
        200, CONTENT, headers={'Content-Length': str(len(compressed)), 'Content-Encoding': 'gzip'})
    routed_session.routes[repo_file_fixture.url + ".sha1"] = make_response(200, CONTENT_SHA1.encode())

    assert download_file(repo_file_fixture, routed_session) is True
    assert repo_file_fixture.local_path.read_bytes() == CONTENT

def test_download_file_connection_dropped(repo_file_fixture, routed_session):
    """Test a connection lost mid-body is a TransferError and the response is released."""
    response = make_response(200, CONTENT)
    error = requests.exceptions.ChunkedEncodingError("connection broken")
    response.iter_content.side_effect = error
    routed_session.routes[repo_file_fixture.url] = response

    with pytest.raises(TransferError) as excinfo:
        download_file(repo_file_fixture, routed_session)

    assert excinfo.value.__cause__ is error
    response.close.assert_called_once()
    assert not repo_file_fixture.local_path.exists()
    assert not repo_file_fixture.local_path.with_suffix(".jar.partial").exists()

def test_download_file_closes_response_on_checksum_failure(repo_file_fixture, routed_session):
    response = make_response(200, CONTENT)
    routed_session.routes[repo_file_fixture.url] = response
    routed_session.routes[repo_file_fixture.url + ".sha1"] = make_response(200, b"0" * 40)

    with pytest.raises(ChecksumError):
        download_file(repo_file_fixture, routed_session)
    response.close.assert_called_once()
