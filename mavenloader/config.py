# Canonical Maven Central endpoints. Either host is treated as "central" and
# gets redirected to the fastest mirror.
CENTRAL_URL = "https://repo.maven.apache.org/maven2"
CENTRAL_URL_ALT = "https://repo1.maven.org/maven2"
SONATYPE_URL = "https://oss.sonatype.org/content/groups/public/"

DEFAULT_MIRRORS = {
    "central": "https://repo.maven.apache.org/maven2",
    "central1": "https://repo1.maven.org/maven2",
    "redhat": "https://repository.jboss.org/nexus/content/groups/public",
    "google-asia": "https://maven-central-asia.storage-download.googleapis.com/maven2/",
    "google-eu": "https://maven-central-eu.storage-download.googleapis.com/maven2/",
    "google-us": "https://maven-central.storage-download.googleapis.com/maven2/",
}
CUSTOM_MIRROR_NAME = "user-custom-mirror"

# Operator overrides, read once when the process-wide selector is built
SELECT_ENV = "MAVEN_SELECT"    # pin a mirror by name, skips probing
CENTRAL_ENV = "MAVEN_CENTRAL"  # extra mirror URL added to the probe set

PROBE_CONNECT_TIMEOUT = 3  # seconds
PROBE_READ_TIMEOUT = 3  # seconds
PROBE_DEADLINE = 4  # seconds, per probe
PROBE_OK_STATUSES = (200, 301, 302, 404)

DEFAULT_LOCAL_REPOSITORY = "./libraries"
DEFAULT_CHECKSUM_POLICY = "fail"  # "fail", "warn" or "ignore"
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds
CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for download
CONNECT_TIMEOUT = 15  # seconds
READ_TIMEOUT = 60  # seconds
MAX_WORKERS = 8  # Default concurrent artifact downloads
USER_AGENT = "Python-Maven-Library-Loader/1.0"
