import argparse
import logging
import os
import sys
import traceback

# Project internal imports
from . import config
from .errors import MavenLoaderError
from .library_resolver import LibraryResolver
from .loader import DynamicLoader
from .mirrors import MirrorSelector, reset_selector
from .resolver import MavenResolver

# --- Logging Setup ---
# Place basicConfig here so logger instances in other modules inherit it
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s')
logger = logging.getLogger(__name__) # Get logger for this module


def parse_repository(value: str, index: int) -> tuple[str, str]:
    """Accepts 'NAME=URL' or a bare URL (named repo-N)."""
    name, sep, url = value.partition("=")
    if sep and name and "://" not in name:
        return name, url
    return f"repo-{index}", value


def build_selector(args) -> MirrorSelector:
    """Mirror selector from the environment, with CLI flags taking precedence."""
    environ = dict(os.environ)
    if args.select:
        environ[config.SELECT_ENV] = args.select
    if args.central:
        environ[config.CENTRAL_ENV] = args.central
    selector = MirrorSelector.from_env(environ)
    # Make it the process-wide selector so every central reference agrees
    reset_selector(selector)
    return selector


def run_loader_process(args):
    """Selects a mirror, then resolves and loads each requested coordinate."""
    logger.info("Starting library resolution.")
    logger.info(f"Coordinates: {', '.join(args.coordinates) or '<none>'}")
    logger.info(f"Extra repositories: {', '.join(args.repositories) or '<none>'}")
    logger.info(f"Local repository: {os.path.abspath(args.local_repo)}")
    logger.info(f"Checksum policy: {args.checksum_policy}")
    logger.info(f"Download Workers: {args.workers}")

    selector = build_selector(args)
    mirror = selector.select()
    logger.info(f"Maven Central traffic goes to: {mirror}")
    if args.select_only:
        return 0

    if not args.coordinates:
        logger.info("No coordinates given, nothing to resolve.")
        return 0

    resolution_service = MavenResolver(args.local_repo, checksum_policy=args.checksum_policy,
                                       workers=args.workers, show_progress=not args.debug)
    loader = DynamicLoader(enabled=False) if args.download_only else DynamicLoader()
    resolver = LibraryResolver(resolution_service, loader, selector=selector)
    for index, value in enumerate(args.repositories, start=1):
        name, url = parse_repository(value, index)
        resolver.add_repository(url, name)

    logger.info("--- Repositories ---")
    for repository in resolver.repositories:
        logger.info(f"   {repository.name}: {repository.url}")

    status = 0
    for coordinate in args.coordinates:
        try:
            paths = resolver.add_dependency(coordinate)
        except (MavenLoaderError, ValueError) as e:
            logger.error(f"Failed to resolve {coordinate}: {e}")
            cause = e.__cause__
            while cause is not None:
                logger.error(f"   Caused by: {cause}")
                cause = cause.__cause__
            status = 1
            continue
        for path in paths:
            logger.info(f"   {path}")

    if status:
        logger.warning("Finished with errors. Some libraries were not loaded.")
    else:
        logger.info("All libraries resolved successfully.")
    return status


def main(argv=None):
    """Parses arguments and starts the resolution process."""
    parser = argparse.ArgumentParser(
        description="Resolve Maven dependencies through the fastest Central mirror and load them.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
    )
    parser.add_argument("coordinates", nargs="*", help="Coordinates as group:artifact[:extension[:classifier]]:version.")
    parser.add_argument("-r", "--repository", dest="repositories", action="append", default=[],
                        help="Extra repository as NAME=URL or URL. Repeatable.")
    parser.add_argument("--select", default=None, help=f"Pin a mirror by name (overrides {config.SELECT_ENV}).")
    parser.add_argument("--central", default=None, help=f"Custom mirror URL to race (overrides {config.CENTRAL_ENV}).")
    parser.add_argument("--local-repo", default=config.DEFAULT_LOCAL_REPOSITORY, help="Local repository directory.")
    parser.add_argument("--checksum-policy", default=config.DEFAULT_CHECKSUM_POLICY, choices=["fail", "warn", "ignore"],
                        help="What to do when a checksum is missing or wrong.")
    parser.add_argument("--workers", type=int, default=config.MAX_WORKERS, help="Number of concurrent download workers.")
    parser.add_argument("--select-only", action="store_true", help="Only select the fastest mirror and exit.")
    parser.add_argument("--download-only", action="store_true", help="Resolve and download without loading.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (very verbose).")

    args = parser.parse_args(argv)

    # Adjust logging level based on debug flag
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled.")
    else:
        logging.getLogger().setLevel(logging.INFO)
        # Silence verbose logs from underlying libraries in info mode
        logging.getLogger("requests").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    try:
        return run_loader_process(args)
    except KeyboardInterrupt:
        logger.warning("Process interrupted by user.")
        return 1
    except Exception as e:
        logger.error(f"An unexpected critical error occurred: {e}")
        logger.error(traceback.format_exc())
        return 1

if __name__ == "__main__":
    sys.exit(main())
