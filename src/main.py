import json
import sys
import argparse
import logging

from config import load_settings
from exceptions import ScanNotFoundError
from github_provider import GitHubProvider
from scan_service import ScanService
from scan_store import ScanStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logging.getLogger("github").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scan the commit history of a GitHub repository for AWS credentials",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
            #Scan a repository and wait for it to finish
            %(prog)s scan --repo octocat/hello-world
            #Resume a scan under a known id
            %(prog)s scan --repo octocat/hello-world --scan-id nightly-1
            #Show progress and findings of a scan
            %(prog)s status nightly-1
            #Resume every scan interrupted by a restart
            %(prog)s resume
        """,
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--results-dir", help="Directory for results files (default: $RESULTS_DIR or ./results)"
    )
    parser.add_argument(
        "--redis-url", help="Redis URL (default: $REDIS_URL or redis://localhost:6379)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan a repository and wait for it")
    scan_parser.add_argument("--repo", required=True, help="Repository as owner/name")
    scan_parser.add_argument(
        "--scan-id", help="Scan id, reuse one to resume (default: generated)"
    )

    status_parser = subparsers.add_parser("status", help="Show status and progress of a scan")
    status_parser.add_argument("scan_id")

    results_parser = subparsers.add_parser("results", help="Show the results of a scan")
    results_parser.add_argument("scan_id")

    delete_parser = subparsers.add_parser(
        "delete", help="Delete stored scan state (the results file is kept)"
    )
    delete_parser.add_argument("scan_id")

    subparsers.add_parser("list", help="List all known scan ids")
    subparsers.add_parser("resume", help="Resume every interrupted scan and wait for them")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    results_dir = args.results_dir or settings.results_dir
    redis_url = args.redis_url or settings.redis_url

    store = ScanStore()
    store.initialize(redis_url)

    def provider_factory() -> GitHubProvider:
        return GitHubProvider(settings.require_github_token())

    service = ScanService(
        store,
        provider_factory,
        results_dir=results_dir,
        scanner_options={
            "rate_limit_floor": settings.rate_limit_floor,
            "rate_limit_backoff": settings.rate_limit_backoff_seconds,
            "max_rate_limit_retries": settings.rate_limit_max_retries,
        },
    )

    try:
        if args.command == "scan":
            settings.require_github_token()
            scan_id = service.start(args.repo, args.scan_id)
            logger.info(f"Scanning repository: {args.repo} (scan id: {scan_id})")
            service.wait(scan_id)

            try:
                results = service.results(scan_id)
            except ScanNotFoundError:
                # completed, but the results file could not be written
                print(f"Scan {scan_id} finished without a results file")
                return 1

            print("Scan finished")
            print(f"Scan id: {scan_id}")
            print(f"Status: {results['status']}")
            print(f"Total findings: {results['totalFindings']}")
            if results["duration"]:
                print(f"Duration: {results['duration']}")
            if results["resultsArtifactPath"]:
                print(f"Detailed report saved to: {results['resultsArtifactPath']}")
            return 0 if results["status"] == "completed" else 1

        if args.command == "status":
            _print_json(service.status(args.scan_id))
        elif args.command == "results":
            _print_json(service.results(args.scan_id))
        elif args.command == "delete":
            service.delete(args.scan_id)
            print(f"Scan data deleted: {args.scan_id}")
        elif args.command == "list":
            for scan_id in service.list_all_scan_ids():
                print(scan_id)
        elif args.command == "resume":
            settings.require_github_token()
            resumed = service.resume_incomplete_scans()
            logger.info(f"Resuming {len(resumed)} interrupted scans")
            service.wait_all()
        return 0
    finally:
        store.close()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        sys.exit(run(args))
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
