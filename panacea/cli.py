"""
Command-line entry point for the ingress controller.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn
from kubernetes.config import ConfigException
from pydantic import ValidationError

from panacea import __version__
from panacea.config import get_logger, load_settings, setup_logging, verbosity_to_level
from panacea.main import build_application
from panacea.utils.helpers import parse_listen_address

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="panacea-controller",
        description="Kubernetes ingress controller and reverse proxy"
    )
    parser.add_argument(
        "-c",
        "--ingress-class",
        help="IngressClass name to reconcile (default: panacea-ingress-class)"
    )
    parser.add_argument(
        "-l",
        "--listen",
        help="Address to listen on for HTTP requests (default: 0.0.0.0:80)"
    )
    parser.add_argument(
        "-k",
        "--kubeconfig",
        help="Path to a kubeconfig. Only required if out-of-cluster"
    )
    parser.add_argument(
        "-r",
        "--resync-period",
        type=int,
        help="Resync period in seconds, 0 disables periodic resync (default: 30)"
    )
    parser.add_argument(
        "-n",
        "--namespace",
        help="Namespace to watch for Ingress resources (default: all namespaces)"
    )
    parser.add_argument(
        "-v",
        "--verbosity",
        type=int,
        help="Logging verbosity level, 1 or more enables debug logs (default: 0)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log output format (default: text)"
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file with controller settings"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the controller until it is stopped."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            config_file=args.config,
            ingress_class=args.ingress_class,
            listen=args.listen,
            kubeconfig=args.kubeconfig,
            resync_period=args.resync_period,
            namespace=args.namespace,
            verbosity=args.verbosity,
            log_format=args.log_format,
            log_file=args.log_file,
        )
        host, port = parse_listen_address(settings.listen)
    except (ValidationError, ValueError, OSError) as e:
        print(f"panacea-controller: invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=verbosity_to_level(settings.verbosity),
        log_format=settings.log_format,
        log_file=settings.log_file
    )

    try:
        app = build_application(settings)
    except ConfigException as e:
        logger.error("Unable to load Kubernetes configuration", extra={"error": str(e)})
        return 1

    logger.info("Starting controller", extra={"version": __version__, "host": host, "port": port})

    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, lifespan="on", log_config=None))
    server.run()

    if not server.started:
        # Cache sync and first reconcile failures abort the lifespan startup
        logger.error("Controller startup failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
