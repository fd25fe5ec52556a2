import argparse

from sockproxy import options


def common_options(parser):
    parser.add_argument(
        "--version",
        action="store_true",
        help="show version number and exit",
        dest="version",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", dest="quiet", help="Quiet."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="verbose",
        const="debug",
        help="Increase log verbosity.",
    )

    group = parser.add_argument_group("Proxy Options")
    group.add_argument(
        "--listen-host",
        type=str,
        dest="listen_host",
        metavar="HOST",
        help=f"Address to bind the proxy server to. Env: LISTEN_HOST. "
        f"Default: {options.DEFAULT_LISTEN_HOST}",
    )
    group.add_argument(
        "-p",
        "--listen-port",
        type=int,
        dest="listen_port",
        metavar="PORT",
        help=f"Proxy service port. Env: PORT. Default: {options.DEFAULT_LISTEN_PORT}",
    )

    group = parser.add_argument_group("Backend Options")
    group.add_argument(
        "-s",
        "--socket",
        type=str,
        dest="socket_path",
        metavar="PATH",
        help=f"Unix domain socket of the backend. Env: SOCKET_PATH. "
        f"Default: {options.DEFAULT_SOCKET_PATH}",
    )
    group.add_argument(
        "--api-key",
        type=str,
        dest="api_key",
        metavar="KEY",
        help="Send this token as x-api-key with every forwarded request. Env: API_KEY.",
    )
    group.add_argument(
        "--require-api-key",
        action="store_true",
        dest="require_api_key",
        default=None,
        help="Reject client requests that do not carry the configured x-api-key. "
        "Env: REQUIRE_API_KEY.",
    )
    group.add_argument(
        "--timeout",
        type=str,
        dest="backend_timeout",
        metavar="SECONDS",
        help="Deadline for each backend exchange, including reading the response. "
        "Longer exchanges, such as image pulls or followed logs, are answered with 504. "
        "Use 0 to wait forever. "
        f"Env: BACKEND_TIMEOUT. Default: {options.DEFAULT_BACKEND_TIMEOUT:g}",
    )


def sockproxy():
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options]",
        description="Forward HTTP requests to a service listening on a Unix domain socket.",
    )
    common_options(parser)
    return parser
