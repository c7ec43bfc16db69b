"""Command-line access to an exposed target: ``python -m instantrpc``."""

import argparse
import logging
import sys

from instantrpc.arguments import ArgumentNode
from instantrpc.arguments import ValueNode
from instantrpc.arguments import dumps_argument
from instantrpc.arguments import dumps_arguments
from instantrpc.client import InstantRpcClient
from instantrpc.config import ENV_ADDRESS
from instantrpc.errors import ExposeTimeoutError
from instantrpc.errors import InstantRpcError
from instantrpc.errors import InstantRpcTransportError
from instantrpc.protocol import COMMAND_GET
from instantrpc.protocol import COMMAND_INVOKE
from instantrpc.protocol import COMMAND_SET
from instantrpc.protocol import COMMAND_WAITFOR
from instantrpc.protocol import Request
from instantrpc.protocol import Response

EXIT_OK: int = 0
EXIT_FAILED: int = 1
EXIT_UNREACHABLE: int = 2


def _value_node(text: str) -> ValueNode:
    """Parse one ``--arg TYPE=TEXT`` option.

    :param text: Option value.
    :returns: Value node.
    :raises argparse.ArgumentTypeError: If ``=`` is missing.
    """
    type_name, separator, literal = text.partition("=")
    if separator == "" or type_name == "":
        raise argparse.ArgumentTypeError(f"expected TYPE=TEXT, got {text!r}")
    return ValueNode(type_name, literal)


def _build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser with one subcommand per wire command."""
    parser = argparse.ArgumentParser(
        prog="python -m instantrpc",
        description="Send GET, SET, INVOKE and WAITFOR commands to an instantrpc host.",
    )
    parser.add_argument("--address", default=None, help=f"Host address (default: ${ENV_ADDRESS} or the well-known socket).")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Log to stderr; repeat for debug output.")
    commands = parser.add_subparsers(dest="command", required=True)

    get_parser = commands.add_parser("get", help="Read a member.")
    get_parser.add_argument("type_identity", help="Exposed type as module:qualname.")
    get_parser.add_argument("path", help="Dot-joined member path.")
    get_parser.add_argument("--id", dest="instance_id", default="", help="Instance id.")

    set_parser = commands.add_parser("set", help="Assign a member.")
    set_parser.add_argument("type_identity", help="Exposed type as module:qualname.")
    set_parser.add_argument("path", help="Dot-joined member path.")
    set_parser.add_argument("value", type=_value_node, help="New value as TYPE=TEXT.")
    set_parser.add_argument("--id", dest="instance_id", default="", help="Instance id.")

    invoke_parser = commands.add_parser("invoke", help="Call a method.")
    invoke_parser.add_argument("type_identity", help="Exposed type as module:qualname.")
    invoke_parser.add_argument("path", help="Dot-joined path ending in the method name.")
    invoke_parser.add_argument(
        "--arg",
        dest="arguments",
        type=_value_node,
        action="append",
        default=[],
        help="Positional argument as TYPE=TEXT; repeat in order.",
    )
    invoke_parser.add_argument("--id", dest="instance_id", default="", help="Instance id.")

    waitfor_parser = commands.add_parser("waitfor", help="Report whether a target is exposed.")
    waitfor_parser.add_argument("type_identity", help="Exposed type as module:qualname.")
    waitfor_parser.add_argument("--id", dest="instance_id", default="", help="Instance id.")
    waitfor_parser.add_argument("--timeout", type=float, default=None, help="Poll until exposed, up to this many seconds.")
    return parser


def _build_request(args: argparse.Namespace) -> Request:
    """Translate parsed arguments into a wire request.

    :param args: Parsed arguments.
    :returns: Request.
    """
    if args.command == "get":
        return Request(COMMAND_GET, args.type_identity, args.instance_id, args.path)
    if args.command == "set":
        return Request(COMMAND_SET, args.type_identity, args.instance_id, args.path, dumps_argument(args.value))
    if args.command == "invoke":
        nodes: list[ArgumentNode] = list(args.arguments)
        return Request(COMMAND_INVOKE, args.type_identity, args.instance_id, args.path, dumps_arguments(nodes))
    return Request(COMMAND_WAITFOR, args.type_identity, args.instance_id, "")


def main(argv: list[str] | None = None) -> int:
    """Run the command line tool.

    :param argv: Arguments without the program name; ``sys.argv[1:]`` by default.
    :returns: ``0`` on success, ``1`` for a failure envelope, ``2`` when no host answers.
    """
    args: argparse.Namespace = _build_parser().parse_args(argv)
    if args.verbose > 0:
        level: int = logging.DEBUG if args.verbose > 1 else logging.INFO
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    client: InstantRpcClient[object] = InstantRpcClient(args.type_identity, args.instance_id, address=args.address)
    if args.command == "waitfor" and args.timeout is not None:
        try:
            client.wait_until_exposed(timeout=args.timeout)
        except ExposeTimeoutError as exc:
            print(exc, file=sys.stderr)
            return EXIT_FAILED
        print(True)
        return EXIT_OK

    try:
        response: Response = client.send(_build_request(args))
    except InstantRpcTransportError as exc:
        print(exc, file=sys.stderr)
        return EXIT_UNREACHABLE
    except InstantRpcError as exc:
        print(exc, file=sys.stderr)
        return EXIT_FAILED

    if response.success is False:
        print(response.payload, file=sys.stderr)
        return EXIT_FAILED
    print(response.payload)
    return EXIT_OK
