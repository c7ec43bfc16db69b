"""Drive a window hosted in another process through instantrpc."""

import argparse
import multiprocessing
import os
import pathlib
import sys
import tempfile
import time

INSTANCE_ID: str = "demo"


def _ensure_src_path(src_path: str) -> None:
    """Ensure ``src`` is importable in the current interpreter.

    :param src_path: Absolute path to the repository ``src`` directory.
    """
    exists: bool = src_path in sys.path
    if exists is False:
        sys.path.insert(0, src_path)


def _host_process(src_path: str, address: str, lock_path: str, stop_event: object) -> None:
    """Entry point of the hosting process.

    :param src_path: Repository ``src`` directory.
    :param address: Listener address.
    :param lock_path: Machine-wide lock file.
    :param stop_event: Event that ends hosting.
    """
    _ensure_src_path(src_path)
    from instantrpc.demo import run_hosted_app

    run_hosted_app(address=address, lock_path=lock_path, stop_event=stop_event, instance_id=INSTANCE_ID)  # type: ignore[arg-type]


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments.

    :returns: Parsed CLI arguments.
    """
    parser = argparse.ArgumentParser(description="Host a demo window in a child process and drive it remotely.")
    parser.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for the window to be exposed.")
    parser.add_argument("--verbose", action="store_true", help="Log instantrpc activity to stderr.")
    return parser.parse_args()


def main() -> int:
    """Run the full demonstration.

    :returns: Process exit code where ``0`` indicates success.
    """
    args: argparse.Namespace = _parse_args()
    repo_root: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
    src_path_str: str = str(repo_root / "src")
    _ensure_src_path(src_path_str)

    import logging

    from instantrpc import Construct
    from instantrpc import InstantRpcClient
    from instantrpc import OperationFailedError
    from instantrpc import as_type
    from instantrpc.demo import MainWindow
    from instantrpc.demo import MainWindowViewModel
    from instantrpc.demo import MyParam
    from instantrpc.demo import Visibility

    if args.verbose is True:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    work_dir: str = tempfile.mkdtemp(prefix="irpc")
    address: str = os.path.join(work_dir, "demo.sock")
    lock_path: str = os.path.join(work_dir, "demo.lock")
    if sys.platform == "win32":
        address = rf"\\.\pipe\InstantRpcDemo{os.getpid()}"

    context = multiprocessing.get_context("spawn")
    stop_event = context.Event()
    process = context.Process(target=_host_process, args=(src_path_str, address, lock_path, stop_event), daemon=True)
    process.start()

    print("instantrpc hosted window demo")
    print(f"python={sys.version.split()[0]} address={address}")
    print("")

    client: InstantRpcClient[MainWindow] = InstantRpcClient(MainWindow, INSTANCE_ID, address=address)
    started: float = time.perf_counter()
    try:
        client.wait_until_exposed(timeout=args.timeout)
        print(f"exposed after {time.perf_counter() - started:.3f}s")

        client.set(lambda w: w.top, 10)
        print(f"top={client.get(lambda w: w.top)!r}")

        client.set(lambda w: w.visibility, Visibility.COLLAPSED)
        print(f"visibility={client.get(lambda w: w.visibility)!r}")

        client.invoke(lambda w: w.hide())
        print(f"is_visible after hide={client.get(lambda w: w.is_visible)!r}")
        client.invoke(lambda w: w.show())
        print(f"is_visible after show={client.get(lambda w: w.is_visible)!r}")

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).value, "changed")
        print(f"value={client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).get_value())!r}")
        print(f"add(1, 2)={client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).add(1, 2))!r}")

        concatenated: object = client.invoke(
            lambda w: as_type(MainWindowViewModel, w.data_context).concat(
                Construct(MyParam, "1", "2"),
                Construct(MyParam, value="3"),
            )
        )
        print(f"concat={concatenated!r}")

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).pair, (3, 4))
        print(f"pair={client.invoke(lambda w: as_type(MainWindowViewModel, w.data_context).get_pair())!r}")

        client.set(lambda w: as_type(MainWindowViewModel, w.data_context).parsable_value, MyParam("4", "2"))
        print(f"parsable_value={client.get(lambda w: as_type(MainWindowViewModel, w.data_context).parsable_value)!r}")

        try:
            client.get(lambda w: w.missing_member)
        except OperationFailedError as exc:
            print(f"expected failure: {exc.detail.splitlines()[0]}")
    finally:
        stop_event.set()
        process.join(timeout=5.0)
        if process.is_alive() is True:
            process.terminate()

    print("")
    print("DEMO RESULT: PASS")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
