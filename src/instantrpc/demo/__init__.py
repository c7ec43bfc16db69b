"""Demo application for showcasing instantrpc behavior."""

from instantrpc.demo.app import host_main_window
from instantrpc.demo.app import run_hosted_app
from instantrpc.demo.main_window import MainWindow
from instantrpc.demo.main_window import ThreadAffinityError
from instantrpc.demo.main_window import Visibility
from instantrpc.demo.view_model import MainWindowViewModel
from instantrpc.demo.view_model import MyParam

__all__: list[str] = [
    "host_main_window",
    "run_hosted_app",
    "MainWindow",
    "MainWindowViewModel",
    "MyParam",
    "ThreadAffinityError",
    "Visibility",
]
