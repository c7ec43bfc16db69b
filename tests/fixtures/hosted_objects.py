"""Object graphs exposed by the host in tests."""

import enum
import threading
from typing import NamedTuple


class Color(enum.Enum):
    """Enum leaf type."""

    RED = 1
    GREEN = 2
    BLUE = 3


class Point(NamedTuple):
    """Named-tuple composite type."""

    x: int
    y: int


class Label:
    """Leaf type with a ``parse`` convention."""

    text: str

    def __init__(self, text: str = "") -> None:
        self.text = text

    @classmethod
    def parse(cls, text: str) -> "Label":
        return cls(text)

    def __str__(self) -> str:
        return self.text

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Label) and other.text == self.text

    def __hash__(self) -> int:
        return hash(self.text)


class Opaque:
    """Type without any string conversion."""

    token: str

    def __init__(self, token: str) -> None:
        self.token = token

    def __str__(self) -> str:
        return f"Opaque<{self.token}>"


class Account:
    """Constructor target with a default parameter and an extra member."""

    owner: str
    balance: int
    nickname: str

    def __init__(self, owner: str, balance: int = 0) -> None:
        self.owner = owner
        self.balance = balance
        self.nickname = ""


class Transfer:
    """Constructor target taking another constructed object."""

    source: Account
    memo: str
    note: str

    def __init__(self, source: Account, memo: str) -> None:
        self.source = source
        self.memo = memo
        self.note = ""


class Unlisted:
    """Class no annotation of the hosted graph mentions."""

    value: int

    def __init__(self, value: int) -> None:
        self.value = value


class Settings:
    """Nested member of ``Workspace``."""

    name: str
    level: int
    ratio: float
    enabled: bool
    color: Color
    origin: Point
    size: tuple[int, int]
    label: Label
    maybe_level: int | None

    def __init__(self) -> None:
        self.name = "default"
        self.level = 1
        self.ratio = 0.5
        self.enabled = True
        self.color = Color.RED
        self.origin = Point(0, 0)
        self.size = (640, 480)
        self.label = Label("start")
        self.maybe_level = None

    def bump(self, amount: int) -> int:
        self.level += amount
        return self.level


class Workspace:
    """Root object exposed in tests."""

    title: str
    counter: int
    settings: Settings
    extra: object

    def __init__(self) -> None:
        self.title = "untitled"
        self.counter = 0
        self.settings = Settings()
        self.extra = Settings()
        self.calls_by_thread: dict[str, int] = {}

    @property
    def upper_title(self) -> str:
        return self.title.upper()

    def add(self, a: int, b: int) -> int:
        return a + b

    def greet(self, name: str, punctuation: str = "!") -> str:
        return f"hello {name}{punctuation}"

    def increment(self) -> int:
        self.counter += 1
        return self.counter

    def reset(self) -> None:
        self.counter = 0

    def swap(self, pair: tuple[int, int]) -> tuple[int, int]:
        return pair[1], pair[0]

    def next_color(self, color: Color) -> Color:
        members: list[Color] = list(Color)
        return members[(members.index(color) + 1) % len(members)]

    def describe_account(self, account: Account) -> str:
        return f"{account.owner}:{account.balance}:{account.nickname}"

    def label_length(self, label: Label) -> int:
        return len(label.text)

    def make_opaque(self) -> Opaque:
        return Opaque(self.title)

    def fail(self) -> None:
        raise ValueError("boom")

    def echo(self, value):  # noqa: ANN001, ANN201
        return value

    def needs_keyword(self, *, flag: bool) -> bool:
        return flag

    def record_thread(self) -> str:
        name: str = threading.current_thread().name
        self.calls_by_thread[name] = self.calls_by_thread.get(name, 0) + 1
        return name
