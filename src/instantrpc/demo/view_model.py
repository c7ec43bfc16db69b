"""View model of the demo window."""


class MyParam:
    """Argument type with a ``parse`` convention.

    ``parse`` accepts what ``str()`` renders, so values of this type can be
    assigned and returned, not only passed as constructed arguments.
    """

    value: str

    def __init__(self, value1: str | None = None, value2: str | None = None) -> None:
        self.value = (value1 or "") + (value2 or "")

    @classmethod
    def parse(cls, text: str) -> "MyParam":
        """Build a parameter holding ``text``.

        :param text: Rendered value.
        :returns: New parameter.
        """
        param: MyParam = cls()
        param.value = text
        return param

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"MyParam({self.value!r})"


class MainWindowViewModel:
    """Data context of ``MainWindow``."""

    value: str
    pair: tuple[int, int]
    parsable_value: MyParam

    def __init__(self) -> None:
        self.value = "test"
        self.pair = (1, 2)
        self.parsable_value = MyParam("1", "2")

    def get_value(self) -> str:
        return self.value

    def add(self, a: int, b: int) -> int:
        return a + b

    def concat(self, a: MyParam, b: MyParam) -> str:
        """Join the values of two parameters.

        :param a: First parameter.
        :param b: Second parameter.
        :returns: ``a.value + b.value``.
        """
        return f"{a.value}{b.value}"

    def get_pair(self) -> tuple[int, int]:
        return self.pair

    def get_parsable_value(self) -> MyParam:
        return self.parsable_value
