import functools
import logging

from data.utils import parallelize_map
from utils import run_func_dict


def add(a, b):
    return a + b


def divide(a, b):
    return a / b


def test_run_func_dict():
    assert run_func_dict({"a": 1, "b": 2}, func=add) == 3


def test_run_func_dict_error(caplog):
    with caplog.at_level(logging.ERROR):
        result = run_func_dict({"a": 1, "b": 0}, func=divide)

    assert result is None
    assert "divide" in caplog.text


def test_parallelize_map():
    inputs = [{"a": i, "b": 1} for i in range(4)]

    results = parallelize_map(
        functools.partial(run_func_dict, func=add), inputs, processes=2, method="fork"
    )

    assert sorted(results) == [1, 2, 3, 4]
