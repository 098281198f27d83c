import asyncio
import enum
import pytest
from rpcop_core.classify import Category, Code, category_of, coerce_code, status_classifier
from rpcop_core.errors import RpcError


class FakeStatusCode(enum.Enum):
    """Shape like grpc.StatusCode: value = (int, str)"""

    UNAVAILABLE = (14, "unavailable")
    NOT_FOUND = (5, "not found")


class CallError(Exception):
    def __init__(self, status):
        super().__init__("call failed")
        self._status = status

    def code(self):
        return self._status


class HttpishError(Exception):
    def __init__(self, status_code):
        super().__init__(f"http {status_code}")
        self.status_code = status_code


def test_rpc_error_code_is_read():
    assert status_classifier(RpcError(Code.ABORTED, "conflict")) is Code.ABORTED


@pytest.mark.parametrize("status", [FakeStatusCode.UNAVAILABLE, 14, "unavailable"])
def test_code_method_and_loose_values(status):
    assert status_classifier(CallError(status)) is Code.UNAVAILABLE


@pytest.mark.parametrize(
    "status, code",
    [
        (404, Code.NOT_FOUND),
        (429, Code.RESOURCE_EXHAUSTED),
        (503, Code.UNAVAILABLE),
        (504, Code.DEADLINE_EXCEEDED),
        (418, Code.FAILED_PRECONDITION),
        (599, Code.UNKNOWN),
    ],
)
def test_http_status_mapping(status, code):
    assert status_classifier(HttpishError(status)) is code


def test_timeouts_and_connection_errors():
    assert status_classifier(asyncio.TimeoutError()) is Code.DEADLINE_EXCEEDED
    assert status_classifier(ConnectionResetError("reset")) is Code.UNAVAILABLE


def test_unclassifiable_returns_none():
    assert status_classifier(ValueError("nope")) is None
    assert coerce_code(99) is None
    assert coerce_code(True) is None


@pytest.mark.parametrize(
    "code, category",
    [
        (Code.UNAVAILABLE, Category.TRANSIENT_NETWORK),
        (Code.DEADLINE_EXCEEDED, Category.TRANSIENT_NETWORK),
        (Code.RESOURCE_EXHAUSTED, Category.TRANSIENT_SERVER),
        (Code.INVALID_ARGUMENT, Category.PERMANENT_CLIENT),
        (Code.PERMISSION_DENIED, Category.PERMANENT_CLIENT),
        (Code.INTERNAL, Category.PERMANENT_SERVER),
    ],
)
def test_categories(code, category):
    assert category_of(code) is category
    assert category.transient == category.name.startswith("TRANSIENT")


def test_every_failure_code_has_a_category():
    for code in Code:
        if code is Code.OK:
            with pytest.raises(ValueError):
                category_of(code)
        else:
            assert isinstance(category_of(code), Category)
