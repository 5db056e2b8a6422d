import pytest

from vesting_tracker.cancellation import CancellationToken
from vesting_tracker.errors import RequestCancelledError


def test_callbacks_run_once_on_cancel():
    token = CancellationToken()
    seen: list[str] = []
    token.on_cancel(lambda: seen.append("a"))
    token.cancel("user")
    token.cancel("again")
    assert seen == ["a"]
    assert token.cancelled
    assert token.reason == "user"
    with pytest.raises(RequestCancelledError):
        token.raise_if_cancelled()


def test_register_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    seen: list[int] = []
    token.on_cancel(lambda: seen.append(1))
    assert seen == [1]


def test_unregister_prevents_callback():
    token = CancellationToken()
    seen: list[int] = []
    unregister = token.on_cancel(lambda: seen.append(1))
    unregister()
    token.cancel()
    assert seen == []


def test_child_follows_parent_but_not_the_reverse():
    parent = CancellationToken()
    child = parent.child()
    child.cancel("timeout")
    assert child.cancelled and not parent.cancelled

    other = parent.child()
    parent.cancel("user")
    assert other.cancelled
    assert other.reason == "user"


def test_wait_returns_false_on_timeout():
    assert CancellationToken().wait(0.01) is False
