from __future__ import annotations
import itertools
import pytest
from rpcop_core.core import RetryPolicy


def test_backoff_follows_multiplier_and_caps():
    p = RetryPolicy(initial_delay=0.1, delay_multiplier=2.0, max_delay=0.5)
    delays = list(itertools.islice(p.backoff(), 6))
    # min(0.1 * 2**k, 0.5)
    assert delays == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5, 0.5])


def test_call_timeouts_escalate_and_cap():
    p = RetryPolicy(initial_call_timeout=1.0, call_timeout_multiplier=1.5, max_call_timeout=3.0)
    timeouts = list(itertools.islice(p.call_timeouts(), 5))
    assert timeouts == pytest.approx([1.0, 1.5, 2.25, 3.0, 3.0])


def test_constant_timeouts_with_unit_multiplier():
    p = RetryPolicy(initial_call_timeout=20.0, call_timeout_multiplier=1.0, max_call_timeout=20.0)
    assert list(itertools.islice(p.call_timeouts(), 3)) == [20.0, 20.0, 20.0]


def test_jitter_stays_within_bounds(monkeypatch):
    # make jitter deterministic: always return the upper offset
    monkeypatch.setattr("random.uniform", lambda a, b: b)
    p = RetryPolicy(initial_delay=0.1, delay_multiplier=2.0, max_delay=0.3, jitter=0.5)
    delays = list(itertools.islice(p.backoff(), 3))
    assert delays == pytest.approx([0.15, 0.3, 0.3])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_delay": -1},
        {"delay_multiplier": 0.5},
        {"call_timeout_multiplier": 0.9},
        {"initial_call_timeout": 0},
        {"total_timeout": 0},
        {"jitter": 2.0},
    ],
)
def test_invalid_policies_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_retryable_codes_frozen_and_replaced():
    from rpcop_core.classify import Code

    p = RetryPolicy(retryable_codes={Code.UNAVAILABLE})
    assert isinstance(p.retryable_codes, frozenset)
    q = p.with_codes([Code.DEADLINE_EXCEEDED])
    assert q.retryable_codes == {Code.DEADLINE_EXCEEDED}
    assert p.retryable_codes == {Code.UNAVAILABLE}
    assert q.is_retryable(Code.DEADLINE_EXCEEDED)
    assert not q.is_retryable(None)
