"""
Tests for the journaled state store
"""

import logging
import threading
import time

import pytest

from privateoffer import StateStore


class Boom(Exception):
    pass


def test_writes_outside_transaction_rejected(store):
    with pytest.raises(RuntimeError):
        store.set('balances', ('t', 'a'), 1)
    with pytest.raises(RuntimeError):
        store.emit('Transfer')


def test_failed_transaction_restores_previous_values(store):
    with store.transaction():
        store.set('supply', 'token', 10)

    with pytest.raises(Boom):
        with store.transaction():
            store.set('supply', 'token', 20)
            store.set('supply', 'other', 5)
            store.delete('supply', 'token')
            raise Boom()

    assert store.get('supply', 'token') == 10
    assert store.get('supply', 'other') is None


def test_inner_failure_only_undoes_inner_writes(store):
    with store.transaction():
        store.set('supply', 'outer', 1)
        with pytest.raises(Boom):
            with store.transaction():
                store.set('supply', 'inner', 2)
                store.emit('Inner')
                raise Boom()
        store.emit('Outer')

    assert store.get('supply', 'outer') == 1
    assert store.get('supply', 'inner') is None
    assert [e.name for e in store.events] == ['Outer']


def test_events_delivered_only_after_outermost_commit(store):
    seen = []
    store.subscribe(seen.append)

    with store.transaction():
        store.emit('First', value=1)
        with store.transaction():
            store.emit('Second', value=2)
        assert seen == []

    assert [(e.name, e.args) for e in seen] == [('First', {'value': 1}), ('Second', {'value': 2})]


def test_rolled_back_events_never_delivered(store):
    seen = []
    store.subscribe(seen.append)

    with pytest.raises(Boom):
        with store.transaction():
            store.emit('Lost')
            raise Boom()

    assert seen == []
    assert store.events == []


def test_failing_listener_does_not_break_commit(store, caplog):
    def broken(event):
        raise RuntimeError("listener down")

    seen = []
    store.subscribe(broken)
    store.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger='privateoffer'):
        with store.transaction():
            store.set('supply', 'token', 1)
            store.emit('Minted')

    assert store.get('supply', 'token') == 1
    assert [e.name for e in seen] == ['Minted']
    assert "listener down" in caplog.text


def test_dump_and_load(store):
    with store.transaction():
        store.set('balances', ('token', 'alice'), 2**200)

    snapshot = store.dump()
    other = StateStore()
    other.load(snapshot)

    assert other.get('balances', ('token', 'alice')) == 2**200
    assert other.dump() == snapshot


def test_load_inside_transaction_rejected(store):
    with store.transaction():
        with pytest.raises(RuntimeError):
            store.load({})


def test_slow_listener_does_not_block_other_transactions(store):
    started, release = threading.Event(), threading.Event()

    def slow(event):
        started.set()
        release.wait(timeout=5)

    store.subscribe(slow)

    def commit():
        with store.transaction():
            store.emit('Slow')

    worker = threading.Thread(target=commit)
    worker.start()
    try:
        assert started.wait(timeout=5)
        began = time.monotonic()
        with store.transaction():
            store.set('slots', 'other', 1)
        waited = time.monotonic() - began
    finally:
        release.set()
        worker.join()

    assert waited < 1
    assert store.get('slots', 'other') == 1
