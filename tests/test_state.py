import gc
import threading

from wholistened.services.games.state import GameState, RoomGameStateStore


def test_store_get_set_delete():
    store = RoomGameStateStore()
    assert store.get('ABC123') is None
    state = store.set('ABC123', GameState(status='question', current_round=1))
    assert store.get('ABC123') is state
    assert store.room_codes() == ['ABC123']
    assert store.delete('ABC123') is state
    assert store.get('ABC123') is None
    assert store.delete('ABC123') is None


def test_fresh_state_defaults():
    state = GameState()
    assert state.status == 'waiting'
    assert state.answered == set()
    assert state.used_track_ids == set()
    assert state.streak_for(42) == 0
    # mutable defaults are not shared
    assert GameState().answered is not state.answered


def test_room_lock_is_reentrant():
    store = RoomGameStateStore()
    with store.lock('ROOM1'):
        with store.lock('ROOM1'):
            store.set('ROOM1', GameState())
    assert store.get('ROOM1') is not None


def test_room_lock_serializes_test_and_set():
    store = RoomGameStateStore()
    store.set('ROOM1', GameState(status='question'))
    winners = []
    barrier = threading.Barrier(8)

    def close_round():
        barrier.wait()
        with store.lock('ROOM1'):
            state = store.get('ROOM1')
            if state.status == 'question':
                state.status = 'results'
                winners.append(threading.get_ident())

    threads = [threading.Thread(target=close_round) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(winners) == 1


def test_held_room_lock_blocks_other_threads():
    store = RoomGameStateStore()
    acquired = threading.Event()

    def contender():
        with store.lock('ROOM1'):
            acquired.set()

    t = threading.Thread(target=contender)
    with store.lock('ROOM1'):
        t.start()
        assert not acquired.wait(0.2)
    t.join(2)
    assert acquired.is_set()


def test_room_locks_do_not_outlive_their_users():
    store = RoomGameStateStore()
    for i in range(50):
        code = f'ROOM{i}'
        with store.lock(code):
            store.set(code, GameState())
        store.delete(code)
    gc.collect()
    assert len(store._room_locks) == 0
    assert store.room_codes() == []
