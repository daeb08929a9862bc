import random

from objcore.balancequeue import BalanceQueue, Element, element_wrapper


class Counter(Element):
    def __init__(self, name=""):
        self.name = name
        self.calls = 0

    def balance_queue_handler(self):
        self.calls += 1


def _total(elements):
    return sum(e.calls for e in elements)


def test_push_spreads_evenly():
    q = BalanceQueue(5)
    elems = [Counter() for _ in range(10)]
    for e in elems:
        q.push(e)
    for _ in range(5):
        before = _total(elems)
        q.update()
        assert _total(elems) - before == 2
    assert all(e.calls == 1 for e in elems)


def test_duplicate_push_ignored():
    q = BalanceQueue(3)
    e = Counter()
    q.push(e)
    q.push(e)
    for _ in range(3):
        q.update()
    assert e.calls == 1


def test_push_none_ignored():
    q = BalanceQueue(3)
    q.push(None)
    assert "元素数量0: 组数量3 ==>0 0 0 \n" in str(q)


def test_pop_stops_calls():
    q = BalanceQueue(2)
    a, b = Counter(), Counter()
    q.push(a)
    q.push(b)
    q.pop(a)
    for _ in range(2):
        q.update()
    assert a.calls == 0
    assert b.calls == 1


def test_pop_unknown_is_noop():
    q = BalanceQueue(2)
    a = Counter()
    q.push(a)
    q.pop(Counter())
    q.update()
    q.update()
    assert a.calls == 1


def test_update_wraps_around():
    q = BalanceQueue(2)
    a = Counter()
    q.push(a)
    for _ in range(4):
        q.update()
    assert a.calls == 2


def test_element_wrapper_calls_function():
    calls = []
    q = BalanceQueue(1)
    q.push(element_wrapper(lambda: calls.append(1)))
    q.update()
    q.update()
    assert calls == [1, 1]


def test_str_format():
    q = BalanceQueue(2)
    q.push(Counter())
    text = str(q)
    assert text.startswith("BalanceQueue:\n分组数量: 2\n")
    assert "元素数量0: 组数量1 ==>0 \n" in text
    assert "元素数量1: 组数量1 ==>1 \n" in text


def test_random_push_pop_each_live_element_runs_once_per_cycle():
    rng = random.Random(7)
    groups = 5
    q = BalanceQueue(groups)
    live = []
    for step in range(60):
        e = Counter(str(step))
        live.append(e)
        q.push(e)
        if rng.randint(0, 9) > 5 and len(live) >= 2:
            for v in live[:2]:
                q.pop(v)
            live = live[2:]
        for e in live:
            e.calls = 0
        for _ in range(groups):
            q.update()
        assert all(e.calls == 1 for e in live)


def test_many_elements_extend_tables():
    q = BalanceQueue(1)
    elems = [Counter() for _ in range(25)]
    for e in elems:
        q.push(e)
    q.update()
    assert _total(elems) == 25
    assert "元素数量25: 组数量1 ==>25 \n" in str(q)