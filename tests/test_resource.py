import threading

from resloader.resource import Resource


def test_resource():
    m = Resource()

    m.set(1, "1")
    assert m.get() == (1, "1")

    m.etag = "2"
    assert m.etag == "2"

    m.resource = 2
    assert m.resource == 2


def test_initial_state():
    assert Resource().get() == (None, "")


def test_set_resource_keeps_etag():
    m = Resource([1], "tag")
    m.resource = [2]
    assert m.get() == ([2], "tag")


def test_concurrent_sets_stay_paired():
    m = Resource()

    def writer(n):
        for i in range(200):
            m.set((n, i), f"{n}-{i}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    (n, i), etag = m.get()
    assert etag == f"{n}-{i}"