"""
Concurrent access to one bot.

Sessions run in parallel threads; every session must see only its own
variables and learned categories, and shared categories learned while other
threads are matching must not corrupt the index.
"""

import threading

from conftest import aiml, category

THREADS = 8
TURNS = 20


def _run_all(workers):
    errors = []

    def _guard(fn):
        def _wrapped():
            try:
                fn()
            except AssertionError as exc:
                errors.append(exc)
        return _wrapped

    threads = [threading.Thread(target=_guard(w)) for w in workers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert not any(t.is_alive() for t in threads)
    return errors


def test_parallel_sessions_keep_their_own_variables(bot):
    bot.load_corpus(aiml(
        category("CALL ME *", '<think><set name="name"><star/></set></think>OK'),
        category("WHO AM I", '<get name="name"/>'),
    ))

    def _worker(n):
        def _run():
            session_id = f"user-{n}"
            for turn in range(TURNS):
                name = f"n{n}t{turn}"
                assert bot.process_input(f"call me {name}", session_id) == "OK"
                assert bot.process_input("who am i", session_id) == name
        return _run

    assert _run_all([_worker(n) for n in range(THREADS)]) == []
    assert len(bot.list_sessions()) == THREADS


def test_parallel_learning_stays_session_scoped(bot):
    bot.load_corpus(aiml(category(
        "TEACH *",
        "<learn><category><pattern>SECRET</pattern><template><eval><star/></eval></template></category></learn>ok",
    )))

    def _worker(n):
        def _run():
            session_id = f"learner-{n}"
            bot.process_input(f"teach code{n}", session_id)
            for _ in range(TURNS):
                assert bot.process_input("secret", session_id) == f"code{n}"
        return _run

    assert _run_all([_worker(n) for n in range(THREADS)]) == []


def test_shared_learning_while_matching(bot):
    bot.load_corpus(aiml(
        category("ADD *", "<learnf><category><pattern>FACT <eval><star/></eval></pattern>"
                          "<template>known</template></category></learnf>added"),
        category("PING", "pong"),
    ))

    def _writer(n):
        def _run():
            for i in range(TURNS):
                assert bot.process_input(f"add w{n}x{i}", f"writer-{n}") == "added"
        return _run

    def _reader(n):
        def _run():
            for _ in range(TURNS):
                assert bot.process_input("ping", f"reader-{n}") == "pong"
        return _run

    workers = [_writer(n) for n in range(THREADS // 2)] + [_reader(n) for n in range(THREADS // 2)]
    assert _run_all(workers) == []
    assert len(bot.index) == 2 + (THREADS // 2) * TURNS
    assert bot.process_input("fact w0x0", "reader-0") == "known"
