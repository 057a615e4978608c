import importlib
import sys


def test_importing_run_does_not_build_the_app(monkeypatch):
    built = []
    monkeypatch.setattr("bookmarkhub.create_app", lambda *args: built.append(args))
    monkeypatch.delitem(sys.modules, "run", raising=False)

    run = importlib.import_module("run")

    assert built == []
    assert not hasattr(run, "app")
    assert callable(run.main)
