import datetime as dt

import todo_timer as tt


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: dt.datetime):
        self.now = start
        self.calls = 0

    def __call__(self) -> dt.datetime:
        self.calls += 1
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)


def make_item(**overrides) -> tt.Item:
    base = dict(title='Draft', description='')
    base.update(overrides)
    return tt.Item(**base)


def make_group(name='Work', *items) -> tt.Group:
    return tt.Group(name=name, items=tt.SelectableList(items))


def make_session(clock, *groups) -> tt.Session:
    return tt.Session(groups=groups, clock=clock)


def press(session, *keys):
    """Feed key names to the session in order; return the resolved commands."""
    return [session.event(key) for key in keys]


def type_text(session, text):
    for ch in text:
        session.event(ch)


def open_group(session, index=0):
    """Select group ``index`` from a cleared cursor and drill into it."""
    for _ in range(index + 1):
        session.event('down')
    session.event('right')


__all__ = [
    'FakeClock',
    'make_item',
    'make_group',
    'make_session',
    'press',
    'type_text',
    'open_group',
]
