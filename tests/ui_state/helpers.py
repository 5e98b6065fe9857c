from types import SimpleNamespace

from prompt_toolkit.formatted_text import fragment_list_to_text, to_formatted_text
from prompt_toolkit.layout.controls import FormattedTextControl


def key_press(key, data=''):
    return SimpleNamespace(key=key, data=data)


def dummy_event(*keys, data=''):
    """Event object carrying one key press per entry in ``keys``."""
    return SimpleNamespace(key_sequence=[key_press(k, data) for k in keys])


def any_key_handler(kb):
    """Return the catch-all handler registered on ``kb``."""
    assert len(kb.bindings) == 1
    return kb.bindings[0].handler


def fragments_text(frags):
    return ''.join(text for _style, text, *_ in frags)


def rendered_text(layout):
    """Concatenate the text of every FormattedTextControl in ``layout``."""
    parts = []
    for window in layout.find_all_windows():
        content = getattr(window, 'content', None)
        if isinstance(content, FormattedTextControl):
            parts.append(fragment_list_to_text(to_formatted_text(content.text)))
    return '\n'.join(parts)


__all__ = [
    'key_press',
    'dummy_event',
    'any_key_handler',
    'fragments_text',
    'rendered_text',
]
