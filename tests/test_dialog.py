import todo_timer as tt

from .helpers import make_item


def test_new_dialog_types_into_focused_field():
    dialog = tt.Dialog()
    assert dialog.open_new() is True
    assert dialog.mode is tt.DialogMode.CREATING_NEW
    dialog.insert('Ho')
    dialog.insert('me')
    dialog.toggle_field()
    assert dialog.field is tt.DialogField.DESCRIPTION
    dialog.insert('chores')
    dialog.backspace()
    assert dialog.scratch.title == 'Home'
    assert dialog.scratch.description == 'chore'


def test_open_is_ignored_while_already_open():
    dialog = tt.Dialog()
    dialog.open_new()
    dialog.insert('keep')
    assert dialog.open_new() is False
    assert dialog.open_edit(make_item(title='other')) is False
    assert dialog.mode is tt.DialogMode.CREATING_NEW
    assert dialog.scratch.title == 'keep'


def test_edit_dialog_prefills_a_copy():
    item = make_item(title='Draft', description='first pass')
    dialog = tt.Dialog()
    assert dialog.open_edit(item) is True
    assert dialog.mode is tt.DialogMode.EDITING
    assert (dialog.scratch.title, dialog.scratch.description) == ('Draft', 'first pass')
    dialog.insert('!')
    assert item.title == 'Draft'


def test_close_resets_scratch_and_focus():
    dialog = tt.Dialog()
    dialog.open_new()
    dialog.insert('x')
    dialog.toggle_field()
    dialog.close()
    assert dialog.mode is tt.DialogMode.CLOSED
    assert dialog.scratch == tt.Item()
    assert dialog.field is tt.DialogField.TITLE


def test_backspace_on_empty_field_is_noop():
    dialog = tt.Dialog()
    dialog.open_new()
    dialog.backspace()
    assert dialog.scratch.title == ''


def test_closed_dialog_ignores_input():
    dialog = tt.Dialog()
    dialog.insert('abc')
    dialog.backspace()
    dialog.handle(tt.KeyEvent('a'), None)
    assert dialog.scratch == tt.Item()


def test_handle_routes_dialog_commands_and_characters():
    dialog = tt.Dialog()
    dialog.open_new()
    dialog.handle(tt.KeyEvent('a'), None)
    dialog.handle(tt.KeyEvent(' '), None)
    dialog.handle(tt.KeyEvent('B'), None)
    dialog.handle(tt.KeyEvent('n', frozenset({tt.MOD_CONTROL})), 'new')
    assert dialog.scratch.title == 'a B'
    dialog.handle(tt.KeyEvent('backspace'), 'backspace')
    assert dialog.scratch.title == 'a '
    dialog.handle(tt.KeyEvent('tab'), 'switch_field')
    assert dialog.field is tt.DialogField.DESCRIPTION
    dialog.handle(tt.KeyEvent('escape'), 'cancel')
    assert not dialog.is_open
    assert dialog.scratch.title == ''


def test_printable_key_bound_to_command_still_types():
    dialog = tt.Dialog()
    dialog.open_new()
    dialog.handle(tt.KeyEvent('n'), 'new')
    assert dialog.scratch.title == 'n'


def test_heading_depends_on_mode_and_drill_down():
    dialog = tt.Dialog()
    assert dialog.heading(False) == ''
    dialog.open_new()
    assert dialog.heading(False) == 'New Group'
    assert dialog.heading(True) == 'New Item'
    dialog.close()
    dialog.open_edit(make_item())
    assert dialog.heading(True) == 'Edit Item'
