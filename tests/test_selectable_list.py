import pytest

import todo_timer as tt


def _list(*items, selected=None):
    sl = tt.SelectableList(items)
    sl.select(selected)
    return sl


def test_empty_list_navigation_is_noop():
    sl = tt.SelectableList()
    sl.next()
    assert sl.selected is None
    sl.previous()
    assert sl.selected is None
    assert sl.selected_item() is None


def test_first_step_selects_index_zero():
    sl = _list('a', 'b', 'c')
    sl.next()
    assert sl.selected == 0
    sl = _list('a', 'b', 'c')
    sl.previous()
    assert sl.selected == 0


def test_next_and_previous_wrap_around():
    sl = _list('a', 'b', 'c', selected=2)
    sl.next()
    assert sl.selected == 0
    sl.previous()
    assert sl.selected == 2
    assert sl.selected_item() == 'c'


@pytest.mark.parametrize('n', [1, 2, 3, 5])
@pytest.mark.parametrize('start', [0, -1])
def test_full_cycle_returns_to_start(n, start):
    items = [f'item{i}' for i in range(n)]
    start_idx = start % n
    sl = _list(*items, selected=start_idx)
    for _ in range(n):
        sl.next()
    assert sl.selected == start_idx
    for _ in range(n):
        sl.previous()
    assert sl.selected == start_idx


def test_append_keeps_selection():
    sl = _list('a', 'b', selected=1)
    sl.append('c')
    assert sl.items == ['a', 'b', 'c']
    assert sl.selected == 1


def test_select_out_of_range_clears():
    sl = _list('a', 'b', selected=1)
    sl.select(5)
    assert sl.selected is None
    sl.select(-1)
    assert sl.selected is None


def test_move_without_selection_is_noop():
    sl = _list('a', 'b', 'c')
    sl.move_selected(tt.Direction.UP)
    sl.move_selected(tt.Direction.DOWN)
    assert sl.items == ['a', 'b', 'c']
    assert sl.selected is None


@pytest.mark.parametrize('direction', [tt.Direction.UP, tt.Direction.DOWN])
@pytest.mark.parametrize('start', [0, 1])
def test_move_with_two_items_always_swaps(direction, start):
    sl = _list('a', 'b', selected=start)
    moved = sl.selected_item()
    sl.move_selected(direction)
    assert sl.items == ['b', 'a']
    assert sl.selected == 1 - start
    assert sl.selected_item() == moved


@pytest.mark.parametrize('direction', [tt.Direction.UP, tt.Direction.DOWN])
def test_move_single_item_swaps_with_itself(direction):
    sl = _list('only', selected=0)
    sl.move_selected(direction)
    assert sl.items == ['only']
    assert sl.selected == 0


def test_move_up_from_top_wraps_to_bottom():
    sl = _list('a', 'b', 'c', selected=0)
    sl.move_selected(tt.Direction.UP)
    assert sl.items == ['c', 'b', 'a']
    assert sl.selected == 2
    assert sl.selected_item() == 'a'


def test_move_down_from_bottom_wraps_to_top():
    sl = _list('a', 'b', 'c', selected=2)
    sl.move_selected(tt.Direction.DOWN)
    assert sl.items == ['c', 'b', 'a']
    assert sl.selected == 0
    assert sl.selected_item() == 'c'


def test_move_in_the_middle_follows_element():
    sl = _list('a', 'b', 'c', 'd', selected=1)
    sl.move_selected(tt.Direction.DOWN)
    assert sl.items == ['a', 'c', 'b', 'd']
    assert sl.selected_item() == 'b'
    sl.move_selected(tt.Direction.UP)
    sl.move_selected(tt.Direction.UP)
    assert sl.items == ['b', 'a', 'c', 'd']
    assert sl.selected == 0


@pytest.mark.parametrize('index', [0, 1, 2])
def test_remove_selected_always_clears_selection(index):
    sl = _list('a', 'b', 'c', selected=index)
    removed = sl.remove_selected()
    assert removed == ['a', 'b', 'c'][index]
    assert len(sl) == 2
    assert removed not in sl.items
    assert sl.selected is None


def test_remove_without_selection_returns_none():
    sl = _list('a', 'b')
    assert sl.remove_selected() is None
    assert sl.items == ['a', 'b']
