import pytest

from addon_status import (STATUS_ABSENT, STATUS_CORRUPTED, STATUS_DEFAULT, STATUS_ORPHANED,
                          STATUS_TRACKED, STATUS_UNTRACKED, classify_addon, is_default_addon,
                          status_priority)


@pytest.mark.parametrize('has_entry, has_directory, is_default, is_corrupted, expected', [
    (False, False, False, False, STATUS_ABSENT),
    (True, False, False, False, STATUS_ORPHANED),
    (True, True, False, False, STATUS_TRACKED),
    (False, True, False, False, STATUS_UNTRACKED),
    (False, True, True, False, STATUS_DEFAULT),
    (True, True, True, True, STATUS_DEFAULT),
    (True, True, False, True, STATUS_CORRUPTED),
    (False, True, False, True, STATUS_CORRUPTED),
])
def test_classify_addon(has_entry, has_directory, is_default, is_corrupted, expected):
    assert classify_addon(has_entry, has_directory, is_default, is_corrupted) == expected


def test_default_addons():
    assert is_default_addon('Blizzard_AuctionUI')
    assert is_default_addon('Blizzard_TrainerUI')
    assert not is_default_addon('blizzard_auctionui')
    assert not is_default_addon('pfQuest')


def test_list_order_is_default_then_tracked_then_untracked():
    statuses = [STATUS_UNTRACKED, STATUS_TRACKED, STATUS_DEFAULT]

    assert sorted(statuses, key=status_priority) == [STATUS_DEFAULT, STATUS_TRACKED, STATUS_UNTRACKED]
