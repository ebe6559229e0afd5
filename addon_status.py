"""
Addon Status
Default addon allow-list and the status an addon folder is in
"""

# Addons bundled with the Turtle WoW client. They never need tracking and are
# never reported by repair.
DEFAULT_ADDONS = frozenset([
    'Blizzard_AuctionUI',
    'Blizzard_BattlefieldMinimap',
    'Blizzard_BindingUI',
    'Blizzard_CombatText',
    'Blizzard_CraftUI',
    'Blizzard_GMChatUI',
    'Blizzard_GMSurveyUI',
    'Blizzard_InspectUI',
    'Blizzard_MacroUI',
    'Blizzard_RaidUI',
    'Blizzard_TalentUI',
    'Blizzard_TradeSkillUI',
    'Blizzard_TrainerUI',
])

STATUS_ABSENT = 'absent'
STATUS_TRACKED = 'tracked'
STATUS_UNTRACKED = 'untracked'
STATUS_DEFAULT = 'default'
STATUS_ORPHANED = 'orphaned'
STATUS_CORRUPTED = 'corrupted'

_STATUS_PRIORITY = {
    STATUS_DEFAULT: 0,
    STATUS_TRACKED: 1,
    STATUS_UNTRACKED: 2,
    STATUS_CORRUPTED: 2,
    STATUS_ORPHANED: 3,
    STATUS_ABSENT: 3,
}


def is_default_addon(name):
    return name in DEFAULT_ADDONS


def classify_addon(has_entry, has_directory, is_default, is_corrupted=False):
    """Work out an addon's status from what the store and the disk say.

    Args:
        has_entry: bool - the store holds metadata with a git URL for the addon
        has_directory: bool - the addon folder exists
        is_default: bool - the name is a bundled default addon
        is_corrupted: bool - the folder is a git repository that failed verification

    Returns:
        str - one of the STATUS_* values
    """
    if not has_directory:
        return STATUS_ORPHANED if has_entry else STATUS_ABSENT
    if is_default:
        return STATUS_DEFAULT
    if is_corrupted:
        return STATUS_CORRUPTED
    if has_entry:
        return STATUS_TRACKED
    return STATUS_UNTRACKED


def status_priority(status):
    """Sort key used when listing installed addons"""
    return _STATUS_PRIORITY.get(status, len(_STATUS_PRIORITY))
