"""
Addon Errors
Error types raised by the addon store, parser, backup and git layers
"""


class AddonError(Exception):
    """Base class for addon subsystem failures.

    Every subclass carries a stable ``code`` so callers can branch on the
    kind of failure without matching message text.
    """
    code = 'error'


class AddonNotFoundError(AddonError):
    code = 'not_found'


class BackupNotFoundError(AddonError):
    code = 'not_found'


class ManifestNotFoundError(AddonError):
    code = 'not_found'


class AddonExistsError(AddonError):
    code = 'already_exists'


class InvalidURLError(AddonError):
    code = 'invalid_url'


class NotARepositoryError(AddonError):
    code = 'not_a_repository'


class CorruptedRepositoryError(AddonError):
    code = 'corrupted'


class LocalChangesError(AddonError):
    """Fast-forward refused because the working tree has local changes."""
    code = 'local_changes'


class NoRemoteError(AddonError):
    code = 'no_remote'


class AddonIOError(AddonError):
    code = 'io_error'


class NetworkError(AddonError):
    code = 'network_error'


class StoreParseError(AddonError):
    code = 'parse_error'


class RegistryError(NetworkError):
    """Registry could not be fetched and no cached copy exists."""
