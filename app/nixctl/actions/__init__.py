"""Concrete installer actions.

Importing this package registers every action under its tag, which is what
lets a serialized plan be loaded back.
"""

from nixctl.actions.configure_init_service import ConfigureInitService
from nixctl.actions.configure_shell_profile import ConfigureShellProfile
from nixctl.actions.create_directory import CreateDirectory
from nixctl.actions.create_or_insert_into_file import CreateOrInsertIntoFile, Position
from nixctl.actions.create_or_merge_nix_config import CreateOrMergeNixConfig
from nixctl.actions.fetch_and_unpack_nix import FetchAndUnpackNix
from nixctl.actions.move_unpacked_nix import MoveUnpackedNix
from nixctl.actions.place_nix_configuration import PlaceNixConfiguration

__all__ = [
    "ConfigureInitService",
    "ConfigureShellProfile",
    "CreateDirectory",
    "CreateOrInsertIntoFile",
    "CreateOrMergeNixConfig",
    "FetchAndUnpackNix",
    "MoveUnpackedNix",
    "PlaceNixConfiguration",
    "Position",
]
