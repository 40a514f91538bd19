"""File-based JSON storage.

Data layout:
  data/
    saves/
      <slot>.json      SaveState documents, one per save slot
    config.json        App settings (narrator and image connections, defaults)

Slot names are slugified: "My Run" → "my-run". An unreadable slot is
deleted when loading it fails.

Config: get_config() returns defaults merged with stored values, then
NARRATOR_* / IMAGE_* environment variables on top. update_config() applies
partial updates: connection groups merged key-by-key, scalars overwritten.
"""

# Re-export all public symbols so `from rpg_chronicle import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    saves_dir,
    slugify,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)

from .saves import (  # noqa: F401
    DEFAULT_SLOT,
    SaveNotFoundError,
    delete_save,
    has_save,
    list_saves,
    load_game,
    save_game,
)
