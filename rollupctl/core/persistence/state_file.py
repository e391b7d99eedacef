"""
State file persistence — atomic read/write for ProjectState.

State is stored as JSON in .state/current.json. Writes are atomic
(write to temp file, then rename) so a crash mid-write never leaves a
truncated file behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from rollupctl.core.models.state import ProjectState

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".state"
DEFAULT_STATE_FILE = "current.json"


def default_state_path(state_dir: str | Path = DEFAULT_STATE_DIR) -> Path:
    """Get the state file path inside a state directory."""
    return Path(state_dir) / DEFAULT_STATE_FILE


def load_state(path: Path) -> ProjectState:
    """Load state from a JSON file.

    Returns:
        ProjectState model. A missing or corrupt file yields a fresh state.
    """
    if not path.is_file():
        logger.debug("No state file at %s, starting fresh", path)
        return ProjectState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = ProjectState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
        return ProjectState()
    except (OSError, PydanticValidationError) as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
        return ProjectState()


def save_state(state: ProjectState, path: Path) -> None:
    """Save state to a JSON file (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("State saved to %s", path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
