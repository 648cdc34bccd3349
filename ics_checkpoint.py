"""Resume checkpoints: a <name>.ics.position sidecar holding the last imported index."""

from pathlib import Path

CHECKPOINT_SUFFIX = '.position'


class CheckpointStore:
    """Stores the zero-based index of the last event confirmed by Google"""

    def __init__(self, source_path: str):
        self.source_path = source_path
        self.path = Path(f"{source_path}{CHECKPOINT_SUFFIX}")

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> int:
        """Return the saved index, or -1 when there is nothing to resume"""
        if not self.path.exists():
            return -1

        try:
            position = int(self.path.read_text(encoding='utf-8').strip())
        except (OSError, ValueError) as e:
            print(f"Warning: Could not load checkpoint {self.path} ({e}), starting from beginning")
            return -1

        if position < 0:
            print(f"Warning: Ignoring negative checkpoint in {self.path}, starting from beginning")
            return -1

        print(f"Found checkpoint: resuming from event {position + 2}")
        return position

    def save(self, position: int) -> None:
        try:
            self.path.write_text(str(position), encoding='utf-8')
        except OSError as e:
            print(f"Warning: Could not save checkpoint {self.path}: {e}")

    def clear(self) -> None:
        try:
            if self.path.exists():
                self.path.unlink()
                print("Cleaned up checkpoint file")
        except OSError as e:
            print(f"Warning: Could not remove checkpoint file {self.path}: {e}")
