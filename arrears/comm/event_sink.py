"""Append-only NDJSON persistence of dispatch transitions."""

import json
import logging
from pathlib import Path
from threading import Lock

from arrears.comm.events import DispatchTransition


class TransitionSink:
    """Transition observer writing one NDJSON line per transition.

    Files are laid out as `<base_dir>/<YYYYMMDD>/transitions-<run_id>.ndjson`.
    Write failures are logged; the sink never interrupts a dispatch.
    """

    def __init__(self, base_dir: Path | str | None = None):
        """Initialize transition sink.

        Args:
            base_dir: Base directory for artifacts (default: artifacts/reminders)
        """
        if base_dir is None:
            base_dir = Path("artifacts") / "reminders"
        self.base_dir = Path(base_dir)
        self.logger = logging.getLogger(__name__)
        self._lock = Lock()
        self.written = 0

    def path_for(self, transition: DispatchTransition) -> Path:
        date_str = transition.ts.strftime("%Y%m%d")
        run_id = transition.run_id or "adhoc"
        return self.base_dir / date_str / f"transitions-{run_id}.ndjson"

    def persist(self, transition: DispatchTransition) -> Path | None:
        """Append a transition to its NDJSON file.

        Returns:
            Path written, or None when the write failed
        """
        path = self.path_for(transition)
        line = json.dumps(transition.model_dump(mode="json"), default=str)
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
                self.written += 1
        except OSError as e:
            self.logger.error(
                "Failed to persist dispatch transition",
                extra={"target_id": transition.target_id, "path": str(path), "error": str(e)},
            )
            return None
        return path

    def __call__(self, transition: DispatchTransition) -> None:
        self.persist(transition)


def read_transitions(path: Path | str) -> list[DispatchTransition]:
    """Load transitions back from an NDJSON file."""
    transitions = []
    with Path(path).open(encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                transitions.append(DispatchTransition.model_validate_json(line))
    return transitions
