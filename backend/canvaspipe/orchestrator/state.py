"""State machine constants and transition logic for pipeline steps.

A step moves strictly forward through queued -> running -> {done, failed}
and never re-enters ``queued`` or ``running`` once terminal.
"""

from typing import Dict, FrozenSet, Optional

# Step states in execution order
STEP_STATES = {
    "queued": "Step recorded, waiting for run_step",
    "running": "Step claimed, provider adapter call in flight",
    "done": "Adapter returned an asset; output_asset_id set",
    "failed": "Precondition or adapter failure; error set",
}

# Allowed forward transitions
STEP_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "queued": frozenset({"running"}),
    "running": frozenset({"done", "failed"}),
    "done": frozenset(),
    "failed": frozenset(),
}

TERMINAL_STATES = frozenset({"done", "failed"})

# Known step kinds mapped to the adapter family that serves them
STEP_KINDS = {
    "GENERATE": "generate",
    "EDIT": "edit",
    "UPSCALE": "edit",
    "REMOVE_BG": "edit",
    "ADD_TEXT": "text_overlay",
    "ANIMATE": "animate",
    "ADD_SOUND": "sound",
}

# Kinds whose adapter consumes an input asset
INPUT_REQUIRED_KINDS = frozenset(k for k in STEP_KINDS if k != "GENERATE")

# Instruction synthesized for edit-family kinds when params omit one
SYNTHESIZED_INSTRUCTIONS = {
    "UPSCALE": "Upscale this image to a higher resolution while preserving detail",
    "REMOVE_BG": "Remove the background, keeping only the main subject on transparency",
}

# (category, subcategory) applied to a step's output asset.
# ADD_SOUND is absent: the adapter's own classification is kept.
OUTPUT_CATEGORIES = {
    "GENERATE": ("generated", "AI Generated"),
    "UPSCALE": ("edited", "Upscaled"),
    "REMOVE_BG": ("edited", "Background Removed"),
    "EDIT": ("edited", "Enhanced"),
    "ADD_TEXT": ("edited", "Enhanced"),
    "ANIMATE": ("animated", "Sprites"),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether a step may move from ``current`` to ``target``."""
    return target in STEP_TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def family_for_kind(kind: str) -> Optional[str]:
    """Return the adapter family for a step kind, or None when unknown."""
    return STEP_KINDS.get(kind)


def category_for_kind(kind: str) -> Optional[tuple[str, str]]:
    return OUTPUT_CATEGORIES.get(kind)
