from . import (
    approval_gate,
    await_iteration,
    await_translation,
    copy_outputs,
    create_iteration,
    create_translation,
    run_validation,
    tracker,
    validate_input,
)

__all__ = [
    "approval_gate",
    "await_iteration",
    "await_translation",
    "copy_outputs",
    "create_iteration",
    "create_translation",
    "run_validation",
    "tracker",
    "validate_input",
]
